"""Root-level pytest fixtures for the gapcube test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture. All tests must use these fixtures instead of creating raw
dict configs.
"""

import logging

import pytest

from gapcube.schemas import Grid, ParamConfig, UserConfig, resolve_config

from tests.helpers.fake_tiles import GRID


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def grid():
    """Small run grid shared by raster and pipeline tests."""
    return Grid(**GRID)


@pytest.fixture
def param_config():
    """Expert configuration with all defaults.

    Use this as the base for all test configs. Override specific values
    using make_config or by creating custom UserConfig instances.
    """
    return ParamConfig()


@pytest.fixture
def internal_config(param_config, grid):
    """Fully validated runtime configuration (defaults plus the test grid).

    Examples
    --------
    >>> def test_masker_init(internal_config):
    ...     masker = QualityMasker(internal_config)
    ...     assert "landsat8" in masker.rulesets
    """
    return resolve_config(param_config, UserConfig(grid=grid), None)


@pytest.fixture
def make_config(param_config, grid):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs; the test
    grid is used unless one is given.

    Examples
    --------
    >>> def test_reducer(make_config):
    ...     config = make_config(reducer="maximum_of", index_band="ndvi")
    ...     assert Compositor(config).reducer == "maximum_of"
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        user_overrides.setdefault("grid", grid)
        return resolve_config(param_config, UserConfig(**user_overrides), None)

    return _make


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def restore_root_logging():
    """Restore root logger handlers and level after a test reconfigures them."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
