"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and frozen: it doubles as the immutable run context handed to
every stage and every chunk worker.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from typing import Literal, Optional
from pydantic import ConfigDict, Field, model_validator
from gapcube.schemas.base import GapcubeBaseModel
from gapcube.schemas.grid import Grid
from gapcube.schemas.ruleset import Ruleset


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class _FrozenModel(GapcubeBaseModel):
    """Runtime sections are immutable like the config that holds them."""
    model_config = ConfigDict(frozen=True)


class InternalMaskConfig(_FrozenModel):
    """Runtime masking configuration (rulesets already adjusted)."""
    default_sensor: Optional[str]
    rulesets: dict[str, Ruleset]


class InternalMosaicConfig(_FrozenModel):
    """Runtime mosaicking configuration."""
    tie_break: Literal["last", "prefer_valid", "lowest_cloud"]
    cloud_var: str


class InternalCompositeConfig(_FrozenModel):
    """Runtime compositing configuration."""
    reducer: Literal["maximum_of", "median", "mean", "first", "last"]
    index_band: Optional[str]
    frequency: str
    min_observations: int = Field(ge=1)

    @model_validator(mode="after")
    def maximum_of_needs_index_band(self):
        if self.reducer == "maximum_of" and not self.index_band:
            raise ValueError("reducer 'maximum_of' requires composite.index_band")
        return self


class InternalSmoothingConfig(_FrozenModel):
    """Runtime smoothing configuration."""
    method: Literal["linear", "spline", "periodic_spline", "whittaker"]
    min_valid: int = Field(ge=1)
    penalty: float = Field(gt=0)
    period_days: float = Field(gt=0)
    value_range: Optional[tuple[float, float]]
    band_ranges: dict[str, tuple[float, float]]
    robust: bool
    outlier_threshold: float = Field(gt=0)
    spread_window: int = Field(ge=3)
    min_spread: float = Field(ge=0)
    max_iterations: int = Field(ge=0, le=50)
    target_frequency: Optional[str]


class InternalProcessorConfig(_FrozenModel):
    """Runtime worker pool configuration."""
    workers: int = Field(ge=1)
    chunk_size: int = Field(ge=1)
    max_queue_size: int = Field(ge=1)


class InternalLoggingConfig(_FrozenModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    log_file: Optional[str]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(GapcubeBaseModel):
    """Authoritative runtime configuration and run context.

    This is the ONLY configuration schema that processing code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters.

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.grid = config.grid                  # NOT .get()
            self.reducer = config.composite.reducer

    Rules
    -----
    - NO .get() calls
    - NO fallback defaults
    - NO type checking
    - NO validation

    All of that happens during config resolution, not in runtime code.
    """

    grid: Grid
    mask: InternalMaskConfig
    mosaic: InternalMosaicConfig
    composite: InternalCompositeConfig
    smoothing: InternalSmoothingConfig
    processor: InternalProcessorConfig
    logging: InternalLoggingConfig

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
    )
