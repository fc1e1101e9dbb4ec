"""Pydantic configuration schemas for the gapcube pipeline.

This module provides strictly typed configuration models for the
stacking pipeline. All configuration validation, coercion, and
normalization happens at schema validation time via Pydantic.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
Grid : class
    Immutable raster grid
Ruleset : class
    Data-driven masking ruleset
"""

from gapcube.schemas.resolve import resolve_config
from gapcube.schemas.internal import InternalConfig
from gapcube.schemas.param import ParamConfig
from gapcube.schemas.user import UserConfig
from gapcube.schemas.cli import CLIConfig
from gapcube.schemas.grid import Grid
from gapcube.schemas.ruleset import Ruleset, SENSOR_RULESETS

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
    'Grid',
    'Ruleset',
    'SENSOR_RULESETS',
]
