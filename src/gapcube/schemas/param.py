"""ParamConfig: Expert defaults for the gapcube pipeline.

This module defines the complete default configuration. ALL pipeline
parameters must have defaults here. No runtime code should define fallback
values - this is the single source of truth for defaults.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from gapcube.schemas.base import GapcubeBaseModel
from gapcube.schemas.grid import Grid
from gapcube.schemas.ruleset import Ruleset, SENSOR_RULESETS


# Names used in the literature for the same reducers
REDUCER_ALIASES = {
    "maximum": "maximum_of",
    "max": "maximum_of",
    "mean_of_valid": "mean",
    "first_valid": "first",
    "last_valid": "last",
}


def normalize_reducer(v):
    """Lowercase a reducer name and map aliases like "mean-of-valid"."""
    if isinstance(v, str):
        v = v.lower().strip().replace("-", "_")
        return REDUCER_ALIASES.get(v, v)
    return v


# =============================================================================
# Nested Configuration Models
# =============================================================================

class MaskConfig(GapcubeBaseModel):
    """Cloud/quality masking configuration."""
    default_sensor: Optional[str] = Field(
        None, description="Ruleset used for tiles without a 'sensor' attribute"
    )
    rulesets: dict[str, Ruleset] = Field(
        default_factory=lambda: dict(SENSOR_RULESETS)
    )
    treat_as_valid: list[str] = Field(
        default_factory=list,
        description="Conditions removed from every ruleset's exclude list",
    )
    buffer_pixels: Optional[int] = Field(None, ge=0, le=50)
    band_specific: Optional[bool] = None

    @field_validator("default_sensor", mode="before")
    @classmethod
    def normalize_sensor_name(cls, v):
        """Normalize sensor names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class MosaicConfig(GapcubeBaseModel):
    """Tile mosaicking configuration."""
    tie_break: Literal["last", "prefer_valid", "lowest_cloud"] = "last"
    cloud_var: str = Field("cloud_probability", description="Per-cell cloud variable")


class CompositeConfig(GapcubeBaseModel):
    """Temporal compositing configuration."""
    reducer: Literal["maximum_of", "median", "mean", "first", "last"] = "median"
    index_band: Optional[str] = None
    frequency: str = Field("MS", description="pandas offset alias for composite periods")
    min_observations: int = Field(1, ge=1)

    @field_validator("reducer", mode="before")
    @classmethod
    def normalize_reducer_name(cls, v):
        return normalize_reducer(v)


class SmoothingConfig(GapcubeBaseModel):
    """Gap-filling and smoothing configuration."""
    method: Literal["linear", "spline", "periodic_spline", "whittaker"] = "whittaker"
    min_valid: int = Field(2, ge=1)
    penalty: float = Field(10.0, gt=0, description="Roughness penalty weight (lambda)")
    period_days: float = Field(365.25, gt=0)
    value_range: Optional[tuple[float, float]] = None
    band_ranges: dict[str, tuple[float, float]] = Field(default_factory=dict)
    robust: bool = True
    outlier_threshold: float = Field(3.0, gt=0)
    spread_window: int = Field(7, ge=3)
    min_spread: float = Field(1e-6, ge=0)
    max_iterations: int = Field(5, ge=0, le=50)
    target_frequency: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method_name(cls, v):
        """Normalize method names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip().replace("-", "_")
        return v

    @field_validator("penalty", mode="before")
    @classmethod
    def coerce_penalty_to_float(cls, v):
        """Allow int or float for penalty."""
        return float(v)


class ProcessorConfig(GapcubeBaseModel):
    """Chunked worker pool configuration."""
    workers: int = Field(4, ge=1, le=64)
    chunk_size: int = Field(128, ge=1, description="Chunk edge length in grid cells")
    max_queue_size: int = Field(100, ge=1)


class LoggingConfig(GapcubeBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Optional[str] = None


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(GapcubeBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all pipeline parameters.
    Every tunable parameter MUST have a default here. The grid has no
    sensible default and must come from the user or CLI layer.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    grid: Optional[Grid] = None
    mask: MaskConfig = Field(default_factory=MaskConfig)
    mosaic: MosaicConfig = Field(default_factory=MosaicConfig)
    composite: CompositeConfig = Field(default_factory=CompositeConfig)
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
