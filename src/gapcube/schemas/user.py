"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs in a variety of formats, with aliases
for common naming patterns (e.g., SENSOR -> mask.default_sensor,
REDUCER -> composite.reducer).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults. Validation is lenient to accept
both uppercase and lowercase keys, integers where floats are expected, etc.
"""

from typing import Any, Literal, Optional
from pydantic import Field, field_validator
from gapcube.schemas.base import GapcubeBaseModel
from gapcube.schemas.grid import Grid
from gapcube.schemas.param import normalize_reducer


class UserMaskConfig(GapcubeBaseModel):
    """User-facing masking config."""
    default_sensor: Optional[str] = None
    rulesets: Optional[dict[str, dict[str, Any]]] = None
    treat_as_valid: Optional[list[str]] = None
    buffer_pixels: Optional[int] = None
    band_specific: Optional[bool] = None


class UserMosaicConfig(GapcubeBaseModel):
    """User-facing mosaicking config."""
    tie_break: Optional[str] = None
    cloud_var: Optional[str] = None

    @field_validator("tie_break", mode="before")
    @classmethod
    def normalize_tie_break(cls, v):
        """Normalize policy names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip().replace("-", "_")
        return v


class UserCompositeConfig(GapcubeBaseModel):
    """User-facing compositing config."""
    reducer: Optional[str] = None
    index_band: Optional[str] = None
    frequency: Optional[str] = None
    min_observations: Optional[int] = None

    @field_validator("reducer", mode="before")
    @classmethod
    def normalize_reducer_name(cls, v):
        """Normalize reducer names and aliases."""
        return normalize_reducer(v)


class UserSmoothingConfig(GapcubeBaseModel):
    """User-facing smoothing config."""
    method: Optional[str] = None
    min_valid: Optional[int] = None
    penalty: Optional[float] = None
    period_days: Optional[float] = None
    value_range: Optional[tuple[float, float]] = None
    band_ranges: Optional[dict[str, tuple[float, float]]] = None
    robust: Optional[bool] = None
    outlier_threshold: Optional[float] = None
    spread_window: Optional[int] = None
    min_spread: Optional[float] = None
    max_iterations: Optional[int] = None
    target_frequency: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        """Normalize method names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip().replace("-", "_")
        return v


class UserProcessorConfig(GapcubeBaseModel):
    """User-facing worker pool config."""
    workers: Optional[int] = None
    chunk_size: Optional[int] = None
    max_queue_size: Optional[int] = None


class UserConfig(GapcubeBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    This config is converted to internal overrides during resolution.

    Usage
    -----
        user_cfg = UserConfig(
            grid={"origin_x": 500000, "origin_y": 4200000, "cell_size": 30,
                  "n_rows": 512, "n_cols": 512, "crs": "EPSG:32630"},
            sensor="landsat8",
            reducer="maximum_of",
            index_band="ndvi",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Grid (full definition, no partial merge)
    grid: Optional[Grid] = Field(None, alias="GRID")

    # Masking settings (flat aliases)
    sensor: Optional[str] = Field(None, alias="SENSOR")
    treat_as_valid: Optional[list[str]] = Field(None, alias="TREAT_AS_VALID")
    buffer_pixels: Optional[int] = Field(None, alias="BUFFER_PIXELS")

    # Mosaic settings (flat aliases)
    tie_break: Optional[str] = Field(None, alias="TIE_BREAK")

    # Composite settings (flat aliases)
    reducer: Optional[str] = Field(None, alias="REDUCER")
    index_band: Optional[str] = Field(None, alias="INDEX_BAND")
    composite_frequency: Optional[str] = Field(None, alias="COMPOSITE_FREQUENCY")

    # Smoothing settings (flat aliases)
    smoothing_method: Optional[str] = Field(None, alias="SMOOTHING_METHOD")
    penalty: Optional[float] = Field(None, alias="PENALTY")
    value_range: Optional[tuple[float, float]] = Field(None, alias="VALUE_RANGE")
    min_valid: Optional[int] = Field(None, alias="MIN_VALID")
    target_frequency: Optional[str] = Field(None, alias="TARGET_FREQUENCY")

    # Processor settings (flat aliases)
    workers: Optional[int] = Field(None, alias="WORKERS")
    chunk_size: Optional[int] = Field(None, alias="CHUNK_SIZE")

    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(
        None, alias="LOG_LEVEL"
    )

    # Nested overrides (advanced users)
    mask: Optional[UserMaskConfig] = None
    mosaic: Optional[UserMosaicConfig] = None
    composite: Optional[UserCompositeConfig] = None
    smoothing: Optional[UserSmoothingConfig] = None
    processor: Optional[UserProcessorConfig] = None

    model_config = GapcubeBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("penalty", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for numeric fields."""
        if v is not None:
            return float(v)
        return v

    @field_validator(
        "sensor", "tie_break", "smoothing_method", mode="before"
    )
    @classmethod
    def normalize_names(cls, v):
        """Normalize sensor, policy and method names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip().replace("-", "_")
        return v

    @field_validator("reducer", mode="before")
    @classmethod
    def normalize_flat_reducer(cls, v):
        return normalize_reducer(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.grid is not None:
            overrides["grid"] = self.grid.model_dump()

        # Mask section
        mask = {}
        if self.sensor is not None:
            mask["default_sensor"] = self.sensor
        if self.treat_as_valid is not None:
            mask["treat_as_valid"] = list(self.treat_as_valid)
        if self.buffer_pixels is not None:
            mask["buffer_pixels"] = self.buffer_pixels

        # Merge with explicit mask config
        if self.mask is not None:
            mask.update(self.mask.model_dump(exclude_none=True))

        if mask:
            overrides["mask"] = mask

        # Mosaic section
        mosaic = {}
        if self.tie_break is not None:
            mosaic["tie_break"] = self.tie_break

        if self.mosaic is not None:
            mosaic.update(self.mosaic.model_dump(exclude_none=True))

        if mosaic:
            overrides["mosaic"] = mosaic

        # Composite section
        composite = {}
        if self.reducer is not None:
            composite["reducer"] = self.reducer
        if self.index_band is not None:
            composite["index_band"] = self.index_band
        if self.composite_frequency is not None:
            composite["frequency"] = self.composite_frequency

        if self.composite is not None:
            composite.update(self.composite.model_dump(exclude_none=True))

        if composite:
            overrides["composite"] = composite

        # Smoothing section
        smoothing = {}
        if self.smoothing_method is not None:
            smoothing["method"] = self.smoothing_method
        if self.penalty is not None:
            smoothing["penalty"] = self.penalty
        if self.value_range is not None:
            smoothing["value_range"] = self.value_range
        if self.min_valid is not None:
            smoothing["min_valid"] = self.min_valid
        if self.target_frequency is not None:
            smoothing["target_frequency"] = self.target_frequency

        if self.smoothing is not None:
            smoothing.update(self.smoothing.model_dump(exclude_none=True))

        if smoothing:
            overrides["smoothing"] = smoothing

        # Processor section
        processor = {}
        if self.workers is not None:
            processor["workers"] = self.workers
        if self.chunk_size is not None:
            processor["chunk_size"] = self.chunk_size

        if self.processor is not None:
            processor.update(self.processor.model_dump(exclude_none=True))

        if processor:
            overrides["processor"] = processor

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
