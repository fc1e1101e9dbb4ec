"""Masking rulesets: sensor quality-band semantics as data.

A ruleset maps condition names (cloud, cloud_shadow, snow, ...) to
predicates over a quality variable's raw value. Adding a sensor means
adding an entry to SENSOR_RULESETS (or passing a ruleset in the user
config), never a code change in the masker.

Predicate kinds
---------------
bits
    Extract ``n_bits`` starting at ``start_bit`` and match ``values``
    (Landsat QA_PIXEL, MODIS state_1km).
values
    Exact class codes (Sentinel-2 scene classification).
range
    Inclusive ``min``/``max`` on the raw value (saturation, fill ranges).
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import Field, model_validator

from gapcube.schemas.base import GapcubeBaseModel


class BitRule(GapcubeBaseModel):
    """Bit-field predicate on an integer quality value."""
    kind: Literal["bits"] = "bits"
    start_bit: int = Field(ge=0, le=62)
    n_bits: int = Field(1, ge=1, le=8)
    values: list[int] = Field(default_factory=lambda: [1])
    variable: Optional[str] = None
    bands: Optional[list[str]] = None


class ValueRule(GapcubeBaseModel):
    """Class-code predicate on an integer quality value."""
    kind: Literal["values"] = "values"
    values: list[int] = Field(min_length=1)
    variable: Optional[str] = None
    bands: Optional[list[str]] = None


class RangeRule(GapcubeBaseModel):
    """Inclusive threshold range on a raw value."""
    kind: Literal["range"] = "range"
    min: Optional[float] = None
    max: Optional[float] = None
    variable: Optional[str] = None
    bands: Optional[list[str]] = None

    @model_validator(mode="after")
    def require_a_bound(self):
        if self.min is None and self.max is None:
            raise ValueError("range rule needs 'min', 'max' or both")
        return self


Condition = Annotated[Union[BitRule, ValueRule, RangeRule], Field(discriminator="kind")]


class Ruleset(GapcubeBaseModel):
    """Validity decision logic for one sensor family.

    ``conditions`` define what can be detected; ``exclude`` names the
    conditions that make an observation invalid. Treating snow as valid is
    a matter of dropping "snow" from ``exclude``.
    """
    sensor: str
    quality_var: str
    conditions: dict[str, Condition]
    exclude: list[str]
    band_specific: bool = False
    buffer_pixels: int = Field(0, ge=0, le=50)

    @model_validator(mode="after")
    def exclude_names_known_conditions(self):
        unknown = [name for name in self.exclude if name not in self.conditions]
        if unknown:
            raise ValueError(f"exclude names unknown conditions: {unknown}")
        return self

    def with_valid(self, *names: str) -> "Ruleset":
        """Copy of this ruleset that no longer excludes ``names``."""
        return self.model_copy(
            update={"exclude": [n for n in self.exclude if n not in names]}
        )


# Landsat Collection 2 QA_PIXEL bits: 0 fill, 1 dilated cloud, 2 cirrus
# (OLI only), 3 cloud, 4 cloud shadow, 5 snow.
_LANDSAT_QA = {
    "fill": {"kind": "bits", "start_bit": 0},
    "dilated_cloud": {"kind": "bits", "start_bit": 1},
    "cloud": {"kind": "bits", "start_bit": 3},
    "cloud_shadow": {"kind": "bits", "start_bit": 4},
    "snow": {"kind": "bits", "start_bit": 5},
}

SENSOR_RULESETS: dict[str, Ruleset] = {
    "landsat7": Ruleset(
        sensor="landsat7",
        quality_var="QA_PIXEL",
        conditions=_LANDSAT_QA,
        exclude=["fill", "dilated_cloud", "cloud", "cloud_shadow", "snow"],
    ),
    "landsat8": Ruleset(
        sensor="landsat8",
        quality_var="QA_PIXEL",
        conditions={**_LANDSAT_QA, "cirrus": {"kind": "bits", "start_bit": 2}},
        exclude=["fill", "dilated_cloud", "cirrus", "cloud", "cloud_shadow", "snow"],
    ),
    # Sentinel-2 L2A scene classification (SCL) codes
    "sentinel2": Ruleset(
        sensor="sentinel2",
        quality_var="SCL",
        conditions={
            "fill": {"kind": "values", "values": [0]},
            "saturated": {"kind": "values", "values": [1]},
            "cloud_shadow": {"kind": "values", "values": [3]},
            "cloud": {"kind": "values", "values": [8, 9]},
            "cirrus": {"kind": "values", "values": [10]},
            "snow": {"kind": "values", "values": [11]},
        },
        exclude=["fill", "saturated", "cloud_shadow", "cloud", "cirrus", "snow"],
    ),
    # MOD09 state_1km: bits 0-1 cloud state (1 cloudy, 2 mixed), bit 2 shadow,
    # bits 8-9 cirrus (2 average, 3 high), bit 12 snow/ice
    "modis": Ruleset(
        sensor="modis",
        quality_var="state_1km",
        conditions={
            "cloud": {"kind": "bits", "start_bit": 0, "n_bits": 2, "values": [1, 2]},
            "cloud_shadow": {"kind": "bits", "start_bit": 2},
            "cirrus": {"kind": "bits", "start_bit": 8, "n_bits": 2, "values": [2, 3]},
            "snow": {"kind": "bits", "start_bit": 12},
        },
        exclude=["cloud", "cloud_shadow", "cirrus", "snow"],
    ),
}
