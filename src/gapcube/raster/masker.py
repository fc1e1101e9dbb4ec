"""Cloud/quality masking driven by sensor rulesets.

The masker never touches reflectance values. It reads the quality
variables a ruleset names and produces a boolean validity mask where
``True`` is a usable observation.
"""

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np
import xarray as xr
from scipy.ndimage import binary_dilation

from gapcube.contracts import assert_mask
from gapcube.raster.grid import band_names
from gapcube.schemas.ruleset import BitRule, RangeRule, Ruleset, ValueRule

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["QualityMasker"]

logger = logging.getLogger(__name__)


class QualityMasker:
    """Classify tiles into valid/invalid cells.

    The ruleset for a tile is looked up by its ``sensor`` attribute and falls
    back to ``mask.default_sensor``. A mosaic carrying a ``source`` layer and
    a ``sources`` attribute (the sensor of each contributing tile) is
    classified cell by cell with the ruleset of the tile that supplied the
    cell.

    A tile without a usable ruleset or quality variable is entirely invalid.

    Examples
    --------
    >>> masker = QualityMasker(config)
    >>> valid = masker.classify(tile)           # (y, x) or (y, x, band)
    >>> flags = masker.flag_conditions(tile)    # one bool layer per condition
    """

    def __init__(self, config: "InternalConfig"):
        self.rulesets = config.mask.rulesets
        self.default_sensor = config.mask.default_sensor
        self.band_specific = any(r.band_specific for r in self.rulesets.values())

        logger.info(
            "QualityMasker initialized: sensors=%s, default=%s, band_specific=%s",
            sorted(self.rulesets), self.default_sensor, self.band_specific,
        )

    def ruleset_for(self, sensor: Optional[str]) -> Optional[Ruleset]:
        """Ruleset for a sensor name, or the default sensor's."""
        if sensor is not None and str(sensor).lower() in self.rulesets:
            return self.rulesets[str(sensor).lower()]
        if self.default_sensor is not None:
            return self.rulesets[self.default_sensor]
        return None

    def classify(self, ds: xr.Dataset, ruleset: Optional[Ruleset] = None) -> xr.DataArray:
        """Derive a validity mask for a tile or mosaic.

        Parameters
        ----------
        ds : xr.Dataset
            Tile or mosaic.
        ruleset : Ruleset, optional
            Explicit ruleset; overrides the sensor lookup.

        Returns
        -------
        xr.DataArray
            Boolean mask with dims ``(y, x)``, or ``(y, x, band)`` when the
            masker is band-specific.
        """
        bands = band_names(ds)
        if ruleset is not None:
            valid = self._classify_with(ds, bands, ruleset)
        elif "source" in ds and "sources" in ds.attrs:
            valid = self._classify_by_source(ds, bands)
        else:
            valid = self._classify_with(ds, bands, self.ruleset_for(ds.attrs.get("sensor")))

        mask = xr.DataArray(
            valid,
            dims=("y", "x", "band"),
            coords={"y": ds["y"].values, "x": ds["x"].values, "band": bands},
            name="valid",
        )
        if not self.band_specific:
            mask = mask.all("band") if bands else mask.any("band")
        assert_mask(mask, ds)
        return mask

    def flag_conditions(self, ds: xr.Dataset, ruleset: Optional[Ruleset] = None) -> xr.Dataset:
        """Evaluate every condition of a ruleset.

        Returns
        -------
        xr.Dataset
            One boolean ``(y, x)`` layer per condition, ``True`` where the
            condition holds (e.g. ``flags["cloud"]``).
        """
        if ruleset is None:
            ruleset = self.ruleset_for(ds.attrs.get("sensor"))
        if ruleset is None:
            raise ValueError(f"No ruleset for sensor {ds.attrs.get('sensor')!r}")

        shape = (ds.sizes["y"], ds.sizes["x"])
        layers = {
            name: xr.DataArray(self._evaluate(ds, ruleset, name, shape), dims=("y", "x"))
            for name in ruleset.conditions
        }
        return xr.Dataset(layers, coords={"y": ds["y"], "x": ds["x"]})

    def _classify_by_source(self, ds: xr.Dataset, bands: list[str]) -> np.ndarray:
        source = ds["source"].values
        sensors = list(ds.attrs["sources"])
        valid = np.zeros(source.shape + (len(bands),), dtype=bool)
        for sensor in dict.fromkeys(sensors):
            indices = [i for i, s in enumerate(sensors) if s == sensor]
            cells = np.isin(source, indices)
            if not cells.any():
                continue
            per_sensor = self._classify_with(ds, bands, self.ruleset_for(sensor))
            valid[cells] = per_sensor[cells]
        return valid

    def _classify_with(self, ds: xr.Dataset, bands: list[str],
                       ruleset: Optional[Ruleset]) -> np.ndarray:
        """Band-resolved validity ``(y, x, band)`` under one ruleset."""
        shape = (ds.sizes["y"], ds.sizes["x"])
        if ruleset is None:
            logger.warning(
                "No masking ruleset for sensor %r; marking tile invalid",
                ds.attrs.get("sensor"),
            )
            return np.zeros(shape + (len(bands),), dtype=bool)

        has_data = np.stack(
            [np.isfinite(ds[b].values) for b in bands], axis=-1
        ) if bands else np.zeros(shape + (0,), dtype=bool)

        flagged = np.zeros(shape + (len(bands),), dtype=bool)
        for name in ruleset.exclude:
            condition = ruleset.conditions[name]
            hit = self._evaluate(ds, ruleset, name, shape)
            if ruleset.buffer_pixels > 0 and hit.any():
                hit = binary_dilation(hit, iterations=ruleset.buffer_pixels)
            if condition.bands is None or not ruleset.band_specific:
                flagged |= hit[..., np.newaxis]
            else:
                for i, band in enumerate(bands):
                    if band in condition.bands:
                        flagged[..., i] |= hit

        valid = has_data & ~flagged
        if not ruleset.band_specific:
            # A cell is usable only when every band is
            valid = np.broadcast_to(valid.all(axis=-1, keepdims=True), valid.shape).copy()
        return valid

    def _evaluate(self, ds: xr.Dataset, ruleset: Ruleset, name: str,
                  shape: tuple[int, int]) -> np.ndarray:
        """Cells where condition ``name`` holds; missing or NaN quality counts as flagged."""
        condition = ruleset.conditions[name]
        var = condition.variable or ruleset.quality_var
        if var not in ds:
            logger.warning(
                "Quality variable '%s' missing for condition '%s' (%s); flagging all cells",
                var, name, ruleset.sensor,
            )
            return np.ones(shape, dtype=bool)

        raw = ds[var].values
        missing = ~np.isfinite(raw) if np.issubdtype(raw.dtype, np.floating) else np.zeros(shape, dtype=bool)

        if isinstance(condition, RangeRule):
            hit = np.ones(shape, dtype=bool)
            if condition.min is not None:
                hit &= raw >= condition.min
            if condition.max is not None:
                hit &= raw <= condition.max
            return hit | missing

        code = np.where(missing, 0, raw).astype(np.int64)
        if isinstance(condition, BitRule):
            field = (code >> condition.start_bit) & ((1 << condition.n_bits) - 1)
            hit = np.isin(field, condition.values)
        elif isinstance(condition, ValueRule):
            hit = np.isin(code, condition.values)
        else:
            raise ValueError(f"Unknown condition kind for '{name}': {condition!r}")
        return hit | missing
