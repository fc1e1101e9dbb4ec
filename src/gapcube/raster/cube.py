"""Build the analytic cube from dated tiles.

Each date is mosaicked and masked independently, then placed on the full
grid. Dates whose tiles cannot be mosaicked are skipped and reported.
"""

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

import numpy as np
import xarray as xr

from gapcube.contracts import (
    FailurePolicy,
    HeterogeneousInputError,
    StackingError,
    assert_cube,
    assert_mask,
)
from gapcube.raster.grid import band_names, tile_time, window_slices
from gapcube.raster.masker import QualityMasker
from gapcube.raster.mosaicker import TileMosaicker

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["group_by_date", "as_date_groups", "CubeBuilder"]

logger = logging.getLogger(__name__)


def group_by_date(tiles: Iterable[xr.Dataset]) -> "OrderedDict":
    """Group tiles by calendar capture date, oldest first, keeping listing order."""
    groups = {}
    for tile in tiles:
        groups.setdefault(tile_time(tile).normalize(), []).append(tile)
    return OrderedDict(sorted(groups.items()))


def as_date_groups(tiles) -> list[list[xr.Dataset]]:
    """Normalize input to a list of tile groups, one per mosaic operation.

    A flat sequence of tiles is grouped by date. A sequence of sequences is
    taken as explicit groups (one per sensor pass), so a group holding more
    than one date is rejected at mosaic time.
    """
    tiles = list(tiles)
    if all(isinstance(t, xr.Dataset) for t in tiles):
        return [list(group) for group in group_by_date(tiles).values()]
    return [[t] if isinstance(t, xr.Dataset) else list(t) for t in tiles]


class CubeBuilder:
    """Mosaic, mask and stack tiles into a ``(time, y, x, band)`` cube.

    Examples
    --------
    >>> builder = CubeBuilder(config)
    >>> cube, mask = builder.build(tiles)
    >>> builder.failures   # dates skipped, with the reason
    """

    def __init__(self, config: "InternalConfig", masker: Optional[QualityMasker] = None):
        self.grid = config.grid
        self.masker = masker if masker is not None else QualityMasker(config)
        self.mosaicker = TileMosaicker(config, masker=self.masker)
        self.failures: list[dict] = []

    def build(self, tiles) -> tuple[xr.DataArray, xr.DataArray]:
        """Build the cube and its validity mask.

        Parameters
        ----------
        tiles : sequence of xr.Dataset or sequence of sequences
            Flat tiles (grouped by date) or explicit per-pass groups.

        Returns
        -------
        tuple of xr.DataArray
            Cube ``(time, y, x, band)`` and mask ``(time, y, x)`` or
            ``(time, y, x, band)``.

        Raises
        ------
        GridMismatchError
            If any tile is misaligned with the grid; the run cannot continue.
        ValueError
            If no date could be mosaicked.
        """
        self.failures = []
        mosaics = OrderedDict()

        for group in as_date_groups(tiles):
            label = ", ".join(sorted({tile_time(t).date().isoformat() for t in group}))
            try:
                mosaic = self.mosaicker.mosaic(group)
            except StackingError as e:
                if e.policy != FailurePolicy.SKIP_ITEM:
                    raise
                logger.warning("Skipping date %s: %s", label, e)
                self._record(label, e)
                continue

            date = tile_time(mosaic)
            if date in mosaics:
                e = HeterogeneousInputError(f"Duplicate capture date {date.date()} across tile groups")
                logger.warning("Skipping date %s: %s", label, e)
                self._record(label, e)
                continue

            mosaics[date] = (mosaic, self.masker.classify(mosaic))
            logger.debug("Mosaicked %s from %d tile(s)", date.date(), len(group))

        if not mosaics:
            raise ValueError("No date could be mosaicked into the cube")

        return self._stack(mosaics)

    def _record(self, label: str, error: Exception):
        self.failures.append({
            "stage": "mosaic",
            "date": label,
            "error": f"{type(error).__name__}: {error}",
        })

    def _stack(self, mosaics) -> tuple[xr.DataArray, xr.DataArray]:
        mosaics = OrderedDict(sorted(mosaics.items()))
        bands = []
        for mosaic, _ in mosaics.values():
            bands.extend(b for b in band_names(mosaic) if b not in bands)

        shape = (len(mosaics),) + self.grid.shape + (len(bands),)
        values = np.full(shape, np.nan)
        valid = np.zeros(shape, dtype=bool)

        for t, (mosaic, mask) in enumerate(mosaics.values()):
            rows, cols = window_slices(mosaic.attrs["window"])
            mask_values = mask.values
            for b, band in enumerate(bands):
                if band not in mosaic:
                    continue
                values[t, rows, cols, b] = mosaic[band].values
                if mask_values.ndim == 3:
                    valid[t, rows, cols, b] = mask.sel(band=band).values
                else:
                    valid[t, rows, cols, b] = mask_values

        coords = {
            "time": list(mosaics.keys()),
            "y": self.grid.y_coords(),
            "x": self.grid.x_coords(),
            "band": bands,
        }
        cube = xr.DataArray(
            values, dims=("time", "y", "x", "band"), coords=coords, name="cube",
            attrs={"crs": self.grid.crs, "cell_size": self.grid.cell_size},
        )
        mask = xr.DataArray(valid, dims=cube.dims, coords=coords, name="valid")
        if not self.masker.band_specific:
            mask = mask.all("band")

        assert_cube(cube, *self.grid.shape)
        assert_mask(mask, cube)
        logger.info("Cube built: %d dates, %d bands, grid %s", len(mosaics), len(bands), self.grid.shape)
        return cube, mask
