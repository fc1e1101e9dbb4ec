"""Same-date tile mosaicking.

Overlaps are resolved by choosing one tile per cell and copying every
variable from it, so bands stay synchronised and values are never averaged
across view geometries.
"""

import logging
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
import xarray as xr

from gapcube.contracts import HeterogeneousInputError, require
from gapcube.raster.grid import align_to_grid, band_names, tile_time, window_slices
from gapcube.raster.masker import QualityMasker

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["TileMosaicker"]

logger = logging.getLogger(__name__)

NO_SOURCE = -1


class TileMosaicker:
    """Merge tiles of one capture date into a single tile.

    Tie-break policies (``mosaic.tie_break``):

    - ``last``: the most recently listed tile covering a cell wins.
    - ``prefer_valid``: a cell that is valid under the tile's masking
      ruleset beats one that is not; the share of valid bands is compared
      when masks are band-specific. Equal scores go to the later tile.
    - ``lowest_cloud``: the lower per-cell cloud value wins, read from the
      ``mosaic.cloud_var`` layer or else the tile's ``cloud_fraction``
      attribute. Tiles reporting neither lose to any tile that does.

    The output covers the bounding box of the inputs. A ``source`` layer
    records which input supplied each cell, ``-1`` where none did; such
    cells hold NaN in every variable.
    """

    def __init__(self, config: "InternalConfig", masker: Optional[QualityMasker] = None):
        self.grid = config.grid
        self.tie_break = config.mosaic.tie_break
        self.cloud_var = config.mosaic.cloud_var
        self.masker = masker if masker is not None else QualityMasker(config)

        logger.info("TileMosaicker initialized: tie_break=%s", self.tie_break)

    def mosaic(self, tiles: Sequence[xr.Dataset]) -> xr.Dataset:
        """Mosaic tiles that share one capture date.

        Parameters
        ----------
        tiles : sequence of xr.Dataset
            Tiles in listing order (later tiles are "more recent").

        Returns
        -------
        xr.Dataset
            Mosaic on the grid, with ``window``, ``sources`` and ``time``
            attributes.

        Raises
        ------
        HeterogeneousInputError
            If the tiles do not share a capture date.
        GridMismatchError
            If a tile cannot be aligned to the grid.
        """
        require(len(tiles) > 0, "Mosaic contract violated: no tiles given")

        dates = sorted({tile_time(t).normalize() for t in tiles})
        if len(dates) > 1:
            raise HeterogeneousInputError(
                f"Tiles span {len(dates)} capture dates: "
                f"{', '.join(d.date().isoformat() for d in dates)}"
            )

        aligned = [align_to_grid(t, self.grid) for t in tiles]

        row0 = min(t.attrs["window"][0] for t in aligned)
        col0 = min(t.attrs["window"][1] for t in aligned)
        row1 = max(t.attrs["window"][0] + t.attrs["window"][2] for t in aligned)
        col1 = max(t.attrs["window"][1] + t.attrs["window"][3] for t in aligned)
        shape = (row1 - row0, col1 - col0)

        names, roles = [], {}
        for tile in aligned:
            for name, var in tile.data_vars.items():
                if name not in roles:
                    names.append(name)
                    roles[name] = var.attrs.get("role", "band")

        out = {name: np.full(shape, np.nan) for name in names}
        source = np.full(shape, NO_SOURCE, dtype=np.int16)
        best = np.full(shape, -np.inf)

        for index, tile in enumerate(aligned):
            row, col, n_rows, n_cols = tile.attrs["window"]
            rows, cols = window_slices((row - row0, col - col0, n_rows, n_cols))

            bands = band_names(tile)
            covered = np.zeros((n_rows, n_cols), dtype=bool)
            for band in bands:
                covered |= np.isfinite(tile[band].values)

            score = self._score(tile)
            take = covered & (score >= best[rows, cols])

            best[rows, cols] = np.where(take, score, best[rows, cols])
            source[rows, cols] = np.where(take, index, source[rows, cols])
            for name, var in tile.data_vars.items():
                out[name][rows, cols] = np.where(take, var.values, out[name][rows, cols])

            logger.debug("Tile %d supplies %d of %d cells", index, int(take.sum()), take.size)

        data_vars = {
            name: xr.DataArray(values, dims=("y", "x"), attrs={"role": roles[name]})
            for name, values in out.items()
        }
        data_vars["source"] = xr.DataArray(source, dims=("y", "x"), attrs={"role": "source"})

        sensors = [str(t.attrs.get("sensor", "")) or None for t in aligned]
        attrs = {
            "time": dates[0].isoformat(),
            "crs": self.grid.crs,
            "cell_size": self.grid.cell_size,
            "window": (row0, col0, shape[0], shape[1]),
            "sources": sensors,
        }
        if len(set(sensors)) == 1 and sensors[0] is not None:
            attrs["sensor"] = sensors[0]

        return xr.Dataset(
            data_vars,
            coords={
                "y": self.grid.y_coords()[row0:row1],
                "x": self.grid.x_coords()[col0:col1],
            },
            attrs=attrs,
        )

    def _score(self, tile: xr.Dataset) -> np.ndarray:
        """Per-cell preference of a tile; higher wins, ties go to later tiles."""
        shape = (tile.sizes["y"], tile.sizes["x"])
        if self.tie_break == "prefer_valid":
            valid = self.masker.classify(tile).values
            if valid.ndim == 3:
                return valid.mean(axis=-1) if valid.shape[-1] else np.zeros(shape)
            return valid.astype(float)
        if self.tie_break == "lowest_cloud":
            if self.cloud_var in tile:
                cloud = tile[self.cloud_var].values.astype(float)
                return np.where(np.isfinite(cloud), -cloud, -np.inf)
            if "cloud_fraction" in tile.attrs:
                return np.full(shape, -float(tile.attrs["cloud_fraction"]))
            return np.full(shape, -np.inf)
        return np.zeros(shape)
