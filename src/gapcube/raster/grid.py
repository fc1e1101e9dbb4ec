"""Grid and tile model.

A tile is an ``xr.Dataset`` for one capture: 2-D ``(y, x)`` variables on
cell-centre coordinates plus the attrs ``time``, ``crs``, ``cell_size`` and
optionally ``sensor`` and ``cloud_fraction``. Each variable carries a
``role`` attribute:

- ``band``: a spectral band or index (the default when absent)
- ``quality``: an integer quality/cloud band read by the masker
- ``auxiliary``: per-cell metadata such as a cloud probability
- ``source``: the mosaic provenance layer
"""

import logging
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import xarray as xr

from gapcube.contracts import GridMismatchError, assert_tile
from gapcube.schemas.grid import Grid

__all__ = ["Grid", "make_tile", "band_names", "tile_time", "align_to_grid", "window_slices"]

logger = logging.getLogger(__name__)

# Relative tolerance for "integer multiple" and "on a cell edge" checks
ALIGN_TOLERANCE = 1e-9


def make_tile(
    bands: Mapping[str, np.ndarray],
    time,
    grid: Grid,
    row_start: float = 0,
    col_start: float = 0,
    cell_size: Optional[float] = None,
    crs: Optional[str] = None,
    quality: Optional[Mapping[str, np.ndarray]] = None,
    auxiliary: Optional[Mapping[str, np.ndarray]] = None,
    sensor: Optional[str] = None,
    cloud_fraction: Optional[float] = None,
) -> xr.Dataset:
    """Build a tile from numpy arrays placed on ``grid``.

    Parameters
    ----------
    bands : mapping of str to 2-D array
        Band name to samples; all arrays share one shape.
    time : str or datetime-like
        Capture time, stored as an ISO string.
    grid : Grid
        Grid the tile position is expressed in.
    row_start, col_start : float
        Offset of the tile's upper-left corner in grid cells.
    cell_size : float, optional
        Tile cell size (default: the grid's).
    crs : str, optional
        Tile CRS (default: the grid's).
    quality, auxiliary : mapping of str to 2-D array, optional
        Quality bands and per-cell auxiliary layers.
    sensor : str, optional
        Sensor family used to select a masking ruleset.
    cloud_fraction : float, optional
        Scene-level cloud fraction reported by the provider.
    """
    if not bands:
        raise ValueError("A tile needs at least one band")

    cell = float(cell_size) if cell_size is not None else grid.cell_size
    shape = np.shape(next(iter(bands.values())))
    left = grid.origin_x + col_start * grid.cell_size
    top = grid.origin_y - row_start * grid.cell_size
    coords = {
        "y": top - (np.arange(shape[0]) + 0.5) * cell,
        "x": left + (np.arange(shape[1]) + 0.5) * cell,
    }

    data_vars = {}
    for role, layers in (("band", bands), ("quality", quality or {}), ("auxiliary", auxiliary or {})):
        for name, values in layers.items():
            values = np.asarray(values)
            if values.shape != shape:
                raise ValueError(
                    f"Layer '{name}' has shape {values.shape}, expected {shape}"
                )
            data_vars[name] = xr.DataArray(values, dims=("y", "x"), attrs={"role": role})

    attrs = {
        "time": pd.Timestamp(time).isoformat(),
        "crs": crs if crs is not None else grid.crs,
        "cell_size": cell,
    }
    if sensor is not None:
        attrs["sensor"] = sensor
    if cloud_fraction is not None:
        attrs["cloud_fraction"] = float(cloud_fraction)

    return xr.Dataset(data_vars, coords=coords, attrs=attrs)


def band_names(ds: xr.Dataset) -> list[str]:
    """Names of the spectral variables of a tile, in dataset order."""
    return [
        name for name, var in ds.data_vars.items()
        if var.attrs.get("role", "band") == "band"
    ]


def tile_time(ds: xr.Dataset) -> pd.Timestamp:
    """Capture time of a tile."""
    return pd.Timestamp(ds.attrs["time"])


def _is_integral(value: float) -> bool:
    return abs(value - round(value)) <= ALIGN_TOLERANCE * max(1.0, abs(value))


def align_to_grid(tile: xr.Dataset, grid: Grid) -> xr.Dataset:
    """Place a tile on the run grid.

    The tile must share the grid's CRS, its cell size must be a whole
    multiple ``k`` of the grid's, its edges must fall on grid cell edges and
    it must overlap the grid. Coarser tiles (``k > 1``) are upsampled by
    block replication, and cells beyond the grid are cropped away. The
    aligned tile carries the grid's exact cell-centre coordinates and a
    ``window`` attribute ``(row, col, n_rows, n_cols)`` of its cropped extent.

    Parameters
    ----------
    tile : xr.Dataset
        Tile produced by a provider client.
    grid : Grid
        Run grid.

    Returns
    -------
    xr.Dataset
        Tile on the grid's cell size and coordinates.

    Raises
    ------
    GridMismatchError
        If the tile cannot be placed on the grid without resampling, or
        shares no cell with it.
    """
    assert_tile(tile)

    tile_crs = str(tile.attrs["crs"]).strip()
    if tile_crs.upper() != grid.crs.upper():
        raise GridMismatchError(f"Tile CRS {tile_crs} does not match grid CRS {grid.crs}")

    tile_cell = float(tile.attrs["cell_size"])
    factor = tile_cell / grid.cell_size
    if factor < 1 - ALIGN_TOLERANCE or not _is_integral(factor):
        raise GridMismatchError(
            f"Tile cell size {tile_cell} is not a whole multiple of grid cell size "
            f"{grid.cell_size}"
        )
    factor = int(round(factor))

    x = tile["x"].values
    y = tile["y"].values
    if (x.size > 1 and not np.allclose(np.diff(x), tile_cell)) or (
        y.size > 1 and not np.allclose(np.diff(y), -tile_cell)
    ):
        raise GridMismatchError(
            "Tile coordinates are not regularly spaced at its cell size "
            "(x increasing, y decreasing)"
        )

    left = float(x[0]) - tile_cell / 2.0
    top = float(y[0]) + tile_cell / 2.0
    col_offset = (left - grid.origin_x) / grid.cell_size
    row_offset = (grid.origin_y - top) / grid.cell_size
    if not (_is_integral(col_offset) and _is_integral(row_offset)):
        raise GridMismatchError(
            f"Tile edges ({left}, {top}) do not fall on grid cell edges"
        )

    row, col, n_rows, n_cols = grid.window_of(tile)
    row0, col0 = max(row, 0), max(col, 0)
    row1, col1 = min(row + n_rows, grid.n_rows), min(col + n_cols, grid.n_cols)
    if row0 >= row1 or col0 >= col1:
        raise GridMismatchError(
            f"Tile window rows {row}:{row + n_rows}, cols {col}:{col + n_cols} "
            f"does not overlap grid {grid.shape}"
        )

    aligned = tile
    if factor > 1:
        logger.debug("Upsampling %s tile by %dx onto grid", tile.attrs.get("sensor"), factor)
        aligned = xr.Dataset(
            {
                name: xr.DataArray(
                    np.repeat(np.repeat(var.values, factor, axis=0), factor, axis=1),
                    dims=("y", "x"),
                    attrs=dict(var.attrs),
                )
                for name, var in tile.data_vars.items()
            },
            attrs=dict(tile.attrs),
        )

    if (row0, col0, row1, col1) != (row, col, row + n_rows, col + n_cols):
        logger.debug(
            "Cropping %s tile from rows %d:%d, cols %d:%d to rows %d:%d, cols %d:%d",
            tile.attrs.get("sensor"), row, row + n_rows, col, col + n_cols,
            row0, row1, col0, col1,
        )
        aligned = aligned.isel(
            y=slice(row0 - row, row1 - row), x=slice(col0 - col, col1 - col)
        )

    aligned = aligned.assign_coords(
        y=grid.y_coords()[row0:row1],
        x=grid.x_coords()[col0:col1],
    )
    aligned.attrs["cell_size"] = grid.cell_size
    aligned.attrs["window"] = (row0, col0, row1 - row0, col1 - col0)
    return aligned


def window_slices(window: Sequence[int]) -> tuple[slice, slice]:
    """Row and column slices of a ``(row, col, n_rows, n_cols)`` window."""
    row, col, n_rows, n_cols = window
    return slice(row, row + n_rows), slice(col, col + n_cols)
