"""Tile and cube contracts.

Enforces the guarantee that tiles entering the mosaicker and cubes leaving
the cube builder are addressed the way every downstream stage expects.
"""

import numpy as np
import pandas as pd
import xarray as xr
from gapcube.contracts.base import require

CUBE_DIMS = ("time", "y", "x", "band")


def assert_tile(ds: xr.Dataset) -> None:
    """Enforce tile contract.

    Called before mosaicking. Verifies the provider client produced a
    geo-referenced, dated 2-D raster.

    Parameters
    ----------
    ds : xr.Dataset
        Tile dataset (one capture date, one pass)

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require("y" in ds.coords, "Tile contract violated: missing 'y' coordinate")
    require("x" in ds.coords, "Tile contract violated: missing 'x' coordinate")
    require("time" in ds.attrs, "Tile contract violated: missing 'time' attribute")
    require("crs" in ds.attrs, "Tile contract violated: missing 'crs' attribute")
    require(
        "cell_size" in ds.attrs,
        "Tile contract violated: missing 'cell_size' attribute"
    )
    for name, var in ds.data_vars.items():
        require(
            var.dims == ("y", "x"),
            f"Tile contract violated: '{name}' has dims {var.dims}, expected ('y', 'x')"
        )


def assert_cube(cube: xr.DataArray, n_rows: int, n_cols: int) -> None:
    """Enforce cube contract.

    Parameters
    ----------
    cube : xr.DataArray
        Cube with dims (time, y, x, band)

    n_rows, n_cols : int
        Grid shape every cube must match

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require(
        cube.dims == CUBE_DIMS,
        f"Cube contract violated: dims are {cube.dims}, expected {CUBE_DIMS}"
    )
    require(
        cube.sizes["y"] == n_rows and cube.sizes["x"] == n_cols,
        f"Cube contract violated: spatial shape ({cube.sizes['y']}, {cube.sizes['x']}) "
        f"does not match grid ({n_rows}, {n_cols})"
    )
    require(
        np.issubdtype(cube.dtype, np.floating),
        f"Cube contract violated: dtype is {cube.dtype}, expected float"
    )

    times = pd.DatetimeIndex(cube["time"].values)
    require(
        times.is_unique and times.is_monotonic_increasing,
        "Cube contract violated: dates must be strictly increasing and unique"
    )
