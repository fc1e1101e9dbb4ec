"""Composite stage contract.

Enforces completeness: a composite cell is valid exactly when it carries a
finite value, and "no data" cells are never flagged valid.
"""

import numpy as np
import xarray as xr
from gapcube.contracts.base import require


def assert_composited(cube: xr.DataArray, mask: xr.DataArray, n_periods: int) -> None:
    """Enforce composite stage contract.

    Parameters
    ----------
    cube : xr.DataArray
        Composite cube (period, y, x, band) with period on the 'time' dim

    mask : xr.DataArray
        Composite validity mask

    n_periods : int
        Number of composite periods requested

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require(
        cube.sizes["time"] == n_periods,
        f"Composite contract violated: {cube.sizes['time']} periods, expected {n_periods}"
    )

    valid = mask.values
    if valid.ndim == 3:
        valid = valid[..., np.newaxis]
    finite = np.isfinite(cube.values)
    require(
        bool(np.all(finite[np.broadcast_to(valid, finite.shape)])),
        "Composite contract violated: valid cells must carry finite values"
    )
    require(
        bool(np.all(np.isnan(cube.values[~np.broadcast_to(valid, finite.shape)]))),
        "Composite contract violated: invalid cells must be no data (NaN)"
    )
