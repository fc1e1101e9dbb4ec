"""Validity mask contract.

A mask is advisory metadata aligned with the data it describes. It must be
boolean and share the spatial (and, for cubes, temporal) shape of its data.
"""

import xarray as xr
from gapcube.contracts.base import require


def assert_mask(mask: xr.DataArray, data) -> None:
    """Enforce mask contract.

    Parameters
    ----------
    mask : xr.DataArray
        Validity mask, dims (y, x[, band]) for tiles or (time, y, x[, band])
        for cubes

    data : xr.Dataset or xr.DataArray
        Tile dataset or cube the mask was derived from

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require(
        mask.dtype == bool,
        f"Mask contract violated: dtype is {mask.dtype}, expected bool"
    )
    for dim in ("time", "y", "x"):
        if dim not in data.dims:
            continue
        require(
            dim in mask.dims,
            f"Mask contract violated: missing '{dim}' dimension"
        )
        require(
            mask.sizes[dim] == data.sizes[dim],
            f"Mask contract violated: '{dim}' has length {mask.sizes[dim]}, "
            f"expected {data.sizes[dim]}"
        )