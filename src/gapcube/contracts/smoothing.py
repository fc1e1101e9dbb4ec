"""Smoothing stage contract.

A smoothed series is dense: one finite value per requested output date.
"""

import numpy as np
from gapcube.contracts.base import require


def assert_smoothed(values: np.ndarray, n_targets: int) -> None:
    """Enforce smoothing stage contract for one pixel/band series.

    Parameters
    ----------
    values : np.ndarray
        Smoothed values on the target axis

    n_targets : int
        Length of the requested output axis

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    require(
        values.shape == (n_targets,),
        f"Smoothing contract violated: shape {values.shape}, expected ({n_targets},)"
    )
    require(
        bool(np.all(np.isfinite(values))),
        "Smoothing contract violated: NaN or Inf in smoothed output"
    )
