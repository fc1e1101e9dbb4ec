"""Local interpolation through valid samples.

Times are plain floats (days). Beyond the span of the samples every method
continues along the slope of its boundary segment.
"""

import numpy as np
from scipy.interpolate import CubicSpline

__all__ = ["interpolate", "LOCAL_METHODS"]

LOCAL_METHODS = ("linear", "spline", "periodic_spline")


def _extend_linearly(x, y, x_target, left_slope, right_slope, inside):
    out = np.array(inside, dtype=float)
    below = x_target < x[0]
    above = x_target > x[-1]
    out[below] = y[0] + left_slope * (x_target[below] - x[0])
    out[above] = y[-1] + right_slope * (x_target[above] - x[-1])
    return out


def interpolate(x: np.ndarray, y: np.ndarray, x_target: np.ndarray,
                method: str = "linear", period: float = 365.25) -> np.ndarray:
    """Evaluate an interpolant through ``(x, y)`` at ``x_target``.

    Parameters
    ----------
    x : np.ndarray
        Strictly increasing sample times.
    y : np.ndarray
        Sample values.
    x_target : np.ndarray
        Evaluation times.
    method : str
        ``linear``, ``spline`` (natural cubic) or ``periodic_spline``
        (a series shorter than ``period`` is replicated one period either
        side before fitting; a longer one is fitted as a natural spline).
    period : float
        Period in the units of ``x`` for ``periodic_spline``.

    Returns
    -------
    np.ndarray
        Interpolated values, unclipped.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    x_target = np.asarray(x_target, dtype=float)

    if x.size == 1:
        return np.full(x_target.shape, y[0])

    if method == "linear" or x.size == 2:
        inside = np.interp(x_target, x, y)
        left = (y[1] - y[0]) / (x[1] - x[0])
        right = (y[-1] - y[-2]) / (x[-1] - x[-2])
        return _extend_linearly(x, y, x_target, left, right, inside)

    if method == "spline":
        spline = CubicSpline(x, y, bc_type="natural")
        slope = spline(x[[0, -1]], 1)
        return _extend_linearly(x, y, x_target, slope[0], slope[1], spline(x_target))

    if method == "periodic_spline":
        if x[-1] - x[0] < period:
            # One copy either side; all of them fall outside [x[0], x[-1]]
            x_wrapped = np.concatenate([x - period, x, x + period])
            y_wrapped = np.concatenate([y, y, y])
            spline = CubicSpline(x_wrapped, y_wrapped, bc_type="natural")
            slope = spline(x_wrapped[[0, -1]], 1)
            return _extend_linearly(
                x_wrapped, y_wrapped, x_target, slope[0], slope[1], spline(x_target)
            )
        # Span of a full period or more: fitted without copies
        spline = CubicSpline(x, y, bc_type="natural")
        slope = spline(x[[0, -1]], 1)
        return _extend_linearly(x, y, x_target, slope[0], slope[1], spline(x_target))

    raise ValueError(f"Unknown interpolation method: {method}")
