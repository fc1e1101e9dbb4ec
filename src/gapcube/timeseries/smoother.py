"""Per-pixel gap filling and smoothing.

``smooth`` turns one irregular, partially invalid series into a dense
series on a target date axis. ``GapFiller`` applies it to every pixel and
band of a chunk and turns per-pixel failures into flags.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from gapcube.contracts import InsufficientDataError, assert_smoothed, require
from gapcube.timeseries.interpolation import LOCAL_METHODS, interpolate
from gapcube.timeseries.whittaker import robust_whittaker, whittaker

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig
    from gapcube.schemas.internal import InternalSmoothingConfig

__all__ = ["SampleFlag", "SmoothedSeries", "smooth", "ChunkFill", "GapFiller"]

logger = logging.getLogger(__name__)

ONE_DAY = pd.Timedelta(days=1)


class SampleFlag(IntEnum):
    """Provenance of an output value."""
    OBSERVED = 0            # target date carries a valid observation
    FILLED = 1              # inside the span of valid observations
    EXTRAPOLATED = 2        # outside that span, clipped to the value range
    INSUFFICIENT_DATA = 3   # too few valid observations, value is NaN
    FIT_FAILED = 4          # the fit raised, value is NaN


@dataclass
class SmoothedSeries:
    """Dense output of one pixel/band series.

    ``values = trend + covariate_effect`` (then clipped); ``outliers`` and
    ``iterations`` describe the reweighting of the input samples.
    """
    dates: pd.DatetimeIndex
    values: np.ndarray
    flags: np.ndarray
    trend: np.ndarray
    covariate_effect: np.ndarray
    coefficients: dict = field(default_factory=dict)
    iterations: int = 0
    outliers: Optional[np.ndarray] = None


def _observation_weights(valid: np.ndarray, uncertainty: Optional[np.ndarray]) -> np.ndarray:
    if uncertainty is None:
        return valid.astype(float)
    sigma = np.asarray(uncertainty, dtype=float)
    usable = valid & np.isfinite(sigma) & (sigma > 0)
    weights = np.zeros(valid.shape)
    weights[usable] = 1.0 / sigma[usable] ** 2
    if weights.max() > 0:
        weights /= weights.max()
    return weights


def _resample_covariates(covariates: Mapping[str, tuple], ref: pd.Timestamp,
                         x_nodes: np.ndarray) -> np.ndarray:
    """Covariate matrix ``(n_nodes, p)`` by linear interpolation onto the nodes."""
    columns = []
    for name, (cov_dates, cov_values) in covariates.items():
        cov_x = (pd.DatetimeIndex(cov_dates) - ref) / ONE_DAY
        cov_values = np.asarray(cov_values, dtype=float)
        finite = np.isfinite(cov_values)
        if not finite.any():
            raise ValueError(f"Covariate '{name}' has no finite samples")
        order = np.argsort(np.asarray(cov_x)[finite])
        columns.append(np.interp(
            x_nodes, np.asarray(cov_x)[finite][order], cov_values[finite][order]
        ))
    return np.column_stack(columns)


def smooth(
    dates: Sequence,
    values: np.ndarray,
    target_dates: Sequence,
    options: "InternalSmoothingConfig",
    valid: Optional[np.ndarray] = None,
    uncertainty: Optional[np.ndarray] = None,
    covariates: Optional[Mapping[str, tuple]] = None,
    value_range: Optional[tuple[float, float]] = None,
) -> SmoothedSeries:
    """Fill and smooth one series onto a target date axis.

    Parameters
    ----------
    dates : sequence of datetime-like
        Strictly increasing sample dates.
    values : np.ndarray
        Sample values; non-finite values are invalid.
    target_dates : sequence of datetime-like
        Output axis (regular or irregular).
    options : InternalSmoothingConfig
        Method, penalty, reweighting and minimum-count settings.
    valid : np.ndarray of bool, optional
        Validity mask of the samples (default: all finite values).
    uncertainty : np.ndarray, optional
        Per-sample standard error; weights are ``1 / uncertainty**2``.
    covariates : mapping of str to (dates, values), optional
        Auxiliary series regressed jointly with the penalised fit. Ignored
        by the local interpolation methods.
    value_range : tuple of float, optional
        Physical bounds the output is clipped to (default:
        ``options.value_range``).

    Returns
    -------
    SmoothedSeries

    Raises
    ------
    InsufficientDataError
        If fewer than ``options.min_valid`` valid samples exist.
    """
    dates = pd.DatetimeIndex(dates)
    target_dates = pd.DatetimeIndex(target_dates)
    values = np.asarray(values, dtype=float)
    require(values.shape == (len(dates),), "Series values and dates differ in length")
    require(
        dates.is_unique and dates.is_monotonic_increasing,
        "Series dates must be strictly increasing",
    )

    valid = np.isfinite(values) if valid is None else (np.asarray(valid, dtype=bool) & np.isfinite(values))
    n_valid = int(valid.sum())
    if n_valid < options.min_valid:
        raise InsufficientDataError(n_valid, options.min_valid)

    ref = min(dates[0], target_dates[0]) if len(target_dates) else dates[0]
    x = np.asarray((dates - ref) / ONE_DAY, dtype=float)
    x_target = np.asarray((target_dates - ref) / ONE_DAY, dtype=float)
    x_valid = x[valid]
    y_valid = values[valid]

    weights = _observation_weights(valid, uncertainty)
    outliers = np.zeros(len(dates), dtype=bool)
    coefficients = {}
    iterations = 0

    if options.method in LOCAL_METHODS or n_valid < 3:
        method = options.method if options.method in LOCAL_METHODS else "linear"
        fitted = interpolate(x_valid, y_valid, x_target, method, options.period_days)
        trend = fitted.copy()
        effect = np.zeros_like(fitted)
    else:
        # Nodes are the valid samples only; target dates never enter the solve
        w_nodes = weights[valid]
        cov = _resample_covariates(covariates, ref, x_valid) if covariates else None
        if options.robust:
            fit = robust_whittaker(
                x_valid, y_valid, w_nodes, options.penalty, cov,
                threshold=options.outlier_threshold,
                window=options.spread_window,
                min_spread=options.min_spread,
                max_iterations=options.max_iterations,
            )
            iterations = fit.iterations
            outliers[valid] = fit.outliers
        else:
            fit = whittaker(x_valid, y_valid, w_nodes, options.penalty, cov)

        # Between nodes the penalised trend is the natural cubic spline
        # through its node values
        trend = interpolate(x_valid, fit.trend, x_target, "spline")
        if covariates:
            beta = np.atleast_1d(fit.coefficients)
            coefficients = dict(zip(covariates.keys(), beta.tolist()))
            effect = _resample_covariates(covariates, ref, x_target) @ beta
        else:
            effect = np.zeros_like(trend)
        fitted = trend + effect

    flags = np.full(x_target.shape, SampleFlag.FILLED, dtype=np.int8)
    flags[(x_target < x_valid[0]) | (x_target > x_valid[-1])] = SampleFlag.EXTRAPOLATED
    flags[np.isin(x_target, x_valid)] = SampleFlag.OBSERVED

    bounds = value_range if value_range is not None else options.value_range
    if bounds is not None:
        fitted = np.clip(fitted, bounds[0], bounds[1])

    assert_smoothed(fitted, len(target_dates))
    return SmoothedSeries(
        dates=target_dates,
        values=fitted,
        flags=flags,
        trend=trend,
        covariate_effect=effect,
        coefficients=coefficients,
        iterations=iterations,
        outliers=outliers,
    )


@dataclass
class ChunkFill:
    """Smoothed values and flags of one spatial chunk.

    ``values`` and ``flags`` are ``(time, y, x, band)`` on the target axis;
    ``failures`` lists pixels that could not be filled, with chunk-local
    ``row``/``col``.
    """
    values: np.ndarray
    flags: np.ndarray
    failures: list = field(default_factory=list)
    outliers: int = 0


class GapFiller:
    """Run ``smooth`` over every pixel and band of a chunk.

    Pixels with too few valid samples are flagged ``INSUFFICIENT_DATA`` and
    left as NaN; numerical failures of a single fit are flagged
    ``FIT_FAILED``. Neither stops the chunk.
    """

    def __init__(self, config: "InternalConfig"):
        self.options = config.smoothing

    def value_range_for(self, band: str) -> Optional[tuple[float, float]]:
        return self.options.band_ranges.get(band, self.options.value_range)

    def fill_chunk(
        self,
        values: np.ndarray,
        valid: np.ndarray,
        dates: Sequence,
        target_dates: Sequence,
        bands: Optional[Sequence[str]] = None,
        covariates: Optional[Mapping[str, tuple]] = None,
        uncertainty: Optional[np.ndarray] = None,
    ) -> ChunkFill:
        """Smooth a ``(time, y, x, band)`` block.

        Parameters
        ----------
        values : np.ndarray
            Block values ``(time, y, x, band)``.
        valid : np.ndarray of bool
            ``(time, y, x)`` or ``(time, y, x, band)``.
        dates, target_dates : sequence of datetime-like
            Input and output date axes.
        bands : sequence of str, optional
            Band names, used for per-band value ranges.
        covariates : mapping of str to (dates, values), optional
            Values are 1-D (shared by all pixels) or ``(time, y, x)``.
        uncertainty : np.ndarray, optional
            Same layout as ``values``.
        """
        n_t, n_y, n_x, n_b = values.shape
        bands = list(bands) if bands is not None else [str(b) for b in range(n_b)]
        if valid.ndim == 3:
            valid = valid[..., np.newaxis]
        valid = np.broadcast_to(valid, values.shape)

        n_out = len(target_dates)
        out_values = np.full((n_out, n_y, n_x, n_b), np.nan)
        out_flags = np.full((n_out, n_y, n_x, n_b), SampleFlag.INSUFFICIENT_DATA, dtype=np.int8)
        result = ChunkFill(values=out_values, flags=out_flags)

        for row in range(n_y):
            for col in range(n_x):
                pixel_covariates = self._pixel_covariates(covariates, row, col)
                for b, band in enumerate(bands):
                    try:
                        series = smooth(
                            dates,
                            values[:, row, col, b],
                            target_dates,
                            self.options,
                            valid=valid[:, row, col, b],
                            uncertainty=None if uncertainty is None else uncertainty[:, row, col, b],
                            covariates=pixel_covariates,
                            value_range=self.value_range_for(band),
                        )
                    except InsufficientDataError as e:
                        result.failures.append(self._failure(row, col, band, e))
                        continue
                    except (np.linalg.LinAlgError, ValueError) as e:
                        out_flags[:, row, col, b] = SampleFlag.FIT_FAILED
                        result.failures.append(self._failure(row, col, band, e))
                        continue
                    out_values[:, row, col, b] = series.values
                    out_flags[:, row, col, b] = series.flags
                    result.outliers += int(series.outliers.sum())

        return result

    @staticmethod
    def _pixel_covariates(covariates, row, col):
        if not covariates:
            return None
        pixel = {}
        for name, (cov_dates, cov_values) in covariates.items():
            cov_values = np.asarray(cov_values)
            pixel[name] = (cov_dates, cov_values if cov_values.ndim == 1 else cov_values[:, row, col])
        return pixel

    @staticmethod
    def _failure(row: int, col: int, band: str, error: Exception) -> dict:
        return {
            "stage": "smooth",
            "row": row,
            "col": col,
            "band": band,
            "error": f"{type(error).__name__}: {error}",
        }
