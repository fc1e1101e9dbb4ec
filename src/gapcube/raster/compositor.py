"""Temporal compositing of a masked cube into regular periods."""

import logging
import warnings
from typing import TYPE_CHECKING, Sequence

import numpy as np
import pandas as pd
import xarray as xr
from pandas.tseries.frequencies import to_offset

from gapcube.contracts import assert_composited, require

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["CompositePeriods", "Compositor"]

logger = logging.getLogger(__name__)


class CompositePeriods:
    """Ordered, non-overlapping half-open ``[start, end)`` date buckets.

    Parameters
    ----------
    edges : sequence of datetime-like
        Strictly increasing bucket boundaries; ``n`` edges define ``n - 1``
        buckets.
    """

    def __init__(self, edges: Sequence):
        edges = pd.DatetimeIndex(edges)
        require(len(edges) >= 2, "Composite periods need at least two boundaries")
        require(
            edges.is_unique and edges.is_monotonic_increasing,
            "Composite period boundaries must be strictly increasing",
        )
        self.edges = edges

    @classmethod
    def from_frequency(cls, dates: Sequence, freq: str = "MS") -> "CompositePeriods":
        """Buckets of a pandas frequency covering ``dates``.

        The first bucket starts at the period boundary on or before the first
        date (e.g. the first of the month for ``"MS"``).
        """
        dates = pd.DatetimeIndex(dates)
        require(len(dates) > 0, "Composite periods need at least one date")
        offset = to_offset(freq)
        start = offset.rollback(dates.min().normalize())
        edges = pd.date_range(start, dates.max() + offset, freq=offset)
        # Keep exactly one boundary past the last date
        edges = edges[: edges.searchsorted(dates.max(), side="right") + 1]
        return cls(edges)

    @classmethod
    def from_boundaries(cls, edges: Sequence, dates: Sequence = None) -> "CompositePeriods":
        """Buckets from explicit boundaries, optionally checked against ``dates``."""
        periods = cls(edges)
        if dates is not None:
            periods.assign(dates)
        return periods

    def __len__(self) -> int:
        return len(self.edges) - 1

    @property
    def starts(self) -> pd.DatetimeIndex:
        return self.edges[:-1]

    def assign(self, dates: Sequence) -> np.ndarray:
        """Bucket index of every date.

        Raises
        ------
        ContractViolation
            If a date falls outside every bucket.
        """
        dates = pd.DatetimeIndex(dates)
        index = self.edges.searchsorted(dates, side="right") - 1
        outside = (index < 0) | (index >= len(self))
        require(
            not outside.any(),
            f"Composite periods do not cover dates: {list(dates[outside].date)}",
        )
        return index


class Compositor:
    """Reduce a cube to one observation per period, cell and band.

    Reducers (``composite.reducer``):

    - ``maximum_of``: the valid date with the greatest ``index_band`` value,
      ties to the earliest date; every band is taken from that date.
    - ``first`` / ``last``: the earliest / latest valid date.
    - ``median`` / ``mean``: per band over valid observations.

    Cells with fewer than ``min_observations`` valid observations are no
    data (NaN) and invalid in the output mask.
    """

    def __init__(self, config: "InternalConfig"):
        self.reducer = config.composite.reducer
        self.index_band = config.composite.index_band
        self.frequency = config.composite.frequency
        self.min_observations = config.composite.min_observations

        self._reducers = {
            "maximum_of": self._select_maximum,
            "first": self._select_first,
            "last": self._select_last,
            "median": self._reduce_median,
            "mean": self._reduce_mean,
        }
        logger.info(
            "Compositor initialized: reducer=%s, index_band=%s, frequency=%s",
            self.reducer, self.index_band, self.frequency,
        )

    def periods_for(self, cube: xr.DataArray) -> CompositePeriods:
        """Default periods for a cube from ``composite.frequency``."""
        return CompositePeriods.from_frequency(cube["time"].values, self.frequency)

    def composite(self, cube: xr.DataArray, mask: xr.DataArray,
                  periods: CompositePeriods = None) -> tuple[xr.DataArray, xr.DataArray]:
        """Composite a cube over periods.

        Parameters
        ----------
        cube : xr.DataArray
            Cube ``(time, y, x, band)``.
        mask : xr.DataArray
            Validity ``(time, y, x)`` or ``(time, y, x, band)``.
        periods : CompositePeriods, optional
            Buckets (default: ``composite.frequency`` over the cube's dates).

        Returns
        -------
        tuple of xr.DataArray
            Composite cube with one time step per period (labelled by period
            start) and its validity mask of the same layout as ``mask``.
        """
        if periods is None:
            periods = self.periods_for(cube)
        bucket = periods.assign(cube["time"].values)

        values = cube.values
        band_specific = mask.ndim == 4
        valid = mask.values
        if band_specific:
            valid = valid & np.isfinite(values)
        else:
            valid = valid & np.isfinite(values).all(axis=-1)

        bands = list(cube["band"].values)
        if self.reducer == "maximum_of" and self.index_band not in bands:
            raise ValueError(
                f"Index band '{self.index_band}' not in cube bands {bands}"
            )

        reduce = self._reducers[self.reducer]
        n_y, n_x, n_b = values.shape[1:]
        out_values = np.full((len(periods), n_y, n_x, n_b), np.nan)
        out_valid = np.zeros((len(periods),) + valid.shape[1:], dtype=bool)

        for p in range(len(periods)):
            members = np.flatnonzero(bucket == p)
            if members.size == 0:
                continue
            period_values, period_valid = reduce(values[members], valid[members], bands)
            enough = valid[members].sum(axis=0) >= self.min_observations
            period_valid = period_valid & enough
            out_valid[p] = period_valid
            keep = period_valid if band_specific else period_valid[..., np.newaxis]
            out_values[p] = np.where(keep, period_values, np.nan)

        coords = {
            "time": periods.starts,
            "y": cube["y"].values,
            "x": cube["x"].values,
            "band": bands,
        }
        out_cube = xr.DataArray(
            out_values, dims=("time", "y", "x", "band"), coords=coords,
            attrs={**cube.attrs, "reducer": self.reducer},
        )
        out_mask = xr.DataArray(
            out_valid, dims=mask.dims,
            coords={dim: coords[dim] for dim in mask.dims}, name="valid",
        )
        assert_composited(out_cube, out_mask, len(periods))
        logger.info(
            "Composited %d dates into %d periods (%s)",
            cube.sizes["time"], len(periods), self.reducer,
        )
        return out_cube, out_mask

    # Date-selecting reducers: pick one date per cell and gather all bands.

    def _gather(self, values: np.ndarray, valid: np.ndarray, selected: np.ndarray,
                has_valid: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        if selected.ndim == 2:
            selected = selected[..., np.newaxis]
        index = np.broadcast_to(selected[np.newaxis], (1,) + values.shape[1:])
        picked = np.take_along_axis(values, index, axis=0)[0]
        if valid.ndim == 4:
            picked_valid = np.take_along_axis(valid, index, axis=0)[0] & has_valid
        else:
            picked_valid = has_valid
        return picked, picked_valid

    @staticmethod
    def _date_valid(valid):
        """Per-cell validity used to choose a date: any band counts."""
        return valid.any(axis=-1) if valid.ndim == 4 else valid

    def _select_first(self, values, valid, bands):
        date_valid = self._date_valid(valid)
        selected = np.argmax(date_valid, axis=0)
        return self._gather(values, valid, selected, self._has_valid(date_valid, valid))

    def _select_last(self, values, valid, bands):
        date_valid = self._date_valid(valid)
        selected = date_valid.shape[0] - 1 - np.argmax(date_valid[::-1], axis=0)
        return self._gather(values, valid, selected, self._has_valid(date_valid, valid))

    def _select_maximum(self, values, valid, bands):
        i = bands.index(self.index_band)
        index_valid = valid[..., i] if valid.ndim == 4 else valid
        key = np.where(index_valid, values[..., i], -np.inf)
        # argmax returns the first maximum, i.e. the earliest date
        selected = np.argmax(key, axis=0)
        return self._gather(values, valid, selected, self._has_valid(index_valid, valid))

    @staticmethod
    def _has_valid(date_valid, valid):
        has_valid = date_valid.any(axis=0)
        return has_valid[..., np.newaxis] if valid.ndim == 4 else has_valid

    # Per-band reducers

    def _masked(self, values, valid):
        if valid.ndim == 3:
            valid = valid[..., np.newaxis]
        return np.where(valid, values, np.nan), valid

    def _reduce_median(self, values, valid, bands):
        masked, valid4 = self._masked(values, valid)
        with warnings.catch_warnings():
            # All-NaN slices are expected for cells without valid data
            warnings.simplefilter("ignore", category=RuntimeWarning)
            reduced = np.nanmedian(masked, axis=0)
        return reduced, valid.any(axis=0)

    def _reduce_mean(self, values, valid, bands):
        masked, valid4 = self._masked(values, valid)
        count = np.broadcast_to(valid4, masked.shape).sum(axis=0)
        total = np.nansum(masked, axis=0)
        reduced = np.where(count > 0, total / np.maximum(count, 1), np.nan)
        return reduced, valid.any(axis=0)
