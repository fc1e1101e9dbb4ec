"""Time-series engine: gap filling and smoothing of per-pixel series.

- interpolation: Linear and (periodic) spline interpolation
- whittaker: Penalised banded smoothing, covariates, reweighting
- smoother: Series-level API and chunk-level gap filler
"""

from gapcube.timeseries.smoother import (
    ChunkFill,
    GapFiller,
    SampleFlag,
    SmoothedSeries,
    smooth,
)

__all__ = ["ChunkFill", "GapFiller", "SampleFlag", "SmoothedSeries", "smooth"]
