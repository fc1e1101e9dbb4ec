"""Stacking pipeline orchestration.

Runs tiles through cube building, compositing and chunk-parallel gap
filling, and collects failures into a RunSummary instead of aborting.
"""

import logging
import queue
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import xarray as xr

from gapcube.contracts import GridMismatchError
from gapcube.pipeline.processor import ChunkJob, ChunkProcessor
from gapcube.pipeline.summary import RunSummary
from gapcube.raster.compositor import CompositePeriods, Compositor
from gapcube.raster.cube import CubeBuilder
from gapcube.timeseries.smoother import SampleFlag

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["StackOrchestrator", "StackResult"]

logger = logging.getLogger(__name__)


@dataclass
class StackResult:
    """Everything a run produces.

    ``cube``/``mask`` are the mosaicked observations, ``composite``/
    ``composite_mask`` the per-period composites (for previews), and
    ``smoothed``/``flags`` the gap-free stack with the ``SampleFlag`` of
    every value.
    """
    cube: xr.DataArray
    mask: xr.DataArray
    composite: xr.DataArray
    composite_mask: xr.DataArray
    smoothed: xr.DataArray
    flags: xr.DataArray
    summary: RunSummary


class StackOrchestrator:
    """Runs the stacking pipeline on a fixed configuration.

    **Stages:**

    1. **Cube**: tiles are grouped by date, mosaicked, masked and placed on
       the grid. Dates with inconsistent tiles are skipped and reported.
       A tile misaligned with the grid stops the run.

    2. **Composite**: the cube is reduced to one observation per period.

    3. **Gap fill**: the grid is split into ``processor.chunk_size`` square
       chunks handled by ``processor.workers`` ChunkProcessor threads.
       Per-pixel and per-chunk failures end up in the summary.

    Example usage::

        config = resolve_config(ParamConfig(), user_cfg)
        result = StackOrchestrator(config).run(tiles)
        result.smoothed            # (time, y, x, band)
        result.summary.failures    # pandas DataFrame
    """

    def __init__(self, config: "InternalConfig"):
        """Initialize orchestrator with validated configuration.

        Parameters
        ----------
        config : InternalConfig
            Immutable run context shared (read-only) by all stages and workers.
        """
        self.config = config
        self.builder = CubeBuilder(config)
        self.compositor = Compositor(config)

    def setup_logging(self):
        """Configure the root logger with console and optional file handlers.

        Level and log file come from ``config.logging``.
        """
        log_level = getattr(logging, self.config.logging.level, logging.INFO)

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Clear existing handlers and add new ones
        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        # Console handler
        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        # File handler
        log_file = self.config.logging.log_file
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_file)
            fh.setLevel(log_level)
            fh.setFormatter(formatter)
            root.addHandler(fh)

        logger.info("Logging: level=%s, file=%s", self.config.logging.level, log_file)

    def run(self, tiles, periods: Optional[CompositePeriods] = None,
            target_dates: Optional[Sequence] = None,
            covariates: Optional[Mapping[str, tuple]] = None) -> StackResult:
        """Run the pipeline.

        Parameters
        ----------
        tiles : sequence of xr.Dataset or sequence of sequences
            Flat tiles (grouped by date) or explicit per-pass groups.
        periods : CompositePeriods, optional
            Composite buckets (default: ``composite.frequency``).
        target_dates : sequence of datetime-like, optional
            Output axis (default: ``smoothing.target_frequency`` over the
            composite span, else the composite period starts).
        covariates : mapping of str to (dates, values), optional
            Covariate series; values are 1-D or ``(time, y, x)`` on the grid.

        Returns
        -------
        StackResult

        Raises
        ------
        GridMismatchError
            If a tile cannot be aligned to the grid.
        """
        start = time.time()
        summary = RunSummary()

        logger.info("=" * 60)
        logger.info("Starting stacking run on grid %s (%s)", self.config.grid.shape, self.config.grid.crs)
        logger.info("=" * 60)

        try:
            cube, mask = self.builder.build(tiles)
        except GridMismatchError as e:
            logger.critical("Grid mismatch, stopping run: %s", e)
            raise
        summary.extend(self.builder.failures)
        summary.n_dates = cube.sizes["time"]

        composite, composite_mask = self.compositor.composite(cube, mask, periods)
        summary.n_periods = composite.sizes["time"]

        targets = self._target_dates(composite, target_dates)
        summary.n_targets = len(targets)

        smoothed, flags = self._fill(composite, composite_mask, targets, covariates, summary)

        summary.log()
        logger.info("Run finished in %.1f seconds", time.time() - start)
        return StackResult(
            cube=cube,
            mask=mask,
            composite=composite,
            composite_mask=composite_mask,
            smoothed=smoothed,
            flags=flags,
            summary=summary,
        )

    def _target_dates(self, composite: xr.DataArray, target_dates) -> pd.DatetimeIndex:
        if target_dates is not None:
            return pd.DatetimeIndex(target_dates)
        times = pd.DatetimeIndex(composite["time"].values)
        frequency = self.config.smoothing.target_frequency
        if frequency:
            return pd.date_range(times[0], times[-1], freq=frequency)
        return times

    def _chunks(self):
        size = self.config.processor.chunk_size
        n_rows, n_cols = self.config.grid.shape
        for row in range(0, n_rows, size):
            for col in range(0, n_cols, size):
                yield slice(row, min(row + size, n_rows)), slice(col, min(col + size, n_cols))

    def _fill(self, composite: xr.DataArray, composite_mask: xr.DataArray,
              targets: pd.DatetimeIndex, covariates, summary: RunSummary):
        """Gap-fill the composite chunk by chunk on a pool of worker threads."""
        dates = pd.DatetimeIndex(composite["time"].values)
        bands = [str(b) for b in composite["band"].values]
        values = composite.values
        valid = composite_mask.values

        n_workers = self.config.processor.workers
        jobs = queue.Queue(maxsize=self.config.processor.max_queue_size)
        results = queue.Queue()

        workers = [
            ChunkProcessor(jobs, results, self.config, dates, targets, bands,
                           name=f"ChunkProcessor-{i}")
            for i in range(n_workers)
        ]
        for worker in workers:
            worker.start()
        logger.info("Started %d chunk worker(s)", n_workers)

        n_jobs = 0
        for chunk_id, (rows, cols) in enumerate(self._chunks()):
            jobs.put(ChunkJob(
                chunk_id=chunk_id,
                rows=rows,
                cols=cols,
                values=values[:, rows, cols],
                valid=valid[:, rows, cols],
                covariates=self._chunk_covariates(covariates, rows, cols),
            ))
            n_jobs += 1
        for _ in workers:
            jobs.put(None)

        shape = (len(targets),) + self.config.grid.shape + (len(bands),)
        smoothed = np.full(shape, np.nan)
        flags = np.full(shape, SampleFlag.FIT_FAILED, dtype=np.int8)

        for _ in range(n_jobs):
            result = results.get()
            if not result.ok:
                label = (f"rows {result.rows.start}:{result.rows.stop}, "
                         f"cols {result.cols.start}:{result.cols.stop}")
                logger.error("Chunk %s failed: %s", label, result.error)
                summary.add_failure("chunk", result.error, chunk=label)
                continue
            smoothed[:, result.rows, result.cols] = result.fill.values
            flags[:, result.rows, result.cols] = result.fill.flags
            summary.n_outliers += result.fill.outliers
            summary.extend(
                result.fill.failures,
                row_offset=result.rows.start,
                col_offset=result.cols.start,
            )

        for worker in workers:
            worker.join(timeout=10)
            if worker.is_alive():
                logger.warning("%s did not stop cleanly", worker.name)
        summary.n_chunks = n_jobs

        coords = {
            "time": targets,
            "y": composite["y"].values,
            "x": composite["x"].values,
            "band": bands,
        }
        dims = ("time", "y", "x", "band")
        return (
            xr.DataArray(smoothed, dims=dims, coords=coords, name="smoothed",
                         attrs={"method": self.config.smoothing.method}),
            xr.DataArray(flags, dims=dims, coords=coords, name="flags"),
        )

    @staticmethod
    def _chunk_covariates(covariates, rows, cols):
        if not covariates:
            return None
        chunk = {}
        for name, (cov_dates, cov_values) in covariates.items():
            cov_values = np.asarray(cov_values)
            chunk[name] = (cov_dates, cov_values if cov_values.ndim == 1 else cov_values[:, rows, cols])
        return chunk
