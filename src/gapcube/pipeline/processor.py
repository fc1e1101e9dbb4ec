"""Chunk worker threads.

Each worker owns the chunks it pulls from the job queue and writes nothing
shared: results go back through the output queue. A failing chunk is
reported in its result and never stops the worker or its siblings.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import numpy as np

from gapcube.contracts import ContractViolation
from gapcube.timeseries import ChunkFill, GapFiller

if TYPE_CHECKING:
    from gapcube.schemas import InternalConfig

__all__ = ["ChunkJob", "ChunkResult", "ChunkProcessor"]

logger = logging.getLogger(__name__)


@dataclass
class ChunkJob:
    """One spatial chunk of the composite cube."""
    chunk_id: int
    rows: slice
    cols: slice
    values: np.ndarray
    valid: np.ndarray
    covariates: Optional[Mapping[str, tuple]] = None

    @property
    def label(self) -> str:
        return (f"rows {self.rows.start}:{self.rows.stop}, "
                f"cols {self.cols.start}:{self.cols.stop}")


@dataclass
class ChunkResult:
    """Outcome of a chunk: a fill, or the error that prevented it."""
    chunk_id: int
    rows: slice
    cols: slice
    fill: Optional[ChunkFill] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChunkProcessor(threading.Thread):
    """Gap-fill chunks pulled from a queue (runs in thread).

    The processor receives ``ChunkJob`` items from ``input_queue`` and
    pushes one ``ChunkResult`` per job to ``output_queue``. ``None`` is the
    shutdown sentinel.

    Example usage (typically called by the orchestrator)::

        processor = ChunkProcessor(jobs, results, config, dates, targets, bands)
        processor.start()
        jobs.put(job)
        jobs.put(None)
        processor.join()
    """

    def __init__(self, input_queue: queue.Queue, output_queue: queue.Queue,
                 config: "InternalConfig", dates: Sequence, target_dates: Sequence,
                 bands: Sequence[str], name: str = "ChunkProcessor"):
        """Initialize processor with validated configuration.

        Parameters
        ----------
        input_queue : queue.Queue
            Queue of ChunkJob items. None signals shutdown.

        output_queue : queue.Queue
            Queue receiving one ChunkResult per job.

        config : InternalConfig
            Fully validated runtime configuration (read-only).

        dates, target_dates : sequence of datetime-like
            Input and output date axes shared by every chunk.

        bands : sequence of str
            Band names of the cube.

        name : str, optional
            Thread name for logging (default: "ChunkProcessor").
        """
        super().__init__(daemon=True, name=name)

        self.input_queue = input_queue
        self.output_queue = output_queue
        self.config = config
        self.dates = dates
        self.target_dates = target_dates
        self.bands = list(bands)
        self.filler = GapFiller(config)
        self._stop_event = threading.Event()
        self.n_processed = 0

    def stop(self):
        """Signal processor to stop after the current chunk."""
        self._stop_event.set()

    def stopped(self):
        """Check if processor should stop."""
        return self._stop_event.is_set()

    def process_chunk(self, job: ChunkJob) -> ChunkResult:
        """Gap-fill one chunk, capturing any failure in the result."""
        try:
            fill = self.filler.fill_chunk(
                job.values,
                job.valid,
                self.dates,
                self.target_dates,
                bands=self.bands,
                covariates=job.covariates,
            )
        except ContractViolation as e:
            logger.critical("Pipeline contract violated in chunk %s: %s", job.label, e)
            return ChunkResult(job.chunk_id, job.rows, job.cols,
                               error=f"ContractViolation: {e}")
        except Exception as e:
            logger.exception("Error processing chunk %s", job.label)
            return ChunkResult(job.chunk_id, job.rows, job.cols,
                               error=f"{type(e).__name__}: {e}")

        logger.debug("Chunk %s done: %d flagged pixel-band(s)", job.label, len(fill.failures))
        return ChunkResult(job.chunk_id, job.rows, job.cols, fill=fill)

    def run(self):
        """Main processor loop (runs in thread).

        Notes
        -----
        Called automatically by thread.start(). Do not call directly.
        """
        logger.debug("%s started, waiting for chunks...", self.name)

        while not self.stopped():
            try:
                job = self.input_queue.get(timeout=1)
            except queue.Empty:
                continue

            try:
                if job is None:
                    break
                self.output_queue.put(self.process_chunk(job))
                self.n_processed += 1
            finally:
                # Always mark task as done to prevent queue from blocking
                self.input_queue.task_done()

        logger.debug("%s stopped after %d chunk(s)", self.name, self.n_processed)
