"""Run summary: what was processed and what failed, without halting the run."""

import logging
from dataclasses import dataclass, field

import pandas as pd

__all__ = ["RunSummary", "FAILURE_COLUMNS"]

logger = logging.getLogger(__name__)

FAILURE_COLUMNS = ["stage", "date", "chunk", "row", "col", "band", "error"]


@dataclass
class RunSummary:
    """Counts and failure records of one stacking run.

    Pixel failures carry grid ``row``/``col``; chunk failures carry the
    chunk window as ``"rows a:b, cols c:d"``.
    """
    n_dates: int = 0
    n_periods: int = 0
    n_targets: int = 0
    n_chunks: int = 0
    n_outliers: int = 0
    records: list = field(default_factory=list)

    def add_failure(self, stage: str, error: str, **where):
        self.records.append({"stage": stage, "error": error, **where})

    def extend(self, records, row_offset: int = 0, col_offset: int = 0):
        """Append failure records, shifting chunk-local ``row``/``col`` onto the grid."""
        for record in records:
            record = dict(record)
            if "row" in record:
                record["row"] += row_offset
            if "col" in record:
                record["col"] += col_offset
            self.records.append(record)

    @property
    def failures(self) -> pd.DataFrame:
        """Failure records, one row per skipped date, failed chunk or flagged pixel."""
        return pd.DataFrame(self.records, columns=FAILURE_COLUMNS)

    @property
    def n_skipped_dates(self) -> int:
        return sum(1 for r in self.records if r["stage"] == "mosaic")

    @property
    def n_failed_chunks(self) -> int:
        return sum(1 for r in self.records if r["stage"] == "chunk")

    @property
    def n_flagged_pixels(self) -> int:
        return sum(1 for r in self.records if r["stage"] == "smooth")

    def log(self):
        logger.info(
            "Run summary: dates=%d (skipped %d), periods=%d, targets=%d, "
            "chunks=%d (failed %d), flagged pixel-bands=%d, outliers=%d",
            self.n_dates, self.n_skipped_dates, self.n_periods, self.n_targets,
            self.n_chunks, self.n_failed_chunks, self.n_flagged_pixels, self.n_outliers,
        )
        for record in self.records:
            if record["stage"] != "smooth":
                logger.warning("  %s failure: %s", record["stage"], record["error"])
