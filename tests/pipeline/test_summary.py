"""RunSummary: failure bookkeeping of a stacking run."""

import pytest

from gapcube.pipeline.summary import FAILURE_COLUMNS, RunSummary

pytestmark = pytest.mark.unit


def test_extend_shifts_chunk_local_pixels_onto_the_grid():
    summary = RunSummary()
    summary.extend(
        [{"stage": "smooth", "row": 1, "col": 0, "band": "ndvi", "error": "InsufficientDataError: 1 < 3"}],
        row_offset=4,
        col_offset=8,
    )

    record = summary.failures.iloc[0]
    assert (record["row"], record["col"], record["band"]) == (5, 8, "ndvi")
    assert summary.n_flagged_pixels == 1


def test_extend_keeps_records_without_positions():
    skipped = [{"stage": "mosaic", "date": "2020-05-02", "error": "HeterogeneousInputError: 2 capture dates"}]
    summary = RunSummary()
    summary.extend(skipped, row_offset=4, col_offset=8)

    assert summary.records == skipped
    assert summary.records[0] is not skipped[0]
    assert summary.n_skipped_dates == 1


def test_failures_frame_has_fixed_columns():
    summary = RunSummary()
    assert list(summary.failures.columns) == FAILURE_COLUMNS
    assert summary.failures.empty

    summary.add_failure("chunk", "RuntimeError: boom", chunk="rows 0:4, cols 0:4")
    assert summary.n_failed_chunks == 1
    assert summary.failures.iloc[0]["chunk"] == "rows 0:4, cols 0:4"
