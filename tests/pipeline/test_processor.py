"""ChunkProcessor worker threads."""

import queue

import numpy as np
import pandas as pd
import pytest

from gapcube.contracts import ContractViolation
from gapcube.pipeline.processor import ChunkJob, ChunkProcessor
from gapcube.timeseries import SampleFlag

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]

DATES = pd.date_range("2020-01-01", periods=4, freq="MS")


def _job(chunk_id, n_y, n_x, row=0, col=0):
    return ChunkJob(
        chunk_id=chunk_id,
        rows=slice(row, row + n_y),
        cols=slice(col, col + n_x),
        values=np.full((4, n_y, n_x, 1), 0.4),
        valid=np.ones((4, n_y, n_x), dtype=bool),
    )


def _run(processor, jobs):
    processor.start()
    for job in jobs:
        processor.input_queue.put(job)
    processor.input_queue.put(None)
    processor.join(timeout=10)
    results = []
    while not processor.output_queue.empty():
        results.append(processor.output_queue.get())
    return results


@pytest.fixture
def processor(make_config):
    config = make_config(smoothing={"method": "linear"})
    return ChunkProcessor(queue.Queue(), queue.Queue(), config, DATES, DATES, ["ndvi"], name="TestProcessor")


def test_processes_jobs_until_sentinel(processor):
    results = _run(processor, [_job(0, 2, 2), _job(1, 1, 3, row=2)])

    assert not processor.is_alive()
    assert processor.n_processed == 2
    assert sorted(r.chunk_id for r in results) == [0, 1]
    for result in results:
        assert result.ok
        np.testing.assert_allclose(result.fill.values, 0.4)
        assert (result.fill.flags == SampleFlag.OBSERVED).all()


def test_failed_chunk_does_not_stop_worker(processor):
    original = processor.filler.fill_chunk

    def flaky(values, *args, **kwargs):
        if values.shape[1] == 1:
            raise RuntimeError("boom")
        return original(values, *args, **kwargs)

    processor.filler.fill_chunk = flaky
    results = {r.chunk_id: r for r in _run(processor, [_job(0, 1, 1), _job(1, 2, 2)])}

    assert not results[0].ok
    assert results[0].error == "RuntimeError: boom"
    assert results[0].fill is None
    assert results[1].ok


def test_contract_violation_is_reported(processor):
    def broken(*args, **kwargs):
        raise ContractViolation("bad chunk")

    processor.filler.fill_chunk = broken
    results = _run(processor, [_job(0, 1, 1)])
    assert results[0].error == "ContractViolation: bad chunk"


def test_stop_ends_idle_worker(processor):
    processor.start()
    processor.stop()
    processor.join(timeout=5)
    assert processor.stopped()
    assert not processor.is_alive()


def test_job_label():
    assert _job(3, 2, 4, row=4, col=8).label == "rows 4:6, cols 8:12"
