"""
Worker processes against in-thread execution.

Passes found by a worker process must be identical to the passes found
in-thread for the same request.

NOTE: These tests start worker processes and can be slow.
Run with: pytest -m "not slow" to skip these tests.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from pass_predictor.config import PredictorConfig
from pass_predictor.parallel import ParallelDispatcher, WorkerJobError
from pass_predictor.passes import Pass
from pass_predictor.predictor import PassPredictor
from pass_predictor.protocol import MessageType
from pass_predictor.utils import datetime_to_ms

pytestmark = [pytest.mark.slow, pytest.mark.integration]

START = datetime(2018, 12, 8, 18, 0, 0)
END = START + timedelta(days=3)


@pytest.fixture
def dispatcher():
    # A zero sync window sends every pass search to a worker
    with ParallelDispatcher(PredictorConfig(sync_window_hours=0), num_workers=2) as d:
        yield d


def _window_data(lines, station):
    return {
        "elements": list(lines),
        "ground_station": station.to_dict(),
        "start_ms": datetime_to_ms(START),
        "end_ms": datetime_to_ms(END),
        "max_passes": 50,
    }


def test_elevation_parity(dispatcher, iss_tle_lines, munich_station) -> None:
    """Worker and in-thread elevation searches agree."""
    data = {**_window_data(iss_tle_lines, munich_station), "min_elevation_deg": 10.0}

    worker_result = asyncio.run(dispatcher.request(MessageType.COMPUTE_PASSES_ELEVATION, data))
    local = dispatcher.run_sync(MessageType.COMPUTE_PASSES_ELEVATION, data)

    assert local["success"]
    assert worker_result == local["result"]
    assert len(worker_result) > 0


def test_swath_parity(dispatcher, iss_tle_lines, munich_station) -> None:
    """Worker and in-thread swath searches agree."""
    data = {**_window_data(iss_tle_lines, munich_station), "swath_km": 2500.0}

    passes = asyncio.run(dispatcher.compute_passes(
        iss_tle_lines, munich_station, START, END, swath_km=2500.0
    ))
    direct, _ = PassPredictor().find_swath_passes(
        iss_tle_lines, munich_station, 2500.0, START, END
    )

    assert passes == direct
    assert dispatcher.run_sync(MessageType.COMPUTE_PASSES_SWATH, data)["result"] == [
        p.to_dict() for p in passes
    ]


def test_concurrent_requests(dispatcher, iss_tle_lines, geo_tle_lines, munich_station) -> None:
    """Jobs on different workers complete independently."""

    async def run():
        return await asyncio.gather(
            dispatcher.compute_passes(iss_tle_lines, munich_station, START, END),
            dispatcher.compute_passes(geo_tle_lines, munich_station, START, END),
        )

    iss_passes, geo_passes = asyncio.run(run())

    assert all(isinstance(p, Pass) for p in iss_passes)
    assert iss_passes
    assert geo_passes == []
    assert dispatcher.get_stats()["started_workers"] == 2


def test_failed_job_leaves_worker_usable(dispatcher, iss_tle_lines, munich_station) -> None:
    """A failing job does not disturb the jobs behind it."""
    bad = {**_window_data(["1 bad", "2 bad"], munich_station), "min_elevation_deg": 5.0}
    good = {**_window_data(iss_tle_lines, munich_station), "min_elevation_deg": 5.0}

    async def run():
        failing = dispatcher.request(MessageType.COMPUTE_PASSES_ELEVATION, bad)
        with pytest.raises(WorkerJobError):
            await failing
        return await dispatcher.request(MessageType.COMPUTE_PASSES_ELEVATION, good)

    assert asyncio.run(run())


def test_clear_cache_broadcast(dispatcher, iss_tle_lines, munich_station) -> None:
    """CLEAR_CACHE reaches every worker and the in-thread worker."""
    asyncio.run(dispatcher.compute_passes(iss_tle_lines, munich_station, START, END))

    responses = asyncio.run(dispatcher.clear_cache())

    assert len(responses) == 2
    assert all(r["success"] and r["result"] == {"cleared": True} for r in responses)
    assert dispatcher.local_worker.predictor.cache_stats()["passes"]["size"] == 0
