"""Unit tests for navgraph.worker."""

from __future__ import annotations

from typing import Iterator

import numpy as np
import pytest

from navgraph.config import BuildOptions
from navgraph.pipeline import GenerationCancelled
from navgraph.spatial_index import SpatialIndexCache
from navgraph.worker import MessageType, NavGraphWorker

PAYLOAD = {"width": 200, "height": 150, "layerCount": 2, "obstacleCount": 12, "seed": 5}


@pytest.fixture()
def worker() -> Iterator[NavGraphWorker]:
    with NavGraphWorker() as running:
        yield running


def test_message_order_and_result(worker: NavGraphWorker) -> None:
    """START, OBSTACLE_READY, one PROGRESS per floor, then COMPLETE."""
    job = worker.submit(PAYLOAD)
    messages = list(job.events(timeout=60))
    types = [m.type for m in messages]

    assert types == [
        MessageType.START,
        MessageType.OBSTACLE_READY,
        MessageType.PROGRESS,
        MessageType.PROGRESS,
        MessageType.COMPLETE,
    ]
    complete = messages[-1]
    assert len(complete.payload["data"]["layers"]) == 2
    assert complete.transfer and all(isinstance(buf, np.ndarray) for buf in complete.transfer)
    assert len(job.result(timeout=60).layers) == 2


def test_invalid_payload_reports_error(worker: NavGraphWorker) -> None:
    """Validation failures post ERROR without a stack and fail the future."""
    job = worker.submit({"width": -1, "height": 10, "layerCount": 1})
    messages = list(job.events(timeout=30))

    assert [m.type for m in messages] == [MessageType.ERROR]
    assert messages[0].payload["stack"] is None
    assert "Invalid parameters" in messages[0].payload["message"]
    with pytest.raises(ValueError, match="width and height"):
        job.result(timeout=30)


def test_cancel_before_start() -> None:
    """A job cancelled while queued ends with CANCELLED."""
    idle = NavGraphWorker(autostart=False)
    job = idle.submit(PAYLOAD)
    assert idle.cancel() == 1
    assert job.cancelled

    idle.start()
    try:
        assert [m.type for m in job.events(timeout=30)] == [MessageType.CANCELLED]
        with pytest.raises(GenerationCancelled):
            job.result(timeout=30)
    finally:
        idle.stop()


def test_jobs_run_sequentially(worker: NavGraphWorker) -> None:
    """Queued jobs complete in submission order and share the index cache."""
    first = worker.submit(PAYLOAD)
    second = worker.submit(PAYLOAD)

    assert first.result(timeout=60).metadata["seed"] == 5
    assert second.result(timeout=60).metadata["seed"] == 5
    assert worker.cache.hits > 0


def test_warmup_future_resolves(worker: NavGraphWorker) -> None:
    """Warmup resolves to a WARMUP_DONE message carrying its duration."""
    done = worker.warmup().result(timeout=60)
    assert done.type is MessageType.WARMUP_DONE
    assert done.payload["durationMs"] >= 0.0


def test_stop_is_idempotent() -> None:
    idle = NavGraphWorker(autostart=False)
    idle.stop()
    assert not idle.running


def test_worker_applies_build_defaults() -> None:
    """Request options are layered over the worker's defaults."""
    with NavGraphWorker(defaults=BuildOptions(floor_entrance_count=1)) as running:
        graph = running.submit(PAYLOAD).result(timeout=60)
        assert len(graph.connectors) == 1
        graph = running.submit({**PAYLOAD, "options": {"floorEntranceCount": 2}}).result(timeout=60)
        assert len(graph.connectors) == 2


def test_worker_keeps_the_cache_it_is_given() -> None:
    """An empty caller cache is adopted, not replaced."""
    cache = SpatialIndexCache()
    idle = NavGraphWorker(cache, autostart=False)
    assert idle.cache is cache
