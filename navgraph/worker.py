"""Background graph-builder actor.

Purpose:
- Run generation requests on one daemon thread, one at a time.
- Stream typed progress messages to the caller and resolve a future on
  completion.
- Honour cooperative cancellation between floors.

Usage example:
    >>> with NavGraphWorker() as worker:
    ...     job = worker.submit({"width": 300, "height": 200, "layerCount": 2, "obstacleCount": 30, "seed": 3})
    ...     for message in job.events():
    ...         print(message.type)
    ...     graph = job.result()
"""

from __future__ import annotations

import logging
import queue
import threading
import traceback
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping

import numpy as np

from navgraph.config import BuildOptions
from navgraph.models import NavGraph
from navgraph.packing import collect_transferables
from navgraph.payload import navgraph_to_payload
from navgraph.pipeline import (
    CancelToken,
    GenerationCancelled,
    GenerationRequest,
    generate_navgraph,
    perform_warmup,
)
from navgraph.spatial_index import SpatialIndexCache

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    GENERATE_NAVGRAPH = "GENERATE_NAVGRAPH"
    WARMUP = "WARMUP"
    CANCEL = "CANCEL"
    START = "START"
    OBSTACLE_READY = "OBSTACLE_READY"
    PROGRESS = "PROGRESS"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    WARMUP_DONE = "WARMUP_DONE"


TERMINAL_TYPES = frozenset({MessageType.COMPLETE, MessageType.ERROR, MessageType.CANCELLED})


@dataclass(slots=True)
class WorkerMessage:
    """Envelope exchanged with the worker; ``transfer`` lists moved buffers."""

    type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)
    transfer: list[np.ndarray] = field(default_factory=list)


class GenerationError(RuntimeError):
    """Fatal failure inside a generation run."""


class GenerationJob:
    """Handle for one submitted generation request."""

    def __init__(self, payload: Mapping[str, Any]) -> None:
        self.payload = dict(payload)
        self.token = CancelToken()
        self.future: Future[NavGraph] = Future()
        self._events: queue.Queue[WorkerMessage] = queue.Queue()

    def post(self, message: WorkerMessage) -> None:
        self._events.put(message)

    def events(self, timeout: float | None = None) -> Iterator[WorkerMessage]:
        """Yield messages until a terminal one (COMPLETE, ERROR, CANCELLED).

        Raises:
            queue.Empty: When ``timeout`` elapses between two messages.
        """
        while True:
            message = self._events.get(timeout=timeout)
            yield message
            if message.type in TERMINAL_TYPES:
                return

    def cancel(self) -> None:
        self.token.cancel()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def result(self, timeout: float | None = None) -> NavGraph:
        return self.future.result(timeout=timeout)


class NavGraphWorker:
    """Single-threaded actor owning the spatial index cache."""

    def __init__(
        self,
        cache: SpatialIndexCache | None = None,
        *,
        defaults: BuildOptions | None = None,
        autostart: bool = True,
    ) -> None:
        self.cache = cache if cache is not None else SpatialIndexCache()
        self.defaults = defaults if defaults is not None else BuildOptions()
        self.autostart = autostart
        self._inbox: queue.Queue[tuple[WorkerMessage, Any] | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._jobs: list[GenerationJob] = []

    def __enter__(self) -> "NavGraphWorker":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="navgraph-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Cancel outstanding jobs and join the worker thread."""
        if self._thread is None:
            return
        self.cancel()
        self._inbox.put(None)
        self._thread.join(timeout=timeout)
        self._thread = None

    def submit(self, payload: Mapping[str, Any]) -> GenerationJob:
        """Queue a ``GENERATE_NAVGRAPH`` request and return its job handle."""
        if self.autostart:
            self.start()
        job = GenerationJob(payload)
        with self._lock:
            self._jobs.append(job)
        self._inbox.put((WorkerMessage(MessageType.GENERATE_NAVGRAPH, job.payload), job))
        return job

    def warmup(self) -> Future[WorkerMessage]:
        """Queue a throwaway build; the future resolves to its ``WARMUP_DONE`` message."""
        if self.autostart:
            self.start()
        future: Future[WorkerMessage] = Future()
        self._inbox.put((WorkerMessage(MessageType.WARMUP), future))
        return future

    def cancel(self) -> int:
        """Flag every running or queued job as cancelled; returns how many."""
        with self._lock:
            jobs = [job for job in self._jobs if not job.future.done()]
        for job in jobs:
            job.cancel()
        if jobs:
            logger.info("Cancel requested for %d job(s)", len(jobs))
        return len(jobs)

    def _run(self) -> None:
        while True:
            item = self._inbox.get()
            if item is None:
                break
            message, target = item
            if message.type is MessageType.GENERATE_NAVGRAPH:
                self._generate(target)
                with self._lock:
                    self._jobs = [job for job in self._jobs if not job.future.done()]
            elif message.type is MessageType.WARMUP:
                self._warmup(target)
            else:
                logger.warning("Unknown worker message type: %s", message.type)

    def _warmup(self, future: Future[WorkerMessage]) -> None:
        try:
            ms = perform_warmup(self.cache)
        except Exception as exc:  # pragma: no cover - warmup failures are not fatal
            logger.exception("Warmup failed")
            future.set_exception(exc)
            return
        future.set_result(WorkerMessage(MessageType.WARMUP_DONE, {"durationMs": round(ms, 3)}))

    def _generate(self, job: GenerationJob) -> None:
        if job.cancelled:
            self._cancelled(job, GenerationCancelled("Generation cancelled before start"))
            return

        try:
            request = GenerationRequest.from_payload(job.payload, self.defaults)
        except ValueError as exc:
            job.post(WorkerMessage(MessageType.ERROR, {"message": str(exc), "stack": None}))
            job.future.set_exception(exc)
            return

        job.post(WorkerMessage(MessageType.START, dict(job.payload)))

        def emit(event: str, payload: dict[str, Any]) -> None:
            job.post(WorkerMessage(MessageType(event), payload))

        try:
            graph = generate_navgraph(request, cache=self.cache, emit=emit, cancel=job.token)
        except GenerationCancelled as exc:
            self._cancelled(job, exc)
            return
        except Exception as exc:
            logger.exception("Generation failed")
            job.post(
                WorkerMessage(
                    MessageType.ERROR,
                    {"message": str(exc), "stack": "".join(traceback.format_exception(exc))},
                )
            )
            error = GenerationError(str(exc))
            error.__cause__ = exc
            job.future.set_exception(error)
            return

        transfer, stats = collect_transferables(graph)
        job.post(WorkerMessage(MessageType.COMPLETE, {"data": navgraph_to_payload(graph)}, transfer))
        logger.debug("Job complete; %d buffers (%d bytes) handed over", stats.buffer_count, stats.transfer_bytes)
        job.future.set_result(graph)

    def _cancelled(self, job: GenerationJob, exc: GenerationCancelled) -> None:
        logger.info("%s", exc)
        job.post(WorkerMessage(MessageType.CANCELLED))
        job.future.set_exception(exc)
