"""
Parallel dispatch of pass-prediction jobs.

Jobs are protocol messages (see ``protocol``) executed by long-lived worker
processes. Each worker slot is a single-process pool, so a slot runs its
jobs in submission order and owns private caches; slots share nothing.
Callers await a job's response without blocking their own thread, and small
pass searches can run in-thread instead through the same code.
"""

from concurrent.futures import Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional
import asyncio
import itertools
import logging
import multiprocessing as mp
import os
import threading

from .config import PredictorConfig
from .geometry import GroundStation
from .orbit import ElementsInput, normalize_elements
from .passes import Pass
from .protocol import JobId, MessageType
from .utils import datetime_to_ms
from .worker import PassWorker, execute_message, initialize_worker

logger = logging.getLogger(__name__)

MIN_POOL_SIZE = 2
MAX_POOL_SIZE = 8

PASS_JOB_TYPES = (MessageType.COMPUTE_PASSES_ELEVATION, MessageType.COMPUTE_PASSES_SWATH)


def get_optimal_workers(max_workers: Optional[int] = None) -> int:
    """
    Determine the number of worker processes.

    Args:
        max_workers: Explicit worker count (None = auto-detect)

    Returns:
        max_workers when given, otherwise the CPU count bounded to 2..8
    """
    if max_workers is not None:
        return max(1, max_workers)

    cpu_count = os.cpu_count() or 4
    return max(MIN_POOL_SIZE, min(cpu_count, MAX_POOL_SIZE))


def _get_mp_context() -> Optional[Any]:
    # 'fork' gives faster worker startup on Unix; fall back to the platform default
    try:
        return mp.get_context("fork")
    except ValueError:
        logger.debug("'fork' context not available, using default start method")
        return None


class WorkerJobError(Exception):
    """A worker reported ``success: False`` for a job."""

    def __init__(self, job_id: Optional[JobId], message_type: str, error: str) -> None:
        super().__init__(f"Job {job_id} ({message_type}) failed: {error}")
        self.job_id = job_id
        self.message_type = message_type
        self.error = error


@dataclass
class JobHandle:
    """
    A submitted job.

    Running jobs cannot be interrupted. A caller that no longer wants the
    result marks the handle stale and ignores whatever it eventually yields.
    """

    id: JobId
    type: MessageType
    future: "Future[Dict[str, Any]]"
    worker_index: int
    stale: bool = field(default=False)

    def mark_stale(self) -> None:
        self.stale = True

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block until the response arrives. Execution failures become failed responses."""
        try:
            return self.future.result(timeout=timeout)
        except (BrokenProcessPool, OSError, RuntimeError) as e:
            return self._failure(e)

    async def response(self) -> Dict[str, Any]:
        """Await the response without blocking the event loop."""
        try:
            return await asyncio.wrap_future(self.future)
        except (BrokenProcessPool, OSError, RuntimeError) as e:
            return self._failure(e)

    def __await__(self) -> Generator[Any, None, Dict[str, Any]]:
        return self.response().__await__()

    def _failure(self, error: BaseException) -> Dict[str, Any]:
        logger.error(f"Job {self.id} ({self.type.value}) lost its worker: {error}")
        return {
            "id": self.id,
            "type": self.type.value,
            "success": False,
            "error": f"Worker failure: {error}",
        }


def _raise_for_failure(response: Dict[str, Any]) -> Any:
    if not response.get("success"):
        raise WorkerJobError(response.get("id"), str(response.get("type")), str(response.get("error")))
    return response.get("result")


class ParallelDispatcher:
    """
    Pool of single-threaded worker processes fed with protocol messages.

    Each job goes to the slot with the fewest jobs in flight. ``submit``
    returns a handle whose response is a protocol dict; ``request`` awaits
    that response and raises ``WorkerJobError`` on failure. ``run_sync``
    executes a message on an in-thread worker and ``dispatch`` picks between
    the two paths by window length.
    """

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        num_workers: Optional[int] = None,
    ) -> None:
        self.config = config or PredictorConfig()
        self.num_workers = get_optimal_workers(
            num_workers if num_workers is not None else self.config.num_workers
        )

        self._slots: List[Optional[ProcessPoolExecutor]] = [None] * self.num_workers
        self._in_flight: List[int] = [0] * self.num_workers
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._submitted = 0
        self._closed = False

        self.local_worker = PassWorker(self.config)

        logger.info(f"Initialized ParallelDispatcher ({self.num_workers} workers)")

    def __enter__(self) -> "ParallelDispatcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Pool management
    # ------------------------------------------------------------------

    def _create_slot(self) -> ProcessPoolExecutor:
        return ProcessPoolExecutor(
            max_workers=1,
            mp_context=_get_mp_context(),
            initializer=initialize_worker,
            initargs=(self.config,),
        )

    def _get_slot(self, index: int) -> ProcessPoolExecutor:
        with self._lock:
            slot = self._slots[index]
            if slot is None:
                slot = self._create_slot()
                self._slots[index] = slot
            return slot

    def _recreate_slot(self, index: int, broken: ProcessPoolExecutor) -> ProcessPoolExecutor:
        # Only the first caller to see a broken executor replaces it
        with self._lock:
            slot = self._slots[index]
            if slot is broken or slot is None:
                logger.warning(f"Recreating worker {index}")
                broken.shutdown(wait=False)
                slot = self._create_slot()
                self._slots[index] = slot
            return slot

    def _job_finished(self, index: int, future: "Future[Dict[str, Any]]") -> None:
        with self._lock:
            self._in_flight[index] -= 1

    def _least_loaded(self) -> int:
        return min(range(self.num_workers), key=lambda i: self._in_flight[i])

    # ------------------------------------------------------------------
    # Job submission
    # ------------------------------------------------------------------

    def _build_message(
        self, message_type: MessageType, data: Dict[str, Any], job_id: Optional[JobId] = None
    ) -> Dict[str, Any]:
        return {
            "id": job_id if job_id is not None else next(self._ids),
            "type": MessageType(message_type).value,
            "data": data,
        }

    def _submit_to(self, index: int, message: Dict[str, Any]) -> JobHandle:
        if self._closed:
            raise RuntimeError("ParallelDispatcher has been shut down")

        # Count before submitting so a fast completion cannot decrement first
        with self._lock:
            self._in_flight[index] += 1
            self._submitted += 1

        try:
            try:
                slot = self._get_slot(index)
                future = slot.submit(execute_message, message)
            except BrokenProcessPool:
                future = self._recreate_slot(index, slot).submit(execute_message, message)
        except Exception:
            with self._lock:
                self._in_flight[index] -= 1
            raise

        future.add_done_callback(lambda f, i=index: self._job_finished(i, f))

        return JobHandle(
            id=message["id"],
            type=MessageType(message["type"]),
            future=future,
            worker_index=index,
        )

    def submit(
        self,
        message_type: MessageType,
        data: Dict[str, Any],
        job_id: Optional[JobId] = None,
    ) -> JobHandle:
        """
        Send a job to the least-loaded worker.

        Args:
            message_type: Job type
            data: Type-specific payload
            job_id: Correlation id (generated when omitted)

        Returns:
            JobHandle; its response is ``{id, type, success, result | error}``
        """
        message = self._build_message(message_type, data, job_id)
        with self._lock:
            index = self._least_loaded()
        return self._submit_to(index, message)

    async def request(self, message_type: MessageType, data: Dict[str, Any]) -> Any:
        """
        Run a job on a worker and return its result.

        Raises:
            WorkerJobError: If the worker reports a failure
        """
        response = await self.submit(message_type, data)
        return _raise_for_failure(response)

    def run_sync(
        self,
        message_type: MessageType,
        data: Dict[str, Any],
        job_id: Optional[JobId] = None,
    ) -> Dict[str, Any]:
        """Execute a job on the caller's thread. Blocks for the whole search."""
        return self.local_worker.handle(self._build_message(message_type, data, job_id))

    def should_run_sync(self, message_type: MessageType, data: Dict[str, Any]) -> bool:
        """True for pass searches whose window fits within sync_window_hours."""
        if MessageType(message_type) not in PASS_JOB_TYPES:
            return False
        try:
            window_ms = float(data["end_ms"]) - float(data["start_ms"])
        except (KeyError, TypeError, ValueError):
            return False
        return window_ms <= self.config.sync_window_hours * 3600 * 1000

    async def dispatch(self, message_type: MessageType, data: Dict[str, Any]) -> Any:
        """
        Run a job in-thread when small, otherwise on a worker.

        Raises:
            WorkerJobError: If the job fails on either path
        """
        if self.should_run_sync(message_type, data):
            logger.debug(f"Running {MessageType(message_type).value} in-thread")
            return _raise_for_failure(self.run_sync(message_type, data))
        return await self.request(message_type, data)

    async def clear_cache(self, include_local: bool = True) -> List[Dict[str, Any]]:
        """Send CLEAR_CACHE to every worker (and optionally the in-thread worker)."""
        handles = [
            self._submit_to(index, self._build_message(MessageType.CLEAR_CACHE, {}))
            for index in range(self.num_workers)
        ]
        responses = [await handle for handle in handles]
        if include_local:
            self.local_worker.predictor.clear_caches()
        return responses

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    async def compute_passes(
        self,
        elements: ElementsInput,
        station: GroundStation,
        start_time: datetime,
        end_time: datetime,
        min_elevation_deg: Optional[float] = None,
        max_passes: Optional[int] = None,
        swath_km: Optional[float] = None,
    ) -> List[Pass]:
        """
        Find passes through ``dispatch``.

        Uses the swath criterion when swath_km is given, elevation otherwise.
        """
        data: Dict[str, Any] = {
            "elements": list(normalize_elements(elements)),
            "ground_station": station.to_dict(),
            "start_ms": datetime_to_ms(start_time),
            "end_ms": datetime_to_ms(end_time),
            "max_passes": max_passes if max_passes is not None else self.config.default_max_passes,
        }
        if swath_km is not None:
            message_type = MessageType.COMPUTE_PASSES_SWATH
            data["swath_km"] = swath_km
        else:
            message_type = MessageType.COMPUTE_PASSES_ELEVATION
            data["min_elevation_deg"] = (
                min_elevation_deg
                if min_elevation_deg is not None
                else self.config.default_min_elevation_deg
            )

        result = await self.dispatch(message_type, data)
        return [Pass.from_dict(p) for p in result]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            in_flight = list(self._in_flight)
            submitted = self._submitted
            started = sum(1 for slot in self._slots if slot is not None)
        return {
            "pool_size": self.num_workers,
            "started_workers": started,
            "in_flight": sum(in_flight),
            "in_flight_per_worker": in_flight,
            "submitted": submitted,
        }

    def shutdown(self, wait: bool = True) -> None:
        """Terminate all workers. Further submissions raise RuntimeError."""
        if self._closed:
            return
        logger.info("Shutting down worker pool...")
        with self._lock:
            self._closed = True
            slots, self._slots = self._slots, [None] * self.num_workers
        for slot in slots:
            if slot is not None:
                slot.shutdown(wait=wait)
