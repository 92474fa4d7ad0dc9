"""
Job execution for the worker protocol.

``PassWorker`` turns a request message into a response message. It never
raises: any failure inside a job becomes ``{success: False, error}`` so one
bad job cannot take down the process or the jobs queued behind it.

Worker processes each build one ``PassWorker`` in their initializer and
keep it for their lifetime, so element-set and eclipse caches are private
to the process.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from .config import PredictorConfig
from .passes import Pass, SearchStats
from .predictor import PassPredictor
from .protocol import PAYLOAD_MODELS, JobId, JobRequest, JobResponse, MessageType
from .utils import ms_to_datetime

logger = logging.getLogger(__name__)


def _passes_result(passes: List[Pass], stats: Optional[SearchStats]) -> Any:
    serialized = [p.to_dict() for p in passes]
    if stats is None:
        return serialized
    return {"passes": serialized, "stats": stats.to_dict()}


def _envelope_fields(message: Any) -> Tuple[Optional[JobId], str]:
    """Best-effort id and type for answering a message that may be malformed."""
    if not isinstance(message, dict):
        return None, "UNKNOWN"
    job_id = message.get("id")
    if not isinstance(job_id, (int, str)) or isinstance(job_id, bool):
        job_id = None
    raw_type = message.get("type")
    message_type = getattr(raw_type, "value", raw_type)
    return job_id, str(message_type) if message_type is not None else "UNKNOWN"


class PassWorker:
    """Executes protocol messages against a private PassPredictor."""

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        predictor: Optional[PassPredictor] = None,
    ) -> None:
        self.predictor = predictor or PassPredictor(config)
        self.jobs_handled = 0

    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute one request message.

        Args:
            message: ``{id, type, data}``

        Returns:
            ``{id, type, success, result}`` or ``{id, type, success, error}``
        """
        job_id, message_type = _envelope_fields(message)
        self.jobs_handled += 1

        try:
            request = JobRequest.model_validate(message)
            result = self._execute(request)
        except Exception as e:
            logger.error(f"Job {job_id} ({message_type}) failed: {e}")
            return JobResponse(
                id=job_id, type=message_type, success=False, error=str(e) or type(e).__name__
            ).to_message()

        return JobResponse(
            id=request.id, type=request.type.value, success=True, result=result
        ).to_message()

    def _execute(self, request: JobRequest) -> Any:
        payload: Any = PAYLOAD_MODELS[request.type].model_validate(request.data)
        predictor = self.predictor

        if request.type == MessageType.PROPAGATE_POSITIONS:
            timestamps = [ms_to_datetime(ms) for ms in payload.timestamps]
            samples = predictor.propagate_positions(payload.elements, timestamps)
            return [s.to_dict() if s is not None else None for s in samples]

        if request.type == MessageType.PROPAGATE_GEODETIC:
            sample = predictor.propagate_geodetic(
                payload.elements, ms_to_datetime(payload.timestamp)
            )
            return sample.to_dict() if sample is not None else None

        if request.type == MessageType.COMPUTE_PASSES_ELEVATION:
            passes, stats = predictor.find_passes(
                payload.elements,
                payload.ground_station.to_station(),
                ms_to_datetime(payload.start_ms),
                ms_to_datetime(payload.end_ms),
                min_elevation_deg=payload.min_elevation_deg,
                max_passes=payload.max_passes,
                intrinsic_magnitude=payload.intrinsic_magnitude,
                collect_stats=payload.collect_stats,
            )
            return _passes_result(passes, stats)

        if request.type == MessageType.COMPUTE_PASSES_SWATH:
            passes, stats = predictor.find_swath_passes(
                payload.elements,
                payload.ground_station.to_station(),
                payload.swath_km,
                ms_to_datetime(payload.start_ms),
                ms_to_datetime(payload.end_ms),
                max_passes=payload.max_passes,
                intrinsic_magnitude=payload.intrinsic_magnitude,
                collect_stats=payload.collect_stats,
            )
            return _passes_result(passes, stats)

        # CLEAR_CACHE
        predictor.clear_caches()
        return {"cleared": True}


# Process-local worker, created by the pool initializer
_worker: Optional[PassWorker] = None


def initialize_worker(config: Optional[PredictorConfig] = None) -> None:
    """Pool initializer: build this process's PassWorker."""
    global _worker
    _worker = PassWorker(config)
    logger.debug("Initialized pass worker process")


def execute_message(message: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run one message on this process's worker.

    This function is designed to be pickled and run in a separate process.
    """
    global _worker
    if _worker is None:
        _worker = PassWorker()
    return _worker.handle(message)
