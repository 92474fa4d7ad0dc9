"""
Satellite Pass Predictor

Predicts when orbiting objects are visible from a ground station and
whether they are sunlit or in Earth's shadow during each pass. Searches
run in-thread or on a pool of worker processes through the same code.
"""

from .config import PredictorConfig, load_config
from .eclipse import EclipseTransition, in_shadow
from .geometry import GroundStation, LookAngles, look_angles
from .orbit import SatelliteOrbit
from .parallel import JobHandle, ParallelDispatcher, WorkerJobError
from .pass_filter import filter_and_sort_passes
from .passes import Pass, SearchStats, find_passes_elevation, find_passes_swath
from .predictor import PassPredictor
from .protocol import MessageType
from .worker import PassWorker

__version__ = "0.1.0"
__author__ = "Pass Predictor Team"

__all__ = [
    "PredictorConfig",
    "load_config",
    "EclipseTransition",
    "in_shadow",
    "GroundStation",
    "LookAngles",
    "look_angles",
    "SatelliteOrbit",
    "JobHandle",
    "ParallelDispatcher",
    "WorkerJobError",
    "filter_and_sort_passes",
    "Pass",
    "SearchStats",
    "find_passes_elevation",
    "find_passes_swath",
    "PassPredictor",
    "MessageType",
    "PassWorker",
]
