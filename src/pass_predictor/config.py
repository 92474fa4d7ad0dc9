"""
Predictor configuration.

Tunables for caching, eclipse scanning and parallel dispatch. Values can be
loaded from a YAML file; every key is optional and unknown keys are rejected.
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PASS_PREDICTOR_CONFIG"


@dataclass
class PredictorConfig:
    """
    Configuration for pass search, eclipse classification and dispatch.

    Cache sizes are hard caps: once full, a cache stops admitting entries
    until it is cleared.
    """

    eclipse_bucket_seconds: float = 5.0
    eclipse_cache_max_entries: int = 10000
    pass_cache_max_entries: int = 256
    element_cache_max_entries: int = 1000
    transition_step_seconds: float = 30.0

    default_min_elevation_deg: float = 5.0
    default_max_passes: int = 50

    # Objects slower than this do not produce discrete passes
    max_period_minutes: float = 600.0
    # Searches never start earlier than this before the element set epoch
    epoch_lead_minutes: float = 60.0

    earth_radius_km: float = 6378.137

    # Windows up to this length run in-thread when dispatching
    sync_window_hours: float = 48.0
    num_workers: Optional[int] = None

    annotate_eclipses: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in (
            "eclipse_bucket_seconds",
            "transition_step_seconds",
            "max_period_minutes",
            "earth_radius_km",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")

        for name in (
            "eclipse_cache_max_entries",
            "pass_cache_max_entries",
            "element_cache_max_entries",
            "default_max_passes",
        ):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value}")

        if self.epoch_lead_minutes < 0:
            raise ValueError(
                f"epoch_lead_minutes must be >= 0, got {self.epoch_lead_minutes}"
            )

        if self.sync_window_hours < 0:
            raise ValueError(
                f"sync_window_hours must be >= 0, got {self.sync_window_hours}"
            )

        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictorConfig":
        """Build a configuration from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(config_path: Optional[Union[str, Path]] = None) -> PredictorConfig:
    """
    Load predictor configuration from a YAML file.

    Args:
        config_path: Path to YAML file. Defaults to the PASS_PREDICTOR_CONFIG
            environment variable; built-in defaults are used when neither is set.

    Returns:
        PredictorConfig instance

    Raises:
        ValueError: If the file content is not a mapping or has invalid values
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if not config_path:
        return PredictorConfig()

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Configuration file not found: {path}, using defaults")
        return PredictorConfig()

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return PredictorConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    # Allow the settings to live under a top-level "predictor" section
    section = raw.get("predictor", raw)
    config = PredictorConfig.from_dict(section)
    logger.info(f"Loaded configuration from {path}")
    return config
