"""
Earth-shadow classification for orbiting objects.

Shadow uses a cylindrical model: Earth casts a tube of constant radius in
the anti-sun direction. The sun's angular size is ignored, so there is no
penumbra and the state is a plain boolean.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from .cache import BoundedCache, time_bucket
from .orbit import SatelliteOrbit
from .sunlight import SunEphemeris, calculate_sun_position
from .utils import UNIX_EPOCH, datetime_to_ms

logger = logging.getLogger(__name__)

EARTH_EQUATORIAL_RADIUS_KM = 6378.137


def in_shadow(
    satellite_eci: np.ndarray,
    sun_eci: np.ndarray,
    body_radius: float = EARTH_EQUATORIAL_RADIUS_KM,
) -> bool:
    """
    Cylindrical shadow test.

    The satellite is in shadow when it lies on the night side of the body
    (negative projection onto the body-to-sun direction) and its distance
    from the sun-body line is less than the body radius.

    Args:
        satellite_eci: Satellite position, body-centred inertial frame
        sun_eci: Sun position, same frame and units
        body_radius: Radius of the shadow cylinder, same units

    Returns:
        True if the satellite is in shadow
    """
    r = np.asarray(satellite_eci, dtype=float)
    sun_hat = np.asarray(sun_eci, dtype=float)
    sun_hat = sun_hat / np.linalg.norm(sun_hat)

    projection = float(np.dot(r, sun_hat))
    if projection >= 0:
        return False

    perpendicular = float(np.linalg.norm(r - projection * sun_hat))
    return perpendicular < body_radius


@dataclass(frozen=True)
class EclipseTransition:
    """A flip between sunlit and shadowed states."""

    time: datetime
    from_shadow: bool
    to_shadow: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "time_ms": datetime_to_ms(self.time),
            "from_shadow": self.from_shadow,
            "to_shadow": self.to_shadow,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EclipseTransition":
        return cls(
            time=datetime.fromisoformat(data["time"]),
            from_shadow=bool(data["from_shadow"]),
            to_shadow=bool(data["to_shadow"]),
        )


class EclipseClassifier:
    """
    Memoized shadow classification.

    Results are keyed by (object, time bucket) and evaluated at the bucket's
    reference time, so every query inside one bucket returns the same value
    no matter which query filled the cache.
    """

    def __init__(
        self,
        cache: BoundedCache,
        bucket_seconds: float = 5.0,
        body_radius_km: float = EARTH_EQUATORIAL_RADIUS_KM,
        sun_ephemeris: SunEphemeris = calculate_sun_position,
    ) -> None:
        self.cache = cache
        self.bucket_seconds = bucket_seconds
        self.body_radius_km = body_radius_km
        self.sun_ephemeris = sun_ephemeris

    def bucket_time(self, bucket: int) -> datetime:
        return UNIX_EPOCH + timedelta(seconds=bucket * self.bucket_seconds)

    def is_eclipsed(self, orbit: SatelliteOrbit, timestamp: datetime) -> Optional[bool]:
        """
        Check whether an object is in Earth's shadow.

        Args:
            orbit: Object to classify
            timestamp: UTC datetime

        Returns:
            True if in shadow, False if sunlit, None if the object cannot be
            propagated at that time
        """
        bucket = time_bucket(timestamp, self.bucket_seconds)
        return self.cache.get_or_compute(
            (orbit.object_id, bucket),
            lambda: self._classify(orbit, self.bucket_time(bucket)),
        )

    def _classify(self, orbit: SatelliteOrbit, timestamp: datetime) -> Optional[bool]:
        sample = orbit.propagate(timestamp)
        if sample is None:
            return None
        sun = np.array(self.sun_ephemeris(timestamp))
        return in_shadow(sample.position_eci, sun, self.body_radius_km)


class EclipseTransitionFinder:
    """Fixed-step scan for shadow entries and exits inside a short interval."""

    def __init__(self, classifier: EclipseClassifier) -> None:
        self.classifier = classifier

    def find_transitions(
        self,
        orbit: SatelliteOrbit,
        start_time: datetime,
        end_time: datetime,
        step_seconds: float = 30.0,
    ) -> List[EclipseTransition]:
        """
        Find eclipse transitions between start_time and end_time.

        Samples where the object cannot be propagated keep the previous state.

        Args:
            orbit: Object to scan
            start_time: Interval start (UTC)
            end_time: Interval end (UTC)
            step_seconds: Fixed scan step

        Returns:
            Time-ordered transitions; empty if the state never flips
        """
        if step_seconds <= 0:
            raise ValueError(f"step_seconds must be > 0, got {step_seconds}")

        transitions: List[EclipseTransition] = []
        step = timedelta(seconds=step_seconds)
        current = start_time
        was_in_shadow = self.classifier.is_eclipsed(orbit, current)

        while current < end_time:
            current = min(current + step, end_time)
            now_in_shadow = self.classifier.is_eclipsed(orbit, current)
            if now_in_shadow is None:
                continue
            if was_in_shadow is None:
                was_in_shadow = now_in_shadow
                continue
            if now_in_shadow != was_in_shadow:
                transitions.append(
                    EclipseTransition(
                        time=current,
                        from_shadow=was_in_shadow,
                        to_shadow=now_in_shadow,
                    )
                )
                was_in_shadow = now_in_shadow

        return transitions
