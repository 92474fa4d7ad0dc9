"""
Satellite orbit propagation and element-set handling.

This module wraps the orbit-predictor SGP4 propagator behind a small
interface used by the pass search: build an orbit from two-line element
text, read its period and epoch, and propagate to a time, getting back
``None`` instead of an exception when the propagator cannot produce a
position.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union
import hashlib
import logging

import numpy as np
from orbit_predictor import coordinate_systems  # type: ignore[import-untyped]
from orbit_predictor.sources import get_predictor_from_tle_lines  # type: ignore[import-untyped]

from .geometry import PositionSample, eci_to_ecf
from .utils import get_current_utc

logger = logging.getLogger(__name__)

ElementsInput = Union[str, Sequence[str]]


def normalize_elements(elements: ElementsInput) -> Tuple[str, ...]:
    """
    Normalize element text to a tuple of stripped, non-empty lines.

    Accepts a newline-separated string or a sequence of lines, with or
    without a leading name line.
    """
    if isinstance(elements, str):
        raw_lines = elements.splitlines()
    else:
        raw_lines = list(elements)
    return tuple(line.strip() for line in raw_lines if line and line.strip())


def parse_tle_epoch(line1: str) -> datetime:
    """
    Parse the epoch field (columns 19-32) of TLE line 1.

    Raises:
        ValueError: If the field is missing or malformed
    """
    field = line1[18:32].strip()
    if len(field) < 5:
        raise ValueError(f"TLE line 1 has no epoch field: {line1!r}")

    two_digit_year = int(field[:2])
    year = 2000 + two_digit_year if two_digit_year < 57 else 1900 + two_digit_year
    day_of_year = float(field[2:])
    return datetime(year, 1, 1) + timedelta(days=day_of_year - 1.0)


class SatelliteOrbit:
    """
    Represents a satellite orbit with TLE-based propagation capabilities.

    Instances are never mutated after construction; new element text means
    a new instance.
    """

    def __init__(self, tle_lines: ElementsInput, satellite_name: Optional[str] = None) -> None:
        """
        Initialize satellite orbit from TLE data.

        Args:
            tle_lines: Element text, either [name, line1, line2] or [line1, line2]
            satellite_name: Name of the satellite (defaults to the name line
                or the catalog number)

        Raises:
            ValueError: If TLE data is invalid
        """
        lines = normalize_elements(tle_lines)
        if len(lines) < 2:
            raise ValueError(f"TLE data needs two element lines, got {len(lines)}")

        line1, line2 = lines[-2], lines[-1]
        if not line1.startswith("1 "):
            raise ValueError('TLE line1 must start with "1 "')
        if not line2.startswith("2 "):
            raise ValueError('TLE line2 must start with "2 "')

        self.tle_lines: List[str] = list(lines[-3:])
        self.line1 = line1
        self.line2 = line2
        self.norad_id = line1[2:7].strip()

        name_line = lines[-3] if len(lines) >= 3 else None
        self.satellite_name = satellite_name or name_line or self.norad_id

        try:
            self.epoch = parse_tle_epoch(line1)
            self._mean_motion_rev_per_day = float(line2[52:63])
        except ValueError as e:
            raise ValueError(f"Invalid TLE data for satellite {self.satellite_name}: {e}")

        if self._mean_motion_rev_per_day <= 0:
            raise ValueError(
                f"Invalid TLE data for satellite {self.satellite_name}: "
                f"mean motion must be > 0"
            )

        try:
            self.predictor = get_predictor_from_tle_lines((line1, line2))
        except Exception as e:
            logger.error(f"Failed to initialize satellite orbit: {e}")
            raise ValueError(f"Invalid TLE data for satellite {self.satellite_name}: {e}")

        digest = hashlib.sha1(self.element_text.encode("utf-8")).hexdigest()[:12]
        self.object_id = f"{self.norad_id}-{digest}"
        self._period_minutes: Optional[float] = None

        logger.debug(f"Loaded orbit for satellite: {self.satellite_name}")

    @classmethod
    def from_tle_file(cls, tle_file_path: Union[str, Path], satellite_name: str) -> "SatelliteOrbit":
        """
        Create SatelliteOrbit instance from TLE file.

        Args:
            tle_file_path: Path to TLE file
            satellite_name: Name of the satellite to extract from TLE file

        Returns:
            SatelliteOrbit instance

        Raises:
            FileNotFoundError: If TLE file doesn't exist
            ValueError: If satellite not found in TLE file
        """
        tle_path = Path(tle_file_path)
        if not tle_path.exists():
            raise FileNotFoundError(f"TLE file not found: {tle_file_path}")

        with open(tle_path, 'r') as f:
            lines = [line.strip() for line in f.readlines() if line.strip()]

        for i in range(0, len(lines) - 2):
            name_line = lines[i]
            if name_line.startswith(("1 ", "2 ")):
                continue
            if satellite_name.upper() in name_line.upper():
                return cls(lines[i:i + 3], satellite_name)

        raise ValueError(f"Satellite '{satellite_name}' not found in TLE file")

    @property
    def element_text(self) -> str:
        """Canonical element text (the two element lines)."""
        return f"{self.line1}\n{self.line2}"

    @property
    def period_minutes(self) -> float:
        """Orbital period in minutes."""
        if self._period_minutes is None:
            try:
                self._period_minutes = float(self.predictor.period)
            except Exception as e:
                logger.warning(
                    f"Predictor period unavailable for {self.satellite_name} ({e}); "
                    f"using TLE mean motion"
                )
                self._period_minutes = 1440.0 / self._mean_motion_rev_per_day
        return self._period_minutes

    def epoch_in_future(self, now: Optional[datetime] = None) -> bool:
        return self.epoch > (now or get_current_utc())

    def epoch_age_days(self, now: Optional[datetime] = None) -> float:
        """Days elapsed since the element set epoch (negative for future epochs)."""
        return ((now or get_current_utc()) - self.epoch).total_seconds() / 86400.0

    def propagate(self, timestamp: datetime) -> Optional[PositionSample]:
        """
        Propagate to a timestamp.

        Args:
            timestamp: UTC datetime

        Returns:
            PositionSample with ECI/ECF position and ECI velocity, or None if
            the propagator fails or returns a non-finite state
        """
        try:
            position_eci, velocity_eci = self.predictor.propagate_eci(timestamp)
            position = np.asarray(position_eci, dtype=float)
            velocity = np.asarray(velocity_eci, dtype=float)
        except Exception as e:
            logger.debug(f"Propagation failed for {self.satellite_name} at {timestamp}: {e}")
            return None

        if position.shape != (3,) or velocity.shape != (3,):
            return None
        if not (np.all(np.isfinite(position)) and np.all(np.isfinite(velocity))):
            return None

        return PositionSample(
            timestamp=timestamp,
            position_eci=position,
            position_ecf=eci_to_ecf(position, timestamp),
            velocity_eci=velocity,
        )

    def get_geodetic(self, timestamp: datetime) -> Optional[PositionSample]:
        """Propagate and attach geodetic longitude/latitude (degrees) and height (metres)."""
        sample = self.propagate(timestamp)
        if sample is None:
            return None

        lat, lon, alt_km = coordinate_systems.ecef_to_llh(tuple(sample.position_ecf))
        sample.latitude = float(lat)
        sample.longitude = float(lon)
        sample.height = float(alt_km) * 1000.0
        return sample

    def __repr__(self) -> str:
        """String representation of the satellite orbit."""
        return (
            f"SatelliteOrbit(name='{self.satellite_name}', norad_id='{self.norad_id}', "
            f"period={self.period_minutes:.1f}min)"
        )


class ElementSetCache:
    """
    Parsed orbits keyed by element text, name line included.

    Loading a textually different element set for a catalog number already
    in the cache replaces the old orbit. Once ``max_entries`` orbits are held,
    new ones are built but not cached until the cache is cleared.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self.max_entries = max_entries
        self._orbits: Dict[str, SatelliteOrbit] = {}
        self._text_by_norad: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._orbits)

    def get(self, elements: ElementsInput) -> SatelliteOrbit:
        """
        Get or build the orbit for element text.

        Raises:
            ValueError: If the element text is invalid
        """
        lines = normalize_elements(elements)
        key = "\n".join(lines[-3:])
        orbit = self._orbits.get(key)
        if orbit is not None:
            return orbit

        orbit = SatelliteOrbit(lines)

        stale_key = self._text_by_norad.get(orbit.norad_id)
        if stale_key is not None and stale_key != key:
            logger.debug(f"Replacing cached elements for catalog number {orbit.norad_id}")
            self._orbits.pop(stale_key, None)
            del self._text_by_norad[orbit.norad_id]

        if len(self._orbits) < self.max_entries:
            self._orbits[key] = orbit
            self._text_by_norad[orbit.norad_id] = key
        return orbit

    def clear(self) -> None:
        self._orbits.clear()
        self._text_by_norad.clear()
