"""
Ground-station geometry and reference-frame conversions.

Positions are kilometres. ECI here is the propagator's inertial frame
(TEME for SGP4); ECF is the Earth-fixed frame obtained by rotating ECI by
Greenwich mean sidereal time.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import Any, Dict, Optional, Tuple
import math

import numpy as np

from .sunlight import calculate_gmst
from .utils import datetime_to_ms

# WGS-84 ellipsoid
WGS84_A_KM = 6378.137
WGS84_B_KM = 6356.7523142
WGS84_F = (WGS84_A_KM - WGS84_B_KM) / WGS84_A_KM
WGS84_E2 = 2 * WGS84_F - WGS84_F * WGS84_F


@dataclass(frozen=True)
class GroundStation:
    """Observer location. Height is metres above the ellipsoid."""

    latitude: float
    longitude: float
    height: float = 0.0
    name: str = ""

    @property
    def key(self) -> Tuple[float, float, float]:
        """Identity used in cache keys."""
        return (self.latitude, self.longitude, self.height)

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.key)

    @cached_property
    def position_ecf(self) -> np.ndarray:
        return geodetic_to_ecf(self.latitude, self.longitude, self.height / 1000.0)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "height": self.height,
        }
        if self.name:
            result["name"] = self.name
        return result


@dataclass(frozen=True)
class LookAngles:
    """Topocentric look angles of an object from a ground station."""

    elevation: float  # degrees
    azimuth: float  # degrees, 0 = North, 90 = East, in [0, 360)
    range_km: float


@dataclass
class PositionSample:
    """Propagated state at one instant. Not retained past the computation."""

    timestamp: datetime
    position_eci: np.ndarray
    position_ecf: np.ndarray
    velocity_eci: Optional[np.ndarray] = None
    # Geodetic, only filled when requested
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    height: Optional[float] = None  # metres

    @property
    def speed_km_s(self) -> Optional[float]:
        if self.velocity_eci is None:
            return None
        return float(np.linalg.norm(self.velocity_eci))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "timestamp": datetime_to_ms(self.timestamp),
            "eci": _vector_dict(self.position_eci),
            "ecf": _vector_dict(self.position_ecf),
        }
        if self.velocity_eci is not None:
            result["velocity"] = self.speed_km_s
        if self.latitude is not None:
            result["longitude"] = self.longitude
            result["latitude"] = self.latitude
            result["height"] = self.height
        return result


def _vector_dict(vector: np.ndarray) -> Dict[str, float]:
    return {"x": float(vector[0]), "y": float(vector[1]), "z": float(vector[2])}


def geodetic_to_ecf(latitude_deg: float, longitude_deg: float, height_km: float) -> np.ndarray:
    """Convert geodetic coordinates on the WGS-84 ellipsoid to ECF (km)."""
    lat = math.radians(latitude_deg)
    lon = math.radians(longitude_deg)
    sin_lat = math.sin(lat)
    cos_lat = math.cos(lat)

    normal = WGS84_A_KM / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)

    x = (normal + height_km) * cos_lat * math.cos(lon)
    y = (normal + height_km) * cos_lat * math.sin(lon)
    z = (normal * (1.0 - WGS84_E2) + height_km) * sin_lat
    return np.array([x, y, z])


def _rotation_z(angle_rad: float) -> np.ndarray:
    c = math.cos(angle_rad)
    s = math.sin(angle_rad)
    return np.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]])


def eci_to_ecf(position_eci: np.ndarray, timestamp: datetime) -> np.ndarray:
    """Rotate an inertial vector into the Earth-fixed frame."""
    gmst = math.radians(calculate_gmst(timestamp))
    return _rotation_z(gmst) @ np.asarray(position_eci, dtype=float)


def ecf_to_eci(position_ecf: np.ndarray, timestamp: datetime) -> np.ndarray:
    """Rotate an Earth-fixed vector into the inertial frame."""
    gmst = math.radians(calculate_gmst(timestamp))
    return _rotation_z(gmst).T @ np.asarray(position_ecf, dtype=float)


def look_angles(station: GroundStation, position_ecf: np.ndarray) -> Optional[LookAngles]:
    """
    Compute elevation, azimuth and range of an ECF position from a station.

    Uses the South-East-Zenith topocentric frame at the station's geodetic
    latitude/longitude.

    Args:
        station: Ground station
        position_ecf: Object position in ECF (km)

    Returns:
        LookAngles, or None if any input is non-finite
    """
    target = np.asarray(position_ecf, dtype=float)
    if not station.is_finite or not np.all(np.isfinite(target)):
        return None

    delta = target - station.position_ecf
    range_km = float(np.linalg.norm(delta))
    if range_km == 0.0:
        return None

    lat = math.radians(station.latitude)
    lon = math.radians(station.longitude)
    sin_lat, cos_lat = math.sin(lat), math.cos(lat)
    sin_lon, cos_lon = math.sin(lon), math.cos(lon)

    south = (sin_lat * cos_lon * delta[0]
             + sin_lat * sin_lon * delta[1]
             - cos_lat * delta[2])
    east = -sin_lon * delta[0] + cos_lon * delta[1]
    zenith = (cos_lat * cos_lon * delta[0]
              + cos_lat * sin_lon * delta[1]
              + sin_lat * delta[2])

    elevation = math.degrees(math.asin(max(-1.0, min(1.0, zenith / range_km))))
    azimuth = math.degrees(math.atan2(-east, south) + math.pi) % 360.0

    return LookAngles(elevation=elevation, azimuth=azimuth, range_km=range_km)
