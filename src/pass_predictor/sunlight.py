"""
Sun ephemeris and ground-station illumination.

This module provides a low-precision sun position in Earth-Centered
Inertial coordinates and the sun elevation seen from a ground location,
which is enough for shadow classification and twilight checks.
"""

import math
from datetime import datetime
from typing import Callable, Tuple

import numpy as np

# Constants
EARTH_RADIUS_KM = 6371.0
AU_KM = 149597870.7  # Astronomical Unit in kilometers

# Sun altitude below which a station counts as dark (civil twilight)
CIVIL_TWILIGHT_DEG = -6.0

# Anything that maps a UTC datetime to an ECI sun vector in km
SunEphemeris = Callable[[datetime], Tuple[float, float, float]]


def _days_since_j2000(timestamp: datetime) -> float:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.replace(tzinfo=None)
    j2000 = datetime(2000, 1, 1, 12, 0, 0)
    return (timestamp - j2000).total_seconds() / 86400.0


def calculate_sun_position(timestamp: datetime) -> Tuple[float, float, float]:
    """
    Calculate the sun's position in Earth-Centered Inertial (ECI) coordinates.

    Uses simplified astronomical calculations for the sun's position.

    Args:
        timestamp: UTC datetime

    Returns:
        Tuple of (x, y, z) coordinates in kilometers
    """
    days = _days_since_j2000(timestamp)

    # Mean anomaly
    M = math.radians(357.52911 + 0.98560028 * days) % (2 * math.pi)

    # Equation of center
    C = math.radians(1.914602 * math.sin(M) + 0.019993 * math.sin(2 * M))

    # Ecliptic longitude
    lambda_sun = math.radians(280.46646 + 0.98564736 * days) + C

    # Obliquity of ecliptic
    epsilon = math.radians(23.439291)

    x = AU_KM * math.cos(lambda_sun)
    y = AU_KM * math.sin(lambda_sun) * math.cos(epsilon)
    z = AU_KM * math.sin(lambda_sun) * math.sin(epsilon)

    return x, y, z


def calculate_gmst(timestamp: datetime) -> float:
    """
    Calculate Greenwich Mean Sidereal Time (GMST) in degrees.

    Args:
        timestamp: UTC datetime

    Returns:
        GMST in degrees
    """
    days = _days_since_j2000(timestamp)

    T = days / 36525.0  # Julian centuries
    gmst = 280.46061837 + 360.98564736629 * days + 0.000387933 * T * T

    return gmst % 360.0


def get_sun_elevation(
    latitude: float,
    longitude: float,
    timestamp: datetime,
    sun_ephemeris: SunEphemeris = calculate_sun_position,
) -> float:
    """
    Get the sun elevation angle at a ground location.

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        timestamp: UTC datetime
        sun_ephemeris: Source of the ECI sun vector

    Returns:
        Sun elevation angle in degrees (positive = above horizon, negative = below)
    """
    sun_x, sun_y, sun_z = sun_ephemeris(timestamp)

    # Station in ECI: rotate longitude by sidereal time
    gmst = calculate_gmst(timestamp)
    lon_rad = math.radians(longitude + gmst)
    lat_rad = math.radians(latitude)

    station = np.array([
        EARTH_RADIUS_KM * math.cos(lat_rad) * math.cos(lon_rad),
        EARTH_RADIUS_KM * math.cos(lat_rad) * math.sin(lon_rad),
        EARTH_RADIUS_KM * math.sin(lat_rad),
    ])

    sun_vec = np.array([sun_x, sun_y, sun_z]) - station
    sun_unit = sun_vec / np.linalg.norm(sun_vec)
    up_vec = station / EARTH_RADIUS_KM

    sin_elevation = float(np.dot(sun_unit, up_vec))
    return math.degrees(math.asin(max(-1.0, min(1.0, sin_elevation))))


def is_station_dark(
    latitude: float,
    longitude: float,
    timestamp: datetime,
    twilight_deg: float = CIVIL_TWILIGHT_DEG,
    sun_ephemeris: SunEphemeris = calculate_sun_position,
) -> bool:
    """
    Check if a ground location is dark enough for visual observation.

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        timestamp: UTC datetime
        twilight_deg: Sun altitude threshold in degrees (default civil twilight)

    Returns:
        True if the sun is below the twilight threshold
    """
    return get_sun_elevation(latitude, longitude, timestamp, sun_ephemeris) < twilight_deg
