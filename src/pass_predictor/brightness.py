"""
Apparent magnitude estimate for sunlit satellites.

Intrinsic (standard) magnitude is the brightness at 1000 km range and
90 degree phase angle, i.e. half illuminated as seen by the observer.
"""

import math
from typing import Optional

import numpy as np

STANDARD_RANGE_KM = 1000.0


def phase_angle_deg(
    satellite_eci: np.ndarray, observer_eci: np.ndarray, sun_eci: np.ndarray
) -> float:
    """Sun-satellite-observer angle in degrees."""
    sat = np.asarray(satellite_eci, dtype=float)
    to_sun = np.asarray(sun_eci, dtype=float) - sat
    to_observer = np.asarray(observer_eci, dtype=float) - sat

    cos_phase = np.dot(to_sun, to_observer) / (
        np.linalg.norm(to_sun) * np.linalg.norm(to_observer)
    )
    return math.degrees(math.acos(float(np.clip(cos_phase, -1.0, 1.0))))


def estimate_magnitude(
    satellite_eci: np.ndarray,
    observer_eci: np.ndarray,
    sun_eci: np.ndarray,
    intrinsic_magnitude: float,
) -> Optional[float]:
    """
    Estimate the visual magnitude of a satellite seen from an observer.

    Scales the intrinsic magnitude by range (inverse square) and by the
    illuminated fraction of a diffuse sphere, (1 + cos(phase)) / 2.

    Args:
        satellite_eci: Satellite position (km)
        observer_eci: Observer position (km), same frame
        sun_eci: Sun position (km), same frame
        intrinsic_magnitude: Magnitude at 1000 km and 90 degree phase

    Returns:
        Estimated magnitude (smaller is brighter), or None when the
        illuminated fraction seen by the observer is zero
    """
    slant_range = float(np.linalg.norm(
        np.asarray(satellite_eci, dtype=float) - np.asarray(observer_eci, dtype=float)
    ))
    if slant_range <= 0:
        return None

    phase = math.radians(phase_angle_deg(satellite_eci, observer_eci, sun_eci))
    illuminated_fraction = (1.0 + math.cos(phase)) / 2.0
    if illuminated_fraction <= 1e-9:
        return None

    range_term = 5.0 * math.log10(slant_range / STANDARD_RANGE_KM)
    phase_term = -2.5 * math.log10(illuminated_fraction / 0.5)
    return intrinsic_magnitude + range_term + phase_term
