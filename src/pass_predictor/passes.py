"""
Satellite pass search over a ground station.

This module holds the single implementation of the adaptive-step pass
search used by both the in-thread predictor and the worker processes.
Two visibility criteria are supported:

- elevation: the object is above a minimum elevation angle
- swath: the sub-satellite point is within half a swath width of the station

Both searches walk forward in time with step sizes chosen from how far the
object is from visibility and whether it is approaching, open a pass when
the criterion starts to hold, track the apex while it holds, and close the
pass when it stops holding.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .brightness import estimate_magnitude
from .eclipse import EclipseTransition, EclipseTransitionFinder
from .geometry import GroundStation, LookAngles, PositionSample, ecf_to_eci, look_angles
from .orbit import SatelliteOrbit
from .sunlight import SunEphemeris, calculate_sun_position, is_station_dark
from .utils import calculate_ground_distance, datetime_to_ms, to_naive_utc

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Objects with longer periods (near-geostationary and above) have no discrete passes
MAX_PERIOD_MINUTES = 600.0
# Never propagate earlier than this before the element set epoch
EPOCH_LEAD = timedelta(hours=1)

# Forward step after a sample the propagator could not produce
DEGENERATE_SAMPLE_STEP = timedelta(minutes=1)

# Elevation search steps
ELEVATION_IN_PASS_STEP = timedelta(seconds=5)
ELEVATION_COARSE_STEP = timedelta(minutes=5)  # below -20 deg
ELEVATION_MEDIUM_STEP = timedelta(minutes=1)  # -20 to -5 deg
ELEVATION_FINE_STEP = timedelta(seconds=5)  # -5 to -1 deg
ELEVATION_FINEST_STEP = timedelta(seconds=2)  # -1 deg and above
ELEVATION_COARSE_BELOW_DEG = -20.0
ELEVATION_MEDIUM_BELOW_DEG = -5.0
ELEVATION_FINE_BELOW_DEG = -1.0
# Sentinel so the sample after a skip never looks like a descent
ELEVATION_RESET_DEG = -180.0

# Swath search steps
SWATH_IN_PASS_STEP = timedelta(seconds=30)
SWATH_FINE_STEP = timedelta(seconds=15)


@dataclass
class SearchStats:
    """Timing breakdown of one pass search. Diagnostics only."""

    total_time_ms: float = 0.0
    propagation_time_ms: float = 0.0
    propagation_calls: int = 0
    geometry_time_ms: float = 0.0
    eclipse_time_ms: float = 0.0
    transition_time_ms: float = 0.0
    iterations: int = 0
    passes_found: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_time_ms": round(self.total_time_ms, 3),
            "propagation_time_ms": round(self.propagation_time_ms, 3),
            "propagation_calls": self.propagation_calls,
            "geometry_time_ms": round(self.geometry_time_ms, 3),
            "eclipse_time_ms": round(self.eclipse_time_ms, 3),
            "transition_time_ms": round(self.transition_time_ms, 3),
            "iterations": self.iterations,
            "passes_found": self.passes_found,
        }


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


@dataclass(frozen=True)
class Pass:
    """
    One visibility window of an object over a ground station.

    For swath passes the apex is the time of minimum ground distance and
    the elevation/azimuth fields are the look angles at start, closest
    approach and end.
    """

    start_time: datetime
    end_time: datetime
    apex_time: datetime
    max_elevation: float  # degrees
    azimuth_start: float  # degrees
    azimuth_apex: float  # degrees
    azimuth_end: float  # degrees
    kind: str = "elevation"
    satellite_name: str = ""
    object_id: str = ""

    eclipse_transitions: Tuple[EclipseTransition, ...] = ()
    satellite_eclipsed_at_start: Optional[bool] = None
    satellite_eclipsed_at_end: Optional[bool] = None
    ground_station_dark_at_start: Optional[bool] = None
    ground_station_dark_at_end: Optional[bool] = None
    epoch: Optional[datetime] = None
    epoch_in_future: bool = False
    apex_magnitude: Optional[float] = None

    # Swath passes only
    min_distance_km: Optional[float] = None
    swath_width_km: Optional[float] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain types. ``Pass.from_dict`` restores an equal pass."""
        result: Dict[str, Any] = {
            "kind": self.kind,
            "satellite_name": self.satellite_name,
            "object_id": self.object_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "apex_time": self.apex_time.isoformat(),
            "start_ms": datetime_to_ms(self.start_time),
            "end_ms": datetime_to_ms(self.end_time),
            "apex_ms": datetime_to_ms(self.apex_time),
            "duration_ms": self.duration / timedelta(milliseconds=1),
            "max_elevation": self.max_elevation,
            "azimuth_start": self.azimuth_start,
            "azimuth_apex": self.azimuth_apex,
            "azimuth_end": self.azimuth_end,
            "eclipse_transitions": [t.to_dict() for t in self.eclipse_transitions],
            "satellite_eclipsed_at_start": self.satellite_eclipsed_at_start,
            "satellite_eclipsed_at_end": self.satellite_eclipsed_at_end,
            "ground_station_dark_at_start": self.ground_station_dark_at_start,
            "ground_station_dark_at_end": self.ground_station_dark_at_end,
            "epoch": self.epoch.isoformat() if self.epoch else None,
            "epoch_in_future": self.epoch_in_future,
            "apex_magnitude": self.apex_magnitude,
        }
        if self.kind == "swath":
            result["min_distance_km"] = self.min_distance_km
            result["swath_width_km"] = self.swath_width_km
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pass":
        epoch = data.get("epoch")
        return cls(
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            apex_time=datetime.fromisoformat(data["apex_time"]),
            max_elevation=data["max_elevation"],
            azimuth_start=data["azimuth_start"],
            azimuth_apex=data["azimuth_apex"],
            azimuth_end=data["azimuth_end"],
            kind=data.get("kind", "elevation"),
            satellite_name=data.get("satellite_name", ""),
            object_id=data.get("object_id", ""),
            eclipse_transitions=tuple(
                EclipseTransition.from_dict(t) for t in data.get("eclipse_transitions", [])
            ),
            satellite_eclipsed_at_start=data.get("satellite_eclipsed_at_start"),
            satellite_eclipsed_at_end=data.get("satellite_eclipsed_at_end"),
            ground_station_dark_at_start=data.get("ground_station_dark_at_start"),
            ground_station_dark_at_end=data.get("ground_station_dark_at_end"),
            epoch=datetime.fromisoformat(epoch) if epoch else None,
            epoch_in_future=data.get("epoch_in_future", False),
            apex_magnitude=data.get("apex_magnitude"),
            min_distance_km=data.get("min_distance_km"),
            swath_width_km=data.get("swath_width_km"),
        )

    def __str__(self) -> str:
        """String representation of the pass."""
        return (
            f"Pass of {self.satellite_name or self.object_id}: "
            f"{self.start_time.strftime('%Y-%m-%d %H:%M:%S')} - "
            f"{self.end_time.strftime('%H:%M:%S')} UTC, "
            f"Max Elev: {self.max_elevation:.1f}°"
        )


@dataclass
class _OpenPass:
    """Mutable record of a pass while the criterion still holds."""

    start_time: datetime
    start_angles: LookAngles
    apex_time: datetime
    apex_angles: LookAngles
    apex_sample: PositionSample
    min_distance_km: Optional[float] = None


class PassAnnotator:
    """
    Adds illumination details to a closed pass.

    Eclipse state at start/end, shadow transitions inside the pass, station
    darkness at start/end and, when an intrinsic magnitude is given, the
    apparent magnitude at apex.
    """

    def __init__(
        self,
        transition_finder: Optional[EclipseTransitionFinder] = None,
        transition_step_seconds: float = 30.0,
        intrinsic_magnitude: Optional[float] = None,
        sun_ephemeris: SunEphemeris = calculate_sun_position,
    ) -> None:
        self.transition_finder = transition_finder
        self.transition_step_seconds = transition_step_seconds
        self.intrinsic_magnitude = intrinsic_magnitude
        self.sun_ephemeris = sun_ephemeris

    def annotate(
        self,
        orbit: SatelliteOrbit,
        station: GroundStation,
        record: _OpenPass,
        end_time: datetime,
        stats: SearchStats,
    ) -> Dict[str, Any]:
        """Return Pass keyword arguments for the illumination fields."""
        annotations: Dict[str, Any] = {
            "ground_station_dark_at_start": is_station_dark(
                station.latitude, station.longitude, record.start_time,
                sun_ephemeris=self.sun_ephemeris,
            ),
            "ground_station_dark_at_end": is_station_dark(
                station.latitude, station.longitude, end_time,
                sun_ephemeris=self.sun_ephemeris,
            ),
        }

        if self.transition_finder is None:
            return annotations

        classifier = self.transition_finder.classifier

        started = time.perf_counter()
        eclipsed_at_start = classifier.is_eclipsed(orbit, record.start_time)
        eclipsed_at_end = classifier.is_eclipsed(orbit, end_time)
        eclipsed_at_apex = classifier.is_eclipsed(orbit, record.apex_time)
        stats.eclipse_time_ms += _elapsed_ms(started)

        started = time.perf_counter()
        transitions = self.transition_finder.find_transitions(
            orbit, record.start_time, end_time, self.transition_step_seconds
        )
        stats.transition_time_ms += _elapsed_ms(started)

        annotations.update(
            satellite_eclipsed_at_start=eclipsed_at_start,
            satellite_eclipsed_at_end=eclipsed_at_end,
            eclipse_transitions=tuple(transitions),
        )

        if self.intrinsic_magnitude is not None and eclipsed_at_apex is False:
            sample = record.apex_sample
            observer_eci = ecf_to_eci(station.position_ecf, sample.timestamp)
            sun_eci = np.array(self.sun_ephemeris(sample.timestamp))
            annotations["apex_magnitude"] = estimate_magnitude(
                sample.position_eci, observer_eci, sun_eci, self.intrinsic_magnitude
            )

        return annotations


def effective_start_time(
    orbit: SatelliteOrbit, start_time: datetime, epoch_lead: timedelta = EPOCH_LEAD
) -> datetime:
    """Clamp a search start to no earlier than epoch_lead before the element epoch."""
    return max(to_naive_utc(start_time), orbit.epoch - epoch_lead)


def _close_pass(
    orbit: SatelliteOrbit,
    station: GroundStation,
    record: _OpenPass,
    end_time: datetime,
    end_angles: LookAngles,
    kind: str,
    annotator: Optional[PassAnnotator],
    stats: SearchStats,
    swath_km: Optional[float] = None,
) -> Pass:
    annotations = (
        annotator.annotate(orbit, station, record, end_time, stats) if annotator else {}
    )
    return Pass(
        start_time=record.start_time,
        end_time=end_time,
        apex_time=record.apex_time,
        max_elevation=record.apex_angles.elevation,
        azimuth_start=record.start_angles.azimuth,
        azimuth_apex=record.apex_angles.azimuth,
        azimuth_end=end_angles.azimuth,
        kind=kind,
        satellite_name=orbit.satellite_name,
        object_id=orbit.object_id,
        epoch=orbit.epoch,
        epoch_in_future=orbit.epoch > record.start_time,
        min_distance_km=record.min_distance_km,
        swath_width_km=swath_km,
        **annotations,
    )


def find_passes_elevation(
    orbit: SatelliteOrbit,
    station: GroundStation,
    start_time: datetime,
    end_time: datetime,
    min_elevation_deg: float = 5.0,
    max_passes: int = 50,
    annotator: Optional[PassAnnotator] = None,
    stats: Optional[SearchStats] = None,
    max_period_minutes: float = MAX_PERIOD_MINUTES,
    epoch_lead: timedelta = EPOCH_LEAD,
) -> List[Pass]:
    """
    Find passes where the object rises strictly above a minimum elevation.

    A sample exactly at min_elevation_deg does not count as visible. A pass
    still open when the window ends is not reported.

    Args:
        orbit: Object to search
        station: Ground station
        start_time: Search window start (UTC)
        end_time: Search window end (UTC)
        min_elevation_deg: Elevation threshold in degrees
        max_passes: Stop after this many passes
        annotator: Optional illumination annotator
        stats: Optional stats object filled in place
        max_period_minutes: Period above which no passes are searched for
        epoch_lead: How long before the element epoch the search may start

    Returns:
        Passes in time order
    """
    stats = stats if stats is not None else SearchStats()
    search_started = time.perf_counter()
    passes: List[Pass] = []

    period_minutes = orbit.period_minutes
    if period_minutes > max_period_minutes:
        logger.debug(
            f"Skipping pass search for {orbit.satellite_name}: "
            f"period {period_minutes:.1f} min exceeds {max_period_minutes:.0f} min"
        )
        stats.total_time_ms = _elapsed_ms(search_started)
        return passes
    if max_passes < 1:
        return passes

    half_period = timedelta(minutes=period_minutes * 0.5)
    end_time = to_naive_utc(end_time)
    current = effective_start_time(orbit, start_time, epoch_lead)
    record: Optional[_OpenPass] = None
    last_elevation = 0.0

    while current < end_time:
        stats.iterations += 1

        started = time.perf_counter()
        sample = orbit.propagate(current)
        stats.propagation_time_ms += _elapsed_ms(started)
        stats.propagation_calls += 1
        if sample is None:
            current += DEGENERATE_SAMPLE_STEP
            continue

        started = time.perf_counter()
        angles = look_angles(station, sample.position_ecf)
        stats.geometry_time_ms += _elapsed_ms(started)
        if angles is None:
            current += DEGENERATE_SAMPLE_STEP
            continue

        elevation = angles.elevation

        if elevation > min_elevation_deg:
            if record is None:
                record = _OpenPass(
                    start_time=current,
                    start_angles=angles,
                    apex_time=current,
                    apex_angles=angles,
                    apex_sample=sample,
                )
            elif elevation > record.apex_angles.elevation:
                record.apex_time = current
                record.apex_angles = angles
                record.apex_sample = sample
            current += ELEVATION_IN_PASS_STEP

        elif record is not None:
            passes.append(
                _close_pass(orbit, station, record, current, angles, "elevation", annotator, stats)
            )
            record = None
            if len(passes) >= max_passes:
                break
            last_elevation = ELEVATION_RESET_DEG
            current += half_period

        else:
            delta_elevation = elevation - last_elevation
            last_elevation = elevation

            if delta_elevation < 0:
                # Moving away from the horizon, next chance is on the next orbit
                current += half_period
                last_elevation = ELEVATION_RESET_DEG
            elif elevation < ELEVATION_COARSE_BELOW_DEG:
                current += ELEVATION_COARSE_STEP
            elif elevation < ELEVATION_MEDIUM_BELOW_DEG:
                current += ELEVATION_MEDIUM_STEP
            elif elevation < ELEVATION_FINE_BELOW_DEG:
                current += ELEVATION_FINE_STEP
            else:
                current += ELEVATION_FINEST_STEP

    stats.passes_found = len(passes)
    stats.total_time_ms = _elapsed_ms(search_started)
    logger.debug(
        f"Elevation search for {orbit.satellite_name}: {len(passes)} passes, "
        f"{stats.iterations} iterations, {stats.total_time_ms:.1f} ms"
    )
    return passes


def find_passes_swath(
    orbit: SatelliteOrbit,
    station: GroundStation,
    swath_km: float,
    start_time: datetime,
    end_time: datetime,
    max_passes: int = 50,
    annotator: Optional[PassAnnotator] = None,
    stats: Optional[SearchStats] = None,
    epoch_lead: timedelta = EPOCH_LEAD,
) -> List[Pass]:
    """
    Find passes where the ground track comes within half a swath of the station.

    Distance is great-circle distance between the sub-satellite point and the
    station. A sample exactly at half the swath width does not count.

    Args:
        orbit: Object to search
        station: Ground station
        swath_km: Full swath width in kilometres
        start_time: Search window start (UTC)
        end_time: Search window end (UTC)
        max_passes: Stop after this many passes
        annotator: Optional illumination annotator
        stats: Optional stats object filled in place
        epoch_lead: How long before the element epoch the search may start

    Returns:
        Passes in time order, apex at closest approach
    """
    if swath_km <= 0:
        raise ValueError(f"swath_km must be > 0, got {swath_km}")

    stats = stats if stats is not None else SearchStats()
    search_started = time.perf_counter()
    passes: List[Pass] = []
    if max_passes < 1:
        return passes

    period_minutes = orbit.period_minutes
    half_swath = swath_km / 2.0
    after_pass_skip = timedelta(minutes=max(5.0, period_minutes * 0.1))
    receding_skip = timedelta(minutes=max(10.0, period_minutes * 0.2))

    end_time = to_naive_utc(end_time)
    current = effective_start_time(orbit, start_time, epoch_lead)
    record: Optional[_OpenPass] = None
    last_distance = math.inf

    while current < end_time:
        stats.iterations += 1

        started = time.perf_counter()
        sample = orbit.get_geodetic(current)
        stats.propagation_time_ms += _elapsed_ms(started)
        stats.propagation_calls += 1
        if sample is None:
            current += DEGENERATE_SAMPLE_STEP
            continue

        started = time.perf_counter()
        distance_km = calculate_ground_distance(
            station.latitude, station.longitude, sample.latitude, sample.longitude
        )
        stats.geometry_time_ms += _elapsed_ms(started)
        if not math.isfinite(distance_km):
            current += DEGENERATE_SAMPLE_STEP
            continue

        if distance_km < half_swath:
            angles = look_angles(station, sample.position_ecf)
            if angles is None:
                current += DEGENERATE_SAMPLE_STEP
                continue
            if record is None:
                record = _OpenPass(
                    start_time=current,
                    start_angles=angles,
                    apex_time=current,
                    apex_angles=angles,
                    apex_sample=sample,
                    min_distance_km=distance_km,
                )
            elif distance_km < record.min_distance_km:
                record.min_distance_km = distance_km
                record.apex_time = current
                record.apex_angles = angles
                record.apex_sample = sample
            current += SWATH_IN_PASS_STEP

        elif record is not None:
            end_angles = look_angles(station, sample.position_ecf) or record.apex_angles
            passes.append(
                _close_pass(
                    orbit, station, record, current, end_angles, "swath",
                    annotator, stats, swath_km=swath_km,
                )
            )
            record = None
            if len(passes) >= max_passes:
                break
            last_distance = math.inf
            current += after_pass_skip

        else:
            delta_distance = distance_km - last_distance
            last_distance = distance_km

            if delta_distance > 0 and distance_km > half_swath * 4:
                current += receding_skip
            elif distance_km > half_swath * 3:
                current += timedelta(minutes=5)
            elif distance_km > half_swath * 2:
                current += timedelta(minutes=2)
            elif distance_km > half_swath * 1.2:
                current += timedelta(minutes=1)
            else:
                current += SWATH_FINE_STEP

    stats.passes_found = len(passes)
    stats.total_time_ms = _elapsed_ms(search_started)
    logger.debug(
        f"Swath search for {orbit.satellite_name}: {len(passes)} passes, "
        f"{stats.iterations} iterations, {stats.total_time_ms:.1f} ms"
    )
    return passes
