"""
In-process pass predictor.

``PassPredictor`` owns one set of caches (element sets, eclipse results,
pass-search results) and exposes every operation the worker protocol
offers. The synchronous path uses an instance directly; each worker process
holds its own instance, so both paths run the same code.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from .cache import BoundedCache, pass_cache_key
from .config import PredictorConfig
from .eclipse import EclipseClassifier, EclipseTransition, EclipseTransitionFinder
from .geometry import GroundStation, PositionSample
from .orbit import ElementSetCache, ElementsInput, SatelliteOrbit
from .passes import (
    Pass,
    PassAnnotator,
    SearchStats,
    find_passes_elevation,
    find_passes_swath,
)
from .sunlight import SunEphemeris, calculate_sun_position
from .utils import to_naive_utc

logger = logging.getLogger(__name__)


class PassPredictor:
    """
    Pass search and eclipse classification with bounded caches.

    Caches are never invalidated by inspecting content: call
    ``invalidate_passes`` or ``clear_caches`` when inputs change.
    """

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        sun_ephemeris: SunEphemeris = calculate_sun_position,
    ) -> None:
        self.config = config or PredictorConfig()
        self.sun_ephemeris = sun_ephemeris

        self.element_cache = ElementSetCache(self.config.element_cache_max_entries)
        self.eclipse_cache: BoundedCache[Optional[bool]] = BoundedCache(
            self.config.eclipse_cache_max_entries, name="eclipse cache"
        )
        self.pass_cache: BoundedCache[Tuple[Pass, ...]] = BoundedCache(
            self.config.pass_cache_max_entries, name="pass cache"
        )

        self.classifier = EclipseClassifier(
            self.eclipse_cache,
            bucket_seconds=self.config.eclipse_bucket_seconds,
            body_radius_km=self.config.earth_radius_km,
            sun_ephemeris=sun_ephemeris,
        )
        self.transition_finder = EclipseTransitionFinder(self.classifier)

    @property
    def epoch_lead(self) -> timedelta:
        return timedelta(minutes=self.config.epoch_lead_minutes)

    def get_orbit(self, elements: ElementsInput) -> SatelliteOrbit:
        """Parse element text, reusing the cached orbit for identical text."""
        return self.element_cache.get(elements)

    def _annotator(self, intrinsic_magnitude: Optional[float]) -> PassAnnotator:
        finder = self.transition_finder if self.config.annotate_eclipses else None
        return PassAnnotator(
            transition_finder=finder,
            transition_step_seconds=self.config.transition_step_seconds,
            intrinsic_magnitude=intrinsic_magnitude,
            sun_ephemeris=self.sun_ephemeris,
        )

    def _cached_search(
        self,
        key: Tuple[Any, ...],
        search: Callable[[Optional[SearchStats]], List[Pass]],
        collect_stats: bool,
    ) -> Tuple[List[Pass], Optional[SearchStats]]:
        # Stats describe a real search, so they bypass the cache
        if collect_stats:
            stats = SearchStats()
            passes = search(stats)
            return passes, stats

        cached = self.pass_cache.get(key)
        if cached is not None:
            return list(cached), None

        passes = search(None)
        self.pass_cache.put(key, tuple(passes))
        return passes, None

    def find_passes(
        self,
        elements: ElementsInput,
        station: GroundStation,
        start_time: datetime,
        end_time: datetime,
        min_elevation_deg: Optional[float] = None,
        max_passes: Optional[int] = None,
        intrinsic_magnitude: Optional[float] = None,
        collect_stats: bool = False,
    ) -> Tuple[List[Pass], Optional[SearchStats]]:
        """
        Find elevation passes of an object over a ground station.

        Args:
            elements: Two- or three-line element text
            station: Ground station
            start_time: Window start (UTC)
            end_time: Window end (UTC)
            min_elevation_deg: Elevation threshold (defaults from config)
            max_passes: Pass limit (defaults from config)
            intrinsic_magnitude: Enables apex magnitude estimates when set
            collect_stats: Return a timing breakdown (skips the pass cache)

        Returns:
            Tuple of (passes, stats or None)

        Raises:
            ValueError: If the element text is invalid
        """
        start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
        orbit = self.get_orbit(elements)
        if min_elevation_deg is None:
            min_elevation_deg = self.config.default_min_elevation_deg
        if max_passes is None:
            max_passes = self.config.default_max_passes

        key = pass_cache_key(
            orbit.object_id, station.key, start_time, end_time,
            "elevation", orbit.satellite_name, min_elevation_deg, max_passes,
            intrinsic_magnitude,
        )
        annotator = self._annotator(intrinsic_magnitude)

        def search(stats: Optional[SearchStats]) -> List[Pass]:
            return find_passes_elevation(
                orbit, station, start_time, end_time,
                min_elevation_deg=min_elevation_deg,
                max_passes=max_passes,
                annotator=annotator,
                stats=stats,
                max_period_minutes=self.config.max_period_minutes,
                epoch_lead=self.epoch_lead,
            )

        return self._cached_search(key, search, collect_stats)

    def find_swath_passes(
        self,
        elements: ElementsInput,
        station: GroundStation,
        swath_km: float,
        start_time: datetime,
        end_time: datetime,
        max_passes: Optional[int] = None,
        intrinsic_magnitude: Optional[float] = None,
        collect_stats: bool = False,
    ) -> Tuple[List[Pass], Optional[SearchStats]]:
        """
        Find swath passes: ground track within swath_km / 2 of the station.

        Returns:
            Tuple of (passes, stats or None)

        Raises:
            ValueError: If the element text or swath width is invalid
        """
        start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
        orbit = self.get_orbit(elements)
        if max_passes is None:
            max_passes = self.config.default_max_passes

        key = pass_cache_key(
            orbit.object_id, station.key, start_time, end_time,
            "swath", orbit.satellite_name, swath_km, max_passes,
            intrinsic_magnitude,
        )
        annotator = self._annotator(intrinsic_magnitude)

        def search(stats: Optional[SearchStats]) -> List[Pass]:
            return find_passes_swath(
                orbit, station, swath_km, start_time, end_time,
                max_passes=max_passes,
                annotator=annotator,
                stats=stats,
                epoch_lead=self.epoch_lead,
            )

        return self._cached_search(key, search, collect_stats)

    def propagate_positions(
        self, elements: ElementsInput, timestamps: Sequence[datetime]
    ) -> List[Optional[PositionSample]]:
        """Propagate to each timestamp; failed samples are None."""
        orbit = self.get_orbit(elements)
        return [orbit.propagate(to_naive_utc(ts)) for ts in timestamps]

    def propagate_geodetic(
        self, elements: ElementsInput, timestamp: datetime
    ) -> Optional[PositionSample]:
        orbit = self.get_orbit(elements)
        return orbit.get_geodetic(to_naive_utc(timestamp))

    def is_eclipsed(self, elements: ElementsInput, timestamp: datetime) -> Optional[bool]:
        return self.classifier.is_eclipsed(self.get_orbit(elements), to_naive_utc(timestamp))

    def find_eclipse_transitions(
        self,
        elements: ElementsInput,
        start_time: datetime,
        end_time: datetime,
        step_seconds: Optional[float] = None,
    ) -> List[EclipseTransition]:
        """Scan a window for shadow entries and exits at a fixed step."""
        orbit = self.get_orbit(elements)
        step = step_seconds if step_seconds is not None else self.config.transition_step_seconds
        return self.transition_finder.find_transitions(
            orbit, to_naive_utc(start_time), to_naive_utc(end_time), step
        )

    def invalidate_passes(self, object_id: Optional[str] = None) -> int:
        """
        Drop cached pass searches.

        Args:
            object_id: Only drop entries for this object; all entries when None

        Returns:
            Number of entries removed
        """
        if object_id is None:
            removed = len(self.pass_cache)
            self.pass_cache.clear()
        else:
            removed = self.pass_cache.invalidate(lambda key: key[0] == object_id)
        logger.debug(f"Invalidated {removed} cached pass searches")
        return removed

    def clear_caches(self) -> None:
        """Clear element-set, eclipse and pass caches."""
        self.element_cache.clear()
        self.eclipse_cache.clear()
        self.pass_cache.clear()
        logger.debug("Cleared predictor caches")

    def cache_stats(self) -> Dict[str, Any]:
        return {
            "element_sets": len(self.element_cache),
            "eclipse": self.eclipse_cache.stats().to_dict(),
            "passes": self.pass_cache.stats().to_dict(),
        }
