"""Filtering and ordering of pass lists for display."""

from datetime import datetime, timedelta
from typing import Iterable, List

from .passes import Pass

# Passes of not-yet-valid element sets are kept from this long before epoch
FUTURE_EPOCH_MARGIN = timedelta(minutes=90)


def filter_and_sort_passes(
    passes: Iterable[Pass],
    now: datetime,
    delta_hours: float = 48,
    hide_sunlit_station: bool = False,
    only_lit_passes: bool = False,
) -> List[Pass]:
    """
    Filter and sort passes based on time, sunlight and eclipse conditions.

    Args:
        passes: Passes to filter
        now: Current time (UTC)
        delta_hours: Keep passes starting less than this many whole hours ahead
        hide_sunlit_station: Keep only passes where the station is dark at
            start or end
        only_lit_passes: Keep only passes where the satellite is lit at start
            or end, or changes illumination during the pass

    Returns:
        Filtered passes sorted by start time
    """
    filtered = [
        p for p in passes
        if int((p.start_time - now).total_seconds() / 3600) < delta_hours
    ]

    # Applied before the sunlight filters
    filtered = [
        p for p in filtered
        if not (p.epoch_in_future and p.epoch is not None)
        or p.start_time >= p.epoch - FUTURE_EPOCH_MARGIN
    ]

    if hide_sunlit_station:
        filtered = [
            p for p in filtered
            if p.ground_station_dark_at_start or p.ground_station_dark_at_end
        ]

    if only_lit_passes:
        filtered = [
            p for p in filtered
            if not p.satellite_eclipsed_at_start
            or not p.satellite_eclipsed_at_end
            or len(p.eclipse_transitions) > 0
        ]

    return sorted(filtered, key=lambda p: p.start_time)
