"""
Tests for sunlight module.
"""

import math
from datetime import datetime

import pytest

from pass_predictor.sunlight import (
    AU_KM,
    calculate_gmst,
    calculate_sun_position,
    get_sun_elevation,
    is_station_dark,
)


class TestCalculateSunPosition:
    """Tests for calculate_sun_position function."""

    def test_distance_about_one_au(self) -> None:
        x, y, z = calculate_sun_position(datetime(2018, 12, 8, 12, 0, 0))
        assert math.sqrt(x * x + y * y + z * z) == pytest.approx(AU_KM)

    def test_december_sun_is_south(self) -> None:
        _, _, z = calculate_sun_position(datetime(2018, 12, 21, 12, 0, 0))
        assert z < 0

    def test_june_sun_is_north(self) -> None:
        _, _, z = calculate_sun_position(datetime(2018, 6, 21, 12, 0, 0))
        assert z > 0


class TestCalculateGmst:
    """Tests for calculate_gmst function."""

    def test_range(self) -> None:
        gmst = calculate_gmst(datetime(2018, 12, 8, 16, 38, 0))
        assert 0.0 <= gmst < 360.0

    def test_j2000_value(self) -> None:
        assert calculate_gmst(datetime(2000, 1, 1, 12, 0, 0)) == pytest.approx(280.46061837)


class TestStationDarkness:
    """Tests for sun elevation and station darkness."""

    def test_munich_noon_is_light(self) -> None:
        elevation = get_sun_elevation(48.1351, 11.5820, datetime(2018, 6, 21, 11, 0, 0))
        assert elevation > 50
        assert not is_station_dark(48.1351, 11.5820, datetime(2018, 6, 21, 11, 0, 0))

    def test_munich_midnight_is_dark(self) -> None:
        elevation = get_sun_elevation(48.1351, 11.5820, datetime(2018, 12, 8, 23, 0, 0))
        assert elevation < -30
        assert is_station_dark(48.1351, 11.5820, datetime(2018, 12, 8, 23, 0, 0))

    def test_custom_twilight_threshold(self) -> None:
        when = datetime(2018, 6, 21, 11, 0, 0)
        assert is_station_dark(48.1351, 11.5820, when, twilight_deg=90.0)

    def test_custom_ephemeris(self) -> None:
        # Sun fixed above the north pole
        def polar_sun(_: datetime):
            return (0.0, 0.0, AU_KM)

        when = datetime(2018, 12, 8, 0, 0, 0)
        assert get_sun_elevation(90.0, 0.0, when, polar_sun) == pytest.approx(90.0, abs=1e-3)
        assert is_station_dark(-90.0, 0.0, when, sun_ephemeris=polar_sun)
