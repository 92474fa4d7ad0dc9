"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Custom markers for test categorization
- Shared fixtures for element sets, ground stations and time windows
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Tuple

import pytest
from _pytest.config import Config
from _pytest.python import Function

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# =============================================================================
# COLLECTION HOOKS
# =============================================================================


def pytest_collection_modifyitems(config: Config, items: List[Function]) -> None:
    """Auto-mark integration tests."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks integration tests")


# =============================================================================
# FIXTURES - Common test setup
# =============================================================================

ISS_LINE1 = "1 25544U 98067A   18342.69352573  .00002284  00000-0  41838-4 0  9992"
ISS_LINE2 = "2 25544  51.6407 229.0798 0005166 124.8351 329.3296 15.54069892145658"

# Same object, later epoch
ISS_LINE1_UPDATED = "1 25544U 98067A   18343.00000000  .00002284  00000-0  41838-4 0  9993"

GEO_LINE1 = "1 41866U 16071A   18342.50000000 -.00000268  00000-0  00000+0 0  9999"
GEO_LINE2 = "2 41866   0.0376 267.1435 0001021 304.6212 270.8917  1.00270828  7596"


@pytest.fixture
def iss_tle_lines() -> Tuple[str, str]:
    """ISS element set from December 2018 (epoch 2018-12-08 16:38 UTC)."""
    return (ISS_LINE1, ISS_LINE2)


@pytest.fixture
def iss_tle_updated_lines() -> Tuple[str, str]:
    """ISS element set with a later epoch than iss_tle_lines."""
    return (ISS_LINE1_UPDATED, ISS_LINE2)


@pytest.fixture
def geo_tle_lines() -> Tuple[str, str]:
    """Geostationary element set (period about 1436 minutes)."""
    return (GEO_LINE1, GEO_LINE2)


@pytest.fixture
def iss_tle_file(tmp_path: Path) -> Path:
    """TLE file holding the ISS and a geostationary satellite."""
    tle_file = tmp_path / "stations.tle"
    tle_file.write_text(
        f"ISS (ZARYA)\n{ISS_LINE1}\n{ISS_LINE2}\n"
        f"GOES 16\n{GEO_LINE1}\n{GEO_LINE2}\n"
    )
    return tle_file


@pytest.fixture
def iss_orbit(iss_tle_lines: Tuple[str, str]):
    """SatelliteOrbit for the ISS."""
    from pass_predictor.orbit import SatelliteOrbit

    return SatelliteOrbit(["ISS (ZARYA)", *iss_tle_lines])


@pytest.fixture
def geo_orbit(geo_tle_lines: Tuple[str, str]):
    """SatelliteOrbit for a geostationary satellite."""
    from pass_predictor.orbit import SatelliteOrbit

    return SatelliteOrbit(["GOES 16", *geo_tle_lines])


@pytest.fixture
def munich_station():
    """Mid-latitude ground station."""
    from pass_predictor.geometry import GroundStation

    return GroundStation(latitude=48.1351, longitude=11.5820, height=520.0, name="Munich")


@pytest.fixture
def base_datetime() -> datetime:
    """Search start shortly after the ISS element set epoch."""
    return datetime(2018, 12, 8, 18, 0, 0)


@pytest.fixture
def time_range(base_datetime: datetime) -> Tuple[datetime, datetime]:
    """Standard 24-hour time range for tests."""
    return base_datetime, base_datetime + timedelta(hours=24)


@pytest.fixture
def predictor_config():
    """Default predictor configuration."""
    from pass_predictor.config import PredictorConfig

    return PredictorConfig()
