"""
Tests for apparent magnitude estimates.
"""

import numpy as np
import pytest

from pass_predictor.brightness import estimate_magnitude, phase_angle_deg

OBSERVER = np.array([0.0, 0.0, 0.0])


class TestPhaseAngle:
    """Tests for phase_angle_deg."""

    def test_sun_behind_observer(self) -> None:
        satellite = np.array([1000.0, 0.0, 0.0])
        sun = np.array([-1.5e8, 0.0, 0.0])
        assert phase_angle_deg(satellite, OBSERVER, sun) == pytest.approx(0.0, abs=1e-6)

    def test_right_angle(self) -> None:
        satellite = np.array([1000.0, 0.0, 0.0])
        sun = np.array([1000.0, 1.5e8, 0.0])
        assert phase_angle_deg(satellite, OBSERVER, sun) == pytest.approx(90.0, abs=1e-6)


class TestEstimateMagnitude:
    """Tests for estimate_magnitude."""

    def test_standard_conditions_give_intrinsic(self) -> None:
        satellite = np.array([1000.0, 0.0, 0.0])
        sun = np.array([1000.0, 1.5e8, 0.0])
        assert estimate_magnitude(satellite, OBSERVER, sun, -1.8) == pytest.approx(-1.8, abs=1e-6)

    def test_farther_is_fainter(self) -> None:
        sun = np.array([0.0, 1.5e8, 0.0])
        near = estimate_magnitude(np.array([1000.0, 0.0, 0.0]), OBSERVER, sun, -1.8)
        far = estimate_magnitude(np.array([2000.0, 0.0, 0.0]), OBSERVER, sun, -1.8)
        assert far > near
        assert far - near == pytest.approx(5 * np.log10(2), abs=1e-3)

    def test_full_phase_brighter_than_quarter(self) -> None:
        satellite = np.array([1000.0, 0.0, 0.0])
        full = estimate_magnitude(satellite, OBSERVER, np.array([-1.5e8, 0.0, 0.0]), -1.8)
        quarter = estimate_magnitude(satellite, OBSERVER, np.array([1000.0, 1.5e8, 0.0]), -1.8)
        assert full == pytest.approx(-1.8 - 2.5 * np.log10(2), abs=1e-6)
        assert full < quarter

    def test_unlit_face_is_none(self) -> None:
        satellite = np.array([1000.0, 0.0, 0.0])
        sun = np.array([1.5e8, 0.0, 0.0])
        assert estimate_magnitude(satellite, OBSERVER, sun, -1.8) is None

    def test_zero_range_is_none(self) -> None:
        assert estimate_magnitude(OBSERVER, OBSERVER, np.array([1.5e8, 0.0, 0.0]), -1.8) is None
