"""
Tests for position interpolation.

Tests the progress-to-position mapping, segment endpoints, status switching
at the midpoint and the handling of short or partially invalid tracks.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from interpolator import clamp_progress, interpolate, progress_for_index
from track_model import Track, VehicleStatus
from conftest import BASE_LAT, BASE_LNG, make_sample


class TestClampProgress:
    """Tests for clamp_progress."""

    def test_in_range_unchanged(self):
        assert clamp_progress(42.5) == 42.5

    def test_clamps_both_ends(self):
        assert clamp_progress(-5) == 0.0
        assert clamp_progress(150) == 100.0

    def test_nan_is_zero(self):
        assert clamp_progress(float("nan")) == 0.0


class TestInterpolate:
    """Tests for interpolate()."""

    def test_empty_track_returns_none(self, empty_track):
        """Empty track should yield no position."""
        assert interpolate(empty_track, 50) is None

    def test_single_sample_for_all_progress(self, single_point_track):
        """A one-sample track should return that sample for any progress."""
        for p in (0, 33.3, 100):
            pos = interpolate(single_point_track, p)
            assert (pos.latitude, pos.longitude) == (BASE_LAT, BASE_LNG)
            assert pos.index == pos.next_index == 0
            assert pos.fraction == 0.0

    def test_midpoint_lands_on_sample_exactly(self, five_point_track):
        """p=50 on 5 samples should give sample 2 with zero fraction."""
        pos = interpolate(five_point_track, 50)
        assert pos.index == 2
        assert pos.fraction == 0.0
        assert pos.latitude == five_point_track[2].latitude
        assert pos.longitude == five_point_track[2].longitude

    def test_zero_and_hundred_are_endpoints(self, five_point_track):
        """p=0 and p=100 should equal the first and last sample exactly."""
        start = interpolate(five_point_track, 0)
        end = interpolate(five_point_track, 100)
        assert (start.latitude, start.longitude) == five_point_track[0].position
        assert (end.latitude, end.longitude) == five_point_track[4].position
        assert end.index == 4

    @pytest.mark.parametrize("progress", [1.0, 12.5, 37.0, 61.2, 87.5, 99.9])
    def test_position_lies_on_bracketing_segment(self, five_point_track, progress):
        """The interpolated point should lie between sample floor(idx) and the next one."""
        pos = interpolate(five_point_track, progress)
        float_idx = progress / 100 * 4
        assert pos.index == int(float_idx)
        a = five_point_track[pos.index].latitude
        b = five_point_track[pos.next_index].latitude
        assert min(a, b) <= pos.latitude <= max(a, b)
        assert pos.latitude == pytest.approx(a + (b - a) * pos.fraction)
        assert pos.fraction == pytest.approx(float_idx - int(float_idx))

    def test_heading_interpolated_linearly(self, five_point_track):
        """Heading should blend linearly between samples (10 degrees apart here)."""
        pos = interpolate(five_point_track, 12.5)  # float index 0.5
        assert pos.heading == pytest.approx(5.0)

    def test_heading_has_no_wraparound(self):
        """350 -> 10 should pass through 180, not 0."""
        track = Track(samples=[make_sample(heading=350.0),
                               make_sample(lat=BASE_LAT + 0.01, heading=10.0)])
        pos = interpolate(track, 50)
        assert pos.heading == pytest.approx(180.0)

    def test_progress_is_clamped(self, five_point_track):
        assert interpolate(five_point_track, 250).index == 4
        assert interpolate(five_point_track, -10).index == 0


class TestStatusSwitch:
    """Tests for status selection around the segment midpoint."""

    @pytest.fixture
    def two_status_track(self):
        return Track(samples=[
            make_sample(status=VehicleStatus.MOVING),
            make_sample(lat=BASE_LAT + 0.01, status=VehicleStatus.STOP),
        ])

    def test_before_midpoint_keeps_current_status(self, two_status_track):
        pos = interpolate(two_status_track, 40)
        assert pos.status == VehicleStatus.MOVING
        assert pos.display_index == 0

    def test_exact_midpoint_keeps_current_status(self, two_status_track):
        """Switch happens strictly past 0.5."""
        pos = interpolate(two_status_track, 50)
        assert pos.status == VehicleStatus.MOVING
        assert pos.display_index == 0

    def test_past_midpoint_uses_next_status(self, two_status_track):
        pos = interpolate(two_status_track, 60)
        assert pos.status == VehicleStatus.STOP
        assert pos.display_index == 1


class TestInvalidSamples:
    """Tests for bracketing samples without a valid position."""

    def test_uses_valid_neighbor(self):
        """If only one bracketing sample is valid, its coordinates are used."""
        track = Track(samples=[make_sample(), make_sample(lat=None, lng=None)])
        pos = interpolate(track, 30)
        assert (pos.latitude, pos.longitude) == (BASE_LAT, BASE_LNG)
        assert pos.has_position

    def test_both_invalid_has_no_position(self):
        track = Track(samples=[make_sample(lat=None), make_sample(lat=None)])
        pos = interpolate(track, 30)
        assert not pos.has_position


class TestProgressForIndex:
    """Tests for progress_for_index."""

    def test_maps_index_to_progress(self):
        assert progress_for_index(5, 2) == 50.0
        assert progress_for_index(5, 4) == 100.0
        assert progress_for_index(5, 0) == 0.0

    def test_short_track_returns_none(self):
        """Seeking by index needs at least two samples."""
        assert progress_for_index(1, 0) is None
        assert progress_for_index(0, 0) is None

    def test_round_trip_lands_on_sample(self, five_point_track):
        pos = interpolate(five_point_track, progress_for_index(5, 3))
        assert pos.index == 3
        assert pos.fraction == 0.0
