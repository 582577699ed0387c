"""
Tests for route geometry: bearings, interpolation, bounds and preparation.
"""

from datetime import timedelta

import pytest

from flyover.models import GeoPoint
from flyover.route import (
    build_route,
    compute_bearing,
    compute_bounds,
    compute_cumulative_distances,
    interpolate,
    interpolate_to_count,
    prepare_route,
    smoothed_bearing,
    total_distance,
)

from conftest import START, make_l_track, make_track


class TestBearing:
    """Tests for great-circle bearings."""

    @pytest.mark.parametrize("dlat,dlng,expected", [
        (0.01, 0.0, 0.0),
        (0.0, 0.01, 90.0),
        (-0.01, 0.0, 180.0),
        (0.0, -0.01, 270.0),
    ])
    def test_cardinal_directions(self, dlat, dlng, expected):
        start = GeoPoint(lat=10.0, lng=10.0)
        end = GeoPoint(lat=10.0 + dlat, lng=10.0 + dlng)
        assert compute_bearing(start, end) == pytest.approx(expected, abs=0.01)

    def test_same_point_is_zero(self):
        p = GeoPoint(lat=48.0, lng=2.0)
        assert compute_bearing(p, p) == 0.0

    def test_always_in_range(self):
        start = GeoPoint(lat=0.0, lng=0.0)
        for lat, lng in [(1e-12, -1e-9), (-1.0, -1e-12), (0.5, 0.5), (-0.5, 0.5)]:
            b = compute_bearing(start, GeoPoint(lat=lat, lng=lng))
            assert 0.0 <= b < 360.0


class TestSmoothedBearing:
    def test_straight_track(self, straight_track):
        for i in (0, 10, len(straight_track) - 1):
            b = smoothed_bearing(straight_track, i)
            assert min(b, 360.0 - b) < 0.01

    def test_wraparound_average_points_north(self):
        """Headings of 350 and 10 degrees average to north, not south."""
        a = GeoPoint(lat=0.0, lng=0.0)
        b = GeoPoint(lat=0.01, lng=-0.01 * 0.1763)  # ~350 deg
        c = GeoPoint(lat=0.02, lng=0.0)  # ~10 deg from b
        bearing = smoothed_bearing([a, b, c], 1, window=3)
        assert bearing < 1.0 or bearing > 359.0

    def test_single_point(self):
        assert smoothed_bearing([GeoPoint(lat=0.0, lng=0.0)], 0) == 0.0

    def test_index_past_end_is_clamped(self, straight_track):
        assert 0.0 <= smoothed_bearing(straight_track, 10_000) < 360.0


class TestDistances:
    def test_cumulative_distances_monotonic(self, l_track):
        dists = compute_cumulative_distances(l_track)
        assert dists[0] == 0.0
        assert all(b >= a for a, b in zip(dists, dists[1:]))
        assert dists[-1] == pytest.approx(total_distance(l_track))

    def test_total_distance_single_point(self):
        assert total_distance([GeoPoint(lat=0.0, lng=0.0)]) == 0.0


class TestInterpolate:
    """Tests for fixed-spacing resampling."""

    def test_spacing_never_exceeded(self, l_track):
        result = interpolate(l_track, spacing_m=7.0)
        for a, b in zip(result, result[1:]):
            assert a.distance_to(b) <= 7.0 + 1e-6

    def test_keeps_endpoints(self, l_track):
        result = interpolate(l_track, spacing_m=7.0)
        assert result[0] == l_track[0]
        assert result[-1] == l_track[-1]

    def test_length_preserved(self, l_track):
        result = interpolate(l_track, spacing_m=3.0)
        assert total_distance(result) == pytest.approx(total_distance(l_track), rel=1e-3)

    def test_count_matches_spacing(self):
        pts = [GeoPoint(lat=0.0, lng=0.0), GeoPoint(lat=0.0, lng=0.01)]  # ~1112 m
        result = interpolate(pts, spacing_m=100.0)
        assert len(result) == 13  # start, 11 interior, end

    def test_carries_leftover_between_segments(self):
        """Spacing is measured along the path, not restarted per segment."""
        a = GeoPoint(lat=0.0, lng=0.0)
        b = GeoPoint(lat=0.0, lng=0.0005)
        c = GeoPoint(lat=0.0, lng=0.001)
        result = interpolate([a, b, c], spacing_m=a.distance_to(c) * 0.3)
        # Restarting at b would give 0.0008 instead of 0.0006 and 0.0009
        assert [p.lng for p in result] == pytest.approx([0.0, 0.0003, 0.0006, 0.0009, 0.001], abs=1e-9)

    def test_degenerate_inputs(self):
        p = GeoPoint(lat=1.0, lng=1.0)
        assert interpolate([p]) == [p]
        assert interpolate([p, p], spacing_m=5.0) == [p]
        assert interpolate([p, GeoPoint(lat=1.1, lng=1.0)], spacing_m=0) == [p, GeoPoint(lat=1.1, lng=1.0)]

    def test_pause_flag_marks_inserted_points(self):
        """Points inserted in front of a pause-resume sample carry its flag."""
        a = GeoPoint(lat=0.0, lng=0.0)
        b = GeoPoint(lat=0.0, lng=0.001)
        c = GeoPoint(lat=0.0, lng=0.002, is_pause_resume=True)
        result = interpolate([a, b, c], spacing_m=20.0)
        assert not any(p.is_pause_resume for p in result if p.lng < 0.001 - 1e-9)
        assert all(p.is_pause_resume for p in result if p.lng > 0.001 + 1e-9)
        assert result[-1].is_pause_resume


class TestInterpolateToCount:
    @pytest.mark.parametrize("target", [10, 100, 600])
    def test_close_to_target(self, l_track, target):
        result = interpolate_to_count(l_track, target)
        assert abs(len(result) - target) <= 2

    def test_small_inputs_unchanged(self):
        p = GeoPoint(lat=0.0, lng=0.0)
        assert interpolate_to_count([p], 100) == [p]

    def test_zero_length_route(self):
        p = GeoPoint(lat=0.0, lng=0.0)
        assert interpolate_to_count([p, p, p], 100) == [p, p, p]


class TestBoundsAndBuild:
    def test_bounds(self, l_track):
        b = compute_bounds(l_track)
        assert b.south == pytest.approx(48.8566)
        assert b.west == pytest.approx(2.3522)
        assert b.north == pytest.approx(48.8606)
        assert b.east == pytest.approx(2.3552)

    def test_build_route_totals(self):
        points = make_track(count=11, seconds=10)
        route = build_route(points, name="Run")
        assert route.total_duration == timedelta(seconds=100)
        assert route.moving_duration == timedelta(seconds=100)
        assert route.start_time == START
        assert route.total_distance_m == pytest.approx(total_distance(points))
        assert route.id

    def test_build_route_without_timestamps(self):
        route = build_route(make_track(count=5, seconds=None), name="Untimed")
        assert route.total_duration is None
        assert route.moving_duration is None
        assert not route.has_pace


class TestPrepareRoute:
    def test_flags_then_simplifies(self):
        points = make_track(count=30, seconds=5)
        # A 2 minute stop before sample 15
        points = points[:15] + [
            GeoPoint(lat=p.lat, lng=p.lng, elevation=p.elevation, timestamp=p.timestamp + timedelta(minutes=2))
            for p in points[15:]
        ]
        route = build_route(points, name="Stop and go")
        prepared = prepare_route(route, epsilon=0.5)

        # Straight line: only the endpoints survive
        assert len(prepared.points) == 2
        assert prepared.total_distance_m == route.total_distance_m
        assert prepared.moving_duration == route.moving_duration

    def test_pause_flag_survives_on_kept_points(self):
        points = make_l_track()
        points = [
            GeoPoint(lat=p.lat, lng=p.lng, timestamp=START + timedelta(seconds=i * 5 + (60 if i >= 20 else 0)))
            for i, p in enumerate(points)
        ]
        prepared = prepare_route(build_route(points, name="L"), epsilon=5.0)
        corner = prepared.points[1]
        assert corner == points[20]
        assert corner.is_pause_resume
