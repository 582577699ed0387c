"""Route processing: bearings, interpolation, distances and route preparation."""

import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Optional, Sequence

import numpy as np

from .models import Bounds, GeoPoint, Route
from .pauses import PAUSE_FLAG_THRESHOLD, mark_pause_resumes, moving_duration
from .simplify import DEFAULT_EPSILON_M, simplify

DEFAULT_SPACING_M = 5.0


def compute_cumulative_distances(points: Sequence[GeoPoint]) -> np.ndarray:
    """Compute cumulative arc-length distance along the track."""
    dists = np.zeros(len(points))
    for i in range(1, len(points)):
        dists[i] = dists[i - 1] + points[i - 1].distance_to(points[i])
    return dists


def total_distance(points: Sequence[GeoPoint]) -> float:
    if len(points) < 2:
        return 0.0
    return float(compute_cumulative_distances(points)[-1])


def compute_bearing(start: GeoPoint, end: GeoPoint) -> float:
    """Initial great-circle bearing in degrees (0=north, 90=east), in [0, 360)."""
    phi1, phi2 = np.radians(start.lat), np.radians(end.lat)
    dlam = np.radians(end.lng - start.lng)
    x = np.sin(dlam) * np.cos(phi2)
    y = np.cos(phi1) * np.sin(phi2) - np.sin(phi1) * np.cos(phi2) * np.cos(dlam)
    bearing = np.degrees(np.arctan2(x, y))
    # +360 first: a tiny negative angle would otherwise wrap to exactly 360.0
    return float((bearing + 360.0) % 360.0)


def smoothed_bearing(points: Sequence[GeoPoint], index: int, window: int = 3) -> float:
    """Mean heading of the segments around `index`.

    Bearings are averaged as unit vectors (sin/cos) so headings on either
    side of north do not cancel out to south.
    """
    n = len(points)
    if n < 2:
        return 0.0

    start = int(np.clip(index - window, 0, n - 2))
    end = int(np.clip(index + window, 1, n - 1))
    if end <= start:
        return 0.0

    rads = np.radians([compute_bearing(points[i], points[i + 1]) for i in range(start, end)])
    mean_sin = float(np.mean(np.sin(rads)))
    mean_cos = float(np.mean(np.cos(rads)))
    bearing = np.degrees(np.arctan2(mean_sin, mean_cos))
    return float((bearing + 360.0) % 360.0)


def interpolate(points: Sequence[GeoPoint], spacing_m: float = DEFAULT_SPACING_M) -> list[GeoPoint]:
    """Resample the polyline to points `spacing_m` meters apart.

    Walks the segments carrying the distance left over from the previous
    segment, and emits a linearly interpolated point every time the running
    distance reaches the spacing. First and last input points are always kept.
    """
    if len(points) < 2 or spacing_m <= 0:
        return list(points)

    result = [points[0]]
    carried = 0.0

    for a, b in zip(points, points[1:]):
        segment = a.distance_to(b)
        offset = 0.0

        if carried > 0:
            needed = spacing_m - carried
            if needed > segment:
                carried += segment
                continue
            offset = needed
            result.append(a.lerp(b, offset / segment))

        while offset + spacing_m <= segment:
            offset += spacing_m
            result.append(a.lerp(b, offset / segment))

        carried = segment - offset

    if result[-1] != points[-1]:
        result.append(points[-1])
    return result


def interpolate_to_count(points: Sequence[GeoPoint], target_count: int) -> list[GeoPoint]:
    """Resample to roughly `target_count` evenly spaced points.

    The spacing is derived from the total length, so the result can drift a
    point or two from the target at segment boundaries.
    """
    if len(points) < 2 or target_count < 2:
        return list(points)
    length = total_distance(points)
    if length <= 0:
        return list(points)
    return interpolate(points, spacing_m=length / (target_count - 1))


def compute_bounds(points: Sequence[GeoPoint]) -> Bounds:
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return Bounds(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))


def build_route(
    points: Sequence[GeoPoint],
    name: str,
    route_id: Optional[str] = None,
    source_file: Optional[str] = None,
) -> Route:
    """Assemble a Route and its totals from raw samples."""
    total_duration = None
    if points[0].timestamp is not None and points[-1].timestamp is not None:
        total_duration = points[-1].timestamp - points[0].timestamp
    return Route(
        id=route_id or str(uuid.uuid4()),
        name=name,
        points=tuple(points),
        total_distance_m=total_distance(points),
        total_duration=total_duration,
        moving_duration=moving_duration(points),
        start_time=points[0].timestamp,
        source_file=source_file,
    )


def prepare_route(
    route: Route,
    epsilon: float = DEFAULT_EPSILON_M,
    pause_threshold: timedelta = PAUSE_FLAG_THRESHOLD,
) -> Route:
    """Flag pause-resume samples, then drop GPS noise with RDP.

    Distance and duration totals stay those of the recorded track.
    """
    flagged = mark_pause_resumes(route.points, threshold=pause_threshold)
    return replace(route, points=tuple(simplify(flagged, epsilon)))
