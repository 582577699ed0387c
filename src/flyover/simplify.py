"""Ramer-Douglas-Peucker route simplification."""

from dataclasses import replace

from .models import GeoPoint, Route

DEFAULT_EPSILON_M = 5.0


def _perpendicular_distance(point: GeoPoint, start: GeoPoint, end: GeoPoint) -> float:
    """Distance in meters from `point` to the chord start-end.

    The projection is done on raw lat/lng (planar approximation, fine for the
    short spans RDP works on); the distance to the projected point is then
    measured with haversine so epsilon stays in meters.
    """
    dx = end.lng - start.lng
    dy = end.lat - start.lat
    if dx == 0 and dy == 0:
        return point.distance_to(start)

    t = ((point.lng - start.lng) * dx + (point.lat - start.lat) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    projected = GeoPoint(lat=start.lat + t * dy, lng=start.lng + t * dx)
    return point.distance_to(projected)


def simplify(points: list[GeoPoint], epsilon: float = DEFAULT_EPSILON_M) -> list[GeoPoint]:
    """Simplify a polyline, keeping first and last point and original order.

    Spans whose farthest interior point lies within `epsilon` meters of the
    chord collapse to their endpoints; otherwise the span is split at that
    point. Uses a work stack instead of recursion so long tracks are safe.
    """
    n = len(points)
    if n < 3:
        return list(points)

    keep = [False] * n
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]

    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue

        max_distance = 0.0
        max_index = start
        for i in range(start + 1, end):
            d = _perpendicular_distance(points[i], points[start], points[end])
            if d > max_distance:
                max_distance = d
                max_index = i

        if max_distance > epsilon:
            keep[max_index] = True
            stack.append((start, max_index))
            stack.append((max_index, end))

    return [p for p, k in zip(points, keep) if k]


def simplify_route(route: Route, epsilon: float = DEFAULT_EPSILON_M) -> Route:
    """Return a copy of `route` with simplified points. Totals are kept."""
    return replace(route, points=tuple(simplify(list(route.points), epsilon)))
