"""Activity statistics for overlays and summaries."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

import numpy as np
from scipy.ndimage import gaussian_filter1d

from .config import RenderConfig, SpeedFormat
from .models import GeoPoint, Route
from .route import compute_cumulative_distances

SPEED_WINDOW = 10
# Below this a pace number (min/km) is meaningless
MIN_PACE_SPEED_KMH = 0.5


@dataclass(frozen=True)
class StatItem:
    label: str
    value: str
    unit: str


@dataclass(frozen=True)
class FrameStats:
    """What the overlay shows for one frame."""
    title: Optional[str]
    items: tuple[StatItem, ...]


def format_distance(meters: float) -> tuple[str, str]:
    """(value, unit): km with one decimal from 1 km up, whole meters below."""
    if meters >= 1000:
        return f"{meters / 1000:.1f}", "km"
    return f"{meters:.0f}", "m"


def format_duration(duration: Optional[timedelta]) -> str:
    if duration is None:
        return "N/A"
    total = int(duration.total_seconds())
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {seconds}s"


def format_pace(min_per_km: Optional[float]) -> str:
    """Pace as m:ss, e.g. 6:52."""
    if min_per_km is None or min_per_km <= 0:
        return "N/A"
    minutes = int(min_per_km)
    seconds = round((min_per_km - minutes) * 60)
    if seconds == 60:
        minutes, seconds = minutes + 1, 0
    return f"{minutes}:{seconds:02d}"


def compute_elevation_gain(points: Sequence[GeoPoint], sigma: float = 10.0) -> float:
    """Total climb after smoothing elevation, which removes GPS jitter."""
    elevs = np.array([p.elevation for p in points if p.elevation is not None], dtype=float)
    if len(elevs) < 2:
        return 0.0
    if sigma > 0:
        elevs = gaussian_filter1d(elevs, sigma=sigma)
    return float(np.sum(np.clip(np.diff(elevs), 0, None)))


def average_speed_kmh(route: Route) -> Optional[float]:
    pace = route.average_pace_min_per_km
    if pace is None or pace <= 0:
        return None
    return 60.0 / pace


def smoothed_speed_kmh(points: Sequence[GeoPoint], index: int, window: int = SPEED_WINDOW) -> Optional[float]:
    """Speed around `index` from real timestamps, never spanning a pause.

    The window is shrunk so it starts at the last pause-resume sample at or
    before `index` and ends before the next one after it. Returns None when
    no usable span or timestamps remain.
    """
    n = len(points)
    if n < 2:
        return None
    start = int(np.clip(index - window, 0, n - 1))
    end = int(np.clip(index + window, 0, n - 1))

    for i in range(start + 1, index + 1):
        if points[i].is_pause_resume:
            start = i
    for i in range(index + 1, end + 1):
        if points[i].is_pause_resume:
            end = i - 1
            break

    if end <= start:
        return None
    first, last = points[start], points[end]
    if first.timestamp is None or last.timestamp is None:
        return None
    seconds = (last.timestamp - first.timestamp).total_seconds()
    if seconds <= 0:
        return None

    dist = sum(points[i - 1].distance_to(points[i]) for i in range(start + 1, end + 1))
    return dist / seconds * 3.6


class FrameStatsBuilder:
    """Builds the overlay content for each route frame."""

    def __init__(self, route: Route, points: Sequence[GeoPoint], config: RenderConfig):
        self.route = route
        self.points = list(points)
        self.config = config
        self._distances = compute_cumulative_distances(self.points)

    def build(self, index: int) -> FrameStats:
        config = self.config
        idx = int(np.clip(index, 0, len(self.points) - 1))
        items: list[StatItem] = []

        if config.show_pace and idx > 0:
            speed = smoothed_speed_kmh(self.points, idx)
            if speed is None:
                speed = average_speed_kmh(self.route)
            if speed is not None:
                if config.speed_format is SpeedFormat.SPEED:
                    items.append(StatItem("Speed", f"{speed:.1f}", "km/h"))
                elif speed > MIN_PACE_SPEED_KMH:
                    items.append(StatItem("Pace", format_pace(60.0 / speed), "/km"))

        if config.show_distance:
            value, unit = format_distance(float(self._distances[idx]))
            items.append(StatItem("Distance", value, unit))

        if config.show_elevation:
            elevation = self.points[idx].elevation
            if elevation is not None:
                items.append(StatItem("Elevation", f"{elevation:.0f}", "m"))

        title = self.route.name if config.show_activity_name else None
        return FrameStats(title=title, items=tuple(items))


def summarize_route(route: Route) -> list[tuple[str, str]]:
    """(label, value) rows for the CLI summary."""
    value, unit = format_distance(route.total_distance_m)
    rows = [
        ("Points", str(len(route.points))),
        ("Distance", f"{value} {unit}"),
        ("Elapsed", format_duration(route.total_duration)),
        ("Moving", format_duration(route.moving_duration)),
    ]
    if route.has_pace:
        rows.append(("Pace", f"{format_pace(route.average_pace_min_per_km)} /km"))
    if route.has_elevation:
        rows.append(("Elevation gain", f"{compute_elevation_gain(route.points):.0f} m"))
    return rows
