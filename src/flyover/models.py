"""Core value types: GPS samples, routes and bounding boxes."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    """One route sample. Equality and hashing use (lat, lng) only."""

    lat: float
    lng: float
    elevation: Optional[float] = field(default=None, compare=False)
    timestamp: Optional[datetime] = field(default=None, compare=False)
    # True for the first sample recorded after a pause in the activity
    is_pause_resume: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude out of range: {self.lng}")

    def distance_to(self, other: "GeoPoint") -> float:
        """Haversine distance in meters."""
        phi1, phi2 = math.radians(self.lat), math.radians(other.lat)
        dphi = math.radians(other.lat - self.lat)
        dlam = math.radians(other.lng - self.lng)
        a = (math.sin(dphi / 2) ** 2
             + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2)
        return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    def lerp(self, other: "GeoPoint", t: float) -> "GeoPoint":
        """Point at fraction t of the way to `other`.

        Elevation is blended when both ends have one, otherwise whichever
        exists is kept. Timestamps are only blended when both ends carry one.
        The pause flag comes from `other`, so samples inserted in front of a
        pause-resume point keep marking the pause window.
        """
        if self.elevation is not None and other.elevation is not None:
            elevation = self.elevation + (other.elevation - self.elevation) * t
        else:
            elevation = self.elevation if self.elevation is not None else other.elevation

        timestamp = None
        if self.timestamp is not None and other.timestamp is not None:
            timestamp = self.timestamp + (other.timestamp - self.timestamp) * t

        return GeoPoint(
            lat=self.lat + (other.lat - self.lat) * t,
            lng=self.lng + (other.lng - self.lng) * t,
            elevation=elevation,
            timestamp=timestamp,
            is_pause_resume=other.is_pause_resume,
        )

    def with_pause_flag(self, flag: bool = True) -> "GeoPoint":
        return replace(self, is_pause_resume=flag)


@dataclass(frozen=True)
class Bounds:
    south: float
    west: float
    north: float
    east: float

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(lat=(self.south + self.north) / 2, lng=(self.west + self.east) / 2)


@dataclass(frozen=True)
class Route:
    """A parsed activity. Processing stages return new Route values."""

    id: str
    name: str
    points: tuple[GeoPoint, ...]
    total_distance_m: float
    total_duration: Optional[timedelta] = None
    moving_duration: Optional[timedelta] = None
    start_time: Optional[datetime] = None
    source_file: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("a route needs at least one point")
        # Accept any sequence, store an immutable tuple
        object.__setattr__(self, "points", tuple(self.points))

    @property
    def has_elevation(self) -> bool:
        return any(p.elevation is not None for p in self.points)

    @property
    def elevation_gain(self) -> float:
        """Sum of positive elevation changes between consecutive samples."""
        gain = 0.0
        for prev, curr in zip(self.points, self.points[1:]):
            if prev.elevation is not None and curr.elevation is not None:
                gain += max(0.0, curr.elevation - prev.elevation)
        return gain

    @property
    def has_pace(self) -> bool:
        return self.total_duration is not None and self.total_distance_m > 0

    @property
    def average_pace_min_per_km(self) -> Optional[float]:
        """Average pace over the moving time, or elapsed time when unknown."""
        if not self.has_pace:
            return None
        duration = self.moving_duration or self.total_duration
        dist_km = self.total_distance_m / 1000.0
        if dist_km <= 0 or duration.total_seconds() <= 0:
            return None
        return duration.total_seconds() / 60.0 / dist_km

    def __str__(self) -> str:
        return f"Route({self.name!r}, {len(self.points)} points, {self.total_distance_m:.0f} m)"
