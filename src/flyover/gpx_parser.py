"""Parse GPX files into routes."""

import os
from datetime import datetime, timezone
from typing import Optional

import gpxpy
import gpxpy.gpx

from .models import GeoPoint, Route
from .pauses import mark_pause_resumes
from .route import build_route

MAX_GPX_SIZE = 50 * 1024 * 1024  # 50 MB
DEFAULT_ROUTE_NAME = "Untitled Route"
_HTML_SIGNATURES = ["<!doctype html", "<html", "<head", "<body"]


class RouteParseError(ValueError):
    """The input could not be turned into a route."""


def _utc(time: Optional[datetime]) -> Optional[datetime]:
    """Naive GPX times are UTC; make them aware so they compare with zoned ones."""
    if time is not None and time.tzinfo is None:
        return time.replace(tzinfo=timezone.utc)
    return time


def _to_point(point: gpxpy.gpx.GPXTrackPoint) -> GeoPoint:
    return GeoPoint(
        lat=point.latitude,
        lng=point.longitude,
        elevation=point.elevation,
        timestamp=_utc(point.time),
    )


def _collect(gpx: gpxpy.gpx.GPX) -> tuple[list[GeoPoint], Optional[str]]:
    """Track points (and first track name); falls back to route points."""
    points = []
    name = None
    for track in gpx.tracks:
        name = name or track.name
        for segment in track.segments:
            points.extend(_to_point(p) for p in segment.points)
    if points:
        return points, name

    name = None
    for rte in gpx.routes:
        name = name or rte.name
        points.extend(_to_point(p) for p in rte.points)
    return points, name


def parse_gpx_string(content: str, source_file: Optional[str] = None) -> Route:
    """Parse GPX XML text into a Route with pause flags and totals."""
    try:
        gpx = gpxpy.parse(content)
    except gpxpy.gpx.GPXException as e:
        if any(sig in content[:500].lower() for sig in _HTML_SIGNATURES):
            raise RouteParseError(
                "The file appears to be an HTML web page, not a GPX file.\n"
                "If you downloaded this from Strava or another activity tracker,\n"
                "export the GPX file first: the activity page URL is not a\n"
                "direct download link."
            ) from None
        raise RouteParseError(f"Failed to parse GPX: {e}") from None

    try:
        points, track_name = _collect(gpx)
    except ValueError as e:
        raise RouteParseError(f"Invalid coordinates in GPX: {e}") from None
    if not points:
        raise RouteParseError("No valid GPS points found in GPX file")

    name = gpx.name or track_name or DEFAULT_ROUTE_NAME
    return build_route(mark_pause_resumes(points), name=name, source_file=source_file)


def parse_gpx(file_path: str) -> Route:
    """Parse a GPX file and return a Route."""
    if not os.path.exists(file_path):
        raise RouteParseError(f"File not found: {file_path}")
    file_size = os.path.getsize(file_path)
    if file_size > MAX_GPX_SIZE:
        raise RouteParseError(
            f"GPX file too large ({file_size / 1024 / 1024:.1f} MB, max 50 MB)"
        )

    with open(file_path, "r", errors="replace") as f:
        content = f.read()
    return parse_gpx_string(content, source_file=file_path)
