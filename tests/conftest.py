"""
Pytest configuration and fixtures for route-flyover tests.

Provides sample routes, render configs and fake collaborators for the
render orchestrator.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from flyover.config import RenderConfig
from flyover.models import GeoPoint
from flyover.route import build_route

START = datetime(2024, 5, 4, 7, 30, tzinfo=timezone.utc)


def make_track(
    count: int = 50,
    lat: float = 48.8566,
    lng: float = 2.3522,
    step_deg: float = 0.0002,
    seconds: Optional[int] = 5,
    elevation: Optional[float] = 35.0,
) -> List[GeoPoint]:
    """A straight north-bound track, one sample every `seconds` (None = untimed)."""
    points = []
    for i in range(count):
        points.append(GeoPoint(
            lat=lat + i * step_deg,
            lng=lng,
            elevation=None if elevation is None else elevation + i * 0.5,
            timestamp=None if seconds is None else START + timedelta(seconds=i * seconds),
        ))
    return points


def make_l_track() -> List[GeoPoint]:
    """North for ~440 m then east for ~290 m, samples every ~22 m."""
    points = [GeoPoint(lat=48.8566 + i * 0.0002, lng=2.3522) for i in range(21)]
    corner = points[-1]
    points += [GeoPoint(lat=corner.lat, lng=corner.lng + i * 0.0003) for i in range(1, 11)]
    return points


@pytest.fixture
def straight_track():
    return make_track()


@pytest.fixture
def l_track():
    return make_l_track()


@pytest.fixture
def sample_route(straight_track):
    return build_route(straight_track, name="Morning Run", route_id="route-1")


@pytest.fixture
def small_config():
    """A short, tiny render: 4 intro/outro frames and a 20 frame route phase."""
    return RenderConfig(
        duration_seconds=2,
        fps=10,
        transition_frames=4,
        settle_delay_ms=0,
        transition_settle_delay_ms=0,
    )


SAMPLE_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk>
    <name>Lunch Ride</name>
    <trkseg>
      <trkpt lat="45.0000" lon="7.0000"><ele>240.0</ele><time>2024-05-04T12:00:00Z</time></trkpt>
      <trkpt lat="45.0010" lon="7.0000"><ele>242.0</ele><time>2024-05-04T12:00:10Z</time></trkpt>
      <trkpt lat="45.0020" lon="7.0000"><ele>245.0</ele><time>2024-05-04T12:00:20Z</time></trkpt>
      <trkpt lat="45.0030" lon="7.0010"><ele>243.0</ele><time>2024-05-04T12:01:20Z</time></trkpt>
      <trkpt lat="45.0040" lon="7.0020"><ele>250.0</ele><time>2024-05-04T12:01:30Z</time></trkpt>
    </trkseg>
  </trk>
</gpx>
"""


@pytest.fixture
def sample_gpx_text():
    return SAMPLE_GPX


@pytest.fixture
def sample_gpx_file(tmp_path):
    path = tmp_path / "ride.gpx"
    path.write_text(SAMPLE_GPX)
    return str(path)
