"""Pause detection and moving-time accounting from GPS timestamps.

Two thresholds are in play and they are configured independently: a short one
flags the sample that resumes recording after a gap (used by speed display so
it never averages across a pause) and a longer one decides which gaps are
subtracted from the elapsed time.
"""

from datetime import timedelta
from typing import Optional, Sequence

from .models import GeoPoint

PAUSE_FLAG_THRESHOLD = timedelta(seconds=15)
MIN_PAUSE_DURATION = timedelta(seconds=30)


def _gaps(points: Sequence[GeoPoint]):
    """Yield (index, gap) for consecutive samples that both carry a timestamp."""
    for i in range(1, len(points)):
        prev = points[i - 1].timestamp
        curr = points[i].timestamp
        if prev is None or curr is None:
            continue
        yield i, curr - prev


def mark_pause_resumes(
    points: Sequence[GeoPoint],
    threshold: timedelta = PAUSE_FLAG_THRESHOLD,
) -> list[GeoPoint]:
    """Flag every sample that follows a gap longer than `threshold`.

    Returns a new list; coordinates are never touched and the first sample is
    never flagged.
    """
    result = list(points)
    for i, gap in _gaps(points):
        if gap > threshold:
            result[i] = result[i].with_pause_flag(True)
    return result


def moving_duration(
    points: Sequence[GeoPoint],
    min_pause: timedelta = MIN_PAUSE_DURATION,
) -> Optional[timedelta]:
    """Elapsed time minus every gap of at least `min_pause`.

    Returns None when there are fewer than two samples or either endpoint has
    no timestamp. Never negative.
    """
    if len(points) < 2:
        return None
    first = points[0].timestamp
    last = points[-1].timestamp
    if first is None or last is None:
        return None

    paused = timedelta(0)
    for _, gap in _gaps(points):
        if gap >= min_pause:
            paused += gap

    moving = (last - first) - paused
    return max(moving, timedelta(0))


def count_pauses(
    points: Sequence[GeoPoint],
    min_pause: timedelta = MIN_PAUSE_DURATION,
) -> int:
    return sum(1 for _, gap in _gaps(points) if gap >= min_pause)
