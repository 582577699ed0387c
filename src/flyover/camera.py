"""Camera system: turn interpolated route points into per-frame camera poses."""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

import numpy as np

from .models import GeoPoint
from .route import compute_bearing, interpolate_to_count, smoothed_bearing

logger = logging.getLogger(__name__)

MIN_SPEED = 0.25
MAX_SPEED = 4.0
MIN_ZOOM = 14.0
MAX_ZOOM = 17.0
BEARING_WINDOW = 5
# Turns sharper than this zoom the camera out for context
SHARP_TURN_DEG = 30.0
MAX_TURN_ZOOM_OUT = 1.5


@dataclass(frozen=True)
class CameraPose:
    frame_index: int
    center: GeoPoint
    bearing: float  # degrees, 0=north
    pitch: float  # degrees, 0=top-down
    zoom: float
    progress: float  # 0..1 along the route


def ease_in_out_cubic(t: float) -> float:
    """Cubic ease-in-out: slow start, slow finish."""
    t = max(0.0, min(1.0, t))
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def interpolate_pose(start: CameraPose, end: CameraPose, eased: float, frame_index: int) -> CameraPose:
    """Blend two poses field by field with an already-eased fraction."""

    def lerp(a: float, b: float) -> float:
        return a + (b - a) * eased

    return CameraPose(
        frame_index=frame_index,
        center=GeoPoint(
            lat=lerp(start.center.lat, end.center.lat),
            lng=lerp(start.center.lng, end.center.lng),
        ),
        bearing=lerp(start.bearing, end.bearing) % 360.0,
        pitch=lerp(start.pitch, end.pitch),
        zoom=lerp(start.zoom, end.zoom),
        progress=lerp(start.progress, end.progress),
    )


class CameraAnimationController:
    """Frame-by-frame camera player over an interpolated route.

    Used for live preview (``play`` + ``playback``) and as a plain
    "pose for frame N" function while rendering (``seek_to_frame``). All state
    lives on the instance and only one consumer drives it at a time.
    """

    def __init__(
        self,
        points: Sequence[GeoPoint],
        camera_pitch: float = 60.0,
        camera_zoom: float = 15.5,
        fps: int = 30,
    ):
        if not points:
            raise ValueError("camera animation needs at least one point")
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.points = list(points)
        self.camera_pitch = camera_pitch
        self.camera_zoom = camera_zoom
        self.fps = fps

        self._current_frame = 0
        self._speed = 1.0
        self._playing = False
        self._complete = False
        self._disposed = False

    @classmethod
    def from_route_points(
        cls,
        points: Sequence[GeoPoint],
        total_frame_count: int,
        camera_pitch: float = 60.0,
        camera_zoom: float = 15.5,
        fps: int = 30,
    ) -> "CameraAnimationController":
        """Resample `points` to about one point per frame and wrap them."""
        interpolated = interpolate_to_count(points, target_count=total_frame_count)
        logger.debug(
            "Interpolated %d points to %d frames (target %d)",
            len(points), len(interpolated), total_frame_count,
        )
        return cls(interpolated, camera_pitch=camera_pitch, camera_zoom=camera_zoom, fps=fps)

    @property
    def total_frames(self) -> int:
        return len(self.points)

    @property
    def current_frame(self) -> int:
        return self._current_frame

    @property
    def last_frame(self) -> int:
        return self.total_frames - 1

    @property
    def progress(self) -> float:
        if self.total_frames <= 1:
            return 0.0
        return self._current_frame / self.last_frame

    @property
    def speed_multiplier(self) -> float:
        return self._speed

    @property
    def frame_interval(self) -> float:
        """Seconds between playback ticks at the current speed (ms precision)."""
        return round(1000 / (self.fps * self._speed)) / 1000

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def play(self) -> bool:
        """Start or resume playback. Returns False when nothing changed."""
        if self._disposed or self._playing:
            return False
        if self._current_frame >= self.last_frame:
            self._current_frame = 0
        self._playing = True
        self._complete = False
        return True

    def pause(self) -> None:
        self._playing = False

    def restart(self) -> CameraPose:
        self.pause()
        self._current_frame = 0
        return self.current_pose()

    def seek_to_frame(self, frame: int) -> CameraPose:
        self._current_frame = int(np.clip(frame, 0, self.last_frame))
        return self.current_pose()

    def seek_to_progress(self, progress: float) -> CameraPose:
        return self.seek_to_frame(round(progress * self.last_frame))

    def set_speed(self, multiplier: float) -> None:
        # Playback re-reads frame_interval every tick, so a running playback
        # continues from the same frame at the new rate.
        self._speed = float(np.clip(multiplier, MIN_SPEED, MAX_SPEED))

    def advance(self) -> Optional[CameraPose]:
        """One playback tick: step one frame forward and return its pose.

        Reaching the last frame stops playback and marks the run complete.
        Returns None when not playing.
        """
        if not self._playing:
            return None
        if self._current_frame >= self.last_frame:
            self._finish()
            return None
        self._current_frame += 1
        pose = self.current_pose()
        if self._current_frame >= self.last_frame:
            self._finish()
        return pose

    async def playback(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncIterator[CameraPose]:
        """Yield one pose per tick until playback stops.

        Each pose is handed to the consumer before the next tick is
        scheduled, so frames arrive in order and never faster than the
        configured rate. Pass a fake `sleep` to drive it without a real clock.
        """
        while self._playing and not self._disposed:
            await sleep(self.frame_interval)
            pose = self.advance()
            if pose is None:
                return
            yield pose

    def dispose(self) -> None:
        self._disposed = True
        self._playing = False

    def __enter__(self) -> "CameraAnimationController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def _finish(self) -> None:
        self._playing = False
        self._complete = True

    def current_pose(self) -> CameraPose:
        index = int(np.clip(self._current_frame, 0, self.last_frame))
        return CameraPose(
            frame_index=self._current_frame,
            center=self.points[index],
            bearing=smoothed_bearing(self.points, index, window=BEARING_WINDOW),
            pitch=self.camera_pitch,
            zoom=self.dynamic_zoom(index),
            progress=self.progress,
        )

    def dynamic_zoom(self, index: int) -> float:
        """Zoom out a little on sharp turns so the viewer keeps context."""
        if index < 2 or index >= self.total_frames - 2:
            return self.camera_zoom

        before = compute_bearing(self.points[index - 1], self.points[index])
        after = compute_bearing(self.points[index], self.points[index + 1])
        turn = abs(after - before)
        if turn > 180:
            turn = 360 - turn

        if turn > SHARP_TURN_DEG:
            zoom_out = turn / 180 * MAX_TURN_ZOOM_OUT
            return float(np.clip(self.camera_zoom - zoom_out, MIN_ZOOM, MAX_ZOOM))
        return self.camera_zoom
