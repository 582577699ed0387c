"""Renderer: sequence intro, route, outro and slideshow frames into a video."""

import asyncio
import enum
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from .camera import CameraAnimationController, CameraPose, ease_in_out_cubic, interpolate_pose
from .config import RenderConfig
from .models import Bounds, GeoPoint, Route
from .route import compute_bounds
from .stats import FrameStats, FrameStatsBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Share of the progress bar covered by frame capture; sealing the file is the rest
CAPTURE_PROGRESS_SHARE = 0.95
SLIDE_BLUR_SIGMA = 20.0
SLIDE_FADE_FRAMES = 10
SLIDE_MIN_SCALE = 0.95


class RenderPhase(enum.Enum):
    INITIALIZING = "initializing"
    ZOOM_IN_INTRO = "zoom_in_intro"
    CAPTURING_ROUTE = "capturing_route"
    ZOOM_OUT_OUTRO = "zoom_out_outro"
    ENDING_SLIDESHOW = "ending_slideshow"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RenderPhase.COMPLETE, RenderPhase.ERROR, RenderPhase.CANCELLED)


CAPTURE_PHASES = frozenset({
    RenderPhase.ZOOM_IN_INTRO,
    RenderPhase.CAPTURING_ROUTE,
    RenderPhase.ZOOM_OUT_OUTRO,
    RenderPhase.ENDING_SLIDESHOW,
})


class CollaboratorError(RuntimeError):
    """The map surface, frame capture or encoder failed during a run."""


class RenderCancelled(Exception):
    """Raised inside the frame loop once a cancel request is observed."""


@dataclass(frozen=True)
class SlideFrame:
    """One frame of an ending-image slide."""
    image_path: str
    scale: float
    opacity: float
    blur_sigma: float = SLIDE_BLUR_SIGMA


def compute_slide_frame(image_path: str, frame: int, frames_per_image: int) -> SlideFrame:
    """Scale up 0.95 -> 1.0 (ease-out quad) and fade in over the first frames."""
    t = frame / frames_per_image
    eased = 1.0 - (1.0 - t) * (1.0 - t)
    return SlideFrame(
        image_path=image_path,
        scale=SLIDE_MIN_SCALE + (1.0 - SLIDE_MIN_SCALE) * eased,
        opacity=max(0.0, min(1.0, frame / SLIDE_FADE_FRAMES)),
    )


# ── Collaborators ───────────────────────────────────────────────────────


class MapSurface(Protocol):
    async def set_camera(self, pose: CameraPose) -> None: ...

    async def set_route_trail(self, points: Sequence[GeoPoint]) -> None: ...

    async def compute_overview_pose(self, bounds: Bounds, padding: int) -> CameraPose: ...

    async def set_overlay(self, slide: Optional[SlideFrame]) -> None: ...

    async def set_stats(self, stats: Optional[FrameStats]) -> None: ...


@runtime_checkable
class FrameReadySurface(Protocol):
    """A surface that can tell when the last camera change is drawn."""

    async def wait_until_rendered(self) -> None: ...


class FrameCapture(Protocol):
    async def capture(self, pixel_scale: float) -> Optional[bytes]: ...


class VideoEncoder(Protocol):
    async def setup(self, config: RenderConfig) -> str: ...

    async def append(self, frame: bytes) -> None: ...

    async def finish(self) -> None: ...

    async def abort(self) -> None: ...


# ── Progress ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RenderProgress:
    phase: RenderPhase
    frames_captured: int
    total_frames: int
    elapsed: float  # seconds since the run started

    @property
    def capture_fraction(self) -> float:
        if self.total_frames <= 0:
            return 0.0
        return min(1.0, self.frames_captured / self.total_frames)

    @property
    def overall_progress(self) -> float:
        if self.phase is RenderPhase.INITIALIZING:
            return 0.0
        if self.phase is RenderPhase.FINALIZING:
            return CAPTURE_PROGRESS_SHARE
        if self.phase is RenderPhase.COMPLETE:
            return 1.0
        return self.capture_fraction * CAPTURE_PROGRESS_SHARE

    @property
    def eta_seconds(self) -> Optional[float]:
        """Linear estimate from the capture rate so far; None before frame 1."""
        fraction = self.capture_fraction
        if self.frames_captured == 0 or fraction <= 0:
            return None
        return self.elapsed / fraction - self.elapsed

    @property
    def eta_text(self) -> str:
        remaining = self.eta_seconds
        if remaining is None:
            return "Calculating..."
        if remaining < 60:
            return f"{round(remaining)}s remaining"
        return f"{math.ceil(remaining / 60)}m remaining"


@dataclass(frozen=True)
class RenderResult:
    phase: RenderPhase
    output_path: Optional[str]  # only set when phase is COMPLETE
    frames_captured: int
    frames_missed: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.phase is RenderPhase.COMPLETE


# ── Orchestrator ────────────────────────────────────────────────────────


class RenderOrchestrator:
    """Drives one render run, strictly one frame at a time.

    Every frame: push the camera/overlay to the map surface, let it settle,
    capture pixels, append them to the encoder. Cancellation is a flag
    checked between frames; collaborator failures end the run in ERROR.
    """

    def __init__(
        self,
        route: Route,
        config: RenderConfig,
        map_surface: MapSurface,
        frame_capture: FrameCapture,
        encoder: VideoEncoder,
        progress_callback: Optional[Callable[[RenderProgress], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.route = route
        self.config = config
        self.map_surface = map_surface
        self.frame_capture = frame_capture
        self.encoder = encoder
        self.progress_callback = progress_callback
        self._sleep = sleep
        self._clock = clock

        self.controller = CameraAnimationController.from_route_points(
            route.points,
            total_frame_count=config.total_frame_count,
            camera_pitch=config.camera_pitch,
            camera_zoom=config.camera_zoom,
            fps=config.fps,
        )
        self._stats = FrameStatsBuilder(route, self.controller.points, config)

        self.total_frames = (
            2 * config.transition_frames
            + self.controller.total_frames
            + len(config.ending_image_paths) * config.frames_per_slide
        )

        self._phase = RenderPhase.INITIALIZING
        self._started = False
        self._cancel_requested = False
        self._frames_captured = 0
        self._frames_missed = 0
        self._start_time: Optional[float] = None
        self._output_path: Optional[str] = None
        self._error: Optional[str] = None

    @property
    def phase(self) -> RenderPhase:
        return self._phase

    @property
    def frames_captured(self) -> int:
        return self._frames_captured

    @property
    def output_path(self) -> Optional[str]:
        """Path of the finished video; None unless the run completed."""
        return self._output_path if self._phase is RenderPhase.COMPLETE else None

    @property
    def error(self) -> Optional[str]:
        return self._error

    def progress(self) -> RenderProgress:
        elapsed = 0.0 if self._start_time is None else self._clock() - self._start_time
        return RenderProgress(
            phase=self._phase,
            frames_captured=self._frames_captured,
            total_frames=self.total_frames,
            elapsed=elapsed,
        )

    def cancel(self) -> None:
        """Request cancellation; takes effect at the next frame boundary."""
        if not self._phase.is_terminal and self._phase is not RenderPhase.FINALIZING:
            self._cancel_requested = True

    async def run(self) -> RenderResult:
        if self._started:
            raise RuntimeError("a render run can only be started once per orchestrator")
        self._started = True
        self._start_time = self._clock()

        try:
            self._set_phase(RenderPhase.INITIALIZING)
            self._output_path = await self._call("encoder setup", self.encoder.setup(self.config))
            self._check_cancelled()
            overview = await self._call(
                "overview camera",
                self.map_surface.compute_overview_pose(
                    compute_bounds(self.route.points), self.config.overview_padding,
                ),
            )

            await self._capture_intro(overview)
            await self._capture_route()
            await self._capture_outro(overview)
            if self.config.ending_image_paths:
                await self._capture_slideshow()

            self._check_cancelled()
            self._set_phase(RenderPhase.FINALIZING)
            await self._call("encoder finish", self.encoder.finish())
            self._set_phase(RenderPhase.COMPLETE)
        except RenderCancelled:
            await self._stop(RenderPhase.CANCELLED)
        except CollaboratorError as e:
            self._error = str(e)
            logger.error("Render failed in %s: %s", self._phase.value, e)
            await self._stop(RenderPhase.ERROR)
        except asyncio.CancelledError:
            await self._stop(RenderPhase.CANCELLED)
            raise
        except Exception as e:
            # Not a collaborator failure (progress callback, stats): clean up, then propagate
            self._error = f"{type(e).__name__}: {e}"
            logger.exception("Render crashed in %s", self._phase.value)
            await self._stop(RenderPhase.ERROR, report=False)
            raise

        return RenderResult(
            phase=self._phase,
            output_path=self.output_path,
            frames_captured=self._frames_captured,
            frames_missed=self._frames_missed,
            error=self._error,
        )

    async def _capture_intro(self, overview: CameraPose) -> None:
        """Zoom from the overview down to the first route pose."""
        self._set_phase(RenderPhase.ZOOM_IN_INTRO)
        first = self.controller.seek_to_frame(0)
        await self._call("route trail", self.map_surface.set_route_trail(self.controller.points[:1]))
        await self._capture_transition(overview, first)

    async def _capture_route(self) -> None:
        self._set_phase(RenderPhase.CAPTURING_ROUTE)
        points = self.controller.points
        for i in range(self.controller.total_frames):
            self._check_cancelled()
            pose = self.controller.seek_to_frame(i)
            await self._call("camera update", self.map_surface.set_camera(pose))
            await self._call("route trail", self.map_surface.set_route_trail(points[:i + 1]))
            if self.config.show_overlay:
                await self._call("stats overlay", self.map_surface.set_stats(self._stats.build(i)))
            await self._capture_frame(self.config.settle_delay_ms)
        if self.config.show_overlay:
            await self._call("stats overlay", self.map_surface.set_stats(None))

    async def _capture_outro(self, overview: CameraPose) -> None:
        """Reveal the whole trail and pull back out to the overview."""
        self._set_phase(RenderPhase.ZOOM_OUT_OUTRO)
        last = self.controller.seek_to_frame(self.controller.last_frame)
        await self._call("route trail", self.map_surface.set_route_trail(self.controller.points))
        await self._capture_transition(last, overview)

    async def _capture_transition(self, start: CameraPose, end: CameraPose) -> None:
        n = self.config.transition_frames
        for i in range(n):
            self._check_cancelled()
            t = i / max(1, n - 1)
            pose = interpolate_pose(start, end, ease_in_out_cubic(t), frame_index=i)
            await self._call("camera update", self.map_surface.set_camera(pose))
            await self._capture_frame(self.config.transition_settle_delay_ms)

    async def _capture_slideshow(self) -> None:
        self._set_phase(RenderPhase.ENDING_SLIDESHOW)
        frames_per_image = self.config.frames_per_slide
        for image_path in self.config.ending_image_paths:
            for frame in range(frames_per_image):
                self._check_cancelled()
                slide = compute_slide_frame(image_path, frame, frames_per_image)
                await self._call("slide overlay", self.map_surface.set_overlay(slide))
                await self._capture_frame(self.config.transition_settle_delay_ms)
        await self._call("slide overlay", self.map_surface.set_overlay(None))

    async def _capture_frame(self, settle_delay_ms: int) -> None:
        await self._settle(settle_delay_ms)
        buffer = await self._call("frame capture", self.frame_capture.capture(self.config.pixel_scale))
        # A capture that was in flight when cancel arrived is dropped
        self._check_cancelled()
        if buffer is None:
            self._frames_missed += 1
            logger.debug("Frame %d: capture returned nothing, skipping append", self._frames_captured)
        else:
            await self._call("encoder append", self.encoder.append(buffer))
        self._frames_captured += 1
        self._report()

    async def _settle(self, delay_ms: int) -> None:
        if isinstance(self.map_surface, FrameReadySurface):
            await self._call("map render", self.map_surface.wait_until_rendered())
        elif delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (asyncio.CancelledError, RenderCancelled):
            raise
        except Exception as e:
            raise CollaboratorError(f"{what} failed: {e}") from e

    def _check_cancelled(self) -> None:
        if self._cancel_requested:
            raise RenderCancelled()

    def _set_phase(self, phase: RenderPhase) -> None:
        if phase is not self._phase:
            logger.debug("Render phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        self._report()

    def _report(self) -> None:
        if self.progress_callback:
            self.progress_callback(self.progress())

    async def _stop(self, phase: RenderPhase, report: bool = True) -> None:
        """End the run without sealing the file; the partial output is discarded.

        The encoder is aborted before progress is reported, so a failing
        progress callback cannot leave FFmpeg running.
        """
        logger.debug("Render phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        logger.warning(
            "Render %s after %d/%d frames", phase.value, self._frames_captured, self.total_frames,
        )
        if self._output_path is not None:
            try:
                await self.encoder.abort()
            except Exception as e:
                logger.warning("Could not abort encoder cleanly: %s", e)
        if report:
            self._report()
