"""CLI entry point for route-flyover."""

import asyncio
import contextlib
import logging
import shutil
import signal
from typing import Optional

import click
from tqdm import tqdm

from .camera import CameraAnimationController
from .config import FORMAT_PRESETS, QUALITY_PRESETS, MapStyle, RenderConfig, SpeedFormat
from .gpx_parser import RouteParseError, parse_gpx
from .renderer import RenderOrchestrator, RenderPhase, RenderProgress
from .route import prepare_route
from .simplify import DEFAULT_EPSILON_M
from .stats import summarize_route
from .surface import CanvasFrameCapture, CanvasMapSurface
from .video import StreamingEncoder

logger = logging.getLogger(__name__)


def _load_route(gpx_file: str, epsilon: float):
    click.echo(f"Parsing GPX file: {gpx_file}")
    try:
        route = parse_gpx(gpx_file)
    except RouteParseError as e:
        raise click.ClickException(str(e)) from None
    for label, value in summarize_route(route):
        click.echo(f"  {label + ':':<16}{value}")

    prepared = prepare_route(route, epsilon=epsilon)
    click.echo(f"  Simplified {len(route.points)} -> {len(prepared.points)} points (epsilon {epsilon:g} m)")
    return prepared


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Generate flyover videos from GPS activities."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("gpx_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False), default="flyover.mp4")
@click.option("--format", "video_format", type=click.Choice(sorted(FORMAT_PRESETS)),
              default="instagram", help="Output format preset.")
@click.option("--quality", type=click.Choice(list(QUALITY_PRESETS)), default="medium",
              help="Quality preset: fast=24fps, medium/high=30fps.")
@click.option("--fps", default=None, type=click.IntRange(min=1), help="Frames per second (overrides quality preset).")
@click.option("--duration", default=60, help="Route animation length in seconds.")
@click.option("--style", type=click.Choice([s.name.lower() for s in MapStyle]), default="dark",
              help="Map style.")
@click.option("--pitch", default=60.0, help="Camera pitch in degrees.")
@click.option("--zoom", default=15.5, help="Camera zoom level.")
@click.option("--route-color", default="#00E5FF", help="Trail color.")
@click.option("--route-width", default=4.0, help="Trail width.")
@click.option("--overlay/--no-overlay", default=True, help="Show the stats overlay.")
@click.option("--speed-format", type=click.Choice([f.value for f in SpeedFormat]), default="pace",
              help="Show pace (min/km) or speed (km/h).")
@click.option("--ending-image", "ending_images", multiple=True, type=click.Path(exists=True, dir_okay=False),
              help="Image shown after the route (repeatable, up to 5).")
@click.option("--transition-frames", default=60, help="Frames for the zoom-in intro and zoom-out outro.")
@click.option("--epsilon", default=DEFAULT_EPSILON_M, help="Route simplification tolerance in meters.")
@click.option("--settle-ms", default=0, help="Extra wait after each camera move (ms).")
def render(
    gpx_file: str,
    output: str,
    video_format: str,
    quality: str,
    fps: Optional[int],
    duration: int,
    style: str,
    pitch: float,
    zoom: float,
    route_color: str,
    route_width: float,
    overlay: bool,
    speed_format: str,
    ending_images: tuple[str, ...],
    transition_frames: int,
    epsilon: float,
    settle_ms: int,
) -> None:
    """Render a flyover video from a GPX file."""
    # Pre-flight: check FFmpeg
    if not shutil.which("ffmpeg"):
        raise click.UsageError(
            "FFmpeg not found. Install it:\n"
            "  macOS:   brew install ffmpeg\n"
            "  Ubuntu:  sudo apt install ffmpeg\n"
            "  Windows: https://ffmpeg.org/download.html"
        )

    preset = QUALITY_PRESETS[quality]
    try:
        config = RenderConfig(
            aspect_ratio=FORMAT_PRESETS[video_format],
            map_style=MapStyle[style.upper()],
            route_color=route_color,
            route_width=route_width,
            duration_seconds=duration,
            fps=fps if fps is not None else preset["fps"],
            camera_pitch=pitch,
            camera_zoom=zoom,
            show_overlay=overlay,
            speed_format=SpeedFormat(speed_format),
            ending_image_paths=ending_images,
            transition_frames=transition_frames,
            settle_delay_ms=settle_ms,
            transition_settle_delay_ms=settle_ms,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from None

    route = _load_route(gpx_file, epsilon)
    logger.debug("Render config: %s", config)

    surface = CanvasMapSurface(route.points, config)
    encoder = StreamingEncoder(output, crf=preset["crf"], preset=preset["preset"])

    render_bar = tqdm(unit="frame", desc="Rendering")

    def on_progress(progress: RenderProgress) -> None:
        render_bar.total = progress.total_frames
        render_bar.n = progress.frames_captured
        render_bar.set_postfix_str(f"{progress.phase.value} | {progress.eta_text}", refresh=False)
        render_bar.refresh()

    orchestrator = RenderOrchestrator(
        route,
        config,
        map_surface=surface,
        frame_capture=CanvasFrameCapture(surface),
        encoder=encoder,
        progress_callback=on_progress,
    )
    click.echo(
        f"{orchestrator.total_frames} frames at {config.width}x{config.height}, {config.fps}fps "
        f"({orchestrator.controller.total_frames} route frames)"
    )

    async def run():
        loop = asyncio.get_running_loop()
        # Ctrl-C finishes the current frame, then stops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
        return await orchestrator.run()

    try:
        result = asyncio.run(run())
    finally:
        render_bar.close()

    if result.phase is RenderPhase.CANCELLED:
        click.echo("Render cancelled; no video was written.")
        raise SystemExit(1)
    if result.phase is RenderPhase.ERROR:
        raise click.ClickException(result.error or "render failed")
    if result.frames_missed:
        click.echo(f"Warning: {result.frames_missed} frames could not be captured", err=True)
    click.echo(f"Video saved to: {result.output_path}")


@main.command()
@click.argument("gpx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--fps", default=30, type=click.IntRange(min=1), help="Playback frames per second.")
@click.option("--duration", default=10, help="Animation length in seconds at 1x speed.")
@click.option("--speed", default=1.0, help="Playback speed multiplier (0.25 - 4).")
@click.option("--zoom", default=15.5, help="Camera zoom level.")
@click.option("--pitch", default=60.0, help="Camera pitch in degrees.")
@click.option("--epsilon", default=DEFAULT_EPSILON_M, help="Route simplification tolerance in meters.")
def preview(gpx_file: str, fps: int, duration: int, speed: float, zoom: float, pitch: float, epsilon: float) -> None:
    """Play the camera animation and print one pose per frame."""
    route = _load_route(gpx_file, epsilon)
    controller = CameraAnimationController.from_route_points(
        route.points, total_frame_count=fps * duration,
        camera_pitch=pitch, camera_zoom=zoom, fps=fps,
    )
    controller.set_speed(speed)

    async def play() -> None:
        with controller:
            controller.play()
            async for pose in controller.playback():
                click.echo(
                    f"{pose.frame_index:>6}  {pose.center.lat:10.6f} {pose.center.lng:11.6f}  "
                    f"bearing {pose.bearing:6.1f}  zoom {pose.zoom:5.2f}  {pose.progress:6.1%}"
                )

    try:
        asyncio.run(play())
    except KeyboardInterrupt:
        click.echo("Stopped.")


if __name__ == "__main__":
    main()
