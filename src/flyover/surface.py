"""Pillow map surface: a flat 2D stand-in for an interactive map view.

Draws a metric grid, the revealed route trail, a position marker, the stats
band and ending-image slides. No map tiles are fetched.
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont

from .camera import CameraPose
from .config import MapStyle, RenderConfig
from .models import Bounds, GeoPoint
from .renderer import SlideFrame
from .stats import FrameStats

logger = logging.getLogger(__name__)

# Meters per degree of latitude
M_PER_DEG_LAT = 111_319.0
# Web Mercator ground resolution at zoom 0 for 512 px tiles, at the equator
MERCATOR_M_PER_PX_Z0 = 78_271.517
MIN_OVERVIEW_ZOOM = 1.0
MAX_OVERVIEW_ZOOM = 20.0
# Pitched cameras squash the ground plane, but never below this
MIN_FORESHORTEN = 0.35

_GRID_STEPS_M = [50, 100, 250, 500, 1000, 2500, 5000, 10_000, 25_000, 50_000, 100_000]

STYLE_PALETTES = {
    MapStyle.DARK: {"background": (18, 20, 28), "grid": (38, 42, 58)},
    MapStyle.LIGHT: {"background": (238, 238, 234), "grid": (212, 212, 206)},
    MapStyle.SATELLITE: {"background": (26, 36, 28), "grid": (46, 60, 48)},
    MapStyle.OUTDOORS: {"background": (226, 232, 214), "grid": (200, 210, 186)},
}


def meters_per_pixel(lat: float, zoom: float) -> float:
    return MERCATOR_M_PER_PX_Z0 * math.cos(math.radians(lat)) / (2 ** zoom)


def _to_local(lats: np.ndarray, lngs: np.ndarray, origin: GeoPoint) -> np.ndarray:
    """Planar (east, north) meters relative to `origin`."""
    x = (lngs - origin.lng) * np.cos(np.radians(origin.lat)) * M_PER_DEG_LAT
    y = (lats - origin.lat) * M_PER_DEG_LAT
    return np.column_stack([x, y])


class CanvasMapSurface:
    """Map surface drawn with Pillow at the render resolution / pixel scale."""

    def __init__(self, route_points: Sequence[GeoPoint], config: RenderConfig):
        if not route_points:
            raise ValueError("map surface needs at least one route point")
        self.config = config
        self.origin = route_points[0]
        self.width = max(1, round(config.width / config.pixel_scale))
        self.height = max(1, round(config.height / config.pixel_scale))
        self.palette = STYLE_PALETTES[config.map_style]
        self.route_color = ImageColor.getrgb(config.route_color)

        self._pose: Optional[CameraPose] = None
        self._trail = np.zeros((0, 2))
        self._slide: Optional[SlideFrame] = None
        self._stats: Optional[FrameStats] = None
        self._frame: Optional[Image.Image] = None
        self._slide_images: dict[str, Image.Image] = {}

        self._title_size = max(12, self.height // 40)
        self._label_size = max(10, self._title_size * 3 // 4)
        self._title_font = ImageFont.load_default(size=self._title_size)
        self._label_font = ImageFont.load_default(size=self._label_size)
        self._value_font = ImageFont.load_default(size=self._title_size * 2)

    async def set_camera(self, pose: CameraPose) -> None:
        self._pose = pose
        self._frame = None

    async def set_route_trail(self, points: Sequence[GeoPoint]) -> None:
        lats = np.array([p.lat for p in points], dtype=float)
        lngs = np.array([p.lng for p in points], dtype=float)
        self._trail = _to_local(lats, lngs, self.origin)
        self._frame = None

    async def set_overlay(self, slide: Optional[SlideFrame]) -> None:
        self._slide = slide
        self._frame = None

    async def set_stats(self, stats: Optional[FrameStats]) -> None:
        self._stats = stats
        self._frame = None

    async def compute_overview_pose(self, bounds: Bounds, padding: int) -> CameraPose:
        """Top-down, north-up pose that fits `bounds` inside the padded view."""
        center = bounds.center
        west = GeoPoint(lat=center.lat, lng=bounds.west)
        south = GeoPoint(lat=bounds.south, lng=center.lng)
        width_m = west.distance_to(GeoPoint(lat=center.lat, lng=bounds.east))
        height_m = south.distance_to(GeoPoint(lat=bounds.north, lng=center.lng))
        avail_w = max(1, self.width - 2 * padding)
        avail_h = max(1, self.height - 2 * padding)
        needed = max(width_m / avail_w, height_m / avail_h)

        if needed <= 0:
            zoom = MAX_OVERVIEW_ZOOM
        else:
            zoom = math.log2(MERCATOR_M_PER_PX_Z0 * math.cos(math.radians(center.lat)) / needed)
        zoom = float(np.clip(zoom, MIN_OVERVIEW_ZOOM, MAX_OVERVIEW_ZOOM))
        return CameraPose(frame_index=0, center=center, bearing=0.0, pitch=0.0, zoom=zoom, progress=0.0)

    async def wait_until_rendered(self) -> None:
        self.snapshot()

    def snapshot(self) -> Optional[Image.Image]:
        """The current frame, drawn on demand; None before any camera is set."""
        if self._pose is None:
            return None
        if self._frame is None:
            self._frame = self.render()
        return self._frame

    def render(self) -> Image.Image:
        pose = self._pose
        if pose is None:
            raise RuntimeError("no camera pose set")

        img = Image.new("RGBA", (self.width, self.height), (*self.palette["background"], 255))
        draw = ImageDraw.Draw(img)
        self._draw_grid(draw, pose)
        self._draw_trail(draw, pose)
        if self._stats is not None:
            img = self._draw_stats(img, self._stats)
        if self._slide is not None:
            img = self._draw_slide(img, self._slide)
        return img

    def _project(self, xy: np.ndarray, pose: CameraPose) -> np.ndarray:
        """Local meters -> pixel coordinates with the camera heading pointing up."""
        center = _to_local(np.array([pose.center.lat]), np.array([pose.center.lng]), self.origin)[0]
        rel = xy - center
        b = math.radians(pose.bearing)
        x = rel[:, 0] * math.cos(b) - rel[:, 1] * math.sin(b)
        y = rel[:, 0] * math.sin(b) + rel[:, 1] * math.cos(b)
        y = y * max(MIN_FORESHORTEN, math.cos(math.radians(pose.pitch)))
        mpp = meters_per_pixel(pose.center.lat, pose.zoom)
        return np.column_stack([self.width / 2 + x / mpp, self.height / 2 - y / mpp])

    def _draw_grid(self, draw: ImageDraw.ImageDraw, pose: CameraPose) -> None:
        mpp = meters_per_pixel(pose.center.lat, pose.zoom)
        view_m = self.width * mpp
        step = next((s for s in _GRID_STEPS_M if s >= view_m / 6), _GRID_STEPS_M[-1])
        radius = math.hypot(self.width, self.height) * mpp / MIN_FORESHORTEN

        cx, cy = _to_local(np.array([pose.center.lat]), np.array([pose.center.lng]), self.origin)[0]
        lo_x, hi_x = math.floor((cx - radius) / step), math.ceil((cx + radius) / step)
        lo_y, hi_y = math.floor((cy - radius) / step), math.ceil((cy + radius) / step)
        if (hi_x - lo_x) + (hi_y - lo_y) > 400:
            return

        segments = []
        for k in range(lo_x, hi_x + 1):
            segments.append(((k * step, cy - radius), (k * step, cy + radius)))
        for k in range(lo_y, hi_y + 1):
            segments.append(((cx - radius, k * step), (cx + radius, k * step)))
        for a, b in segments:
            (x0, y0), (x1, y1) = self._project(np.array([a, b], dtype=float), pose)
            draw.line([(x0, y0), (x1, y1)], fill=self.palette["grid"], width=1)

    def _draw_trail(self, draw: ImageDraw.ImageDraw, pose: CameraPose) -> None:
        if len(self._trail) == 0:
            return
        pixels = self._project(self._trail, pose)
        line_w = max(1, round(self.config.route_width * self.height / 960))
        if len(pixels) > 1:
            draw.line([tuple(p) for p in pixels], fill=self.route_color, width=line_w, joint="curve")

        # Position marker at the head of the trail
        px, py = pixels[-1]
        r = max(4, line_w * 2)
        draw.ellipse([px - r, py - r, px + r, py + r], fill=self.route_color,
                     outline=(255, 255, 255), width=max(1, r // 3))

    def _draw_stats(self, img: Image.Image, stats: FrameStats) -> Image.Image:
        w, h = img.size
        band_h = h // 6
        overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)

        # Dark band fading out towards the map
        for row in range(band_h):
            alpha = int(200 * (1 - row / band_h))
            draw.line([(0, row), (w, row)], fill=(0, 0, 0, alpha))

        text = (255, 255, 255, 255)
        y = h // 40
        if stats.title:
            draw.text((w // 2, y), stats.title, fill=text, font=self._title_font, anchor="mt")
            y += self._title_size + h // 80

        if stats.items:
            col_w = w / len(stats.items)
            for i, item in enumerate(stats.items):
                cx = int(col_w * (i + 0.5))
                draw.text((cx, y), item.label.upper(), fill=(200, 200, 200, 255),
                          font=self._label_font, anchor="mt")
                draw.text((cx, y + self._label_size + 4), f"{item.value} {item.unit}",
                          fill=text, font=self._value_font, anchor="mt")

        return Image.alpha_composite(img, overlay)

    def _load_slide_image(self, path: str) -> Image.Image:
        if path not in self._slide_images:
            with Image.open(path) as src:
                self._slide_images[path] = src.convert("RGBA")
        return self._slide_images[path]

    def _draw_slide(self, img: Image.Image, slide: SlideFrame) -> Image.Image:
        """Blurred, dimmed map with the image contained in the middle, faded in."""
        w, h = img.size
        backdrop = img.filter(ImageFilter.GaussianBlur(radius=slide.blur_sigma))
        backdrop = Image.alpha_composite(backdrop, Image.new("RGBA", (w, h), (0, 0, 0, 128)))

        photo = self._load_slide_image(slide.image_path)
        fit = min(w * 0.8 / photo.width, h * 0.7 / photo.height) * slide.scale
        size = (max(1, round(photo.width * fit)), max(1, round(photo.height * fit)))
        photo = photo.resize(size, Image.LANCZOS)
        backdrop.paste(photo, ((w - size[0]) // 2, (h - size[1]) // 2), photo)

        return Image.blend(img, backdrop, slide.opacity)


class CanvasFrameCapture:
    """Captures the surface's current frame as RGBA bytes."""

    def __init__(self, surface: CanvasMapSurface):
        self.surface = surface
        self.captured_count = 0

    async def capture(self, pixel_scale: float) -> Optional[bytes]:
        frame = self.surface.snapshot()
        if frame is None:
            logger.debug("Capture requested before any camera pose was set")
            return None
        # Scale back up to the output resolution the encoder expects
        size = (self.surface.config.width, self.surface.config.height)
        if pixel_scale != 1.0 or frame.size != size:
            frame = frame.resize(size, Image.BILINEAR)
        self.captured_count += 1
        return frame.tobytes()
