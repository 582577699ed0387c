"""Render configuration and presets."""

import enum
from dataclasses import dataclass, field

MAX_ENDING_IMAGES = 5


class AspectRatio(enum.Enum):
    LANDSCAPE_16X9 = ("16:9", 1920, 1080)
    PORTRAIT_9X16 = ("9:16", 1080, 1920)
    SQUARE = ("1:1", 1080, 1080)

    def __init__(self, label: str, width: int, height: int):
        self.label = label
        self.width = width
        self.height = height


class MapStyle(enum.Enum):
    DARK = "mapbox://styles/mapbox/dark-v11"
    LIGHT = "mapbox://styles/mapbox/light-v11"
    SATELLITE = "mapbox://styles/mapbox/satellite-streets-v12"
    OUTDOORS = "mapbox://styles/mapbox/outdoors-v12"


class SpeedFormat(enum.Enum):
    PACE = "pace"  # min/km
    SPEED = "speed"  # km/h


# Output format presets (--format on the CLI)
FORMAT_PRESETS = {
    "instagram": AspectRatio.PORTRAIT_9X16,
    "tiktok": AspectRatio.PORTRAIT_9X16,
    "youtube": AspectRatio.LANDSCAPE_16X9,
    "square": AspectRatio.SQUARE,
}

# Encoder presets (--quality on the CLI)
QUALITY_PRESETS = {
    "fast": {"fps": 24, "preset": "veryfast", "crf": 23},
    "medium": {"fps": 30, "preset": "medium", "crf": 18},
    "high": {"fps": 30, "preset": "slow", "crf": 15},
}


@dataclass(frozen=True)
class RenderConfig:
    aspect_ratio: AspectRatio = AspectRatio.PORTRAIT_9X16
    map_style: MapStyle = MapStyle.DARK
    route_color: str = "#00E5FF"
    route_width: float = 4.0
    duration_seconds: int = 60
    fps: int = 30
    camera_pitch: float = 60.0
    camera_zoom: float = 15.5

    # Stats overlay
    show_overlay: bool = True
    show_activity_name: bool = True
    show_distance: bool = True
    show_pace: bool = True
    show_elevation: bool = True
    speed_format: SpeedFormat = SpeedFormat.PACE

    ending_image_paths: tuple[str, ...] = field(default_factory=tuple)

    # Sequencing
    transition_frames: int = 60
    slide_seconds: int = 3
    settle_delay_ms: int = 80
    transition_settle_delay_ms: int = 50
    pixel_scale: float = 1.0
    overview_padding: int = 40

    def __post_init__(self) -> None:
        object.__setattr__(self, "ending_image_paths", tuple(self.ending_image_paths))
        if len(self.ending_image_paths) > MAX_ENDING_IMAGES:
            raise ValueError(
                f"At most {MAX_ENDING_IMAGES} ending images are supported "
                f"(got {len(self.ending_image_paths)})"
            )
        if self.fps <= 0:
            raise ValueError(f"fps must be positive (got {self.fps})")
        if self.duration_seconds <= 0:
            raise ValueError(f"duration must be positive (got {self.duration_seconds})")
        if self.pixel_scale <= 0:
            raise ValueError(f"pixel scale must be positive (got {self.pixel_scale})")

    @property
    def width(self) -> int:
        return self.aspect_ratio.width

    @property
    def height(self) -> int:
        return self.aspect_ratio.height

    @property
    def total_frame_count(self) -> int:
        """Frames for the route phase: duration x fps."""
        return self.duration_seconds * self.fps

    @property
    def frames_per_slide(self) -> int:
        return self.fps * self.slide_seconds
