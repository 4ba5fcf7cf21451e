"""
SmartWarp -- Export Settings Models

Pydantic models for animation export. One ExportSettings fully describes
an export run: how many ticks to capture (duration * fps), the per-frame
delay handed to the encoder, the output format and its codec options, and
whether the background should come out transparent.
"""

from __future__ import annotations

import math
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from core.renderer import MATTE_COLOR
from core.safety import MAX_EXPORT_FRAMES

# Slack for float products like 0.58 * 50 = 28.999999999999996
FRAME_COUNT_EPSILON = 1e-9


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ExportFormat(str, Enum):
    """Output container / format."""
    GIF = "gif"    # Animated GIF -- chroma-keyed transparency
    WEBM = "webm"  # VP9 in WebM -- real alpha channel
    MP4 = "mp4"    # H.264 in MP4 -- no alpha, matte only


class H264Preset(str, Enum):
    """Encoding speed vs. compression efficiency tradeoff."""
    ULTRAFAST = "ultrafast"
    VERYFAST = "veryfast"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


# ---------------------------------------------------------------------------
# Codec Sub-models
# ---------------------------------------------------------------------------

class GifSettings(BaseModel):
    """GIF-specific settings (Pillow encoder).

    When transparency is requested one palette slot is reserved for the
    matte color, so at most 255 colors remain for the image.
    """
    max_colors: int = Field(
        default=256,
        ge=2,
        le=256,
        description="Maximum palette colors (2-256). Fewer = smaller file, more banding.",
    )
    loop_count: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="GIF loop count. 0 = infinite loop.",
    )


class WebMSettings(BaseModel):
    """VP9/WebM settings (FFmpeg libvpx-vp9).

    FFmpeg flags:
        -c:v libvpx-vp9 -crf {crf} -b:v 0 -speed {speed} -pix_fmt yuv420p|yuva420p
    """
    crf: int = Field(
        default=31,
        ge=0,
        le=63,
        description="VP9 CRF (0-63). Lower = better. 15-35 is the recommended range.",
    )
    speed: int = Field(
        default=2,
        ge=0,
        le=4,
        description="Encoding speed (0-4). 0=best quality (slowest), 4=fastest.",
    )


class H264Settings(BaseModel):
    """H.264 (libx264) settings.

    FFmpeg flags:
        -c:v libx264 -crf {crf} -preset {preset} -pix_fmt yuv420p
    """
    crf: int = Field(
        default=20,
        ge=0,
        le=51,
        description="Constant Rate Factor (0-51). 18=visually transparent, 23=good default.",
    )
    preset: H264Preset = Field(
        default=H264Preset.MEDIUM,
        description="Encoding speed vs. compression. Slower = smaller file at same quality.",
    )


# ---------------------------------------------------------------------------
# Main Export Settings Model
# ---------------------------------------------------------------------------

class ExportSettings(BaseModel):
    """Complete export configuration.

    Quick start:
        ExportSettings()                           # 2s GIF at 20fps
        ExportSettings(format="webm", transparent_background=True)
        ExportSettings.from_preset("gif_loop")
    """

    format: ExportFormat = Field(
        default=ExportFormat.GIF,
        description="Output format / container.",
    )
    fps: int = Field(
        default=20,
        ge=1,
        le=60,
        description="Frames per second. Each frame is one mesh tick.",
    )
    duration: float = Field(
        default=2.0,
        gt=0.0,
        le=60.0,
        description="Length in seconds. total_frames = ceil(duration * fps).",
    )
    transparent_background: bool = Field(
        default=False,
        description="Uncovered pixels come out transparent (alpha or chroma key).",
    )
    matte_color: tuple[int, int, int] = Field(
        default=MATTE_COLOR,
        description="Chroma-key color frames are flattened onto when the format has no alpha.",
    )

    gif: GifSettings = Field(default_factory=GifSettings)
    webm: WebMSettings = Field(default_factory=WebMSettings)
    h264: H264Settings = Field(default_factory=H264Settings)

    filename: str | None = Field(
        default=None,
        description="Output filename (without extension). Defaults to smartwarp_<timestamp>.",
    )

    @field_validator("matte_color")
    @classmethod
    def validate_matte(cls, v):
        if any(c < 0 or c > 255 for c in v):
            raise ValueError(f"Matte color components must be 0-255, got {v}")
        return v

    @model_validator(mode="after")
    def validate_length(self) -> "ExportSettings":
        total = self.total_frames
        if total < 1:
            raise ValueError(
                f"duration={self.duration}s at {self.fps}fps produces no frames"
            )
        if total > MAX_EXPORT_FRAMES:
            raise ValueError(
                f"Export has {total} frames, max is {MAX_EXPORT_FRAMES}"
            )
        return self

    @property
    def total_frames(self) -> int:
        """Ticks to capture: every frame index k with k < duration * fps."""
        return math.ceil(self.duration * self.fps - FRAME_COUNT_EPSILON)

    @property
    def frame_delay_ms(self) -> float:
        """Display time of each frame in milliseconds."""
        return 1000.0 / self.fps

    @property
    def format_has_alpha(self) -> bool:
        return self.format == ExportFormat.WEBM

    def get_output_extension(self) -> str:
        return f".{self.format.value}"

    @classmethod
    def from_preset(cls, name: str, **overrides) -> "ExportSettings":
        """Build settings from a named preset, with field overrides."""
        if name not in EXPORT_PRESETS:
            raise ValueError(
                f"Unknown export preset '{name}'. "
                f"Available: {', '.join(sorted(EXPORT_PRESETS))}"
            )
        config = {**EXPORT_PRESETS[name], **overrides}
        return cls(**config)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

EXPORT_PRESETS: dict[str, dict] = {
    "gif_loop": {
        "format": "gif",
        "fps": 20,
        "duration": 2.0,
    },
    "gif_sticker": {
        "format": "gif",
        "fps": 15,
        "duration": 2.0,
        "transparent_background": True,
        "gif": {"max_colors": 128},
    },
    "webm_alpha": {
        "format": "webm",
        "fps": 30,
        "duration": 3.0,
        "transparent_background": True,
        "webm": {"crf": 28},
    },
    "mp4_social": {
        "format": "mp4",
        "fps": 30,
        "duration": 5.0,
        "h264": {"crf": 20, "preset": "medium"},
    },
}


def list_presets() -> list[dict[str, str]]:
    """List all available export presets with their format.

    Returns:
        List of dicts: [{"name": "gif_loop", "format": "gif"}, ...]
    """
    return [
        {"name": name, "format": config.get("format", "gif")}
        for name, config in sorted(EXPORT_PRESETS.items())
    ]
