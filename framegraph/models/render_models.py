"""
Pydantic models for encoder settings and render manifests.

This module defines:
- Quality levels and the fixed quality -> (preset, CRF) lookup
- Frame formats produced by the host rasterizer
- EncodingSpec, the encoder-facing half of a render
- RenderManifest, the serialized boundary consumed by the CLI
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from framegraph.config import get_audio_bitrate
from framegraph.exceptions import ConfigurationError
from framegraph.models.timeline_models import AnchorSpec, VideoSpec


# =============================================================================
# ENUMS
# =============================================================================


class RenderQuality(str, Enum):
    """Preset quality levels."""

    DRAFT = "draft"  # Fastest encode, visibly compressed
    LOW = "low"
    MEDIUM = "medium"  # Balanced default
    HIGH = "high"
    LOSSLESS = "lossless"  # CRF 0, very large files


class FrameFormat(str, Enum):
    """Pixel data the host rasterizer writes to the encoder's stdin."""

    RAW_RGBA = "raw_rgba"  # width*height*4 bytes per frame
    PNG = "png"  # One encoded PNG per frame


X264_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)

QUALITY_PRESETS: dict[RenderQuality, tuple[str, int]] = {
    RenderQuality.DRAFT: ("ultrafast", 35),
    RenderQuality.LOW: ("veryfast", 30),
    RenderQuality.MEDIUM: ("medium", 23),
    RenderQuality.HIGH: ("slow", 18),
    RenderQuality.LOSSLESS: ("veryslow", 0),
}


# =============================================================================
# ENCODING
# =============================================================================


class EncodingSpec(BaseModel):
    """Complete encoder configuration for one render."""

    model_config = ConfigDict(frozen=True)

    quality: RenderQuality = Field(
        default=RenderQuality.MEDIUM, description="Quality level"
    )
    frame_format: FrameFormat = Field(
        default=FrameFormat.RAW_RGBA, description="Format of piped frames"
    )
    width: int = Field(gt=0, description="Frame width in pixels")
    height: int = Field(gt=0, description="Frame height in pixels")
    fps: int = Field(gt=0, description="Frames per second")
    crf_override: int | None = Field(
        default=None,
        ge=0,
        le=51,
        description="Replaces the quality level's CRF",
    )
    preset_override: str | None = Field(
        default=None, description="Replaces the quality level's x264 preset"
    )
    video_codec: str = Field(default="libx264", description="Output video codec")
    pixel_format: str = Field(default="yuv420p", description="Output pixel format")
    audio_codec: str = Field(default="aac", description="Output audio codec")
    audio_bitrate: str = Field(
        default_factory=get_audio_bitrate, description="Audio bitrate e.g. '192k'"
    )
    overlay_embedded_videos: bool = Field(
        default=True,
        description="Composite embedded videos in the graph (False = frames already contain them)",
    )
    faststart: bool = Field(default=True, description="Move the moov atom to the front")

    @field_validator("preset_override")
    @classmethod
    def _check_preset(cls, value: str | None) -> str | None:
        if value is not None and value not in X264_PRESETS:
            raise ValueError(
                f"Unknown encoder preset '{value}', expected one of {', '.join(X264_PRESETS)}"
            )
        return value

    @property
    def encoder_preset(self) -> str:
        return self.preset_override or QUALITY_PRESETS[self.quality][0]

    @property
    def crf(self) -> int:
        if self.crf_override is not None:
            return self.crf_override
        return QUALITY_PRESETS[self.quality][1]

    @classmethod
    def for_video(
        cls,
        video: VideoSpec,
        quality: RenderQuality = RenderQuality.MEDIUM,
        **overrides: Any,
    ) -> EncodingSpec:
        """Encoding spec matching a composition's size and frame rate."""
        return cls(
            quality=quality,
            width=video.width,
            height=video.height,
            fps=video.fps,
            **overrides,
        )

    @classmethod
    def draft_preview(cls, video: VideoSpec) -> EncodingSpec:
        """Quick preview - fastest preset, high CRF."""
        return cls.for_video(video, RenderQuality.DRAFT)

    @classmethod
    def lossless_master(cls, video: VideoSpec) -> EncodingSpec:
        return cls.for_video(video, RenderQuality.LOSSLESS)


# =============================================================================
# MANIFEST
# =============================================================================


class RenderManifest(BaseModel):
    """Everything needed to compile one encoder invocation."""

    model_config = ConfigDict(frozen=True)

    video: VideoSpec
    output_path: str = Field(min_length=1, description="Encoder output file")
    encoding: EncodingSpec | None = Field(
        default=None, description="None = derive from the video at medium quality"
    )
    anchors: dict[str, AnchorSpec] = Field(
        default_factory=dict, description="Anchors supplied by earlier passes"
    )

    def resolved_encoding(self) -> EncodingSpec:
        if self.encoding is not None:
            return self.encoding
        return EncodingSpec.for_video(self.video)


def load_manifest(data: dict[str, Any]) -> RenderManifest:
    """Validate a serialized manifest, surfacing failures as ConfigurationError."""
    try:
        return RenderManifest.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid render manifest: {exc}") from exc
