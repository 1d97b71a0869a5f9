"""
Pydantic models for frame-based composition timelines.

This module defines the immutable value types that flow from a declarative
composition to a resolved, frame-accurate timeline:
- FrameRange and TimingContext frame arithmetic
- Scene transitions as a tagged variant
- Scene content trees (containers, embedded videos, leaves, anchors)
- Audio tracks with anchor-relative sync
- Resolved timelines where every element has absolute frame numbers

All models are frozen. Operations return new instances and never mutate
their inputs.
"""

from __future__ import annotations

from enum import Enum
from fractions import Fraction
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from framegraph.exceptions import ConfigurationError
from framegraph.utils.easing import EasingCurve, apply_curve
from framegraph.utils.frame_utils import frames_to_seconds, round_half_up, seconds_to_frames


# =============================================================================
# ENUMS
# =============================================================================


class WipeDirection(str, Enum):
    """Direction a wipe reveals the incoming scene."""
    LEFT_TO_RIGHT = "left_to_right"
    RIGHT_TO_LEFT = "right_to_left"
    TOP_TO_BOTTOM = "top_to_bottom"
    BOTTOM_TO_TOP = "bottom_to_top"


class SyncBehavior(str, Enum):
    """What an anchor-synced track does when its source is shorter."""
    STOP_WHEN_ENDS = "stop_when_ends"  # Play once, then silence
    LOOP_TO_MATCH = "loop_to_match"  # Repeat to fill the anchor window


class AudioSourceType(str, Enum):
    """Where an audio source originally came from."""
    ASSET = "asset"
    FILE = "file"
    URL = "url"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# CORE FRAME TYPES
# =============================================================================


class FrameRange(FrozenModel):
    """
    Half-open interval of frames: start is inclusive, end is exclusive.

    Examples:
        - First three seconds at 30fps: FrameRange(start=0, end=90)
        - Empty range at frame 10: FrameRange(start=10, end=10)

    Invalid bounds always raise a ``ValueError``. Direct construction
    surfaces pydantic's ``ValidationError``; the ``from_*`` constructors
    check their arguments first and raise ``ConfigurationError``. Catch
    ``ValueError`` to handle both.
    """
    start: int = Field(description="First frame (inclusive)")
    end: int = Field(description="End frame (exclusive)")

    @model_validator(mode="after")
    def _check_bounds(self) -> FrameRange:
        if self.end < self.start:
            raise ValueError(
                f"FrameRange end ({self.end}) must be >= start ({self.start})"
            )
        return self

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end == self.start

    def duration_in_seconds(self, fps: int) -> float:
        return frames_to_seconds(self.duration, fps)

    def contains(self, frame: int) -> bool:
        """Check if a frame falls within this range."""
        return self.start <= frame < self.end

    def contains_range(self, other: FrameRange) -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: FrameRange) -> bool:
        return max(self.start, other.start) < min(self.end, other.end)

    def intersection(self, other: FrameRange) -> FrameRange | None:
        """Return the overlapping part, or None if the ranges do not overlap."""
        if not self.overlaps(other):
            return None
        return FrameRange(
            start=max(self.start, other.start),
            end=min(self.end, other.end),
        )

    def union(self, other: FrameRange) -> FrameRange:
        """Smallest range covering both ranges (including any gap between them)."""
        return FrameRange(
            start=min(self.start, other.start),
            end=max(self.end, other.end),
        )

    def offset(self, frames: int) -> FrameRange:
        return FrameRange(start=self.start + frames, end=self.end + frames)

    def shift_start(self, frames: int) -> FrameRange:
        return FrameRange(start=self.start + frames, end=self.end)

    def shift_end(self, frames: int) -> FrameRange:
        return FrameRange(start=self.start, end=self.end + frames)

    def expand(self, frames: int) -> FrameRange:
        return FrameRange(start=self.start - frames, end=self.end + frames)

    def contract(self, frames: int) -> FrameRange:
        return FrameRange(start=self.start + frames, end=self.end - frames)

    def progress(self, frame: int) -> float:
        """Progress through the range, clamped to [0, 1]."""
        if frame <= self.start:
            return 0.0
        if frame >= self.end:
            return 1.0
        return (frame - self.start) / self.duration

    def unclamped_progress(self, frame: int) -> float:
        if self.duration == 0:
            return 0.0
        return (frame - self.start) / self.duration

    def keyframes(self, count: int) -> list[int]:
        """
        Evenly spaced integer frames from start to end inclusive.

        Used to build interpolation tables; needs at least two points.
        """
        if count < 2:
            raise ConfigurationError(f"keyframes requires count >= 2, got {count}")
        return [
            self.start + round_half_up(Fraction(i * self.duration, count - 1))
            for i in range(count)
        ]

    def split_at(self, frame: int) -> tuple[FrameRange, FrameRange]:
        if not self.contains(frame):
            raise ConfigurationError(f"Frame {frame} is outside {self.start}..{self.end}")
        return (
            FrameRange(start=self.start, end=frame),
            FrameRange(start=frame, end=self.end),
        )

    def local_to_global(self, local_frame: int) -> int:
        return self.start + local_frame

    def global_to_local(self, global_frame: int) -> int:
        return global_frame - self.start

    @classmethod
    def from_duration(cls, start: int, duration: int) -> FrameRange:
        if duration < 0:
            raise ConfigurationError(f"Duration must be >= 0, got {duration}")
        return cls(start=start, end=start + duration)

    @classmethod
    def from_seconds(
        cls, fps: int, start_seconds: float, end_seconds: float
    ) -> FrameRange:
        """Create a range from seconds, rounding each bound half-up to a frame."""
        if fps <= 0:
            raise ConfigurationError(f"fps must be positive, got {fps}")
        start = seconds_to_frames(start_seconds, fps)
        end = seconds_to_frames(end_seconds, fps)
        if end < start:
            raise ConfigurationError(
                f"End time {end_seconds}s is before start time {start_seconds}s"
            )
        return cls(start=start, end=end)

    @classmethod
    def from_seconds_duration(
        cls, fps: int, start_seconds: float, duration_seconds: float
    ) -> FrameRange:
        return cls.from_seconds(fps, start_seconds, start_seconds + duration_seconds)


class TimingContext(FrozenModel):
    """
    Timing envelope of one animated container.

    Children resolve their effective start against the innermost context.
    ``inherited_offset`` already carries the sum of every ancestor's offset,
    so a chain never has to be walked twice. Negative offsets are allowed and
    let a child begin before its parent's entry animation completes.
    """
    context_start: int = Field(default=0, description="Absolute start frame")
    entry_duration: int = Field(default=0, ge=0, description="Entry phase length")
    exit_duration: int = Field(default=0, ge=0, description="Exit phase length")
    context_end: int | None = Field(
        default=None, description="Absolute end frame (None = open ended)"
    )
    inherited_offset: int = Field(
        default=0, description="Sum of all ancestor offsets"
    )

    @property
    def entry_complete_frame(self) -> int:
        return self.context_start + self.entry_duration

    @property
    def exit_start_frame(self) -> int | None:
        if self.context_end is None:
            return None
        return self.context_end - self.exit_duration

    def effective_start_frame(
        self, offset_frames: int = 0, after_parent_entry: bool = True
    ) -> int:
        base = self.entry_complete_frame if after_parent_entry else self.context_start
        return base + offset_frames + self.inherited_offset

    def effective_end_frame(
        self, offset_frames: int = 0, before_parent_exit: bool = True
    ) -> int | None:
        if self.context_end is None:
            return None
        base = self.exit_start_frame if before_parent_exit else self.context_end
        return base - offset_frames

    def is_in_entry_phase(self, frame: int) -> bool:
        return self.context_start <= frame < self.entry_complete_frame

    def is_in_exit_phase(self, frame: int) -> bool:
        exit_start = self.exit_start_frame
        if exit_start is None:
            return False
        return exit_start <= frame < self.context_end

    def nested(
        self,
        child_start: int,
        child_entry_duration: int = 0,
        child_exit_duration: int = 0,
        child_end: int | None = None,
        additional_offset: int = 0,
    ) -> TimingContext:
        """Create a child context whose offsets accumulate onto this one."""
        return TimingContext(
            context_start=child_start,
            entry_duration=child_entry_duration,
            exit_duration=child_exit_duration,
            context_end=child_end,
            inherited_offset=self.inherited_offset + additional_offset,
        )


# =============================================================================
# GEOMETRY
# =============================================================================


class Rect(FrozenModel):
    """Axis-aligned rectangle in pixels (or fractions, for clip rectangles)."""
    left: float = 0.0
    top: float = 0.0
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)

    def lerp(self, other: Rect, t: float) -> Rect:
        return Rect(
            left=self.left + (other.left - self.left) * t,
            top=self.top + (other.top - self.top) * t,
            width=self.width + (other.width - self.width) * t,
            height=self.height + (other.height - self.height) * t,
        )


class Point(FrozenModel):
    x: float = 0.0
    y: float = 0.0


class Alignment(FrozenModel):
    """Relative anchor inside a frame; (-1, -1) is top-left, (0, 0) the center."""
    x: float = Field(default=0.0, ge=-1.0, le=1.0)
    y: float = Field(default=0.0, ge=-1.0, le=1.0)


class HeroRegistration(FrozenModel):
    """One appearance of an identity-keyed element in a scene."""
    identity_key: str = Field(min_length=1)
    scene_index: int = Field(ge=0)
    bounds: Rect
    rotation: float = 0.0
    scale: float = 1.0


# =============================================================================
# TRANSITIONS
# =============================================================================


class _TransitionBase(FrozenModel):
    duration_in_frames: int = Field(ge=0, description="Transition window length")
    curve: EasingCurve = Field(
        default=EasingCurve.EASE_IN_OUT, description="Easing applied to progress"
    )

    def progress_at(self, elapsed_frames: int) -> float:
        """Eased progress after ``elapsed_frames`` of the window."""
        if self.duration_in_frames <= 0:
            return 1.0
        return apply_curve(self.curve, elapsed_frames / self.duration_in_frames)


class NoneTransition(_TransitionBase):
    """Hard cut."""
    kind: Literal["none"] = "none"
    duration_in_frames: int = Field(default=0, ge=0)
    curve: EasingCurve = EasingCurve.LINEAR


class CrossFadeTransition(_TransitionBase):
    kind: Literal["cross_fade"] = "cross_fade"
    duration_in_frames: int = Field(default=15, ge=0)


class SlideTransition(_TransitionBase):
    """Incoming scene slides in from the opposite edge of ``kind``."""
    kind: Literal["slide_left", "slide_right", "slide_up", "slide_down"] = "slide_left"
    duration_in_frames: int = Field(default=20, ge=0)


class ScaleTransition(_TransitionBase):
    kind: Literal["scale"] = "scale"
    duration_in_frames: int = Field(default=20, ge=0)


class WipeTransition(_TransitionBase):
    kind: Literal["wipe"] = "wipe"
    duration_in_frames: int = Field(default=20, ge=0)
    direction: WipeDirection = WipeDirection.LEFT_TO_RIGHT


class ZoomWarpTransition(_TransitionBase):
    kind: Literal["zoom_warp"] = "zoom_warp"
    duration_in_frames: int = Field(default=30, ge=0)
    curve: EasingCurve = EasingCurve.EASE_IN_OUT_CUBIC
    max_zoom: float = Field(default=3.0, ge=1.0, description="Peak zoom factor")
    target: Alignment | None = Field(
        default=None, description="Zoom focus (None = center)"
    )


class ColorBleedTransition(_TransitionBase):
    kind: Literal["color_bleed"] = "color_bleed"
    duration_in_frames: int = Field(default=25, ge=0)
    color: str = Field(default="#000000", description="Overlay color")


TransitionSpec = Annotated[
    Union[
        NoneTransition,
        CrossFadeTransition,
        SlideTransition,
        ScaleTransition,
        WipeTransition,
        ZoomWarpTransition,
        ColorBleedTransition,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# AUDIO
# =============================================================================


class AnchorSpec(FrozenModel):
    """A named frame range other tracks can synchronize against."""
    start_frame: int = Field(ge=0)
    end_frame: int | None = Field(default=None, description="None = open ended")

    @model_validator(mode="after")
    def _check_end(self) -> AnchorSpec:
        if self.end_frame is not None and self.end_frame < self.start_frame:
            raise ValueError("Anchor end_frame must be >= start_frame")
        return self

    @property
    def frame_range(self) -> FrameRange | None:
        if self.end_frame is None:
            return None
        return FrameRange(start=self.start_frame, end=self.end_frame)


class AudioSource(FrozenModel):
    type: AudioSourceType = AudioSourceType.FILE
    path: str = Field(min_length=1, description="Resolved local path")


class AudioSyncSpec(FrozenModel):
    """Timing of a track expressed relative to named anchors."""
    sync_start_anchor: str | None = None
    sync_end_anchor: str | None = None
    start_offset: int = Field(default=0, description="Frames added to anchor start")
    end_offset: int = Field(default=0, description="Frames added to anchor end")
    behavior: SyncBehavior = SyncBehavior.STOP_WHEN_ENDS

    @property
    def has_anchor_reference(self) -> bool:
        return self.sync_start_anchor is not None or self.sync_end_anchor is not None


class AudioTrackSpec(FrozenModel):
    id: str | None = None
    source: AudioSource
    start_frame: int = Field(default=0, ge=0, description="Absolute start frame")
    duration_in_frames: int | None = Field(
        default=None, ge=0, description="None = until the end of the composition"
    )
    trim_start_frame: int = Field(default=0, ge=0, description="Skip into the source")
    trim_end_frame: int | None = Field(
        default=None, ge=0, description="Stop reading the source here"
    )
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    fade_in_frames: int = Field(default=0, ge=0)
    fade_out_frames: int = Field(default=0, ge=0)
    loop: bool = False
    sync: AudioSyncSpec | None = None

    @model_validator(mode="after")
    def _check_trim(self) -> AudioTrackSpec:
        if self.trim_end_frame is not None and self.trim_end_frame <= self.trim_start_frame:
            raise ValueError("trim_end_frame must be greater than trim_start_frame")
        return self

    @property
    def frame_range(self) -> FrameRange | None:
        if self.duration_in_frames is None:
            return None
        return FrameRange.from_duration(self.start_frame, self.duration_in_frames)


# =============================================================================
# SCENE CONTENT
# =============================================================================


class EmbeddedVideoSpec(FrozenModel):
    """
    A video file composited over the rendered frames.

    ``start_frame`` is relative to the enclosing context while the spec sits
    in a scene tree, and absolute once the timeline is resolved.
    """
    id: str | None = None
    path: str = Field(min_length=1)
    start_frame: int = Field(default=0, ge=0)
    duration_in_frames: int | None = Field(
        default=None, ge=0, description="None = until the end of the scene"
    )
    trim_start_seconds: float = Field(default=0.0, ge=0.0)
    width: int = Field(default=640, gt=0)
    height: int = Field(default=360, gt=0)
    position: Point = Field(default_factory=Point)
    include_audio: bool = True
    audio_volume: float = Field(default=1.0, ge=0.0, le=1.0)
    audio_fade_in_frames: int = Field(default=0, ge=0)
    audio_fade_out_frames: int = Field(default=0, ge=0)

    @property
    def frame_range(self) -> FrameRange | None:
        if self.duration_in_frames is None:
            return None
        return FrameRange.from_duration(self.start_frame, self.duration_in_frames)


class LeafNode(FrozenModel):
    """Visual content that does not affect timing; may carry a hero identity."""
    kind: Literal["leaf"] = "leaf"
    name: str = ""
    hero_key: str | None = None
    bounds: Rect | None = None
    rotation: float = 0.0
    scale: float = 1.0

    @model_validator(mode="after")
    def _check_hero(self) -> LeafNode:
        if self.hero_key is not None and self.bounds is None:
            raise ValueError("Leaf with a hero_key must declare bounds")
        return self


class AnchorNode(FrozenModel):
    """Publishes a named sync point into the anchors table."""
    kind: Literal["anchor"] = "anchor"
    anchor_id: str = Field(min_length=1)
    start_frame: int = Field(default=0, description="Offset within the context")
    duration_in_frames: int | None = Field(
        default=None, ge=0, description="None = until the context ends"
    )
    after_parent_entry: bool = False


class EmbeddedVideoNode(FrozenModel):
    kind: Literal["embedded_video"] = "embedded_video"
    video: EmbeddedVideoSpec
    after_parent_entry: bool = False


class ContainerNode(FrozenModel):
    """
    Groups children under a nested timing context.

    ``start_frame`` places the container inside its parent, and
    ``offset_frames`` is inherited by every descendant.
    """
    kind: Literal["container"] = "container"
    name: str = ""
    start_frame: int = 0
    duration_in_frames: int | None = Field(default=None, ge=0)
    entry_duration: int = Field(default=0, ge=0)
    exit_duration: int = Field(default=0, ge=0)
    offset_frames: int = 0
    after_parent_entry: bool = False
    children: tuple[SceneNode, ...] = ()


SceneNode = Annotated[
    Union[ContainerNode, EmbeddedVideoNode, LeafNode, AnchorNode],
    Field(discriminator="kind"),
]


# =============================================================================
# COMPOSITION
# =============================================================================


class SceneSpec(FrozenModel):
    name: str = ""
    duration_in_frames: int = Field(gt=0)
    transition_in: TransitionSpec | None = None
    transition_out: TransitionSpec | None = None
    fade_in_frames: int | None = Field(
        default=None, ge=0, description="None = use the transition duration"
    )
    fade_out_frames: int | None = Field(
        default=None, ge=0, description="None = use the transition duration"
    )
    children: tuple[SceneNode, ...] = ()


class BackgroundMusic(FrozenModel):
    source: AudioSource
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    fade_in_frames: int = Field(default=30, ge=0)
    fade_out_frames: int = Field(default=30, ge=0)
    loop: bool = True


class VideoSpec(FrozenModel):
    """Declarative description of a whole composition."""
    fps: int = Field(default=30, gt=0)
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    scenes: tuple[SceneSpec, ...] = ()
    default_transition: TransitionSpec | None = None
    audio_tracks: tuple[AudioTrackSpec, ...] = ()
    background_music: BackgroundMusic | None = None
    anchors: dict[str, AnchorSpec] = Field(default_factory=dict)

    @property
    def total_frames(self) -> int:
        return sum(scene.duration_in_frames for scene in self.scenes)


# =============================================================================
# RESOLVED TIMELINE
# =============================================================================


class ResolvedScene(FrozenModel):
    index: int = Field(ge=0)
    name: str = ""
    absolute_start: int = Field(ge=0)
    absolute_end: int = Field(ge=0)
    transition_in: TransitionSpec | None = None
    transition_out: TransitionSpec | None = None
    fade_in_frames: int = Field(default=0, ge=0)
    fade_out_frames: int = Field(default=0, ge=0)

    @property
    def frame_range(self) -> FrameRange:
        return FrameRange(start=self.absolute_start, end=self.absolute_end)

    @property
    def duration_in_frames(self) -> int:
        return self.absolute_end - self.absolute_start


class ResolvedTimeline(FrozenModel):
    """Timeline with absolute frames everywhere and no anchor references left."""
    fps: int = Field(gt=0)
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    total_frames: int = Field(ge=0)
    scenes: tuple[ResolvedScene, ...] = ()
    audio_tracks: tuple[AudioTrackSpec, ...] = ()
    embedded_videos: tuple[EmbeddedVideoSpec, ...] = ()
    anchors: dict[str, AnchorSpec] = Field(default_factory=dict)

    @property
    def duration_in_seconds(self) -> float:
        return frames_to_seconds(self.total_frames, self.fps)

    def scene_at(self, frame: int) -> ResolvedScene | None:
        for scene in self.scenes:
            if scene.frame_range.contains(frame):
                return scene
        return None


ContainerNode.model_rebuild()
SceneSpec.model_rebuild()


def load_anchors(data: dict[str, Any]) -> dict[str, AnchorSpec]:
    """Validate a serialized ``name -> {start_frame, end_frame}`` table."""
    try:
        return {name: AnchorSpec.model_validate(value) for name, value in data.items()}
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid anchors table: {exc}") from exc
