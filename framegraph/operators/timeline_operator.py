"""
Timeline Operator - lays scenes end to end and resolves everything to
absolute frames.

This module provides:
- Scene assembly (absolute starts, interior-only transitions, fade defaults)
- Per-frame transition progress and transition geometry
- One deterministic walk over scene content trees that collects embedded
  videos, sync anchors and hero registrations
- Full resolution of a VideoSpec into a ResolvedTimeline
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from framegraph.config import strict_sync_enabled
from framegraph.exceptions import ConfigurationError
from framegraph.models.timeline_models import (
    Alignment,
    AnchorNode,
    AnchorSpec,
    AudioTrackSpec,
    BackgroundMusic,
    ColorBleedTransition,
    ContainerNode,
    CrossFadeTransition,
    EmbeddedVideoNode,
    EmbeddedVideoSpec,
    HeroRegistration,
    LeafNode,
    NoneTransition,
    Rect,
    ResolvedScene,
    ResolvedTimeline,
    SceneNode,
    SceneSpec,
    ScaleTransition,
    SlideTransition,
    TimingContext,
    TransitionSpec,
    VideoSpec,
    WipeDirection,
    WipeTransition,
    ZoomWarpTransition,
)
from framegraph.operators.hero_operator import HeroTransitionManager
from framegraph.operators.sync_operator import resolve_all
from framegraph.operators.timing_operator import child_context, root_context

logger = logging.getLogger(__name__)

MIN_TRANSITION_SCALE = 0.001
COLOR_BLEED_MAX_ALPHA = 0.8


# =============================================================================
# SCENE ASSEMBLY
# =============================================================================


def assemble_scenes(
    scenes: Sequence[SceneSpec],
    default_transition: TransitionSpec | None = None,
) -> list[ResolvedScene]:
    """
    Place scenes end to end and resolve their transitions.

    Transitions only apply at interior boundaries: the first scene never
    gets a transition in and the last never gets a transition out. A scene's
    own transition wins over the default. Fade lengths default to the
    resolved transition's duration unless the scene sets them explicitly.
    """
    resolved: list[ResolvedScene] = []
    cursor = 0
    last_index = len(scenes) - 1

    for index, scene in enumerate(scenes):
        transition_in = None
        if index > 0:
            transition_in = scene.transition_in
            if transition_in is None:
                transition_in = default_transition

        transition_out = None
        if index < last_index:
            transition_out = scene.transition_out
            if transition_out is None:
                transition_out = default_transition

        fade_in = scene.fade_in_frames
        if fade_in is None:
            fade_in = transition_in.duration_in_frames if transition_in is not None else 0
        fade_out = scene.fade_out_frames
        if fade_out is None:
            fade_out = transition_out.duration_in_frames if transition_out is not None else 0

        resolved.append(
            ResolvedScene(
                index=index,
                name=scene.name,
                absolute_start=cursor,
                absolute_end=cursor + scene.duration_in_frames,
                transition_in=transition_in,
                transition_out=transition_out,
                fade_in_frames=fade_in,
                fade_out_frames=fade_out,
            )
        )
        cursor += scene.duration_in_frames

    logger.debug(f"Assembled {len(resolved)} scenes spanning {cursor} frames")
    return resolved


# =============================================================================
# TRANSITIONS
# =============================================================================


@dataclass(frozen=True)
class TransitionFrame:
    """
    Geometry a transition applies to a scene at one frame.

    Translations are fractions of the frame size. ``clip`` is a rectangle in
    fractions of the frame, and the overlay is a solid color drawn on top.
    """
    translate_x: float = 0.0
    translate_y: float = 0.0
    scale: float = 1.0
    opacity: float = 1.0
    clip: Rect | None = None
    overlay_color: str | None = None
    overlay_alpha: float = 0.0
    alignment: Alignment | None = None


def entry_progress(scene: ResolvedScene, frame: int) -> float:
    """Eased entry progress; 1.0 when the scene has no entry transition."""
    transition = scene.transition_in
    if transition is None:
        return 1.0
    return transition.progress_at(frame - scene.absolute_start)


def exit_progress(scene: ResolvedScene, frame: int) -> float:
    """Eased exit progress; 0.0 when the scene has no exit transition."""
    transition = scene.transition_out
    if transition is None or transition.duration_in_frames <= 0:
        return 0.0
    window_start = scene.absolute_end - transition.duration_in_frames
    return transition.progress_at(frame - window_start)


def _wipe_clip(direction: WipeDirection, visible: float) -> Rect:
    if direction == WipeDirection.LEFT_TO_RIGHT:
        return Rect(left=0.0, top=0.0, width=visible, height=1.0)
    if direction == WipeDirection.RIGHT_TO_LEFT:
        return Rect(left=1.0 - visible, top=0.0, width=visible, height=1.0)
    if direction == WipeDirection.TOP_TO_BOTTOM:
        return Rect(left=0.0, top=0.0, width=1.0, height=visible)
    return Rect(left=0.0, top=1.0 - visible, width=1.0, height=visible)


def transition_geometry(
    transition: TransitionSpec, progress: float, entering: bool
) -> TransitionFrame:
    p = max(0.0, min(1.0, progress))

    if isinstance(transition, NoneTransition):
        return TransitionFrame()

    if isinstance(transition, CrossFadeTransition):
        return TransitionFrame(opacity=p if entering else 1.0 - p)

    if isinstance(transition, SlideTransition):
        offset = 1.0 - p if entering else -p
        if transition.kind == "slide_left":
            return TransitionFrame(translate_x=offset)
        if transition.kind == "slide_right":
            return TransitionFrame(translate_x=-offset)
        if transition.kind == "slide_up":
            return TransitionFrame(translate_y=offset)
        return TransitionFrame(translate_y=-offset)

    if isinstance(transition, ScaleTransition):
        scale = p if entering else 1.0 - p
        return TransitionFrame(scale=max(MIN_TRANSITION_SCALE, min(1.0, scale)))

    if isinstance(transition, WipeTransition):
        visible = p if entering else 1.0 - p
        return TransitionFrame(clip=_wipe_clip(transition.direction, visible))

    if isinstance(transition, ZoomWarpTransition):
        zoom_range = transition.max_zoom - 1.0
        if entering:
            scale = 1.0 + zoom_range * (1.0 - p)
            opacity = p
        else:
            scale = 1.0 + zoom_range * p
            opacity = 1.0 - p
        return TransitionFrame(
            scale=scale,
            opacity=opacity,
            alignment=transition.target or Alignment(),
        )

    if isinstance(transition, ColorBleedTransition):
        strength = 1.0 - p if entering else p
        return TransitionFrame(
            overlay_color=transition.color,
            overlay_alpha=strength * COLOR_BLEED_MAX_ALPHA,
        )

    raise TypeError(f"Unsupported transition: {type(transition).__name__}")


def scene_transition_frame(scene: ResolvedScene, frame: int) -> TransitionFrame:
    """Geometry for ``frame``; the entry window wins if both windows overlap."""
    transition_in = scene.transition_in
    if transition_in is not None and frame < scene.absolute_start + transition_in.duration_in_frames:
        return transition_geometry(transition_in, entry_progress(scene, frame), entering=True)

    transition_out = scene.transition_out
    if transition_out is not None and frame >= scene.absolute_end - transition_out.duration_in_frames:
        return transition_geometry(transition_out, exit_progress(scene, frame), entering=False)

    return TransitionFrame()


def fade_opacity(scene: ResolvedScene, frame: int) -> float:
    """Layer opacity from the scene's fade-in/fade-out frame counts."""
    opacity = 1.0
    if scene.fade_in_frames > 0:
        opacity *= min(1.0, max(0.0, (frame - scene.absolute_start) / scene.fade_in_frames))
    if scene.fade_out_frames > 0:
        remaining = scene.absolute_end - frame
        opacity *= min(1.0, max(0.0, remaining / scene.fade_out_frames))
    return opacity


# =============================================================================
# SCENE CONTENT WALK
# =============================================================================


@dataclass
class SceneContent:
    embedded_videos: list[EmbeddedVideoSpec] = field(default_factory=list)
    anchors: dict[str, AnchorSpec] = field(default_factory=dict)
    hero_registrations: list[HeroRegistration] = field(default_factory=list)


def collect_scene_content(
    scenes: Sequence[SceneSpec], resolved: Sequence[ResolvedScene]
) -> SceneContent:
    content = SceneContent()
    for spec, scene in zip(scenes, resolved):
        context = root_context(
            start=scene.absolute_start,
            end=scene.absolute_end,
            entry_duration=scene.transition_in.duration_in_frames if scene.transition_in is not None else 0,
            exit_duration=scene.transition_out.duration_in_frames if scene.transition_out is not None else 0,
        )
        _walk_nodes(spec.children, context, scene, content)
    return content


def _walk_nodes(
    nodes: Sequence[SceneNode],
    context: TimingContext,
    scene: ResolvedScene,
    content: SceneContent,
) -> None:
    for node in nodes:
        if isinstance(node, ContainerNode):
            _walk_nodes(node.children, child_context(context, node), scene, content)
        elif isinstance(node, EmbeddedVideoNode):
            content.embedded_videos.append(
                _place_embedded_video(node, context, len(content.embedded_videos))
            )
        elif isinstance(node, AnchorNode):
            _place_anchor(node, context, content)
        elif isinstance(node, LeafNode):
            if node.hero_key is not None:
                content.hero_registrations.append(
                    HeroRegistration(
                        identity_key=node.hero_key,
                        scene_index=scene.index,
                        bounds=node.bounds,
                        rotation=node.rotation,
                        scale=node.scale,
                    )
                )
        else:
            raise TypeError(f"Unsupported scene node: {type(node).__name__}")


def _place_embedded_video(
    node: EmbeddedVideoNode, context: TimingContext, ordinal: int
) -> EmbeddedVideoSpec:
    video = node.video
    start = context.effective_start_frame(video.start_frame, node.after_parent_entry)
    if start < 0:
        raise ConfigurationError(
            f"Embedded video {video.id or video.path} resolves to negative start frame {start}"
        )

    duration = video.duration_in_frames
    if duration is None:
        end = context.context_end if context.context_end is not None else start
        duration = max(end - start, 0)

    return video.model_copy(
        update={
            "id": video.id or f"embedded_video_{ordinal}",
            "start_frame": start,
            "duration_in_frames": duration,
        }
    )


def _place_anchor(node: AnchorNode, context: TimingContext, content: SceneContent) -> None:
    start = context.effective_start_frame(node.start_frame, node.after_parent_entry)
    if start < 0:
        raise ConfigurationError(
            f"Anchor '{node.anchor_id}' resolves to negative start frame {start}"
        )
    if node.duration_in_frames is not None:
        end = start + node.duration_in_frames
    else:
        end = context.context_end
    if end is not None and end < start:
        end = start

    if node.anchor_id in content.anchors:
        logger.warning(f"Anchor '{node.anchor_id}' declared more than once; keeping the last")
    content.anchors[node.anchor_id] = AnchorSpec(start_frame=start, end_frame=end)


# =============================================================================
# FULL RESOLUTION
# =============================================================================


def _background_track(music: BackgroundMusic, total_frames: int) -> AudioTrackSpec:
    return AudioTrackSpec(
        id="background_music",
        source=music.source,
        start_frame=0,
        duration_in_frames=total_frames,
        volume=music.volume,
        fade_in_frames=music.fade_in_frames,
        fade_out_frames=music.fade_out_frames,
        loop=music.loop,
    )


def _fill_duration(track: AudioTrackSpec, total_frames: int) -> AudioTrackSpec:
    if track.duration_in_frames is not None:
        return track
    return track.model_copy(
        update={"duration_in_frames": max(total_frames - track.start_frame, 0)}
    )


def resolve_timeline(
    video: VideoSpec,
    anchors: Mapping[str, AnchorSpec] | None = None,
    strict_sync: bool | None = None,
) -> ResolvedTimeline:
    """
    Resolve a composition into absolute frames.

    Args:
        video: Declarative composition
        anchors: Extra anchors from earlier passes (override scene anchors)
        strict_sync: Fail on missing sync anchors (None = FRAMEGRAPH_STRICT_SYNC)

    Returns:
        ResolvedTimeline ready for filter graph compilation
    """
    scenes = assemble_scenes(video.scenes, video.default_transition)
    total_frames = scenes[-1].absolute_end if scenes else 0
    content = collect_scene_content(video.scenes, scenes)

    anchor_table: dict[str, AnchorSpec] = {
        **content.anchors,
        **video.anchors,
        **(anchors or {}),
    }

    tracks: list[AudioTrackSpec] = []
    if video.background_music is not None:
        tracks.append(_background_track(video.background_music, total_frames))
    tracks.extend(video.audio_tracks)

    strict = strict_sync_enabled() if strict_sync is None else strict_sync
    resolved_tracks = [
        _fill_duration(track, total_frames)
        for track in resolve_all(tracks, anchor_table, strict=strict)
    ]

    logger.info(
        f"Resolved timeline: {len(scenes)} scenes, {total_frames} frames, "
        f"{len(resolved_tracks)} audio tracks, {len(content.embedded_videos)} embedded videos"
    )
    return ResolvedTimeline(
        fps=video.fps,
        width=video.width,
        height=video.height,
        total_frames=total_frames,
        scenes=tuple(scenes),
        audio_tracks=tuple(resolved_tracks),
        embedded_videos=tuple(content.embedded_videos),
        anchors=anchor_table,
    )


def build_hero_manager(video: VideoSpec) -> HeroTransitionManager:
    """Populate a hero arena from every leaf carrying a hero key."""
    scenes = assemble_scenes(video.scenes, video.default_transition)
    content = collect_scene_content(video.scenes, scenes)
    return HeroTransitionManager.from_registrations(content.hero_registrations)
