"""
Tests for scene assembly, transition geometry and timeline resolution.
"""

import pytest

from framegraph.exceptions import ConfigurationError, UnresolvedReferenceError
from framegraph.models.timeline_models import (
    Alignment,
    AnchorNode,
    AnchorSpec,
    AudioSource,
    AudioSyncSpec,
    AudioTrackSpec,
    BackgroundMusic,
    ColorBleedTransition,
    ContainerNode,
    CrossFadeTransition,
    EmbeddedVideoNode,
    EmbeddedVideoSpec,
    LeafNode,
    NoneTransition,
    Rect,
    ScaleTransition,
    SceneSpec,
    SlideTransition,
    VideoSpec,
    WipeDirection,
    WipeTransition,
    ZoomWarpTransition,
)
from framegraph.operators.timeline_operator import (
    TransitionFrame,
    assemble_scenes,
    build_hero_manager,
    entry_progress,
    exit_progress,
    fade_opacity,
    resolve_timeline,
    scene_transition_frame,
    transition_geometry,
)
from framegraph.utils.easing import EasingCurve


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def linear_fade() -> CrossFadeTransition:
    return CrossFadeTransition(duration_in_frames=15, curve=EasingCurve.LINEAR)


@pytest.fixture
def two_scene_video(linear_fade) -> VideoSpec:
    """Two scenes of 90 and 60 frames at 30fps with a 15 frame crossfade."""
    return VideoSpec(
        fps=30,
        width=1280,
        height=720,
        scenes=(
            SceneSpec(duration_in_frames=90),
            SceneSpec(duration_in_frames=60),
        ),
        default_transition=linear_fade,
    )


# =============================================================================
# SCENE ASSEMBLY
# =============================================================================


class TestAssembleScenes:
    """Tests for laying scenes end to end."""

    def test_two_scene_crossfade(self, two_scene_video):
        scenes = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)

        assert (scenes[0].absolute_start, scenes[0].absolute_end) == (0, 90)
        assert (scenes[1].absolute_start, scenes[1].absolute_end) == (90, 150)
        assert scenes[1].transition_in.duration_in_frames == 15
        assert scenes[0].transition_out == scenes[1].transition_in

    def test_outer_boundaries_have_no_transition(self, two_scene_video):
        scenes = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)

        assert scenes[0].transition_in is None
        assert scenes[1].transition_out is None

    @pytest.mark.parametrize("durations", [[10], [30, 60, 90], [1, 2, 3, 4, 5]])
    def test_additivity(self, durations):
        scenes = assemble_scenes([SceneSpec(duration_in_frames=d) for d in durations])

        for k, scene in enumerate(scenes):
            assert scene.absolute_start == sum(durations[:k])
        assert scenes[-1].absolute_end == sum(durations)

    def test_own_transition_wins(self, linear_fade):
        wipe = WipeTransition()
        scenes = assemble_scenes(
            [
                SceneSpec(duration_in_frames=30),
                SceneSpec(duration_in_frames=30, transition_in=wipe),
            ],
            default_transition=linear_fade,
        )

        assert scenes[1].transition_in == wipe
        assert scenes[0].transition_out == linear_fade

    def test_own_transition_ignored_at_composition_edges(self):
        scenes = assemble_scenes(
            [SceneSpec(duration_in_frames=30, transition_in=CrossFadeTransition())]
        )

        assert scenes[0].transition_in is None
        assert scenes[0].fade_in_frames == 0

    def test_fades_default_to_transition_duration(self, two_scene_video):
        scenes = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)

        assert scenes[0].fade_out_frames == 15
        assert scenes[1].fade_in_frames == 15
        assert scenes[0].fade_in_frames == 0

    def test_explicit_fades_win(self, linear_fade):
        scenes = assemble_scenes(
            [
                SceneSpec(duration_in_frames=30),
                SceneSpec(duration_in_frames=30, fade_in_frames=4),
            ],
            default_transition=linear_fade,
        )

        assert scenes[1].fade_in_frames == 4

    def test_zero_duration_scene_rejected(self):
        with pytest.raises(ValueError):
            SceneSpec(duration_in_frames=0)


# =============================================================================
# TRANSITIONS
# =============================================================================


class TestTransitionProgress:
    """Tests for entry/exit progress windows."""

    def test_entry_progress(self, two_scene_video):
        scene = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)[1]

        assert entry_progress(scene, 90) == 0.0
        assert entry_progress(scene, 96) == pytest.approx(0.4)
        assert entry_progress(scene, 105) == 1.0
        assert entry_progress(scene, 200) == 1.0

    def test_exit_progress(self, two_scene_video):
        scene = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)[0]

        assert exit_progress(scene, 70) == 0.0
        assert exit_progress(scene, 75) == 0.0
        assert exit_progress(scene, 81) == pytest.approx(0.4)
        assert exit_progress(scene, 90) == 1.0

    def test_no_transition(self, two_scene_video):
        scenes = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)

        assert entry_progress(scenes[0], 0) == 1.0
        assert exit_progress(scenes[1], 149) == 0.0

    def test_zero_duration_transition(self):
        transition = NoneTransition()

        assert transition.progress_at(0) == 1.0

    def test_curve_applied(self):
        eased = CrossFadeTransition(duration_in_frames=10, curve=EasingCurve.EASE_IN)

        assert eased.progress_at(5) < 0.5


class TestTransitionGeometry:
    """Tests for per-kind transition geometry."""

    def test_none_is_identity(self):
        assert transition_geometry(NoneTransition(), 0.3, entering=True) == TransitionFrame()

    def test_cross_fade_opacity(self):
        assert transition_geometry(CrossFadeTransition(), 0.25, True).opacity == 0.25
        assert transition_geometry(CrossFadeTransition(), 0.25, False).opacity == 0.75

    @pytest.mark.parametrize(
        "kind,entering,expected",
        [
            ("slide_left", True, (0.75, 0.0)),
            ("slide_left", False, (-0.25, 0.0)),
            ("slide_right", True, (-0.75, 0.0)),
            ("slide_right", False, (0.25, 0.0)),
            ("slide_up", True, (0.0, 0.75)),
            ("slide_down", False, (0.0, 0.25)),
        ],
    )
    def test_slide_offsets(self, kind, entering, expected):
        frame = transition_geometry(SlideTransition(kind=kind), 0.25, entering)

        assert (frame.translate_x, frame.translate_y) == pytest.approx(expected)

    def test_scale_clamped(self):
        assert transition_geometry(ScaleTransition(), 0.0, True).scale == 0.001
        assert transition_geometry(ScaleTransition(), 0.4, False).scale == pytest.approx(0.6)

    @pytest.mark.parametrize(
        "direction,expected",
        [
            (WipeDirection.LEFT_TO_RIGHT, Rect(left=0, top=0, width=0.25, height=1)),
            (WipeDirection.RIGHT_TO_LEFT, Rect(left=0.75, top=0, width=0.25, height=1)),
            (WipeDirection.TOP_TO_BOTTOM, Rect(left=0, top=0, width=1, height=0.25)),
            (WipeDirection.BOTTOM_TO_TOP, Rect(left=0, top=0.75, width=1, height=0.25)),
        ],
    )
    def test_wipe_clip(self, direction, expected):
        frame = transition_geometry(WipeTransition(direction=direction), 0.25, True)

        assert frame.clip == expected

    def test_zoom_warp(self):
        transition = ZoomWarpTransition(max_zoom=3.0, target=Alignment(x=0.5, y=-0.5))

        entering = transition_geometry(transition, 0.5, True)
        leaving = transition_geometry(transition, 0.25, False)

        assert entering.scale == pytest.approx(2.0)
        assert entering.opacity == pytest.approx(0.5)
        assert entering.alignment == Alignment(x=0.5, y=-0.5)
        assert leaving.scale == pytest.approx(1.5)
        assert leaving.opacity == pytest.approx(0.75)

    def test_color_bleed(self):
        transition = ColorBleedTransition(color="#ff0000")

        frame = transition_geometry(transition, 0.5, True)

        assert frame.overlay_color == "#ff0000"
        assert frame.overlay_alpha == pytest.approx(0.4)
        assert transition_geometry(transition, 1.0, False).overlay_alpha == pytest.approx(0.8)

    def test_scene_transition_frame_windows(self, two_scene_video):
        scenes = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)

        assert scene_transition_frame(scenes[0], 40) == TransitionFrame()
        assert scene_transition_frame(scenes[0], 81).opacity == pytest.approx(0.6)
        assert scene_transition_frame(scenes[1], 96).opacity == pytest.approx(0.4)

    def test_fade_opacity(self, two_scene_video):
        scene = assemble_scenes(two_scene_video.scenes, two_scene_video.default_transition)[1]

        assert fade_opacity(scene, 90) == 0.0
        assert fade_opacity(scene, 120) == 1.0


class TestTransitionSerialization:
    """Transitions are a tagged variant keyed by ``kind``."""

    def test_discriminated_round_trip(self):
        scene = SceneSpec.model_validate(
            {
                "duration_in_frames": 30,
                "transition_in": {"kind": "wipe", "direction": "top_to_bottom"},
                "transition_out": {"kind": "slide_up"},
            }
        )

        assert isinstance(scene.transition_in, WipeTransition)
        assert scene.transition_in.duration_in_frames == 20
        assert isinstance(scene.transition_out, SlideTransition)
        assert SceneSpec.model_validate(scene.model_dump(mode="json")) == scene

    def test_none_fields_absent(self):
        dumped = SceneSpec(duration_in_frames=30).model_dump(mode="json", exclude_none=True)

        assert "transition_in" not in dumped
        assert "fade_in_frames" not in dumped

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            SceneSpec.model_validate(
                {"duration_in_frames": 30, "transition_in": {"kind": "spin"}}
            )


# =============================================================================
# TIMELINE RESOLUTION
# =============================================================================


class TestResolveTimeline:
    """Tests for resolving a whole composition."""

    def test_embedded_video_placement(self):
        video = VideoSpec(
            fps=30,
            scenes=(
                SceneSpec(duration_in_frames=60),
                SceneSpec(
                    duration_in_frames=90,
                    children=(
                        ContainerNode(
                            start_frame=10,
                            children=(
                                EmbeddedVideoNode(
                                    video=EmbeddedVideoSpec(path="/media/clip.mp4", start_frame=5)
                                ),
                            ),
                        ),
                        EmbeddedVideoNode(
                            video=EmbeddedVideoSpec(
                                id="logo", path="/media/logo.mp4", duration_in_frames=30
                            )
                        ),
                    ),
                ),
            ),
        )

        timeline = resolve_timeline(video)

        first, second = timeline.embedded_videos
        assert first.id == "embedded_video_0"
        assert first.start_frame == 75
        assert first.duration_in_frames == 75
        assert second.id == "logo"
        assert second.start_frame == 60
        assert second.duration_in_frames == 30
        assert timeline.total_frames == 150

    def test_anchor_nodes_drive_audio_sync(self):
        video = VideoSpec(
            fps=30,
            scenes=(
                SceneSpec(duration_in_frames=30),
                SceneSpec(
                    duration_in_frames=60,
                    children=(AnchorNode(anchor_id="intro", start_frame=5, duration_in_frames=20),),
                ),
            ),
            audio_tracks=(
                AudioTrackSpec(
                    source=AudioSource(path="/audio/hit.wav"),
                    duration_in_frames=10,
                    sync=AudioSyncSpec(sync_start_anchor="intro", start_offset=2),
                ),
            ),
        )

        timeline = resolve_timeline(video)

        assert timeline.anchors["intro"] == AnchorSpec(start_frame=35, end_frame=55)
        track = timeline.audio_tracks[0]
        assert track.start_frame == 37
        assert track.sync is None

    def test_supplied_anchors_override_scene_anchors(self):
        video = VideoSpec(
            scenes=(
                SceneSpec(
                    duration_in_frames=60,
                    children=(AnchorNode(anchor_id="drop", start_frame=10),),
                ),
            ),
        )

        timeline = resolve_timeline(video, anchors={"drop": AnchorSpec(start_frame=40)})

        assert timeline.anchors["drop"].start_frame == 40

    def test_background_music(self, two_scene_video):
        video = two_scene_video.model_copy(
            update={
                "background_music": BackgroundMusic(
                    source=AudioSource(path="/audio/music.mp3"), volume=0.5
                )
            }
        )

        track = resolve_timeline(video).audio_tracks[0]

        assert track.id == "background_music"
        assert track.duration_in_frames == 150
        assert track.loop is True
        assert (track.fade_in_frames, track.fade_out_frames) == (30, 30)
        assert track.volume == 0.5

    def test_open_ended_track_fills_composition(self, two_scene_video):
        video = two_scene_video.model_copy(
            update={
                "audio_tracks": (
                    AudioTrackSpec(source=AudioSource(path="/audio/vo.wav"), start_frame=30),
                )
            }
        )

        assert resolve_timeline(video).audio_tracks[0].duration_in_frames == 120

    def test_strict_sync_raises(self, two_scene_video):
        video = two_scene_video.model_copy(
            update={
                "audio_tracks": (
                    AudioTrackSpec(
                        source=AudioSource(path="/audio/vo.wav"),
                        sync=AudioSyncSpec(sync_start_anchor="missing"),
                    ),
                )
            }
        )

        with pytest.raises(UnresolvedReferenceError):
            resolve_timeline(video, strict_sync=True)

    def test_negative_embedded_start_rejected(self):
        video = VideoSpec(
            scenes=(
                SceneSpec(
                    duration_in_frames=30,
                    children=(
                        ContainerNode(
                            offset_frames=-10,
                            children=(
                                EmbeddedVideoNode(video=EmbeddedVideoSpec(path="/media/a.mp4")),
                            ),
                        ),
                    ),
                ),
            ),
        )

        with pytest.raises(ConfigurationError):
            resolve_timeline(video)

    def test_scene_at(self, two_scene_video):
        timeline = resolve_timeline(two_scene_video)

        assert timeline.scene_at(89).index == 0
        assert timeline.scene_at(90).index == 1
        assert timeline.scene_at(150) is None

    def test_hero_manager_built_from_leaves(self):
        video = VideoSpec(
            scenes=(
                SceneSpec(
                    duration_in_frames=30,
                    children=(
                        LeafNode(hero_key="logo", bounds=Rect(left=0, top=0, width=100, height=100)),
                    ),
                ),
                SceneSpec(
                    duration_in_frames=30,
                    children=(
                        ContainerNode(
                            children=(
                                LeafNode(
                                    hero_key="logo",
                                    bounds=Rect(left=200, top=100, width=50, height=50),
                                    rotation=90.0,
                                ),
                            ),
                        ),
                    ),
                ),
            ),
        )

        manager = build_hero_manager(video)

        assert manager.has_hero_transition("logo", 0)
        data = manager.transition_data("logo", 0, 1, 0.5)
        assert data.bounds == Rect(left=100, top=50, width=75, height=75)
        assert data.rotation == 45.0
