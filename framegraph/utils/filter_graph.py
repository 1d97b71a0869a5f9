from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction

from framegraph.exceptions import ConfigurationError, LabelCollisionError
from framegraph.models.render_models import EncodingSpec
from framegraph.models.timeline_models import (
    AudioTrackSpec,
    EmbeddedVideoSpec,
    ResolvedTimeline,
)
from framegraph.utils.frame_utils import (
    format_decimal,
    format_frames_as_seconds,
    format_seconds,
    frames_to_ms,
    to_fraction,
)

logger = logging.getLogger(__name__)

VIDEO_OUT = "v_out"
AUDIO_OUT = "a_out"
FRAME_INPUT_INDEX = 0
FRAME_INPUT_PATH = "pipe:0"
AUDIO_LOOP_SIZE = 2147483647

_INPUT_PAD = re.compile(r"^\d+:[av]$")


class InputKind(str, Enum):
    FRAMES = "frames"
    EMBEDDED_VIDEO = "embedded_video"
    AUDIO = "audio"


@dataclass(frozen=True)
class InputFile:
    index: int
    kind: InputKind
    path: str
    source_id: str | None = None


@dataclass(frozen=True)
class FilterOp:
    name: str
    params: tuple[tuple[str | None, str], ...] = ()

    def render(self) -> str:
        if not self.params:
            return self.name
        args = ":".join(
            value if key is None else f"{key}={value}" for key, value in self.params
        )
        return f"{self.name}={args}"


@dataclass(frozen=True)
class FilterStage:
    input_labels: tuple[str, ...]
    output_label: str
    filters: tuple[FilterOp, ...]

    @property
    def filter_name(self) -> str:
        return self.filters[0].name

    @property
    def params(self) -> tuple[tuple[str | None, str], ...]:
        return self.filters[0].params

    @property
    def filter_names(self) -> list[str]:
        return [op.name for op in self.filters]

    def render(self) -> str:
        inputs = "".join(f"[{label}]" for label in self.input_labels)
        chain = ",".join(op.render() for op in self.filters)
        return f"{inputs}{chain}[{self.output_label}]"


@dataclass(frozen=True)
class FilterGraph:
    inputs: tuple[InputFile, ...]
    stages: tuple[FilterStage, ...]
    video_out: str
    audio_out: str | None

    def render(self) -> str:
        return ";".join(stage.render() for stage in self.stages)

    @property
    def output_maps(self) -> list[str]:
        maps = [f"[{self.video_out}]"]
        if self.audio_out:
            maps.append(f"[{self.audio_out}]")
        return maps

    @property
    def audio_stages(self) -> list[FilterStage]:
        return [stage for stage in self.stages if stage.output_label.startswith("a_")]

    def stage_for(self, label: str) -> FilterStage | None:
        for stage in self.stages:
            if stage.output_label == label:
                return stage
        return None


ASETPTS = FilterOp("asetpts", ((None, "PTS-STARTPTS"),))


@dataclass
class _AudioInput:
    track: AudioTrackSpec
    input_index: int
    duration: int


@dataclass
class _EmbeddedInput:
    video: EmbeddedVideoSpec
    input_index: int
    overlay: bool
    audio: bool


class FilterGraphCompiler:
    """
    Compiles a resolved timeline into ffmpeg filter stages.

    Input 0 is always the piped frame stream, followed by embedded videos
    and then audio track sources, both in timeline order. Labels come from
    a counter scoped to one compile and every label is produced once and
    consumed once; anything else raises LabelCollisionError.
    """

    def __init__(self, timeline: ResolvedTimeline, encoding: EncodingSpec):
        if encoding.fps != timeline.fps:
            raise ConfigurationError(
                f"Encoding fps ({encoding.fps}) does not match timeline fps ({timeline.fps})"
            )
        if (encoding.width, encoding.height) != (timeline.width, timeline.height):
            raise ConfigurationError(
                f"Encoding size {encoding.width}x{encoding.height} does not match "
                f"timeline size {timeline.width}x{timeline.height}"
            )
        self.timeline = timeline
        self.encoding = encoding

        self._inputs: list[InputFile] = []
        self._embedded: list[_EmbeddedInput] = []
        self._audio_inputs: list[_AudioInput] = []
        self._stages: list[FilterStage] = []
        self._produced: set[str] = set()
        self._consumed: set[str] = set()
        self._filter_counter = 0

    @property
    def fps(self) -> int:
        return self.timeline.fps

    def compile(self) -> FilterGraph:
        self._inputs = []
        self._embedded = []
        self._audio_inputs = []
        self._stages = []
        self._produced = set()
        self._consumed = set()
        self._filter_counter = 0

        self._collect_inputs()

        video_out = self._build_video_graph()
        audio_out = self._build_audio_graph()

        self._check_dangling_labels({video_out, audio_out})

        graph = FilterGraph(
            inputs=tuple(self._inputs),
            stages=tuple(self._stages),
            video_out=video_out,
            audio_out=audio_out,
        )
        logger.info(
            f"Compiled filter graph: {len(graph.inputs)} inputs, "
            f"{len(graph.stages)} stages, audio={'yes' if audio_out else 'no'}"
        )
        return graph

    # -------------------------------------------------------------------------
    # Inputs and labels
    # -------------------------------------------------------------------------

    def _add_input(self, kind: InputKind, path: str, source_id: str | None) -> int:
        input_file = InputFile(
            index=len(self._inputs), kind=kind, path=path, source_id=source_id
        )
        self._inputs.append(input_file)
        return input_file.index

    def _collect_inputs(self) -> None:
        self._add_input(InputKind.FRAMES, FRAME_INPUT_PATH, None)

        for video in self.timeline.embedded_videos:
            if not video.duration_in_frames:
                logger.warning(f"Skipping embedded video {video.id or video.path}: zero duration")
                continue
            overlay = self.encoding.overlay_embedded_videos
            audio = video.include_audio
            if not overlay and not audio:
                logger.debug(f"Embedded video {video.id} contributes no streams")
                continue
            index = self._add_input(InputKind.EMBEDDED_VIDEO, video.path, video.id)
            self._embedded.append(_EmbeddedInput(video, index, overlay, audio))

        for track in self.timeline.audio_tracks:
            duration = track.duration_in_frames
            if duration is None:
                duration = max(self.timeline.total_frames - track.start_frame, 0)
            if duration <= 0:
                logger.warning(f"Skipping audio track {track.id or track.source.path}: zero duration")
                continue
            if track.sync is not None:
                logger.debug(
                    f"Audio track {track.id or track.source.path} still has unresolved sync; "
                    f"using authored timing"
                )
            index = self._add_input(InputKind.AUDIO, track.source.path, track.id)
            self._audio_inputs.append(_AudioInput(track, index, duration))

    def _next_label(self, prefix: str) -> str:
        label = f"{prefix}_{self._filter_counter}"
        self._filter_counter += 1
        return label

    def _add_stage(
        self,
        input_labels: tuple[str, ...],
        output_label: str,
        filters: tuple[FilterOp, ...],
    ) -> str:
        if output_label in self._produced:
            raise LabelCollisionError(output_label)
        for label in input_labels:
            if _INPUT_PAD.match(label):
                continue
            if label not in self._produced:
                raise LabelCollisionError(label, "consumed before it was produced")
            if label in self._consumed:
                raise LabelCollisionError(label, "consumed twice")
            self._consumed.add(label)

        stage = FilterStage(input_labels, output_label, filters)
        self._produced.add(output_label)
        self._stages.append(stage)
        logger.debug(f"Filter stage: {stage.render()}")
        return output_label

    def _check_dangling_labels(self, outputs: set[str | None]) -> None:
        for label in sorted(self._produced - self._consumed):
            if label not in outputs:
                raise LabelCollisionError(label, "is never consumed")

    # -------------------------------------------------------------------------
    # Video
    # -------------------------------------------------------------------------

    def _build_video_graph(self) -> str:
        overlays = [entry for entry in self._embedded if entry.overlay]

        base_label = self._next_label("v_base") if overlays else VIDEO_OUT
        self._add_stage(
            (f"{FRAME_INPUT_INDEX}:v",),
            base_label,
            (
                FilterOp("fps", ((None, str(self.fps)),)),
                FilterOp("format", ((None, self.encoding.pixel_format),)),
            ),
        )

        current = base_label
        for entry in overlays:
            current = self._overlay_embedded_video(current, entry)
        return current

    def _overlay_embedded_video(self, current: str, entry: _EmbeddedInput) -> str:
        video = entry.video
        start = Fraction(video.start_frame, self.fps)
        # between() is inclusive; stop half a frame early so the overlay covers
        # exactly [start_frame, start_frame + duration)
        end = Fraction(2 * (video.start_frame + video.duration_in_frames) - 1, 2 * self.fps)
        trim_start = to_fraction(video.trim_start_seconds)
        trim_end = trim_start + Fraction(video.duration_in_frames, self.fps)

        source_label = self._add_stage(
            (f"{entry.input_index}:v",),
            self._next_label("v_embed_src"),
            (
                FilterOp(
                    "trim",
                    (("start", format_seconds(trim_start)), ("end", format_seconds(trim_end))),
                ),
                FilterOp("setpts", ((None, f"PTS-STARTPTS+{format_seconds(start)}/TB"),)),
                FilterOp("scale", ((None, str(video.width)), (None, str(video.height)))),
            ),
        )

        enable = f"'between(t,{format_seconds(start)},{format_seconds(end)})'"
        return self._add_stage(
            (current, source_label),
            self._next_label("v_embed"),
            (
                FilterOp(
                    "overlay",
                    (
                        (None, format_decimal(video.position.x)),
                        (None, format_decimal(video.position.y)),
                        ("enable", enable),
                    ),
                ),
            ),
        )

    # -------------------------------------------------------------------------
    # Audio
    # -------------------------------------------------------------------------

    def _build_audio_graph(self) -> str | None:
        chains: list[tuple[str, str, tuple[FilterOp, ...]]] = []
        for entry in self._embedded:
            if entry.audio:
                chains.append(
                    (f"{entry.input_index}:a", "a_embed", self._embedded_audio_filters(entry.video))
                )
        for audio_input in self._audio_inputs:
            chains.append(
                (
                    f"{audio_input.input_index}:a",
                    "a_track",
                    self._track_audio_filters(audio_input.track, audio_input.duration),
                )
            )

        if not chains:
            return None

        if len(chains) == 1:
            pad, _, filters = chains[0]
            return self._add_stage((pad,), AUDIO_OUT, filters)

        labels = [
            self._add_stage((pad,), self._next_label(prefix), filters)
            for pad, prefix, filters in chains
        ]
        return self._mix_audio_tracks(labels)

    def _mix_audio_tracks(self, labels: list[str]) -> str:
        return self._add_stage(
            tuple(labels),
            AUDIO_OUT,
            (FilterOp("amix", (("inputs", str(len(labels))), ("duration", "longest"))),),
        )

    def _atrim_frames(self, start_frame: int, end_frame: int | None) -> FilterOp:
        params: list[tuple[str | None, str]] = [
            ("start", format_frames_as_seconds(start_frame, self.fps))
        ]
        if end_frame is not None:
            params.append(("end", format_frames_as_seconds(end_frame, self.fps)))
        return FilterOp("atrim", tuple(params))

    def _track_audio_filters(
        self, track: AudioTrackSpec, duration: int
    ) -> tuple[FilterOp, ...]:
        trim_start = track.trim_start_frame
        ops: list[FilterOp] = []

        if track.loop:
            if trim_start > 0 or track.trim_end_frame is not None:
                ops.append(self._atrim_frames(trim_start, track.trim_end_frame))
                ops.append(ASETPTS)
            ops.append(FilterOp("aloop", (("loop", "-1"), ("size", str(AUDIO_LOOP_SIZE)))))
            ops.append(self._atrim_frames(0, duration))
            length = duration
        else:
            window_end = trim_start + duration
            if track.trim_end_frame is not None:
                window_end = min(window_end, track.trim_end_frame)
            ops.append(self._atrim_frames(trim_start, window_end))
            if trim_start > 0:
                ops.append(ASETPTS)
            length = window_end - trim_start

        ops.extend(self._fade_filters(track.fade_in_frames, track.fade_out_frames, length))
        ops.append(self._volume_filter(track.volume))
        ops.append(self._delay_filter(track.start_frame))
        return tuple(ops)

    def _embedded_audio_filters(self, video: EmbeddedVideoSpec) -> tuple[FilterOp, ...]:
        trim_start = to_fraction(video.trim_start_seconds)
        trim_end = trim_start + Fraction(video.duration_in_frames, self.fps)
        ops = [
            FilterOp(
                "atrim",
                (("start", format_seconds(trim_start)), ("end", format_seconds(trim_end))),
            )
        ]
        if trim_start > 0:
            ops.append(ASETPTS)
        ops.extend(
            self._fade_filters(
                video.audio_fade_in_frames,
                video.audio_fade_out_frames,
                video.duration_in_frames,
            )
        )
        ops.append(self._volume_filter(video.audio_volume))
        ops.append(self._delay_filter(video.start_frame))
        return tuple(ops)

    def _fade_filters(
        self, fade_in_frames: int, fade_out_frames: int, length: int
    ) -> list[FilterOp]:
        ops: list[FilterOp] = []
        if fade_in_frames > 0:
            ops.append(
                FilterOp(
                    "afade",
                    (
                        ("t", "in"),
                        ("st", "0"),
                        ("d", format_frames_as_seconds(fade_in_frames, self.fps)),
                    ),
                )
            )
        if fade_out_frames > 0:
            hold = max(length - fade_out_frames, 0)
            ops.append(
                FilterOp(
                    "afade",
                    (
                        ("t", "out"),
                        ("st", format_frames_as_seconds(hold, self.fps)),
                        ("d", format_frames_as_seconds(fade_out_frames, self.fps)),
                    ),
                )
            )
        return ops

    def _volume_filter(self, volume: float) -> FilterOp:
        return FilterOp("volume", ((None, format_decimal(volume, 4)),))

    def _delay_filter(self, start_frame: int) -> FilterOp:
        delay_ms = frames_to_ms(start_frame, self.fps)
        return FilterOp("adelay", ((None, f"{delay_ms}|{delay_ms}"),))
