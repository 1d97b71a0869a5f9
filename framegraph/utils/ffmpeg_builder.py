from __future__ import annotations

import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from framegraph.config import get_ffmpeg_bin
from framegraph.exceptions import ExternalToolError
from framegraph.models.render_models import (
    EncodingSpec,
    FrameFormat,
    RenderManifest,
    load_manifest,
)
from framegraph.models.timeline_models import AnchorSpec, ResolvedTimeline
from framegraph.operators.timeline_operator import resolve_timeline
from framegraph.utils.filter_graph import (
    FilterGraph,
    FilterGraphCompiler,
    InputFile,
    InputKind,
)

logger = logging.getLogger(__name__)


@dataclass
class InputSpec:
    path: str
    options: list[str] = field(default_factory=list)

    def to_args(self) -> list[str]:
        return [*self.options, "-i", self.path]


@dataclass
class FFmpegCommand:
    ffmpeg_bin: str
    global_options: list[str]
    inputs: list[InputSpec]
    filter_complex: str
    output_maps: list[str]
    output_options: list[str]
    output_file: str

    def to_args(self) -> list[str]:
        args = [self.ffmpeg_bin, *self.global_options]
        for input_spec in self.inputs:
            args.extend(input_spec.to_args())
        if self.filter_complex:
            args.extend(["-filter_complex", self.filter_complex])
        for output_map in self.output_maps:
            args.extend(["-map", output_map])
        args.extend(self.output_options)
        args.append(self.output_file)
        return args

    def to_shell(self) -> str:
        return shlex.join(self.to_args())


class TimelineToFFmpeg:
    def __init__(
        self,
        timeline: ResolvedTimeline,
        encoding: EncodingSpec,
        output_path: str,
        ffmpeg_bin: str | None = None,
    ):
        self.timeline = timeline
        self.encoding = encoding
        self.output_path = output_path
        self.ffmpeg_bin = ffmpeg_bin or get_ffmpeg_bin()

    def build(self) -> FFmpegCommand:
        graph = FilterGraphCompiler(self.timeline, self.encoding).compile()

        return FFmpegCommand(
            ffmpeg_bin=self.ffmpeg_bin,
            global_options=["-y"],
            inputs=[self._input_spec(input_file) for input_file in graph.inputs],
            filter_complex=graph.render(),
            output_maps=graph.output_maps,
            output_options=self._build_output_options(graph),
            output_file=self.output_path,
        )

    def build_command_string(self) -> str:
        return self.build().to_shell()

    def _input_spec(self, input_file: InputFile) -> InputSpec:
        if input_file.kind == InputKind.FRAMES:
            return InputSpec(path=input_file.path, options=self._frame_input_options())
        return InputSpec(path=input_file.path)

    def _frame_input_options(self) -> list[str]:
        if self.encoding.frame_format == FrameFormat.PNG:
            return [
                "-f", "image2pipe",
                "-c:v", "png",
                "-framerate", str(self.encoding.fps),
            ]
        return [
            "-f", "rawvideo",
            "-pixel_format", "rgba",
            "-video_size", f"{self.encoding.width}x{self.encoding.height}",
            "-framerate", str(self.encoding.fps),
        ]

    def _build_output_options(self, graph: FilterGraph) -> list[str]:
        options: list[str] = [
            "-c:v", self.encoding.video_codec,
            "-preset", self.encoding.encoder_preset,
            "-crf", str(self.encoding.crf),
            "-pix_fmt", self.encoding.pixel_format,
        ]

        if graph.audio_out:
            options.extend(["-c:a", self.encoding.audio_codec])
            options.extend(["-b:a", self.encoding.audio_bitrate])

        if self.encoding.faststart:
            options.extend(["-movflags", "+faststart"])

        return options


def compile_manifest(
    manifest: RenderManifest,
    extra_anchors: dict[str, AnchorSpec] | None = None,
    ffmpeg_bin: str | None = None,
    strict_sync: bool | None = None,
) -> FFmpegCommand:
    anchors = {**manifest.anchors, **(extra_anchors or {})}
    timeline = resolve_timeline(manifest.video, anchors, strict_sync=strict_sync)
    converter = TimelineToFFmpeg(
        timeline, manifest.resolved_encoding(), manifest.output_path, ffmpeg_bin
    )
    return converter.build()


def build_render_command(
    manifest_dict: dict[str, Any],
    ffmpeg_bin: str | None = None,
) -> list[str]:
    manifest = load_manifest(manifest_dict)
    return compile_manifest(manifest, ffmpeg_bin=ffmpeg_bin).to_args()


def raise_for_tool_failure(
    command: Sequence[str],
    exit_code: int,
    stderr: str = "",
) -> None:
    """Log the full argument vector and raise when the encoder failed."""
    if exit_code == 0:
        return
    logger.error(f"Encoder exited with code {exit_code}; command: {shlex.join(command)}")
    if stderr:
        logger.error(f"Encoder stderr: {stderr.strip()}")
    raise ExternalToolError(command, exit_code, stderr)
