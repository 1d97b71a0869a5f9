#!/usr/bin/env python3
import argparse
import json
import logging
import sys
from pathlib import Path

from framegraph.config import configure_logging, strict_sync_enabled
from framegraph.exceptions import ConfigurationError, UnresolvedReferenceError
from framegraph.models.render_models import load_manifest
from framegraph.models.timeline_models import load_anchors
from framegraph.utils.ffmpeg_builder import compile_manifest

logger = logging.getLogger("framegraph")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compile a render manifest into an ffmpeg invocation"
    )
    parser.add_argument(
        "--manifest",
        required=True,
        help="Path to a render manifest JSON file",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Override the manifest's output path",
    )
    parser.add_argument(
        "--anchors",
        default=None,
        help="JSON file with extra sync anchors (name -> {start_frame, end_frame})",
    )
    parser.add_argument(
        "--format",
        choices=["args", "shell", "json"],
        default="shell",
        help="How to print the compiled command",
    )
    parser.add_argument(
        "--strict-sync",
        action="store_true",
        default=strict_sync_enabled(),
        help="Fail when a sync anchor is missing instead of keeping authored timing",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (defaults to LOG_LEVEL)",
    )
    return parser.parse_args(argv)


def load_json(path: str) -> dict:
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"File not found: {path}")
    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a JSON object in {path}")
    return data


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        manifest_data = load_json(args.manifest)
        if args.output:
            manifest_data["output_path"] = args.output
        manifest = load_manifest(manifest_data)

        extra_anchors = load_anchors(load_json(args.anchors)) if args.anchors else None

        command = compile_manifest(
            manifest,
            extra_anchors=extra_anchors,
            strict_sync=args.strict_sync,
        )
    except (ConfigurationError, UnresolvedReferenceError) as exc:
        logger.error(f"Compilation failed: {exc}")
        return 2

    if args.format == "json":
        print(json.dumps(command.to_args(), indent=2))
    elif args.format == "args":
        print("\n".join(command.to_args()))
    else:
        print(command.to_shell())
    return 0


if __name__ == "__main__":
    sys.exit(main())
