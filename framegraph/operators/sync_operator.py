"""
Sync Operator - resolves anchor-relative audio timing to absolute frames.

Resolution is best-effort: when none of a track's anchors are known yet the
track is returned untouched so a later pass (with more anchors) can resolve
it. Pass ``strict=True`` to turn any missing anchor into an error instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from framegraph.exceptions import ConfigurationError, UnresolvedReferenceError
from framegraph.models.timeline_models import AnchorSpec, AudioTrackSpec, SyncBehavior

logger = logging.getLogger(__name__)


def resolve_audio_sync(
    track: AudioTrackSpec,
    anchors: Mapping[str, AnchorSpec],
    strict: bool = False,
) -> AudioTrackSpec:
    """
    Resolve one track's sync configuration against the anchors table.

    Args:
        track: Track that may carry a sync configuration
        anchors: Known anchors by name
        strict: Raise UnresolvedReferenceError for any missing anchor

    Returns:
        A new track with absolute timing and ``sync`` cleared, or the same
        track when there is nothing to resolve.
    """
    sync = track.sync
    if sync is None or not sync.has_anchor_reference:
        return track

    start_anchor = None
    if sync.sync_start_anchor is not None:
        start_anchor = anchors.get(sync.sync_start_anchor)

    end_anchor = None
    if sync.sync_end_anchor is not None:
        end_anchor = anchors.get(sync.sync_end_anchor)
        if end_anchor is not None and end_anchor.end_frame is None:
            logger.warning(
                f"Anchor '{sync.sync_end_anchor}' has no end frame; "
                f"ignoring it as an end reference for track {track.id or track.source.path}"
            )
            end_anchor = None

    missing = [
        name
        for name, anchor in (
            (sync.sync_start_anchor, start_anchor),
            (sync.sync_end_anchor, end_anchor),
        )
        if name is not None and anchor is None
    ]
    if missing and strict:
        raise UnresolvedReferenceError("anchor", missing[0])

    if start_anchor is None and end_anchor is None:
        logger.warning(
            f"Sync anchors {', '.join(missing)} not found for track "
            f"{track.id or track.source.path}; keeping original timing"
        )
        return track
    if missing:
        logger.warning(
            f"Sync anchor(s) {', '.join(missing)} not found for track "
            f"{track.id or track.source.path}; resolving the remaining reference only"
        )

    new_start = track.start_frame
    if start_anchor is not None:
        new_start = start_anchor.start_frame + sync.start_offset
    if new_start < 0:
        raise ConfigurationError(
            f"Track {track.id or track.source.path} resolves to negative start frame {new_start}"
        )

    new_duration = track.duration_in_frames
    loop = track.loop
    if end_anchor is not None:
        new_end = end_anchor.end_frame + sync.end_offset
        new_duration = new_end - new_start
        if new_duration < 0:
            raise ConfigurationError(
                f"Track {track.id or track.source.path} resolves to negative duration "
                f"({new_start} -> {new_end})"
            )
        if sync.behavior == SyncBehavior.LOOP_TO_MATCH:
            loop = True

    logger.debug(
        f"Resolved sync for track {track.id or track.source.path}: "
        f"start={new_start} duration={new_duration} loop={loop}"
    )
    return track.model_copy(
        update={
            "start_frame": new_start,
            "duration_in_frames": new_duration,
            "loop": loop,
            "sync": None,
        }
    )


def resolve_all(
    tracks: Iterable[AudioTrackSpec],
    anchors: Mapping[str, AnchorSpec],
    strict: bool = False,
) -> list[AudioTrackSpec]:
    return [resolve_audio_sync(track, anchors, strict=strict) for track in tracks]
