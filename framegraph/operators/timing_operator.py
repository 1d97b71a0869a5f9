"""
Timing Operator - resolves effective frames through nested timing contexts.

Contexts are passed explicitly down the recursive scene walk; nothing is
looked up from ambient state. A chain is always ordered innermost first and
the innermost context already carries the accumulated ``inherited_offset``
of every ancestor, so resolution only ever reads ``chain[0]``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from framegraph.models.timeline_models import ContainerNode, FrameRange, TimingContext

logger = logging.getLogger(__name__)


def root_context(
    start: int,
    end: int | None = None,
    entry_duration: int = 0,
    exit_duration: int = 0,
) -> TimingContext:
    """Context for a top-level element such as a scene."""
    return TimingContext(
        context_start=start,
        context_end=end,
        entry_duration=entry_duration,
        exit_duration=exit_duration,
    )


def child_context(parent: TimingContext, container: ContainerNode) -> TimingContext:
    """
    Build the context a container establishes for its children.

    The container is placed relative to its parent's start (or the end of
    the parent's entry phase) and never outlives the parent.
    """
    base = parent.entry_complete_frame if container.after_parent_entry else parent.context_start
    start = base + container.start_frame

    end = parent.context_end
    if container.duration_in_frames is not None:
        own_end = start + container.duration_in_frames
        end = own_end if end is None else min(own_end, end)
    if end is not None and end < start:
        logger.debug(
            f"Container '{container.name}' starts at {start} after its parent ends at {end}"
        )
        end = start

    return parent.nested(
        child_start=start,
        child_entry_duration=container.entry_duration,
        child_exit_duration=container.exit_duration,
        child_end=end,
        additional_offset=container.offset_frames,
    )


def nest_contexts(
    root: TimingContext, offsets: Sequence[int]
) -> list[TimingContext]:
    """
    Nest one context per offset under ``root`` and return the chain
    innermost first.

    Every nested context shares the root's frame window; only the
    offsets accumulate.
    """
    chain = [root]
    for offset in offsets:
        current = chain[0]
        chain.insert(
            0,
            current.nested(
                child_start=current.context_start,
                child_entry_duration=current.entry_duration,
                child_exit_duration=current.exit_duration,
                child_end=current.context_end,
                additional_offset=offset,
            ),
        )
    return chain


def resolve_effective_start(
    chain: Sequence[TimingContext],
    offset_frames: int = 0,
    after_parent_entry: bool = True,
) -> int:
    if not chain:
        return offset_frames
    return chain[0].effective_start_frame(offset_frames, after_parent_entry)


def resolve_effective_end(
    chain: Sequence[TimingContext],
    offset_frames: int = 0,
    before_parent_exit: bool = True,
) -> int | None:
    if not chain:
        return None
    return chain[0].effective_end_frame(offset_frames, before_parent_exit)


def resolve_window(
    chain: Sequence[TimingContext],
    start_offset: int = 0,
    end_offset: int = 0,
    after_parent_entry: bool = True,
    before_parent_exit: bool = True,
) -> FrameRange | None:
    """
    Effective [start, end) window for a child, or None when the context is
    open ended or the window collapses.
    """
    start = resolve_effective_start(chain, start_offset, after_parent_entry)
    end = resolve_effective_end(chain, end_offset, before_parent_exit)
    if end is None or end < start:
        return None
    return FrameRange(start=start, end=end)
