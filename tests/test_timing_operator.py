"""
Tests for nested timing context resolution.
"""

import pytest

from framegraph.models.timeline_models import ContainerNode, FrameRange, TimingContext
from framegraph.operators.timing_operator import (
    child_context,
    nest_contexts,
    resolve_effective_end,
    resolve_effective_start,
    resolve_window,
    root_context,
)


@pytest.fixture
def scene_context() -> TimingContext:
    """A scene from frame 90 to 150 with a 15 frame entry and 10 frame exit."""
    return root_context(start=90, end=150, entry_duration=15, exit_duration=10)


class TestOffsetClosure:
    """Offsets accumulate through any depth of nesting."""

    @pytest.mark.parametrize(
        "offsets",
        [[], [5], [5, 10], [3, -2, 7, 0], [-20, -5]],
    )
    def test_effective_start_sums_offsets(self, scene_context, offsets):
        chain = nest_contexts(scene_context, offsets)
        innermost = chain[0]

        start = resolve_effective_start(chain, after_parent_entry=True)

        assert start - innermost.context_start - innermost.entry_duration == sum(offsets)

    def test_chain_is_innermost_first(self, scene_context):
        chain = nest_contexts(scene_context, [1, 2])

        assert len(chain) == 3
        assert chain[-1] is scene_context
        assert [context.inherited_offset for context in chain] == [3, 1, 0]

    def test_nested_closure_property(self):
        context = TimingContext(context_start=0, inherited_offset=4)

        assert context.nested(child_start=0, additional_offset=6).inherited_offset == 10


class TestResolution:
    """Tests for effective start/end over chains."""

    def test_empty_chain(self):
        assert resolve_effective_start([], offset_frames=12) == 12
        assert resolve_effective_end([]) is None

    def test_start_before_and_after_entry(self, scene_context):
        assert resolve_effective_start([scene_context], 5, after_parent_entry=True) == 110
        assert resolve_effective_start([scene_context], 5, after_parent_entry=False) == 95

    def test_end_before_parent_exit(self, scene_context):
        assert resolve_effective_end([scene_context], 0, before_parent_exit=True) == 140
        assert resolve_effective_end([scene_context], 0, before_parent_exit=False) == 150

    def test_window(self, scene_context):
        window = resolve_window([scene_context])

        assert window == FrameRange(start=105, end=140)

    def test_window_collapses(self):
        context = root_context(start=0, end=10, entry_duration=8, exit_duration=8)

        assert resolve_window([context]) is None

    def test_open_ended_window(self):
        assert resolve_window([root_context(start=0)]) is None


class TestChildContext:
    """Tests for containers establishing nested contexts."""

    def test_container_relative_to_parent_start(self, scene_context):
        container = ContainerNode(start_frame=10, offset_frames=4, entry_duration=6)

        context = child_context(scene_context, container)

        assert context.context_start == 100
        assert context.entry_duration == 6
        assert context.inherited_offset == 4
        assert context.context_end == 150

    def test_container_after_parent_entry(self, scene_context):
        container = ContainerNode(start_frame=0, after_parent_entry=True)

        assert child_context(scene_context, container).context_start == 105

    def test_container_duration_clamped_to_parent(self, scene_context):
        container = ContainerNode(start_frame=40, duration_in_frames=100)

        assert child_context(scene_context, container).context_end == 150

    def test_container_own_duration(self, scene_context):
        container = ContainerNode(start_frame=10, duration_in_frames=20)

        assert child_context(scene_context, container).context_end == 120

    def test_offsets_inherited_through_two_containers(self, scene_context):
        outer = child_context(scene_context, ContainerNode(offset_frames=5))
        inner = child_context(outer, ContainerNode(offset_frames=-2))

        assert inner.inherited_offset == 3
        assert inner.effective_start_frame(0, after_parent_entry=False) == 93
