"""
Property Tests for Thread Processing Contracts
Verifies index soundness, row alignment and idempotence over generated threads.
"""

import numpy as np
from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from threadview.contracts import (
    CollapseDirectRecursion, CollapseFunctionSubtree, CollapseRecursion, DropFunction,
    FocusCategory, FocusFunction, FocusSubtree, FrameTable, FuncTable, ImplementationFilter,
    MergeCallNode, MergeFunction, SamplesTable, StackTable, StringTable, Thread,
)
from threadview.memo import shallow_equal
from threadview.processing import (
    apply_transform, filter_thread_by_implementation, filter_thread_samples_to_range,
    filter_thread_to_search_strings, invert_callstack,
)

from ..fixtures import CATEGORIES, assert_indexes_resolve, sample_paths, stack_funcs

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

@composite
def threads(draw):
    """Generates threads with a random stack forest; one frame per func."""
    func_count = draw(st.integers(min_value=1, max_value=6))
    stack_count = draw(st.integers(min_value=1, max_value=25))

    # Invariant: a prefix always points at an earlier stack
    prefixes = [draw(st.integers(min_value=-1, max_value=i - 1)) for i in range(stack_count)]
    frames = [draw(st.integers(min_value=0, max_value=func_count - 1)) for _ in range(stack_count)]
    frame_categories = [
        draw(st.integers(min_value=0, max_value=len(CATEGORIES) - 1)) for _ in range(func_count)
    ]

    sample_count = draw(st.integers(min_value=0, max_value=30))
    sample_stacks = draw(st.lists(
        st.integers(min_value=-1, max_value=stack_count - 1),
        min_size=sample_count, max_size=sample_count
    ))
    gaps = draw(st.lists(
        st.floats(min_value=0.0, max_value=5.0, allow_nan=False),
        min_size=sample_count, max_size=sample_count
    ))

    return Thread(
        name="Generated",
        process_type="default",
        pid="1",
        tid="1",
        string_table=StringTable(f"func{i}" for i in range(func_count)),
        func_table=FuncTable(
            name=np.arange(func_count, dtype=np.int64),
            is_js=np.array(draw(st.lists(st.booleans(), min_size=func_count, max_size=func_count)), dtype=bool),
            relevant_for_js=np.zeros(func_count, dtype=bool),
            resource=np.full(func_count, -1, dtype=np.int64),
            file_name=np.full(func_count, -1, dtype=np.int64),
        ),
        frame_table=FrameTable(
            func=np.arange(func_count, dtype=np.int64),
            category=np.asarray(frame_categories, dtype=np.int64),
            subcategory=np.zeros(func_count, dtype=np.int64),
            inner_window_id=np.zeros(func_count, dtype=np.int64),
            line=np.full(func_count, -1, dtype=np.int64),
        ),
        stack_table=StackTable(
            frame=np.asarray(frames, dtype=np.int64),
            prefix=np.asarray(prefixes, dtype=np.int64),
            category=np.asarray([frame_categories[f] for f in frames], dtype=np.int64),
            subcategory=np.zeros(stack_count, dtype=np.int64),
        ),
        samples=SamplesTable(
            stack=np.asarray(sample_stacks, dtype=np.int64),
            time=np.cumsum(np.asarray(gaps, dtype=np.float64)),
        ),
    )


@composite
def threads_with_transform(draw):
    """A thread plus a transform whose indexes are valid for it."""
    thread = draw(threads())
    func = draw(st.integers(min_value=0, max_value=thread.func_table.length - 1))
    stack = draw(st.integers(min_value=0, max_value=thread.stack_table.length - 1))
    path = stack_funcs(thread, stack)

    transform = draw(st.sampled_from([
        FocusFunction(func),
        MergeFunction(func),
        DropFunction(func),
        CollapseFunctionSubtree(func),
        CollapseDirectRecursion(func),
        CollapseRecursion(func),
        FocusSubtree(path),
        MergeCallNode(path),
        FocusCategory(draw(st.integers(min_value=0, max_value=len(CATEGORIES) - 1))),
    ]))
    return thread, transform


def apply(thread, transform):
    return apply_transform(thread, transform, 0, lambda i: None, (), {}, CATEGORIES)


# =============================================================================
# INDEX SOUNDNESS
# =============================================================================

class TestIndexSoundness:

    @given(threads_with_transform())
    @settings(max_examples=200)
    def test_transforms_keep_rows_and_valid_indexes(self, thread_and_transform):
        thread, transform = thread_and_transform
        result = apply(thread, transform)

        assert result.samples.length == thread.samples.length
        assert np.array_equal(result.samples.time, thread.samples.time)
        assert_indexes_resolve(result)

    @given(threads_with_transform())
    def test_null_samples_stay_null(self, thread_and_transform):
        thread, transform = thread_and_transform
        result = apply(thread, transform)

        was_null = thread.samples.stack == -1
        assert np.all(result.samples.stack[was_null] == -1)

    @given(threads(), st.data())
    def test_merged_function_never_appears(self, thread, data):
        func = data.draw(st.integers(min_value=0, max_value=thread.func_table.length - 1))
        result = apply(thread, MergeFunction(func))
        assert all(func not in path for path in sample_paths(result))

    @given(threads(), st.data())
    def test_focused_subtree_is_rooted_at_the_last_path_node(self, thread, data):
        stack = data.draw(st.integers(min_value=0, max_value=thread.stack_table.length - 1))
        path = stack_funcs(thread, stack)
        result = apply(thread, FocusSubtree(path))

        for sample_path in sample_paths(result):
            assert sample_path == () or sample_path[0] == path[-1]

    @given(threads(), st.sampled_from(list(ImplementationFilter)))
    def test_implementation_filter_keeps_indexes_valid(self, thread, implementation):
        result = filter_thread_by_implementation(thread, implementation, 0)
        assert result.samples.length == thread.samples.length
        assert_indexes_resolve(result)


# =============================================================================
# IDEMPOTENCE AND IDENTITY
# =============================================================================

class TestIdempotence:

    @given(
        threads(),
        st.floats(min_value=0.0, max_value=100.0, allow_nan=False),
        st.floats(min_value=0.0, max_value=100.0, allow_nan=False),
    )
    def test_range_filter_is_idempotent(self, thread, a, b):
        start, end = min(a, b), max(a, b)
        once = filter_thread_samples_to_range(thread, start, end)
        twice = filter_thread_samples_to_range(once, start, end)

        assert np.array_equal(once.samples.time, twice.samples.time)
        assert np.all((once.samples.time >= start) & (once.samples.time < end))

    @given(threads())
    def test_inverting_twice_restores_paths(self, thread):
        restored = invert_callstack(invert_callstack(thread, 0), 0)
        assert sample_paths(restored) == sample_paths(thread)

    @given(threads())
    def test_no_op_filters_return_their_input(self, thread):
        assert filter_thread_to_search_strings(thread, ()) is thread
        assert filter_thread_by_implementation(thread, ImplementationFilter.COMBINED, 0) is thread

    @given(st.one_of(st.integers(), st.text(), st.booleans(), st.none()))
    def test_primitives_are_shallow_equal_to_themselves(self, value):
        assert shallow_equal(value, value)
