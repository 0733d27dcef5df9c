"""
Transform Application

One pure function per transform kind, plus the dispatcher the keyed
transform cache calls into. Every function rewrites the stack table and
remaps the stack columns of samples and allocations; rows are never
removed (a dropped sample gets the null stack).

CALL NODE PATHS:
================
A call node path lists func indexes from the root. When a path was
recorded under a JS or C++ implementation filter, frames of the other
implementation are invisible while matching it.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, List, Mapping, Sequence, Tuple

import numpy as np

from ..contracts.base import (
    ErrorCode, ImplementationFilter, PreconditionError, UnhandledVariantError,
)
from ..contracts.profile import (
    Category, Marker, MarkerGetter, NULL_INDEX, ProfileMeta, Thread, TransformLabel,
)
from ..contracts.transforms import (
    CallNodePath, CollapseDirectRecursion, CollapseFunctionSubtree, CollapseRecursion,
    DropFunction, FilterSamples, FocusCategory, FocusFunction, FocusSubtree,
    MergeCallNode, MergeFunction, Transform, TransformStack,
)
from .profile_data import (
    StackTableBuilder,
    filter_thread_by_func,
    filter_thread_by_stack,
    get_func_for_stacks,
    get_implementation_func_mask,
    keep_marked_stacks,
    propagate_to_descendants,
    update_thread_stacks,
)


def _rewrite(thread: Thread, default_category: int):
    stack_table = thread.stack_table
    builder = StackTableBuilder(thread.frame_table, default_category)
    old_to_new = np.full(stack_table.length, NULL_INDEX, dtype=np.int64)
    return stack_table, builder, old_to_new


# =============================================================================
# CALL NODE PATH TRANSFORMS
# =============================================================================

def _call_node_path_states(
    thread: Thread,
    path: CallNodePath,
    implementation: ImplementationFilter
) -> np.ndarray:
    """
    How much of path each stack has matched.

    state == len(path): the stack is the path's last node or below it.
    state == -1: the stack left the path.
    """
    stack_table = thread.stack_table
    funcs = get_func_for_stacks(thread)
    visible = get_implementation_func_mask(thread, implementation)
    depth = len(path)
    states = np.full(stack_table.length, -1, dtype=np.int64)

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        parent_state = states[prefix] if prefix >= 0 else 0
        func = funcs[i]
        if parent_state < 0 or parent_state == depth:
            states[i] = parent_state
        elif not visible[func]:
            states[i] = parent_state
        elif path[parent_state] == func:
            states[i] = parent_state + 1
        else:
            states[i] = -1
    return states


def focus_subtree(thread: Thread, transform: FocusSubtree, default_category: int) -> Thread:
    path = transform.call_node_path
    states = _call_node_path_states(thread, path, transform.implementation)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)
    depth = len(path)

    for i in range(stack_table.length):
        if states[i] != depth:
            continue
        prefix = stack_table.prefix[i]
        frame = int(stack_table.frame[i])
        if prefix >= 0 and states[prefix] == depth:
            old_to_new[i] = builder.intern(int(old_to_new[prefix]), frame)
        else:
            # The path's last node becomes a root.
            old_to_new[i] = builder.intern(NULL_INDEX, frame)

    return update_thread_stacks(thread, builder.build(), old_to_new)


def merge_call_node(thread: Thread, transform: MergeCallNode, default_category: int) -> Thread:
    path = transform.call_node_path
    states = _call_node_path_states(thread, path, transform.implementation)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)
    depth = len(path)

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        new_prefix = int(old_to_new[prefix]) if prefix >= 0 else NULL_INDEX
        parent_state = states[prefix] if prefix >= 0 else 0
        if states[i] == depth and parent_state == depth - 1:
            old_to_new[i] = new_prefix
        else:
            old_to_new[i] = builder.intern(new_prefix, int(stack_table.frame[i]))

    return update_thread_stacks(thread, builder.build(), old_to_new)


# =============================================================================
# FUNCTION TRANSFORMS
# =============================================================================

def focus_function(thread: Thread, transform: FocusFunction, default_category: int) -> Thread:
    funcs = get_func_for_stacks(thread)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        new_prefix = int(old_to_new[prefix]) if prefix >= 0 else NULL_INDEX
        frame = int(stack_table.frame[i])
        if new_prefix >= 0:
            old_to_new[i] = builder.intern(new_prefix, frame)
        elif funcs[i] == transform.func_index:
            old_to_new[i] = builder.intern(NULL_INDEX, frame)

    return update_thread_stacks(thread, builder.build(), old_to_new)


def merge_function(thread: Thread, transform: MergeFunction, default_category: int) -> Thread:
    keep_func = np.arange(thread.func_table.length) != transform.func_index
    return filter_thread_by_func(thread, keep_func, default_category)


def drop_function(thread: Thread, transform: DropFunction) -> Thread:
    own = get_func_for_stacks(thread) == transform.func_index
    contains_func = propagate_to_descendants(thread.stack_table, own)
    return keep_marked_stacks(thread, ~contains_func)


def collapse_function_subtree(
    thread: Thread,
    transform: CollapseFunctionSubtree,
    default_category: int
) -> Thread:
    funcs = get_func_for_stacks(thread)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)
    collapsed = np.zeros(stack_table.length, dtype=bool)

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        if prefix >= 0 and collapsed[prefix]:
            old_to_new[i] = old_to_new[prefix]
            collapsed[i] = True
            continue
        new_prefix = int(old_to_new[prefix]) if prefix >= 0 else NULL_INDEX
        old_to_new[i] = builder.intern(new_prefix, int(stack_table.frame[i]))
        collapsed[i] = funcs[i] == transform.func_index

    return update_thread_stacks(thread, builder.build(), old_to_new)


def collapse_direct_recursion(
    thread: Thread,
    transform: CollapseDirectRecursion,
    default_category: int
) -> Thread:
    funcs = get_func_for_stacks(thread)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)
    target = transform.func_index

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        if funcs[i] == target and prefix >= 0 and funcs[prefix] == target:
            old_to_new[i] = old_to_new[prefix]
            continue
        new_prefix = int(old_to_new[prefix]) if prefix >= 0 else NULL_INDEX
        old_to_new[i] = builder.intern(new_prefix, int(stack_table.frame[i]))

    return update_thread_stacks(thread, builder.build(), old_to_new)


def collapse_recursion(
    thread: Thread,
    transform: CollapseRecursion,
    default_category: int
) -> Thread:
    """
    Every inner call of func_index folds into its outermost call.

    A -> B -> C -> B -> D becomes A -> B -> D for func B.
    """
    funcs = get_func_for_stacks(thread)
    stack_table, builder, old_to_new = _rewrite(thread, default_category)
    # New stack index of the outermost target frame above each stack.
    outer = np.full(stack_table.length, NULL_INDEX, dtype=np.int64)
    target = transform.func_index

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        outer_above = outer[prefix] if prefix >= 0 else NULL_INDEX
        if funcs[i] == target and outer_above >= 0:
            old_to_new[i] = outer_above
            outer[i] = outer_above
            continue
        new_prefix = int(old_to_new[prefix]) if prefix >= 0 else NULL_INDEX
        old_to_new[i] = builder.intern(new_prefix, int(stack_table.frame[i]))
        outer[i] = old_to_new[i] if funcs[i] == target else outer_above

    return update_thread_stacks(thread, builder.build(), old_to_new)


# =============================================================================
# CATEGORY AND MARKER TRANSFORMS
# =============================================================================

def focus_category(
    thread: Thread,
    transform: FocusCategory,
    default_category: int,
    categories: Sequence[Category]
) -> Thread:
    if not 0 <= transform.category < len(categories):
        raise PreconditionError(
            ErrorCode.INVALID_CATEGORY_INDEX,
            f"Category {transform.category} is not in the profile's category list"
        )
    keep_stack = thread.stack_table.category == transform.category
    return filter_thread_by_stack(thread, keep_stack, default_category)


def _marker_matches(
    marker: Marker,
    needle: str,
    marker_schema_by_name: Mapping[str, Any]
) -> bool:
    if needle in marker.name.lower():
        return True
    data = marker.data
    if not data:
        return False
    schema = marker_schema_by_name.get(data.get('type'))
    if not schema:
        return False
    for schema_field in schema.get('data', ()):
        if not schema_field.get('searchable'):
            continue
        value = data.get(schema_field.get('key'))
        if value is not None and needle in str(value).lower():
            return True
    return False


def get_matching_marker_ranges(
    search: str,
    marker_getter: MarkerGetter,
    marker_indexes: Sequence[int],
    marker_schema_by_name: Mapping[str, Any]
) -> List[Tuple[float, float]]:
    """(start, end) of every interval marker matching search."""
    needle = search.strip().lower()
    ranges = []
    for marker_index in marker_indexes:
        marker = marker_getter(marker_index)
        if marker.end is None:
            continue
        if _marker_matches(marker, needle, marker_schema_by_name):
            ranges.append((marker.start, marker.end))
    return ranges


def _drop_rows_outside(table, ranges: Sequence[Tuple[float, float]]):
    if table is None:
        return None
    inside = np.zeros(table.length, dtype=bool)
    for start, end in ranges:
        inside |= (table.time >= start) & (table.time <= end)
    return replace(table, stack=np.where(inside, table.stack, NULL_INDEX))


def filter_samples(
    thread: Thread,
    transform: FilterSamples,
    marker_getter: MarkerGetter,
    marker_indexes: Sequence[int],
    marker_schema_by_name: Mapping[str, Any]
) -> Thread:
    """Only keep samples taken while a matching marker was running."""
    if not transform.marker_search.strip():
        return thread
    ranges = get_matching_marker_ranges(
        transform.marker_search, marker_getter, marker_indexes, marker_schema_by_name
    )
    return replace(
        thread,
        samples=_drop_rows_outside(thread.samples, ranges),
        native_allocations=_drop_rows_outside(thread.native_allocations, ranges),
        js_allocations=_drop_rows_outside(thread.js_allocations, ranges),
    )


# =============================================================================
# DISPATCH
# =============================================================================

def apply_transform(
    thread: Thread,
    transform: Transform,
    default_category: int,
    marker_getter: MarkerGetter,
    marker_indexes: Sequence[int],
    marker_schema_by_name: Mapping[str, Any],
    categories: Sequence[Category]
) -> Thread:
    """
    Apply one transform to one thread.

    The set of transform kinds is closed; anything else raises
    UnhandledVariantError.
    """
    if isinstance(transform, FocusSubtree):
        return focus_subtree(thread, transform, default_category)
    if isinstance(transform, FocusFunction):
        return focus_function(thread, transform, default_category)
    if isinstance(transform, MergeCallNode):
        return merge_call_node(thread, transform, default_category)
    if isinstance(transform, MergeFunction):
        return merge_function(thread, transform, default_category)
    if isinstance(transform, DropFunction):
        return drop_function(thread, transform)
    if isinstance(transform, CollapseFunctionSubtree):
        return collapse_function_subtree(thread, transform, default_category)
    if isinstance(transform, CollapseDirectRecursion):
        return collapse_direct_recursion(thread, transform, default_category)
    if isinstance(transform, CollapseRecursion):
        return collapse_recursion(thread, transform, default_category)
    if isinstance(transform, FocusCategory):
        return focus_category(thread, transform, default_category, categories)
    if isinstance(transform, FilterSamples):
        return filter_samples(
            thread, transform, marker_getter, marker_indexes, marker_schema_by_name
        )
    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_TRANSFORM,
        f"Unhandled transform: {transform!r}"
    )


def _func_name(thread: Thread, func_index: int) -> str:
    return thread.string_table.get_string(int(thread.func_table.name[func_index]))


def _transform_item(meta: ProfileMeta, thread: Thread, transform: Transform) -> str:
    if isinstance(transform, (FocusSubtree, MergeCallNode)):
        return _func_name(thread, transform.call_node_path[-1])
    if isinstance(transform, (
        FocusFunction, MergeFunction, DropFunction, CollapseFunctionSubtree,
        CollapseDirectRecursion, CollapseRecursion,
    )):
        return _func_name(thread, transform.func_index)
    if isinstance(transform, FocusCategory):
        return meta.categories[transform.category].name
    if isinstance(transform, FilterSamples):
        return transform.marker_search
    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_TRANSFORM,
        f"Unhandled transform: {transform!r}"
    )


def get_transform_labels(
    meta: ProfileMeta,
    thread: Thread,
    thread_name: str,
    transforms: TransformStack
) -> List[TransformLabel]:
    """Breadcrumb labels: the complete thread first, then one per transform."""
    labels = [TransformLabel("TransformNavigator--complete", thread_name)]
    for transform in transforms:
        labels.append(TransformLabel(
            f"TransformNavigator--{transform.type.value}",
            _transform_item(meta, thread, transform),
        ))
    return labels
