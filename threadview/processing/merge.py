"""
Thread Merging

Combines several threads into one synthetic thread. Every table is
concatenated with its indexes shifted into the merged tables, so the
merged thread satisfies the same index invariant as its inputs.
"""

from __future__ import annotations
from typing import List, Optional, Sequence

import numpy as np

from ..contracts.base import ErrorCode, PreconditionError, WeightType
from ..contracts.profile import (
    FrameTable, FuncTable, JsAllocationsTable, NativeAllocationsTable, NULL_INDEX,
    RawMarkerTable, SamplesTable, StackTable, StringTable, Thread,
)


def _offset_indexes(indexes: np.ndarray, offset: int) -> np.ndarray:
    """Shift non-null indexes by offset."""
    return np.where(indexes >= 0, indexes + offset, NULL_INDEX)


def _map_strings(indexes: np.ndarray, string_map: np.ndarray) -> np.ndarray:
    result = np.full(len(indexes), NULL_INDEX, dtype=np.int64)
    valid = indexes >= 0
    result[valid] = string_map[indexes[valid]]
    return result


def _concat_optional(columns: Sequence[Optional[np.ndarray]]) -> Optional[np.ndarray]:
    """Concatenate a column only when every input has it."""
    if any(column is None for column in columns):
        return None
    return np.concatenate(columns)


def _common_weight_type(tables: Sequence, table_name: str) -> WeightType:
    """Weights in different units cannot be summed into one table."""
    weight_types = {table.weight_type for table in tables}
    if len(weight_types) > 1:
        raise PreconditionError(
            ErrorCode.MISMATCHED_WEIGHT_TYPE,
            f"Cannot merge {table_name} with weight types "
            f"{sorted(weight_type.value for weight_type in weight_types)}"
        )
    return tables[0].weight_type


def _merge_samples(
    threads: Sequence[Thread],
    stack_offsets: Sequence[int]
) -> Optional[SamplesTable]:
    parts = [
        (thread.samples, offset)
        for thread, offset in zip(threads, stack_offsets)
        if thread.samples is not None
    ]
    if not parts:
        return None

    tables = [table for table, _ in parts]
    time = np.concatenate([table.time for table in tables])
    order = np.argsort(time, kind='stable')

    stack = np.concatenate([_offset_indexes(table.stack, offset) for table, offset in parts])

    weight = None
    if any(table.weight is not None for table in tables):
        weight = np.concatenate([
            table.weight if table.weight is not None else np.ones(table.length)
            for table in tables
        ])[order]

    def optional(name: str) -> Optional[np.ndarray]:
        column = _concat_optional([getattr(table, name) for table in tables])
        return None if column is None else column[order]

    return SamplesTable(
        stack=stack[order],
        time=time[order],
        weight=weight,
        weight_type=_common_weight_type(tables, 'samples'),
        thread_cpu_delta=optional('thread_cpu_delta'),
        thread_cpu_ratio=optional('thread_cpu_ratio'),
        event_delay=optional('event_delay'),
    )


def _merge_native_allocations(
    threads: Sequence[Thread],
    stack_offsets: Sequence[int]
) -> Optional[NativeAllocationsTable]:
    parts = [
        (thread.native_allocations, offset)
        for thread, offset in zip(threads, stack_offsets)
        if thread.native_allocations is not None
    ]
    if not parts:
        return None

    tables = [table for table, _ in parts]
    time = np.concatenate([table.time for table in tables])
    order = np.argsort(time, kind='stable')
    stack = np.concatenate([_offset_indexes(table.stack, offset) for table, offset in parts])
    memory_address = _concat_optional([table.memory_address for table in tables])
    thread_id = _concat_optional([table.thread_id for table in tables])

    return NativeAllocationsTable(
        time=time[order],
        stack=stack[order],
        weight=np.concatenate([table.weight for table in tables])[order],
        weight_type=_common_weight_type(tables, 'native allocations'),
        memory_address=None if memory_address is None else memory_address[order],
        thread_id=None if thread_id is None else thread_id[order],
    )


def _merge_js_allocations(
    threads: Sequence[Thread],
    stack_offsets: Sequence[int],
    string_maps: Sequence[np.ndarray]
) -> Optional[JsAllocationsTable]:
    parts = [
        (thread.js_allocations, offset, string_map)
        for thread, offset, string_map in zip(threads, stack_offsets, string_maps)
        if thread.js_allocations is not None
    ]
    if not parts:
        return None

    tables = [table for table, _, _ in parts]
    time = np.concatenate([table.time for table in tables])
    order = np.argsort(time, kind='stable')
    stack = np.concatenate([_offset_indexes(table.stack, offset) for table, offset, _ in parts])
    class_name = np.concatenate([
        _map_strings(table.class_name, string_map) for table, _, string_map in parts
    ])

    return JsAllocationsTable(
        time=time[order],
        stack=stack[order],
        weight=np.concatenate([table.weight for table in tables])[order],
        class_name=class_name[order],
        weight_type=_common_weight_type(tables, 'JS allocations'),
    )


def _merge_markers(
    threads: Sequence[Thread],
    string_maps: Sequence[np.ndarray]
) -> Optional[RawMarkerTable]:
    parts = [
        (thread.markers, string_map)
        for thread, string_map in zip(threads, string_maps)
        if thread.markers is not None
    ]
    if not parts:
        return None

    tables = [table for table, _ in parts]
    data = []
    for table in tables:
        # A short data tuple leaves the trailing markers without a payload
        data.extend(tuple(table.data[:table.length]))
        data.extend((None,) * (table.length - len(table.data)))

    return RawMarkerTable(
        name=np.concatenate([_map_strings(table.name, string_map) for table, string_map in parts]),
        start_time=np.concatenate([table.start_time for table in tables]),
        end_time=np.concatenate([table.end_time for table in tables]),
        category=np.concatenate([table.category for table in tables]),
        data=tuple(data),
    )


def merge_threads(threads: Sequence[Thread]) -> Thread:
    """Merge threads into one synthetic thread; a single thread is returned as-is."""
    if not threads:
        raise PreconditionError(ErrorCode.MISSING_REQUIRED_DATA, "Cannot merge zero threads")
    if len(threads) == 1:
        return threads[0]

    # Strings: intern every thread's strings into one table.
    string_table = StringTable()
    string_maps: List[np.ndarray] = []
    for thread in threads:
        string_table, indexes = string_table.extended(thread.string_table.strings)
        string_maps.append(np.asarray(indexes, dtype=np.int64))

    func_offsets, frame_offsets, stack_offsets = [], [], []
    func_count = frame_count = stack_count = 0
    for thread in threads:
        func_offsets.append(func_count)
        frame_offsets.append(frame_count)
        stack_offsets.append(stack_count)
        func_count += thread.func_table.length
        frame_count += thread.frame_table.length
        stack_count += thread.stack_table.length

    func_table = FuncTable(
        name=np.concatenate([
            _map_strings(t.func_table.name, m) for t, m in zip(threads, string_maps)
        ]),
        is_js=np.concatenate([t.func_table.is_js for t in threads]),
        relevant_for_js=np.concatenate([t.func_table.relevant_for_js for t in threads]),
        resource=np.concatenate([t.func_table.resource for t in threads]),
        file_name=np.concatenate([
            _map_strings(t.func_table.file_name, m) for t, m in zip(threads, string_maps)
        ]),
    )

    frame_table = FrameTable(
        func=np.concatenate([
            t.frame_table.func + offset for t, offset in zip(threads, func_offsets)
        ]),
        category=np.concatenate([t.frame_table.category for t in threads]),
        subcategory=np.concatenate([t.frame_table.subcategory for t in threads]),
        inner_window_id=np.concatenate([t.frame_table.inner_window_id for t in threads]),
        line=np.concatenate([t.frame_table.line for t in threads]),
    )

    stack_table = StackTable(
        frame=np.concatenate([
            t.stack_table.frame + offset for t, offset in zip(threads, frame_offsets)
        ]),
        prefix=np.concatenate([
            _offset_indexes(t.stack_table.prefix, offset)
            for t, offset in zip(threads, stack_offsets)
        ]),
        category=np.concatenate([t.stack_table.category for t in threads]),
        subcategory=np.concatenate([t.stack_table.subcategory for t in threads]),
    )

    process_types = {t.process_type for t in threads}
    pids = sorted({t.pid for t in threads})

    return Thread(
        name="Merged thread",
        process_type=process_types.pop() if len(process_types) == 1 else "merged",
        pid=",".join(pids),
        tid=",".join(t.tid for t in threads),
        string_table=string_table,
        func_table=func_table,
        frame_table=frame_table,
        stack_table=stack_table,
        samples=_merge_samples(threads, stack_offsets),
        process_name=None,
        is_main_thread=False,
        register_time=min(t.register_time for t in threads),
        unregister_time=None,
        native_allocations=_merge_native_allocations(threads, stack_offsets),
        js_allocations=_merge_js_allocations(threads, stack_offsets, string_maps),
        js_tracer=None,
        markers=_merge_markers(threads, string_maps),
    )
