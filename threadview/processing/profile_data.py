"""
Profile Data Processing

Pure functions that turn one thread into another thread, or into a derived
value. None of them mutate their inputs.

ROW ALIGNMENT:
==============
Only the range filter removes sample rows. Every other filter "drops" a
sample by giving it the null stack (-1), so sample indexes stay comparable
with the thread the range filter produced.
"""

from __future__ import annotations
from dataclasses import fields, replace
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple
import math

import numpy as np

from ..contracts.base import (
    ErrorCode, ImplementationFilter, PreconditionError, StartEndRange,
    UnhandledVariantError,
)
from ..contracts.profile import (
    EventDelayInfo, FrameTable, NULL_INDEX, StackTable, Thread,
    float_column, int_column,
)


# =============================================================================
# STACK TABLE REWRITING
# =============================================================================

class StackTableBuilder:
    """
    Interns (prefix, frame) pairs into a new stack table.

    A stack whose frame has no category inherits its prefix's category;
    a root stack with no category gets the default category.
    """

    def __init__(self, frame_table: FrameTable, default_category: int):
        self._frame_category = frame_table.category
        self._frame_subcategory = frame_table.subcategory
        self._default_category = default_category
        self._frame: List[int] = []
        self._prefix: List[int] = []
        self._category: List[int] = []
        self._subcategory: List[int] = []
        self._index: Dict[Tuple[int, int], int] = {}

    def intern(self, prefix: int, frame: int) -> int:
        key = (prefix, frame)
        stack_index = self._index.get(key)
        if stack_index is not None:
            return stack_index

        category = int(self._frame_category[frame])
        subcategory = int(self._frame_subcategory[frame])
        if category < 0:
            if prefix >= 0:
                category = self._category[prefix]
                subcategory = self._subcategory[prefix]
            else:
                category = self._default_category
                subcategory = 0

        stack_index = len(self._frame)
        self._frame.append(frame)
        self._prefix.append(prefix)
        self._category.append(category)
        self._subcategory.append(subcategory)
        self._index[key] = stack_index
        return stack_index

    def build(self) -> StackTable:
        return StackTable(
            frame=int_column(self._frame),
            prefix=int_column(self._prefix),
            category=int_column(self._category),
            subcategory=int_column(self._subcategory),
        )


def remap_stacks(stacks: np.ndarray, old_to_new: np.ndarray) -> np.ndarray:
    """Map a stack column through old_to_new; null stays null."""
    result = np.full(len(stacks), NULL_INDEX, dtype=np.int64)
    valid = stacks >= 0
    if valid.any():
        result[valid] = old_to_new[stacks[valid]]
    return result


def update_thread_stacks(
    thread: Thread,
    stack_table: StackTable,
    old_to_new: np.ndarray
) -> Thread:
    """Return a new thread whose every stack column goes through old_to_new."""
    samples = thread.samples
    if samples is not None:
        samples = replace(samples, stack=remap_stacks(samples.stack, old_to_new))

    native_allocations = thread.native_allocations
    if native_allocations is not None:
        native_allocations = replace(
            native_allocations,
            stack=remap_stacks(native_allocations.stack, old_to_new)
        )

    js_allocations = thread.js_allocations
    if js_allocations is not None:
        js_allocations = replace(
            js_allocations,
            stack=remap_stacks(js_allocations.stack, old_to_new)
        )

    return replace(
        thread,
        stack_table=stack_table,
        samples=samples,
        native_allocations=native_allocations,
        js_allocations=js_allocations,
    )


def get_func_for_stacks(thread: Thread) -> np.ndarray:
    """Func index of each stack's own frame."""
    return thread.frame_table.func[thread.stack_table.frame]


def propagate_to_descendants(stack_table: StackTable, own: np.ndarray) -> np.ndarray:
    """A stack is marked when it or any of its ancestors is marked."""
    marked = np.zeros(stack_table.length, dtype=bool)
    prefix = stack_table.prefix
    for i in range(stack_table.length):
        parent = prefix[i]
        marked[i] = own[i] or (parent >= 0 and marked[parent])
    return marked


def keep_marked_stacks(thread: Thread, marked: np.ndarray) -> Thread:
    """Null out every stack that is not marked, keeping the stack table."""
    old_to_new = np.where(marked, np.arange(len(marked)), NULL_INDEX)
    return update_thread_stacks(thread, thread.stack_table, old_to_new)


# =============================================================================
# FILTERS
# =============================================================================

def _slice_table(table, begin: int, end: int):
    """Slice every numpy column of a row-oriented table to [begin, end)."""
    changes = {}
    for table_field in fields(table):
        value = getattr(table, table_field.name)
        if isinstance(value, np.ndarray):
            changes[table_field.name] = value[begin:end]
    return replace(table, **changes)


def _slice_table_to_range(table, range_start: float, range_end: float):
    if table is None:
        return None
    begin, end = get_sample_index_range_for_selection(table, range_start, range_end)
    return _slice_table(table, begin, end)


def filter_thread_samples_to_range(
    thread: Thread,
    range_start: float,
    range_end: float
) -> Thread:
    """Keep samples and allocations with time in [range_start, range_end)."""
    return replace(
        thread,
        samples=_slice_table_to_range(thread.samples, range_start, range_end),
        native_allocations=_slice_table_to_range(
            thread.native_allocations, range_start, range_end
        ),
        js_allocations=_slice_table_to_range(
            thread.js_allocations, range_start, range_end
        ),
    )


def filter_thread_by_tab(thread: Thread, relevant_pages: FrozenSet[int]) -> Thread:
    """Drop samples whose stacks never run inside one of relevant_pages."""
    stack_table = thread.stack_table
    frame_windows = thread.frame_table.inner_window_id[stack_table.frame]
    in_pages = np.isin(frame_windows, np.fromiter(relevant_pages, dtype=np.int64))
    return keep_marked_stacks(thread, propagate_to_descendants(stack_table, in_pages))


def filter_thread_by_func(
    thread: Thread,
    keep_func: np.ndarray,
    default_category: int
) -> Thread:
    """Rebuild the stack table keeping only frames whose func is kept."""
    return filter_thread_by_frame(thread, keep_func[thread.frame_table.func], default_category)


def filter_thread_by_frame(
    thread: Thread,
    keep_frame: np.ndarray,
    default_category: int
) -> Thread:
    """Rebuild the stack table keeping only the frames marked in keep_frame."""
    return filter_thread_by_stack(
        thread, keep_frame[thread.stack_table.frame], default_category
    )


def filter_thread_by_stack(
    thread: Thread,
    keep_stack: np.ndarray,
    default_category: int
) -> Thread:
    """
    Rebuild the stack table keeping the own frame of every marked stack.

    Removed frames are skipped: their children attach to the nearest kept
    ancestor. A stack with no kept frame becomes the null stack.
    """
    stack_table = thread.stack_table
    builder = StackTableBuilder(thread.frame_table, default_category)
    old_to_new = np.full(stack_table.length, NULL_INDEX, dtype=np.int64)

    for i in range(stack_table.length):
        prefix = stack_table.prefix[i]
        new_prefix = old_to_new[prefix] if prefix >= 0 else NULL_INDEX
        if keep_stack[i]:
            old_to_new[i] = builder.intern(int(new_prefix), int(stack_table.frame[i]))
        else:
            old_to_new[i] = new_prefix

    return update_thread_stacks(thread, builder.build(), old_to_new)


def get_implementation_func_mask(
    thread: Thread,
    implementation: ImplementationFilter
) -> np.ndarray:
    func_table = thread.func_table
    if implementation == ImplementationFilter.COMBINED:
        return np.ones(func_table.length, dtype=bool)
    if implementation == ImplementationFilter.JS:
        return func_table.is_js | func_table.relevant_for_js
    if implementation == ImplementationFilter.CPP:
        return ~func_table.is_js
    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_IMPLEMENTATION,
        f"Unhandled implementation filter: {implementation!r}"
    )


def filter_thread_by_implementation(
    thread: Thread,
    implementation: ImplementationFilter,
    default_category: int
) -> Thread:
    """Only keep frames of the selected implementation; COMBINED is identity."""
    if implementation == ImplementationFilter.COMBINED:
        return thread
    keep_func = get_implementation_func_mask(thread, implementation)
    return filter_thread_by_func(thread, keep_func, default_category)


def _func_search_text(thread: Thread, func_index: int) -> str:
    func_table = thread.func_table
    string_table = thread.string_table
    parts = [string_table.get_string(int(func_table.name[func_index]))]
    file_name = int(func_table.file_name[func_index])
    if file_name >= 0:
        parts.append(string_table.get_string(file_name))
    return " ".join(parts).lower()


def filter_thread_to_search_strings(
    thread: Thread,
    search_strings: Sequence[str]
) -> Thread:
    """
    Drop samples whose stack mentions none of search_strings.

    Matching is a case-insensitive substring test on function and file
    names. An empty sequence leaves the thread untouched.
    """
    if not search_strings:
        return thread

    needles = [s.lower() for s in search_strings]
    func_count = thread.func_table.length
    func_matches = np.zeros(func_count, dtype=bool)
    for func_index in range(func_count):
        text = _func_search_text(thread, func_index)
        func_matches[func_index] = any(needle in text for needle in needles)

    own = func_matches[get_func_for_stacks(thread)]
    return keep_marked_stacks(thread, propagate_to_descendants(thread.stack_table, own))


def _used_stacks(thread: Thread) -> np.ndarray:
    columns = [
        table.stack
        for table in (thread.samples, thread.native_allocations, thread.js_allocations)
        if table is not None
    ]
    if not columns:
        return int_column()
    stacks = np.concatenate(columns)
    return np.unique(stacks[stacks >= 0])


def invert_callstack(thread: Thread, default_category: int) -> Thread:
    """
    Rebuild the thread so that each used stack is stored leaf-first.

    Only stacks referenced by a sample or allocation are inverted.
    """
    stack_table = thread.stack_table
    builder = StackTableBuilder(thread.frame_table, default_category)
    old_to_new = np.full(stack_table.length, NULL_INDEX, dtype=np.int64)

    for stack_index in _used_stacks(thread):
        new_stack = NULL_INDEX
        current = int(stack_index)
        while current >= 0:
            new_stack = builder.intern(new_stack, int(stack_table.frame[current]))
            current = int(stack_table.prefix[current])
        old_to_new[stack_index] = new_stack

    return update_thread_stacks(thread, builder.build(), old_to_new)


# =============================================================================
# SAMPLE RANGES
# =============================================================================

def get_sample_index_range_for_selection(
    table,
    range_start: float,
    range_end: float
) -> Tuple[int, int]:
    """[begin, end) row indexes of a time-sorted table within the range."""
    times = table.time
    begin = int(np.searchsorted(times, range_start, side='left'))
    end = int(np.searchsorted(times, range_end, side='left'))
    return begin, end


def get_time_range_for_thread(thread: Thread, interval: float) -> StartEndRange:
    """Time covered by the thread's samples, allocations and markers."""
    starts: List[float] = []
    ends: List[float] = []

    for table in (thread.samples, thread.native_allocations, thread.js_allocations):
        if table is not None and table.length > 0:
            starts.append(float(table.time[0]))
            ends.append(float(table.time[-1]) + interval)

    markers = thread.markers
    if markers is not None and markers.length > 0:
        starts.append(float(np.min(markers.start_time)))
        marker_ends = np.where(np.isnan(markers.end_time), markers.start_time, markers.end_time)
        ends.append(float(np.max(marker_ends)))

    if not starts:
        end = thread.unregister_time
        return StartEndRange(thread.register_time, thread.register_time if end is None else end)
    return StartEndRange(min(starts), max(ends))


# =============================================================================
# THREAD DESCRIPTIONS
# =============================================================================

_PROCESS_LABELS = {
    'default': 'Parent Process',
    'gpu': 'GPU Process',
    'rdd': 'Remote Data Decoder',
    'socket': 'Socket Process',
    'plugin': 'Plugin Process',
    'tab': 'Content Process',
    'web': 'Content Process',
}


def get_friendly_thread_name(threads: Sequence[Thread], thread: Thread) -> str:
    """Human readable label; main threads are named after their process."""
    if thread.name != 'GeckoMain':
        return thread.name
    if thread.process_name:
        return thread.process_name

    label = _PROCESS_LABELS.get(thread.process_type, thread.name)
    siblings = [
        t for t in threads
        if t.name == 'GeckoMain'
        and t.process_type == thread.process_type
        and not t.process_name
    ]
    if len(siblings) > 1 and thread in siblings:
        label += f" ({siblings.index(thread) + 1}/{len(siblings)})"
    return label


def get_thread_process_details(thread: Thread, friendly_thread_name: str) -> str:
    label = f'thread: "{thread.name}"'
    if thread.tid:
        label += f" ({thread.tid})"
    if thread.process_type:
        label += f'\nprocess: "{thread.process_type}"'
        if thread.pid:
            label += f" ({thread.pid})"
    if friendly_thread_name != thread.name:
        label = f"{friendly_thread_name}\n{label}"
    return label


# =============================================================================
# USEFULNESS AND EVENT DELAYS
# =============================================================================

def has_useful_samples(table, thread: Thread) -> bool:
    """True when the table has at least one row with a non-null stack."""
    if table is None or table.length == 0 or thread.stack_table.length == 0:
        return False
    return bool(np.any(table.stack >= 0))


def process_event_delays(samples, interval: float) -> EventDelayInfo:
    """
    Spread each recorded event delay over the samples that follow it.

    A delay of d at time t means the event queue stays busy until t + d,
    so at a later sample t' the remaining delay is d - (t' - t).
    """
    if samples is None or samples.event_delay is None:
        raise PreconditionError(
            ErrorCode.MISSING_REQUIRED_COLUMN,
            "Event delays require a samples table with an event_delay column"
        )

    raw = samples.event_delay
    times = samples.time
    processed = np.zeros(len(raw), dtype=np.float64)
    carry = 0.0
    previous_time: Optional[float] = None
    for i in range(len(raw)):
        elapsed = interval if previous_time is None else float(times[i]) - previous_time
        delay = float(raw[i])
        if math.isnan(delay):
            delay = 0.0
        carry = max(carry - elapsed, delay, 0.0)
        processed[i] = carry
        previous_time = float(times[i])

    if len(processed) == 0:
        return EventDelayInfo(event_delays=float_column(), min_delay=0.0, max_delay=0.0, delay_range=0.0)

    min_delay = float(np.min(processed))
    max_delay = float(np.max(processed))
    return EventDelayInfo(
        event_delays=processed,
        min_delay=min_delay,
        max_delay=max_delay,
        delay_range=max_delay - min_delay,
    )
