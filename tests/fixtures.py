"""
Test Fixtures

Small, fully explicit profiles for deterministic testing.
No random generation: every index below is written out by hand.

MAIN THREAD CALL TREE:
======================
    s0 root
    └── s1 main
        ├── s2 js::RunScript
        │   └── s3 onClick           (JS, window 11)
        │       └── s6 layout
        └── s4 layout
            └── s5 paint

Samples are taken every 1ms from t=0 to t=19 and cycle through the
stacks s1, s3, s5, s6, s4.
"""

import math
from typing import Optional, Sequence

import numpy as np

from threadview.contracts import (
    Category, FrameTable, FuncTable, JsAllocationsTable, JsTracerTable,
    NativeAllocationsTable, Page, Profile, ProfileMeta, RawMarkerTable,
    SampleUnits, SamplesTable, StackTable, StringTable, Thread,
)
from threadview.state import AppState


# =============================================================================
# STRINGS AND FUNCS
# =============================================================================

STRINGS = (
    "root",           # 0
    "main",           # 1
    "onClick",        # 2
    "layout",         # 3
    "paint",          # 4
    "js::RunScript",  # 5
    "app.js",         # 6
    "DOMEvent",       # 7
    "GCMajor",        # 8
    "Array",          # 9
)

FUNC_ROOT = 0
FUNC_MAIN = 1
FUNC_ON_CLICK = 2
FUNC_LAYOUT = 3
FUNC_PAINT = 4
FUNC_RUN_SCRIPT = 5

CATEGORY_OTHER = 0
CATEGORY_JS = 1
CATEGORY_LAYOUT = 2

CATEGORIES = (
    Category("Other", "grey"),
    Category("JavaScript", "yellow"),
    Category("Layout", "purple"),
)

TAB_ID = 1
TAB_WINDOW_ID = 11
OTHER_TAB_ID = 2
OTHER_TAB_WINDOW_ID = 22

SAMPLE_COUNT = 20
SAMPLE_STACK_CYCLE = (1, 3, 5, 6, 4)

MARKER_SCHEMA = (
    {'name': 'DOMEvent', 'data': [{'key': 'eventType', 'searchable': True}]},
)


def int_array(values: Sequence[int]) -> np.ndarray:
    return np.asarray(values, dtype=np.int64)


def float_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def create_func_table() -> FuncTable:
    return FuncTable(
        name=int_array([0, 1, 2, 3, 4, 5]),
        is_js=np.array([False, False, True, False, False, False]),
        relevant_for_js=np.array([False, False, False, False, False, True]),
        resource=int_array([-1, -1, 0, -1, -1, -1]),
        file_name=int_array([-1, -1, 6, -1, -1, -1]),
    )


def create_frame_table() -> FrameTable:
    # One frame per func.
    return FrameTable(
        func=int_array([0, 1, 2, 3, 4, 5]),
        category=int_array([0, 0, 1, 2, 2, 1]),
        subcategory=int_array([0, 0, 0, 0, 0, 0]),
        inner_window_id=int_array([0, 0, TAB_WINDOW_ID, 0, 0, 0]),
        line=int_array([-1, -1, 10, -1, -1, -1]),
    )


def create_stack_table() -> StackTable:
    frames = [0, 1, 5, 2, 3, 4, 3]
    return StackTable(
        frame=int_array(frames),
        prefix=int_array([-1, 0, 1, 2, 1, 4, 3]),
        category=int_array([0, 0, 1, 1, 2, 2, 2]),
        subcategory=int_array([0] * len(frames)),
    )


def create_samples(
    count: int = SAMPLE_COUNT,
    with_cpu_delta: bool = True,
    with_event_delay: bool = False
) -> SamplesTable:
    return SamplesTable(
        stack=int_array([SAMPLE_STACK_CYCLE[i % len(SAMPLE_STACK_CYCLE)] for i in range(count)]),
        time=float_array([float(i) for i in range(count)]),
        # 0.5ms of CPU per 1ms sample, in nanoseconds
        thread_cpu_delta=float_array([500_000.0] * count) if with_cpu_delta else None,
        event_delay=float_array([0.0, 3.0] + [0.0] * (count - 2)) if with_event_delay else None,
    )


def create_markers() -> RawMarkerTable:
    return RawMarkerTable(
        name=int_array([7, 8, 7]),
        start_time=float_array([2.0, 10.0, 15.0]),
        end_time=float_array([5.0, 12.0, math.nan]),
        category=int_array([0, 0, 0]),
        data=(
            {'type': 'DOMEvent', 'eventType': 'click'},
            None,
            {'type': 'DOMEvent', 'eventType': 'keydown'},
        ),
    )


def create_native_allocations(with_addresses: bool = True) -> NativeAllocationsTable:
    """Three allocations at 0x10, 0x20, 0x30; the one at 0x20 is freed."""
    return NativeAllocationsTable(
        time=float_array([1.0, 2.0, 3.0, 4.0]),
        stack=int_array([5, 6, 4, 1]),
        weight=int_array([100, 200, 300, -200]),
        memory_address=int_array([0x10, 0x20, 0x30, 0x20]) if with_addresses else None,
    )


def create_js_allocations() -> JsAllocationsTable:
    return JsAllocationsTable(
        time=float_array([3.0, 8.0]),
        stack=int_array([3, 6]),
        weight=int_array([64, 128]),
        class_name=int_array([9, 9]),
    )


def create_js_tracer() -> JsTracerTable:
    """onClick [0, 4ms) containing layout [1ms, 2ms); microseconds."""
    return JsTracerTable(
        events=int_array([2, 3]),
        timestamps=float_array([0.0, 1000.0]),
        durations=float_array([4000.0, 1000.0]),
    )


# =============================================================================
# THREADS AND PROFILES
# =============================================================================

def create_main_thread(
    samples: Optional[SamplesTable] = None,
    native_allocations: Optional[NativeAllocationsTable] = None,
    js_allocations: Optional[JsAllocationsTable] = None,
    js_tracer: Optional[JsTracerTable] = None,
    with_markers: bool = True,
    name: str = "GeckoMain",
    tid: str = "100"
) -> Thread:
    return Thread(
        name=name,
        process_type="default",
        pid="1",
        tid=tid,
        string_table=StringTable(STRINGS),
        func_table=create_func_table(),
        frame_table=create_frame_table(),
        stack_table=create_stack_table(),
        samples=samples if samples is not None else create_samples(),
        is_main_thread=True,
        native_allocations=native_allocations,
        js_allocations=js_allocations,
        js_tracer=js_tracer,
        markers=create_markers() if with_markers else None,
    )


def create_worker_thread() -> Thread:
    """A worker with its own tables: work -> compute, sampled at 0.5ms steps."""
    return Thread(
        name="DOM Worker",
        process_type="default",
        pid="1",
        tid="200",
        string_table=StringTable(("work", "compute")),
        func_table=FuncTable(
            name=int_array([0, 1]),
            is_js=np.array([False, True]),
            relevant_for_js=np.array([False, False]),
            resource=int_array([-1, -1]),
            file_name=int_array([-1, -1]),
        ),
        frame_table=FrameTable(
            func=int_array([0, 1]),
            category=int_array([0, 1]),
            subcategory=int_array([0, 0]),
            inner_window_id=int_array([0, 0]),
            line=int_array([-1, -1]),
        ),
        stack_table=StackTable(
            frame=int_array([0, 1]),
            prefix=int_array([-1, 0]),
            category=int_array([0, 1]),
            subcategory=int_array([0, 0]),
        ),
        samples=SamplesTable(
            stack=int_array([0, 1, 1]),
            time=float_array([0.5, 1.5, 2.5]),
            thread_cpu_delta=float_array([100_000.0, 100_000.0, 100_000.0]),
        ),
    )


def create_meta(sample_units: Optional[SampleUnits] = SampleUnits()) -> ProfileMeta:
    return ProfileMeta(
        interval=1.0,
        start_time=0.0,
        categories=CATEGORIES,
        marker_schema=MARKER_SCHEMA,
        sample_units=sample_units,
        product="Firefox",
    )


def create_profile(*threads: Thread, sample_units: Optional[SampleUnits] = SampleUnits()) -> Profile:
    if not threads:
        threads = (create_main_thread(), create_worker_thread())
    return Profile(
        meta=create_meta(sample_units),
        threads=tuple(threads),
        pages=(
            Page(tab_id=TAB_ID, inner_window_id=TAB_WINDOW_ID, url="https://example.org/"),
            Page(tab_id=OTHER_TAB_ID, inner_window_id=OTHER_TAB_WINDOW_ID, url="https://example.com/"),
        ),
    )


def create_state(profile: Optional[Profile] = None) -> AppState:
    return AppState(profile=profile if profile is not None else create_profile())


# =============================================================================
# ASSERTION HELPERS
# =============================================================================

def stack_funcs(thread: Thread, stack_index: int) -> tuple:
    """Func indexes from root to leaf for a stack, or () for the null stack."""
    funcs = []
    while stack_index >= 0:
        frame = thread.stack_table.frame[stack_index]
        funcs.append(int(thread.frame_table.func[frame]))
        stack_index = int(thread.stack_table.prefix[stack_index])
    return tuple(reversed(funcs))


def sample_paths(thread: Thread) -> list:
    """Root-to-leaf func paths of every sample, in row order."""
    return [stack_funcs(thread, int(stack)) for stack in thread.samples.stack]


def assert_indexes_resolve(thread: Thread):
    """Every stored index resolves within the same thread's tables."""
    stack_table = thread.stack_table
    for i in range(stack_table.length):
        assert -1 <= stack_table.prefix[i] < i
        assert 0 <= stack_table.frame[i] < thread.frame_table.length
    assert np.all(thread.frame_table.func < thread.func_table.length)
    assert np.all(thread.func_table.name < len(thread.string_table))
    for table in (thread.samples, thread.native_allocations, thread.js_allocations):
        if table is not None and table.length:
            assert np.all(table.stack >= -1)
            assert np.all(table.stack < stack_table.length)
