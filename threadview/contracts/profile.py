"""
Profile Data Contracts

Columnar, immutable snapshots of profiling data.

IMMUTABILITY CONTRACT:
======================
- Every table is a frozen dataclass whose columns are numpy arrays
- Columns are never written after construction; filters build new tables
- Equality is IDENTITY (eq=False): an unchanged table is the same object,
  which is what lets memoized stages skip work in O(1)

INDEX INVARIANT:
================
Every index stored in a table (stack, frame, func, string, category)
resolves within the corresponding table of the SAME Thread value.
-1 is the null index (null stack, root prefix, unknown resource).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import numpy as np

from .base import WeightType


ThreadIndex = int
ThreadsKey = str
InnerWindowID = int
IndexIntoStringTable = int
IndexIntoFuncTable = int
IndexIntoCategoryList = int

NULL_INDEX = -1


def get_threads_key(thread_indexes: Iterable[ThreadIndex]) -> ThreadsKey:
    """Stable key for a (possibly merged) set of thread indexes."""
    return ",".join(str(index) for index in sorted(set(thread_indexes)))


def int_column(values: Iterable[int] = ()) -> np.ndarray:
    return np.asarray(list(values), dtype=np.int64)


def float_column(values: Iterable[float] = ()) -> np.ndarray:
    return np.asarray(list(values), dtype=np.float64)


def bool_column(values: Iterable[bool] = ()) -> np.ndarray:
    return np.asarray(list(values), dtype=bool)


# =============================================================================
# STRINGS AND CATEGORIES
# =============================================================================

class StringTable:
    """
    Interned, index-addressable strings.

    Instances are never mutated after construction; use extended() to get
    a new table with extra strings appended.
    """

    def __init__(self, strings: Iterable[str] = ()):
        self._strings: Tuple[str, ...] = tuple(strings)
        self._index: Dict[str, int] = {}
        for i, s in enumerate(self._strings):
            self._index.setdefault(s, i)

    def get_string(self, index: IndexIntoStringTable) -> str:
        if index < 0 or index >= len(self._strings):
            raise IndexError(f"String index {index} is out of range")
        return self._strings[index]

    def index_of(self, value: str) -> Optional[IndexIntoStringTable]:
        return self._index.get(value)

    def extended(self, strings: Iterable[str]) -> Tuple[StringTable, Tuple[int, ...]]:
        """Return a new table with strings interned, plus their indexes."""
        all_strings = list(self._strings)
        lookup = dict(self._index)
        indexes = []
        for s in strings:
            if s not in lookup:
                lookup[s] = len(all_strings)
                all_strings.append(s)
            indexes.append(lookup[s])
        return StringTable(all_strings), tuple(indexes)

    @property
    def strings(self) -> Tuple[str, ...]:
        return self._strings

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, value: object) -> bool:
        return value in self._index

    def __repr__(self) -> str:
        return f"StringTable(len={len(self._strings)})"


@dataclass(frozen=True)
class Category:
    """A frame category (e.g. JavaScript, Layout, Other)."""
    name: str
    color: str
    subcategories: Tuple[str, ...] = ("Other",)


# =============================================================================
# CALL STACK TABLES
# =============================================================================

@dataclass(frozen=True, eq=False)
class FuncTable:
    name: np.ndarray              # IndexIntoStringTable
    is_js: np.ndarray             # bool
    relevant_for_js: np.ndarray   # bool
    resource: np.ndarray          # int, -1 when unknown
    file_name: np.ndarray         # IndexIntoStringTable, -1 when unknown

    @property
    def length(self) -> int:
        return len(self.name)


@dataclass(frozen=True, eq=False)
class FrameTable:
    func: np.ndarray              # IndexIntoFuncTable
    category: np.ndarray          # IndexIntoCategoryList, -1 when unknown
    subcategory: np.ndarray
    inner_window_id: np.ndarray   # 0 when the frame has no window
    line: np.ndarray              # -1 when unknown

    @property
    def length(self) -> int:
        return len(self.func)


@dataclass(frozen=True, eq=False)
class StackTable:
    """
    Prefix tree of frames.

    INVARIANT: prefix[i] < i, roots have prefix -1.
    """
    frame: np.ndarray
    prefix: np.ndarray
    category: np.ndarray
    subcategory: np.ndarray

    @property
    def length(self) -> int:
        return len(self.frame)


# =============================================================================
# SAMPLE AND ALLOCATION TABLES
# =============================================================================

@dataclass(frozen=True, eq=False)
class SamplesTable:
    """
    One row per sampling event, sorted by time.

    thread_cpu_ratio is only present once CPU deltas have been processed.
    """
    stack: np.ndarray
    time: np.ndarray
    weight: Optional[np.ndarray] = None
    weight_type: WeightType = WeightType.SAMPLES
    thread_cpu_delta: Optional[np.ndarray] = None
    thread_cpu_ratio: Optional[np.ndarray] = None
    event_delay: Optional[np.ndarray] = None

    @property
    def length(self) -> int:
        return len(self.stack)


@dataclass(frozen=True, eq=False)
class NativeAllocationsTable:
    """
    Native allocations (positive weight) and deallocations (negative weight).

    memory_address is only present in formats with balanced
    allocations and deallocations.
    """
    time: np.ndarray
    stack: np.ndarray
    weight: np.ndarray
    weight_type: WeightType = WeightType.BYTES
    memory_address: Optional[np.ndarray] = None
    thread_id: Optional[np.ndarray] = None

    @property
    def length(self) -> int:
        return len(self.stack)


@dataclass(frozen=True, eq=False)
class JsAllocationsTable:
    time: np.ndarray
    stack: np.ndarray
    weight: np.ndarray
    class_name: np.ndarray        # IndexIntoStringTable
    weight_type: WeightType = WeightType.BYTES

    @property
    def length(self) -> int:
        return len(self.stack)


@dataclass(frozen=True, eq=False)
class JsTracerTable:
    """Structured JS tracing events; timestamps and durations in microseconds."""
    events: np.ndarray            # IndexIntoStringTable
    timestamps: np.ndarray
    durations: np.ndarray

    @property
    def length(self) -> int:
        return len(self.events)


# =============================================================================
# MARKERS
# =============================================================================

@dataclass(frozen=True, eq=False)
class RawMarkerTable:
    name: np.ndarray              # IndexIntoStringTable
    start_time: np.ndarray
    end_time: np.ndarray          # NaN for instant markers
    category: np.ndarray
    data: Tuple[Optional[Mapping[str, Any]], ...] = ()

    @property
    def length(self) -> int:
        return len(self.name)


@dataclass(frozen=True)
class Marker:
    """A marker with its strings resolved."""
    name: str
    start: float
    end: Optional[float]
    category: int
    data: Optional[Mapping[str, Any]] = None


MarkerIndex = int
MarkerGetter = Callable[[MarkerIndex], Marker]


# =============================================================================
# THREAD AND PROFILE
# =============================================================================

@dataclass(frozen=True, eq=False)
class Thread:
    """
    Immutable snapshot of one (possibly merged) thread's profiling data.

    Filtering never mutates a Thread; every stage either returns its input
    or a new Thread (usually via dataclasses.replace).
    """
    name: str
    process_type: str
    pid: str
    tid: str
    string_table: StringTable
    func_table: FuncTable
    frame_table: FrameTable
    stack_table: StackTable
    samples: Optional[SamplesTable]
    process_name: Optional[str] = None
    is_main_thread: bool = False
    register_time: float = 0.0
    unregister_time: Optional[float] = None
    native_allocations: Optional[NativeAllocationsTable] = None
    js_allocations: Optional[JsAllocationsTable] = None
    js_tracer: Optional[JsTracerTable] = None
    markers: Optional[RawMarkerTable] = None


@dataclass(frozen=True)
class Page:
    tab_id: int
    inner_window_id: InnerWindowID
    url: str


@dataclass(frozen=True)
class SampleUnits:
    time: str = "ms"
    event_delay: str = "ms"
    thread_cpu_delta: str = "ns"


@dataclass(frozen=True)
class ProfileMeta:
    interval: float
    start_time: float
    categories: Tuple[Category, ...]
    marker_schema: Tuple[Mapping[str, Any], ...] = ()
    sample_units: Optional[SampleUnits] = None
    product: str = ""


@dataclass(frozen=True, eq=False)
class Profile:
    meta: ProfileMeta
    threads: Tuple[Thread, ...]
    pages: Tuple[Page, ...] = ()


# =============================================================================
# DERIVED VALUES
# =============================================================================

@dataclass(frozen=True, eq=False)
class SamplesLikeTable:
    """
    Uniform (stack, weight, optional CPU ratio) view over whichever table
    the call tree summary strategy selects.
    """
    stack: np.ndarray
    time: np.ndarray
    weight: Optional[np.ndarray]
    weight_type: WeightType
    thread_cpu_ratio: Optional[np.ndarray] = None

    @property
    def length(self) -> int:
        return len(self.stack)


@dataclass(frozen=True)
class ThreadViewOptions:
    selected_call_node_path: Tuple[IndexIntoFuncTable, ...] = ()
    expanded_call_node_paths: FrozenSet[Tuple[IndexIntoFuncTable, ...]] = frozenset()
    selected_marker: Optional[MarkerIndex] = None


DEFAULT_THREAD_VIEW_OPTIONS = ThreadViewOptions()


@dataclass(frozen=True, eq=False)
class EventDelayInfo:
    event_delays: np.ndarray
    min_delay: float
    max_delay: float
    delay_range: float


@dataclass(frozen=True)
class JsTracerTiming:
    """One row of non-overlapping boxes, all at the same depth."""
    name: str
    start: Tuple[float, ...] = field(default_factory=tuple)
    end: Tuple[float, ...] = field(default_factory=tuple)
    label: Tuple[str, ...] = field(default_factory=tuple)
    index: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def length(self) -> int:
        return len(self.start)


@dataclass(frozen=True)
class TransformLabel:
    l10n_id: str
    item: str
