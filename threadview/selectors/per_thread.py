"""
Per-Thread Selectors

One ThreadSelectors instance exists per thread key. It owns every memo cell
of the filter pipeline for that key, plus the keyed transform cache, so two
thread keys never share cache state.

PIPELINE ORDER:
===============
1. raw thread (one index, or several merged)
2. CPU-processed
3. tab-filtered (and the separate active-tab-filtered variant)
4. range-filtered (committed range)
5. transform stack
6. implementation filter
7. search filter
8. invert call stack
9. preview selection (range filter again)

Each stage returns its input object when it has nothing to do, so a
downstream cell sees an unchanged argument and answers from its slot.

OFFSETS:
========
Only stages 4 and 9 remove sample rows; everything else nulls stacks.
The two sample-index offsets rely on this to map a row index of a filtered
view back to a row index of the raw thread.
"""

from __future__ import annotations
from functools import reduce
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from ..contracts.base import (
    CallTreeSummaryStrategy, ErrorCode, PreconditionError,
    PreviewSelection, StartEndRange, UnhandledVariantError, WeightType,
)
from ..contracts.profile import (
    Category, JsAllocationsTable, JsTracerTable, JsTracerTiming,
    MarkerGetter, NativeAllocationsTable, SampleUnits, SamplesLikeTable,
    SamplesTable, StringTable, Thread, ThreadIndex, ThreadViewOptions,
    DEFAULT_THREAD_VIEW_OPTIONS, get_threads_key,
)
from ..contracts.transforms import Transform, TransformStack
from ..memo import KeyedTransformCache, Selector, TransformContext, create_selector
from .. import processing
from .markers import MarkerSelectors
from .profile import (
    ProfileSelectors, get_categories, get_meta, get_per_thread_view_options,
    get_preview_selection, get_profile_interval, get_sample_units, get_threads,
)
from .url_state import (
    UrlStateSelectors, get_implementation_filter, get_invert_callstack,
    get_last_selected_call_tree_summary_strategy,
)
from .url_state import get_transform_stack as get_url_transform_stack

if TYPE_CHECKING:
    from ..observability import ObservabilityEngine
    from ..state import AppState


# =============================================================================
# STAGE FUNCTIONS
# =============================================================================

def compute_cpu_processed_thread(
    thread: Thread,
    sample_units: Optional[SampleUnits],
    interval: float
) -> Thread:
    samples = thread.samples
    if samples is None or samples.thread_cpu_delta is None or sample_units is None:
        return thread
    return processing.process_thread_cpu_delta(thread, sample_units, interval)


def compute_tab_filtered_thread(thread: Thread, relevant_pages: FrozenSet[int]) -> Thread:
    if not relevant_pages:
        return thread
    return processing.filter_thread_by_tab(thread, relevant_pages)


def compute_range_filtered_thread(thread: Thread, committed_range: StartEndRange) -> Thread:
    return processing.filter_thread_samples_to_range(
        thread, committed_range.start, committed_range.end
    )


def compute_search_filtered_thread(thread: Thread, search_strings: Sequence[str]) -> Thread:
    return processing.filter_thread_to_search_strings(thread, search_strings)


def compute_inverted_thread(thread: Thread, invert: bool, default_category: int) -> Thread:
    if not invert:
        return thread
    return processing.invert_callstack(thread, default_category)


def compute_preview_filtered_thread(thread: Thread, preview: PreviewSelection) -> Thread:
    if not preview.has_selection:
        return thread
    return processing.filter_thread_samples_to_range(
        thread, preview.selection_start, preview.selection_end
    )


def resolve_call_tree_summary_strategy(
    thread: Thread,
    requested: CallTreeSummaryStrategy
) -> CallTreeSummaryStrategy:
    """
    The strategy a call tree can actually be built with for this thread.

    Missing tables fall back to timing; a thread with only native
    allocations switches timing to native allocations.
    """
    if requested == CallTreeSummaryStrategy.TIMING:
        samples = thread.samples
        native_allocations = thread.native_allocations
        if (
            (samples is None or samples.length == 0)
            and native_allocations is not None
            and native_allocations.length > 0
        ):
            return CallTreeSummaryStrategy.NATIVE_ALLOCATIONS
        return requested

    if requested == CallTreeSummaryStrategy.JS_ALLOCATIONS:
        if thread.js_allocations is None:
            return CallTreeSummaryStrategy.TIMING
        return requested

    if isinstance(requested, CallTreeSummaryStrategy) and requested.is_native:
        if thread.native_allocations is None:
            return CallTreeSummaryStrategy.TIMING
        return requested

    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_SUMMARY_STRATEGY,
        f"Unhandled call tree summary strategy: {requested!r}"
    )


def compute_sample_index_offset_from_committed_range(
    samples: SamplesLikeTable,
    committed_range: StartEndRange
) -> int:
    begin, _ = processing.get_sample_index_range_for_selection(
        samples, committed_range.start, committed_range.end
    )
    return begin


def compute_sample_index_offset_from_preview_range(
    samples: SamplesLikeTable,
    preview: PreviewSelection,
    offset_from_committed_range: int
) -> int:
    if not preview.has_selection:
        return offset_from_committed_range
    begin, _ = processing.get_sample_index_range_for_selection(
        samples, preview.selection_start, preview.selection_end
    )
    return offset_from_committed_range + begin


def build_transform_context(
    default_category: int,
    marker_getter: MarkerGetter,
    marker_indexes: Sequence[int],
    marker_schema_by_name: Mapping[str, Any],
    categories: Tuple[Category, ...]
) -> TransformContext:
    return TransformContext(
        default_category=default_category,
        marker_getter=marker_getter,
        marker_indexes=marker_indexes,
        marker_schema_by_name=marker_schema_by_name,
        categories=categories,
    )


def apply_transform_in_context(
    thread: Thread,
    transform: Transform,
    context: TransformContext
) -> Thread:
    return processing.apply_transform(
        thread,
        transform,
        context.default_category,
        context.marker_getter,
        context.marker_indexes,
        context.marker_schema_by_name,
        context.categories,
    )


def can_show_retained_memory(native_allocations: Optional[NativeAllocationsTable]) -> bool:
    return native_allocations is not None and native_allocations.memory_address is not None


# =============================================================================
# THREAD SELECTORS
# =============================================================================

class ThreadSelectors:
    """
    Every derived value of one (possibly merged) thread.

    Memoized values are Selector attributes called with an AppState;
    plain accessors are methods taking the same AppState.
    """

    def __init__(
        self,
        thread_indexes: Sequence[ThreadIndex],
        profile_selectors: ProfileSelectors,
        url_selectors: UrlStateSelectors,
        observer: Optional[ObservabilityEngine] = None,
        apply_fn: Callable[[Thread, Transform, TransformContext], Thread] = apply_transform_in_context
    ):
        if not thread_indexes:
            raise ValueError("ThreadSelectors requires at least one thread index")

        self.thread_indexes: Tuple[ThreadIndex, ...] = tuple(sorted(set(thread_indexes)))
        self.threads_key = get_threads_key(self.thread_indexes)
        self._transform_cache = KeyedTransformCache(apply_fn, observer)
        self._selectors: List[Selector] = []

        def selector(*inputs, combiner, name) -> Selector:
            created = create_selector(
                *inputs, combiner=combiner, name=f"{name}[{self.threads_key}]", observer=observer
            )
            self._selectors.append(created)
            return created

        g = profile_selectors

        # Raw thread and its descriptions
        self.get_thread = selector(get_threads, combiner=self._select_thread, name='get_thread')
        self.get_thread_range = selector(
            self.get_thread, get_profile_interval,
            combiner=processing.get_time_range_for_thread, name='get_thread_range'
        )
        self.get_friendly_thread_name = selector(
            get_threads, self.get_thread,
            combiner=processing.get_friendly_thread_name, name='get_friendly_thread_name'
        )
        self.get_thread_process_details = selector(
            self.get_thread, self.get_friendly_thread_name,
            combiner=processing.get_thread_process_details, name='get_thread_process_details'
        )

        self._markers = MarkerSelectors(self.get_thread, selector)
        self.get_full_marker_list = self._markers.get_full_marker_list
        self.get_marker_getter = self._markers.get_marker_getter
        self.get_full_marker_list_indexes = self._markers.get_full_marker_list_indexes

        # Filter pipeline
        self.get_cpu_processed_thread = selector(
            self.get_thread, get_sample_units, get_profile_interval,
            combiner=compute_cpu_processed_thread, name='get_cpu_processed_thread'
        )
        self.get_tab_filtered_thread = selector(
            self.get_cpu_processed_thread, g.get_relevant_inner_window_ids_for_current_tab,
            combiner=compute_tab_filtered_thread, name='get_tab_filtered_thread'
        )
        self.get_active_tab_filtered_thread = selector(
            self.get_cpu_processed_thread, g.get_relevant_inner_window_ids_for_active_tab,
            combiner=compute_tab_filtered_thread, name='get_active_tab_filtered_thread'
        )
        self.get_range_filtered_thread = selector(
            self.get_tab_filtered_thread, g.get_committed_range,
            combiner=compute_range_filtered_thread, name='get_range_filtered_thread'
        )
        self.get_transform_context = selector(
            g.get_default_category,
            self.get_marker_getter,
            self.get_full_marker_list_indexes,
            g.get_marker_schema_by_name,
            get_categories,
            combiner=build_transform_context, name='get_transform_context'
        )
        self.get_range_and_transform_filtered_thread = selector(
            self.get_range_filtered_thread, self.get_transform_stack, self.get_transform_context,
            combiner=self._apply_transform_stack,
            name='get_range_and_transform_filtered_thread'
        )
        self.get_implementation_filtered_thread = selector(
            self.get_range_and_transform_filtered_thread,
            get_implementation_filter,
            g.get_default_category,
            combiner=processing.filter_thread_by_implementation,
            name='get_implementation_filtered_thread'
        )
        self.get_implementation_and_search_filtered_thread = selector(
            self.get_implementation_filtered_thread, url_selectors.get_search_strings,
            combiner=compute_search_filtered_thread,
            name='get_implementation_and_search_filtered_thread'
        )
        self.get_filtered_thread = selector(
            self.get_implementation_and_search_filtered_thread,
            get_invert_callstack,
            g.get_default_category,
            combiner=compute_inverted_thread, name='get_filtered_thread'
        )
        self.get_preview_filtered_thread = selector(
            self.get_filtered_thread, get_preview_selection,
            combiner=compute_preview_filtered_thread, name='get_preview_filtered_thread'
        )

        # Call tree inputs
        self.get_call_tree_summary_strategy = selector(
            self.get_thread, get_last_selected_call_tree_summary_strategy,
            combiner=resolve_call_tree_summary_strategy,
            name='get_call_tree_summary_strategy'
        )
        self.get_unfiltered_samples_for_call_tree = selector(
            self.get_thread, self.get_call_tree_summary_strategy,
            combiner=processing.extract_samples_like_table,
            name='get_unfiltered_samples_for_call_tree'
        )
        self.get_filtered_samples_for_call_tree = selector(
            self.get_filtered_thread, self.get_call_tree_summary_strategy,
            combiner=processing.extract_samples_like_table,
            name='get_filtered_samples_for_call_tree'
        )
        self.get_preview_filtered_samples_for_call_tree = selector(
            self.get_preview_filtered_thread, self.get_call_tree_summary_strategy,
            combiner=processing.extract_samples_like_table,
            name='get_preview_filtered_samples_for_call_tree'
        )
        self.get_sample_index_offset_from_committed_range = selector(
            self.get_unfiltered_samples_for_call_tree, g.get_committed_range,
            combiner=compute_sample_index_offset_from_committed_range,
            name='get_sample_index_offset_from_committed_range'
        )
        self.get_sample_index_offset_from_preview_range = selector(
            self.get_filtered_samples_for_call_tree,
            get_preview_selection,
            self.get_sample_index_offset_from_committed_range,
            combiner=compute_sample_index_offset_from_preview_range,
            name='get_sample_index_offset_from_preview_range'
        )

        # Usefulness flags and derived tables
        self.get_has_useful_timing_samples = selector(
            self.get_samples_table, self.get_thread,
            combiner=processing.has_useful_samples, name='get_has_useful_timing_samples'
        )
        self.get_has_useful_js_allocations = selector(
            self.get_js_allocations, self.get_thread,
            combiner=processing.has_useful_samples, name='get_has_useful_js_allocations'
        )
        self.get_has_useful_native_allocations = selector(
            self.get_native_allocations, self.get_thread,
            combiner=processing.has_useful_samples, name='get_has_useful_native_allocations'
        )
        self.get_can_show_retained_memory = selector(
            self.get_native_allocations,
            combiner=can_show_retained_memory, name='get_can_show_retained_memory'
        )
        self.get_processed_event_delays = selector(
            self.get_samples_table, get_profile_interval,
            combiner=processing.process_event_delays, name='get_processed_event_delays'
        )
        self.get_expensive_js_tracer_timing = selector(
            self.get_js_tracer_table, self.get_thread,
            combiner=self._js_tracer_timing, name='get_expensive_js_tracer_timing'
        )
        self.get_expensive_js_tracer_leaf_timing = selector(
            self.get_js_tracer_table, self.get_string_table,
            combiner=self._js_tracer_leaf_timing, name='get_expensive_js_tracer_leaf_timing'
        )
        self.get_transform_labels = selector(
            get_meta,
            self.get_range_and_transform_filtered_thread,
            self.get_friendly_thread_name,
            self.get_transform_stack,
            combiner=processing.get_transform_labels, name='get_transform_labels'
        )

    # -------------------------------------------------------------------------
    # Combiners that close over this thread key
    # -------------------------------------------------------------------------

    def _select_thread(self, threads: Tuple[Thread, ...]) -> Thread:
        for index in self.thread_indexes:
            if not 0 <= index < len(threads):
                raise PreconditionError(
                    ErrorCode.INVALID_THREAD_INDEX,
                    f"Thread index {index} is out of range for {len(threads)} threads"
                )
        if len(self.thread_indexes) == 1:
            return threads[self.thread_indexes[0]]
        return processing.merge_threads([threads[index] for index in self.thread_indexes])

    def _apply_transform_stack(
        self,
        thread: Thread,
        transforms: TransformStack,
        context: TransformContext
    ) -> Thread:
        return reduce(
            lambda current, transform: self._transform_cache.apply(current, transform, context),
            transforms,
            thread,
        )

    @staticmethod
    def _js_tracer_timing(
        js_tracer: Optional[JsTracerTable],
        thread: Thread
    ) -> Optional[List[JsTracerTiming]]:
        if js_tracer is None:
            return None
        return processing.get_js_tracer_timing(js_tracer, thread)

    @staticmethod
    def _js_tracer_leaf_timing(
        js_tracer: Optional[JsTracerTable],
        string_table: StringTable
    ) -> Optional[List[JsTracerTiming]]:
        if js_tracer is None:
            return None
        return processing.get_js_tracer_leaf_timing(js_tracer, string_table)

    # -------------------------------------------------------------------------
    # Plain accessors
    # -------------------------------------------------------------------------

    def get_string_table(self, state: AppState) -> StringTable:
        return self.get_thread(state).string_table

    def get_samples_table(self, state: AppState) -> Optional[SamplesTable]:
        return self.get_thread(state).samples

    def get_samples_weight_type(self, state: AppState) -> WeightType:
        samples = self.get_samples_table(state)
        return WeightType.SAMPLES if samples is None else samples.weight_type

    def get_native_allocations(self, state: AppState) -> Optional[NativeAllocationsTable]:
        return self.get_thread(state).native_allocations

    def get_js_allocations(self, state: AppState) -> Optional[JsAllocationsTable]:
        return self.get_thread(state).js_allocations

    def get_js_tracer_table(self, state: AppState) -> Optional[JsTracerTable]:
        return self.get_thread(state).js_tracer

    def get_transform_stack(self, state: AppState) -> TransformStack:
        return get_url_transform_stack(state, self.threads_key)

    def get_view_options(self, state: AppState) -> ThreadViewOptions:
        return get_per_thread_view_options(state).get(self.threads_key, DEFAULT_THREAD_VIEW_OPTIONS)

    def get_weight_type_for_call_tree(self, state: AppState) -> WeightType:
        return processing.get_weight_type_for_call_tree(
            self.get_unfiltered_samples_for_call_tree(state)
        )

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def transform_cache(self) -> KeyedTransformCache:
        return self._transform_cache

    def all_selectors(self) -> List[Selector]:
        return list(self._selectors)

    def __repr__(self) -> str:
        return f"ThreadSelectors({self.threads_key})"
