"""
Processing Layer

RESPONSIBILITY: Pure thread-to-thread filters, transforms and projections
ALLOWED INPUTS: Threads, tables and view parameters from contracts
OUTPUTS: New Thread values, SamplesLikeTables, timing rows

WHAT THIS LAYER MUST NOT DO:
============================
- Cache anything (memoization belongs to the memo and selectors layers)
- Mutate an input thread or table
- Remove sample rows anywhere except the range filter
"""

from .profile_data import (
    StackTableBuilder,
    remap_stacks, update_thread_stacks, keep_marked_stacks, propagate_to_descendants,
    filter_thread_samples_to_range, filter_thread_by_tab,
    filter_thread_by_func, filter_thread_by_frame, filter_thread_by_stack,
    filter_thread_by_implementation, filter_thread_to_search_strings,
    invert_callstack, get_sample_index_range_for_selection, get_time_range_for_thread,
    get_friendly_thread_name, get_thread_process_details,
    has_useful_samples, process_event_delays,
)
from .cpu import compute_thread_cpu_ratio, process_thread_cpu_delta
from .merge import merge_threads
from .transforms import apply_transform, get_transform_labels, get_matching_marker_ranges
from .call_tree import (
    extract_samples_like_table, get_native_allocations_summary, get_weight_type_for_call_tree,
)
from .js_tracer import get_js_tracer_timing, get_js_tracer_leaf_timing

__all__ = [
    'StackTableBuilder',
    'remap_stacks', 'update_thread_stacks', 'keep_marked_stacks', 'propagate_to_descendants',
    'filter_thread_samples_to_range', 'filter_thread_by_tab',
    'filter_thread_by_func', 'filter_thread_by_frame', 'filter_thread_by_stack',
    'filter_thread_by_implementation', 'filter_thread_to_search_strings',
    'invert_callstack', 'get_sample_index_range_for_selection', 'get_time_range_for_thread',
    'get_friendly_thread_name', 'get_thread_process_details',
    'has_useful_samples', 'process_event_delays',
    'compute_thread_cpu_ratio', 'process_thread_cpu_delta',
    'merge_threads',
    'apply_transform', 'get_transform_labels', 'get_matching_marker_ranges',
    'extract_samples_like_table', 'get_native_allocations_summary',
    'get_weight_type_for_call_tree',
    'get_js_tracer_timing', 'get_js_tracer_leaf_timing',
]
