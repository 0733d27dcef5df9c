"""
Selectors Layer

RESPONSIBILITY: Memoized derived values of AppState
ALLOWED INPUTS: AppState snapshots
OUTPUTS: Filtered threads, call tree inputs, flags and offsets

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate AppState or any thread
- Share memo cells between thread keys
- Swallow failures of the processing layer
"""

from .profile import (
    ProfileSelectors, EMPTY_INNER_WINDOW_IDS,
    get_profile, get_meta, get_profile_interval, get_sample_units, get_categories,
    get_threads, get_pages, get_preview_selection, get_per_thread_view_options,
)
from .url_state import (
    UrlStateSelectors, split_search_string,
    get_all_committed_ranges, get_transform_stack, get_implementation_filter,
    get_current_search_string, get_invert_callstack,
    get_last_selected_call_tree_summary_strategy, get_selected_tab_id, get_view_mode,
)
from .markers import MarkerSelectors, derive_markers
from .per_thread import ThreadSelectors, resolve_call_tree_summary_strategy

__all__ = [
    'ProfileSelectors', 'EMPTY_INNER_WINDOW_IDS',
    'get_profile', 'get_meta', 'get_profile_interval', 'get_sample_units', 'get_categories',
    'get_threads', 'get_pages', 'get_preview_selection', 'get_per_thread_view_options',
    'UrlStateSelectors', 'split_search_string',
    'get_all_committed_ranges', 'get_transform_stack', 'get_implementation_filter',
    'get_current_search_string', 'get_invert_callstack',
    'get_last_selected_call_tree_summary_strategy', 'get_selected_tab_id', 'get_view_mode',
    'MarkerSelectors', 'derive_markers',
    'ThreadSelectors', 'resolve_call_tree_summary_strategy',
]
