"""
Profile-Wide Selectors

Plain projections of AppState plus the memoized values every thread key
shares (default category, root range, committed range, tab windows).
"""

from __future__ import annotations
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from ..contracts.base import (
    ErrorCode, PreviewSelection, StartEndRange, ViewMode,
    ensure_exists,
)
from ..contracts.profile import (
    Category, Page, Profile, ProfileMeta, SampleUnits, Thread, ThreadsKey, ThreadViewOptions,
)
from ..memo import Selector, create_selector
from ..processing import get_time_range_for_thread
from .url_state import get_all_committed_ranges, get_selected_tab_id, get_view_mode

if TYPE_CHECKING:
    from ..observability import ObservabilityEngine
    from ..state import AppState


EMPTY_INNER_WINDOW_IDS: FrozenSet[int] = frozenset()


# =============================================================================
# PLAIN PROJECTIONS
# =============================================================================

def get_profile(state: AppState) -> Profile:
    return ensure_exists(state.profile, "No profile is loaded", ErrorCode.MISSING_REQUIRED_DATA)


def get_meta(state: AppState) -> ProfileMeta:
    return get_profile(state).meta


def get_profile_interval(state: AppState) -> float:
    return get_meta(state).interval


def get_sample_units(state: AppState) -> Optional[SampleUnits]:
    return get_meta(state).sample_units


def get_categories(state: AppState) -> Tuple[Category, ...]:
    return get_meta(state).categories


def get_threads(state: AppState) -> Tuple[Thread, ...]:
    return get_profile(state).threads


def get_pages(state: AppState) -> Tuple[Page, ...]:
    return get_profile(state).pages


def get_preview_selection(state: AppState) -> PreviewSelection:
    return state.profile_view.preview_selection


def get_per_thread_view_options(state: AppState) -> Mapping[ThreadsKey, ThreadViewOptions]:
    return state.profile_view.per_thread_view_options


# =============================================================================
# COMBINERS
# =============================================================================

def find_default_category(categories: Sequence[Category]) -> int:
    """Index of the first grey category; 0 when the profile has none."""
    for index, category in enumerate(categories):
        if category.color == 'grey':
            return index
    return 0


def index_marker_schema(meta: ProfileMeta) -> Dict[str, Mapping[str, Any]]:
    return {schema['name']: schema for schema in meta.marker_schema}


def compute_profile_root_range(threads: Sequence[Thread], interval: float) -> StartEndRange:
    """Smallest range that contains every thread's data."""
    ranges = [get_time_range_for_thread(thread, interval) for thread in threads]
    if not ranges:
        return StartEndRange(0.0, 0.0)
    return StartEndRange(
        min(r.start for r in ranges),
        max(r.end for r in ranges),
    )


def select_committed_range(
    committed_ranges: Sequence[StartEndRange],
    root_range: StartEndRange
) -> StartEndRange:
    return committed_ranges[-1] if committed_ranges else root_range


def find_inner_window_ids_for_tab(
    pages: Sequence[Page],
    tab_id: Optional[int]
) -> FrozenSet[int]:
    if tab_id is None:
        return EMPTY_INNER_WINDOW_IDS
    return frozenset(page.inner_window_id for page in pages if page.tab_id == tab_id)


def select_inner_window_ids_for_current_tab(
    view_mode: ViewMode,
    active_tab_ids: FrozenSet[int]
) -> FrozenSet[int]:
    if view_mode == ViewMode.ACTIVE_TAB:
        return active_tab_ids
    return EMPTY_INNER_WINDOW_IDS


# =============================================================================
# MEMOIZED SELECTORS
# =============================================================================

class ProfileSelectors:
    """
    Memoized profile-wide values, owned by one engine.

    Every ThreadSelectors built by the same engine reads these, so the
    derived objects they return (default category, committed range, window
    id sets) are shared by identity across thread keys.
    """

    def __init__(self, observer: Optional[ObservabilityEngine] = None):
        def selector(*inputs, combiner, name) -> Selector:
            return create_selector(*inputs, combiner=combiner, name=name, observer=observer)

        self.get_default_category = selector(
            get_categories, combiner=find_default_category, name='get_default_category'
        )
        self.get_marker_schema_by_name = selector(
            get_meta, combiner=index_marker_schema, name='get_marker_schema_by_name'
        )
        self.get_profile_root_range = selector(
            get_threads, get_profile_interval,
            combiner=compute_profile_root_range, name='get_profile_root_range'
        )
        self.get_committed_range = selector(
            get_all_committed_ranges, self.get_profile_root_range,
            combiner=select_committed_range, name='get_committed_range'
        )
        self.get_relevant_inner_window_ids_for_active_tab = selector(
            get_pages, get_selected_tab_id,
            combiner=find_inner_window_ids_for_tab,
            name='get_relevant_inner_window_ids_for_active_tab'
        )
        self.get_relevant_inner_window_ids_for_current_tab = selector(
            get_view_mode, self.get_relevant_inner_window_ids_for_active_tab,
            combiner=select_inner_window_ids_for_current_tab,
            name='get_relevant_inner_window_ids_for_current_tab'
        )

    def all_selectors(self) -> List[Selector]:
        return [
            self.get_default_category,
            self.get_marker_schema_by_name,
            self.get_profile_root_range,
            self.get_committed_range,
            self.get_relevant_inner_window_ids_for_active_tab,
            self.get_relevant_inner_window_ids_for_current_tab,
        ]
