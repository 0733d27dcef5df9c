"""
URL-Derived View Parameters
"""

from __future__ import annotations
from typing import List, Optional, Tuple, TYPE_CHECKING

from ..contracts.base import CallTreeSummaryStrategy, ImplementationFilter, StartEndRange, ViewMode
from ..contracts.profile import ThreadsKey
from ..contracts.transforms import EMPTY_TRANSFORM_STACK, TransformStack
from ..memo import Selector, create_selector

if TYPE_CHECKING:
    from ..observability import ObservabilityEngine
    from ..state import AppState


def get_all_committed_ranges(state: AppState) -> Tuple[StartEndRange, ...]:
    return state.url_state.committed_ranges


def get_transform_stack(state: AppState, threads_key: ThreadsKey) -> TransformStack:
    return state.url_state.transforms.get(threads_key, EMPTY_TRANSFORM_STACK)


def get_implementation_filter(state: AppState) -> ImplementationFilter:
    return state.url_state.implementation


def get_current_search_string(state: AppState) -> str:
    return state.url_state.search_string


def get_invert_callstack(state: AppState) -> bool:
    return state.url_state.invert_callstack


def get_last_selected_call_tree_summary_strategy(state: AppState) -> CallTreeSummaryStrategy:
    return state.url_state.call_tree_summary_strategy


def get_selected_tab_id(state: AppState) -> Optional[int]:
    return state.url_state.selected_tab_id


def get_view_mode(state: AppState) -> ViewMode:
    return state.url_state.view_mode


def split_search_string(search_string: str) -> Tuple[str, ...]:
    """Comma separated search terms, stripped; empty terms are dropped."""
    return tuple(part.strip() for part in search_string.split(',') if part.strip())


class UrlStateSelectors:
    """Memoized values derived from URL state."""

    def __init__(self, observer: Optional[ObservabilityEngine] = None):
        # Returns the same tuple while the search string is unchanged.
        self.get_search_strings = create_selector(
            get_current_search_string,
            combiner=split_search_string,
            name='get_search_strings',
            observer=observer,
        )

    def all_selectors(self) -> List[Selector]:
        return [self.get_search_strings]
