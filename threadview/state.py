"""
Application State

Immutable snapshot of everything the selectors read. Every update helper
returns a NEW AppState built with dataclasses.replace, so only the branch
that changed gets a new identity and every other memoized value keeps
answering from its slot.

OWNERSHIP:
==========
How a host stores the current AppState, and how it notifies views, is the
host's business. Selectors only ever receive an AppState value.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

from .contracts.base import (
    CallTreeSummaryStrategy, ImplementationFilter, NO_PREVIEW_SELECTION,
    PreviewSelection, StartEndRange, ViewMode,
)
from .contracts.profile import Profile, ThreadsKey, ThreadViewOptions
from .contracts.transforms import (
    EMPTY_TRANSFORM_STACK, Transform, TransformStack,
    pop_transforms_after, push_transform,
)


@dataclass(frozen=True, eq=False)
class UrlState:
    """View parameters that survive a reload."""
    committed_ranges: Tuple[StartEndRange, ...] = ()
    transforms: Mapping[ThreadsKey, TransformStack] = field(default_factory=dict)
    implementation: ImplementationFilter = ImplementationFilter.COMBINED
    search_string: str = ""
    invert_callstack: bool = False
    call_tree_summary_strategy: CallTreeSummaryStrategy = CallTreeSummaryStrategy.TIMING
    selected_tab_id: Optional[int] = None
    view_mode: ViewMode = ViewMode.FULL


@dataclass(frozen=True, eq=False)
class ProfileViewState:
    """Transient view state."""
    preview_selection: PreviewSelection = NO_PREVIEW_SELECTION
    per_thread_view_options: Mapping[ThreadsKey, ThreadViewOptions] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class AppState:
    profile: Optional[Profile] = None
    profile_view: ProfileViewState = field(default_factory=ProfileViewState)
    url_state: UrlState = field(default_factory=UrlState)


def _with_url_state(state: AppState, **changes) -> AppState:
    return replace(state, url_state=replace(state.url_state, **changes))


def _with_profile_view(state: AppState, **changes) -> AppState:
    return replace(state, profile_view=replace(state.profile_view, **changes))


# =============================================================================
# PROFILE AND RANGES
# =============================================================================

def with_profile(state: AppState, profile: Profile) -> AppState:
    return replace(state, profile=profile)


def with_preview_selection(state: AppState, selection: PreviewSelection) -> AppState:
    return _with_profile_view(state, preview_selection=selection)


def commit_range(state: AppState, start: float, end: float) -> AppState:
    """Push a committed range; the preview selection is consumed by it."""
    state = _with_url_state(
        state,
        committed_ranges=state.url_state.committed_ranges + (StartEndRange(start, end),)
    )
    return with_preview_selection(state, NO_PREVIEW_SELECTION)


def pop_committed_ranges(state: AppState, first_popped_index: int) -> AppState:
    """Keep committed ranges [0, first_popped_index)."""
    if first_popped_index < 0:
        raise ValueError("Committed range index must be non-negative")
    state = _with_url_state(
        state,
        committed_ranges=state.url_state.committed_ranges[:first_popped_index]
    )
    return with_preview_selection(state, NO_PREVIEW_SELECTION)


# =============================================================================
# TRANSFORMS
# =============================================================================

def _with_transform_stack(
    state: AppState,
    threads_key: ThreadsKey,
    stack: TransformStack
) -> AppState:
    transforms = dict(state.url_state.transforms)
    transforms[threads_key] = stack
    return _with_url_state(state, transforms=transforms)


def push_transform_to_state(
    state: AppState,
    threads_key: ThreadsKey,
    transform: Transform
) -> AppState:
    current = state.url_state.transforms.get(threads_key, EMPTY_TRANSFORM_STACK)
    return _with_transform_stack(state, threads_key, push_transform(current, transform))


def pop_transforms_from_state(
    state: AppState,
    threads_key: ThreadsKey,
    first_popped_index: int
) -> AppState:
    current = state.url_state.transforms.get(threads_key, EMPTY_TRANSFORM_STACK)
    return _with_transform_stack(
        state, threads_key, pop_transforms_after(current, first_popped_index)
    )


# =============================================================================
# VIEW PARAMETERS
# =============================================================================

def with_implementation_filter(state: AppState, implementation: ImplementationFilter) -> AppState:
    return _with_url_state(state, implementation=implementation)


def with_search_string(state: AppState, search_string: str) -> AppState:
    return _with_url_state(state, search_string=search_string)


def with_invert_callstack(state: AppState, invert: bool) -> AppState:
    return _with_url_state(state, invert_callstack=invert)


def with_call_tree_summary_strategy(
    state: AppState,
    strategy: CallTreeSummaryStrategy
) -> AppState:
    return _with_url_state(state, call_tree_summary_strategy=strategy)


def with_selected_tab(
    state: AppState,
    tab_id: Optional[int],
    view_mode: ViewMode = ViewMode.ACTIVE_TAB
) -> AppState:
    return _with_url_state(state, selected_tab_id=tab_id, view_mode=view_mode)


def with_thread_view_options(
    state: AppState,
    threads_key: ThreadsKey,
    options: ThreadViewOptions
) -> AppState:
    per_thread = dict(state.profile_view.per_thread_view_options)
    per_thread[threads_key] = options
    return _with_profile_view(state, per_thread_view_options=per_thread)
