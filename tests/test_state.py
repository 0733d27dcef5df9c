"""
Application State Tests
=======================

Update helpers return new snapshots and leave untouched branches shared.
"""

import pytest

from threadview.contracts import (
    DropFunction, MergeFunction, NO_PREVIEW_SELECTION, PreviewSelection, StartEndRange,
)
from threadview.state import (
    AppState, commit_range, pop_committed_ranges, pop_transforms_from_state,
    push_transform_to_state, with_preview_selection, with_search_string,
)


class TestRanges:

    def test_commit_consumes_the_preview_selection(self):
        state = with_preview_selection(AppState(), PreviewSelection(True, 1.0, 2.0))
        committed = commit_range(state, 1.0, 2.0)

        assert committed.url_state.committed_ranges == (StartEndRange(1.0, 2.0),)
        assert committed.profile_view.preview_selection is NO_PREVIEW_SELECTION

    def test_pop_keeps_the_prefix(self):
        state = commit_range(commit_range(AppState(), 0.0, 10.0), 2.0, 5.0)
        assert pop_committed_ranges(state, 1).url_state.committed_ranges == (StartEndRange(0.0, 10.0),)
        with pytest.raises(ValueError):
            pop_committed_ranges(state, -1)

    def test_ranges_must_be_ordered(self):
        with pytest.raises(ValueError):
            StartEndRange(5.0, 1.0)
        with pytest.raises(ValueError):
            PreviewSelection(True, 5.0, 1.0)


class TestTransformsInState:

    def test_push_and_pop_per_thread_key(self):
        first = MergeFunction(1)
        state = push_transform_to_state(AppState(), "0", first)
        state = push_transform_to_state(state, "0", DropFunction(2))
        state = push_transform_to_state(state, "1", DropFunction(3))

        assert state.url_state.transforms["0"][0] is first
        assert len(state.url_state.transforms["1"]) == 1

        popped = pop_transforms_from_state(state, "0", 1)
        assert popped.url_state.transforms["0"] == (first,)
        assert len(state.url_state.transforms["0"]) == 2

    def test_untouched_branches_are_shared(self):
        state = AppState()
        searched = with_search_string(state, "paint")

        assert searched is not state
        assert searched.profile_view is state.profile_view
        assert state.url_state.search_string == ""
