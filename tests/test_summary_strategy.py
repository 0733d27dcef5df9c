"""
Call Tree Summary Strategy Tests
================================

Strategy fallback against the tables a thread actually has, and the
samples-like table each resolved strategy extracts.
"""

import pytest

from threadview.contracts import (
    CallTreeSummaryStrategy, ErrorCode, PreconditionError, UnhandledVariantError, WeightType,
)
from threadview.processing import extract_samples_like_table, get_native_allocations_summary
from threadview.selectors import resolve_call_tree_summary_strategy

from .fixtures import (
    create_js_allocations, create_main_thread, create_native_allocations, create_samples,
)


S = CallTreeSummaryStrategy


def thread_with(samples=True, native=False, js=False):
    return create_main_thread(
        samples=create_samples() if samples else create_samples(count=0),
        native_allocations=create_native_allocations() if native else None,
        js_allocations=create_js_allocations() if js else None,
    )


class TestResolveStrategy:

    @pytest.mark.parametrize("requested, thread_tables, expected", [
        (S.TIMING, dict(), S.TIMING),
        (S.TIMING, dict(samples=False, native=True), S.NATIVE_ALLOCATIONS),
        (S.TIMING, dict(samples=False), S.TIMING),
        (S.TIMING, dict(native=True), S.TIMING),
        (S.JS_ALLOCATIONS, dict(), S.TIMING),
        (S.JS_ALLOCATIONS, dict(js=True), S.JS_ALLOCATIONS),
        (S.NATIVE_ALLOCATIONS, dict(), S.TIMING),
        (S.NATIVE_RETAINED_ALLOCATIONS, dict(), S.TIMING),
        (S.NATIVE_DEALLOCATIONS_SITES, dict(), S.TIMING),
        (S.NATIVE_DEALLOCATIONS_MEMORY, dict(), S.TIMING),
        (S.NATIVE_RETAINED_ALLOCATIONS, dict(native=True), S.NATIVE_RETAINED_ALLOCATIONS),
        (S.NATIVE_DEALLOCATIONS_MEMORY, dict(native=True), S.NATIVE_DEALLOCATIONS_MEMORY),
    ])
    def test_fallbacks(self, requested, thread_tables, expected):
        thread = thread_with(**thread_tables)
        assert resolve_call_tree_summary_strategy(thread, requested) == expected

    def test_unknown_strategy_raises(self):
        with pytest.raises(UnhandledVariantError) as exc_info:
            resolve_call_tree_summary_strategy(thread_with(), "flame")
        assert exc_info.value.code == ErrorCode.UNHANDLED_SUMMARY_STRATEGY

    def test_parse_rejects_unknown_values(self):
        assert S.parse("native-allocations") is S.NATIVE_ALLOCATIONS
        with pytest.raises(ValueError):
            S.parse("flame")


class TestExtractSamplesLikeTable:

    def test_timing_uses_samples(self):
        table = extract_samples_like_table(thread_with(), S.TIMING)
        assert table.length == 20
        assert table.weight_type == WeightType.SAMPLES

    def test_js_allocations(self):
        table = extract_samples_like_table(thread_with(js=True), S.JS_ALLOCATIONS)
        assert list(table.stack) == [3, 6]
        assert list(table.weight) == [64, 128]
        assert table.weight_type == WeightType.BYTES

    def test_native_allocations_keep_positive_weights(self):
        table = extract_samples_like_table(thread_with(native=True), S.NATIVE_ALLOCATIONS)
        assert list(table.stack) == [5, 6, 4]

    def test_deallocation_sites_keep_negative_weights(self):
        table = extract_samples_like_table(thread_with(native=True), S.NATIVE_DEALLOCATIONS_SITES)
        assert list(table.stack) == [1]
        assert list(table.weight) == [-200]

    def test_retained_allocations_exclude_freed_memory(self):
        table = extract_samples_like_table(thread_with(native=True), S.NATIVE_RETAINED_ALLOCATIONS)
        assert list(table.stack) == [5, 4]
        assert list(table.weight) == [100, 300]

    def test_deallocated_memory_is_attributed_to_the_allocating_stack(self):
        table = extract_samples_like_table(thread_with(native=True), S.NATIVE_DEALLOCATIONS_MEMORY)
        assert list(table.stack) == [6]
        assert list(table.weight) == [-200]
        assert list(table.time) == [4.0]

    def test_retained_memory_requires_addresses(self):
        native = create_native_allocations(with_addresses=False)
        with pytest.raises(PreconditionError) as exc_info:
            get_native_allocations_summary(native, S.NATIVE_RETAINED_ALLOCATIONS)
        assert exc_info.value.code == ErrorCode.MISSING_REQUIRED_COLUMN

    def test_missing_table_is_a_precondition_violation(self):
        with pytest.raises(PreconditionError):
            extract_samples_like_table(thread_with(), S.JS_ALLOCATIONS)

    def test_non_native_strategy_for_native_summary_raises(self):
        with pytest.raises(UnhandledVariantError):
            get_native_allocations_summary(create_native_allocations(), S.TIMING)
