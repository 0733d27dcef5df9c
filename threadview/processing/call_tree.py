"""
Call Tree Inputs

Extracts the uniform SamplesLikeTable a call tree is built from. The
summary strategy must already have been resolved against the thread, so a
missing table here is a precondition violation, not a fallback case.
"""

from __future__ import annotations
from typing import Dict, List

import numpy as np

from ..contracts.base import (
    CallTreeSummaryStrategy, ErrorCode, UnhandledVariantError,
    WeightType, ensure_exists,
)
from ..contracts.profile import NativeAllocationsTable, SamplesLikeTable, Thread


def _samples_like(table, mask=None) -> SamplesLikeTable:
    if mask is None:
        return SamplesLikeTable(
            stack=table.stack,
            time=table.time,
            weight=table.weight,
            weight_type=table.weight_type,
        )
    return SamplesLikeTable(
        stack=table.stack[mask],
        time=table.time[mask],
        weight=table.weight[mask],
        weight_type=table.weight_type,
    )


def _require_memory_addresses(table: NativeAllocationsTable) -> np.ndarray:
    return ensure_exists(
        table.memory_address,
        "Retained memory requires native allocations with memory addresses",
        ErrorCode.MISSING_REQUIRED_COLUMN,
    )


def _match_deallocations(table: NativeAllocationsTable) -> Dict[int, int]:
    """
    Pair each deallocation row with the allocation row it frees.

    Rows are visited in time order; an address is matched to the most
    recent still-live allocation at that address.
    """
    addresses = _require_memory_addresses(table)
    live: Dict[int, int] = {}
    freed_by: Dict[int, int] = {}
    for row in range(table.length):
        address = int(addresses[row])
        if table.weight[row] > 0:
            live[address] = row
        else:
            allocation_row = live.pop(address, None)
            if allocation_row is not None:
                freed_by[row] = allocation_row
    return freed_by


def get_native_allocations_summary(
    table: NativeAllocationsTable,
    strategy: CallTreeSummaryStrategy
) -> SamplesLikeTable:
    if strategy == CallTreeSummaryStrategy.NATIVE_ALLOCATIONS:
        return _samples_like(table, table.weight > 0)

    if strategy == CallTreeSummaryStrategy.NATIVE_DEALLOCATIONS_SITES:
        return _samples_like(table, table.weight < 0)

    if strategy == CallTreeSummaryStrategy.NATIVE_RETAINED_ALLOCATIONS:
        freed = set(_match_deallocations(table).values())
        retained = np.array(
            [table.weight[row] > 0 and row not in freed for row in range(table.length)],
            dtype=bool,
        )
        return _samples_like(table, retained)

    if strategy == CallTreeSummaryStrategy.NATIVE_DEALLOCATIONS_MEMORY:
        # Attribute freed memory to the stack that allocated it.
        freed_by = _match_deallocations(table)
        rows: List[int] = sorted(freed_by)
        allocation_rows = [freed_by[row] for row in rows]
        return SamplesLikeTable(
            stack=table.stack[allocation_rows] if rows else table.stack[:0],
            time=table.time[rows] if rows else table.time[:0],
            weight=table.weight[rows] if rows else table.weight[:0],
            weight_type=table.weight_type,
        )

    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_SUMMARY_STRATEGY,
        f"{strategy!r} is not a native allocations summary strategy"
    )


def extract_samples_like_table(
    thread: Thread,
    strategy: CallTreeSummaryStrategy
) -> SamplesLikeTable:
    """The (stack, weight) table for the given call tree summary strategy."""
    if strategy == CallTreeSummaryStrategy.TIMING:
        samples = ensure_exists(thread.samples, "Timing summaries require a samples table")
        return SamplesLikeTable(
            stack=samples.stack,
            time=samples.time,
            weight=samples.weight,
            weight_type=samples.weight_type,
            thread_cpu_ratio=samples.thread_cpu_ratio,
        )

    if strategy == CallTreeSummaryStrategy.JS_ALLOCATIONS:
        return _samples_like(ensure_exists(
            thread.js_allocations,
            "Expected the thread to have JS allocations"
        ))

    if isinstance(strategy, CallTreeSummaryStrategy) and strategy.is_native:
        return get_native_allocations_summary(
            ensure_exists(
                thread.native_allocations,
                "Expected the thread to have native allocations"
            ),
            strategy,
        )

    raise UnhandledVariantError(
        ErrorCode.UNHANDLED_SUMMARY_STRATEGY,
        f"Unhandled call tree summary strategy: {strategy!r}"
    )


def get_weight_type_for_call_tree(samples: SamplesLikeTable) -> WeightType:
    return samples.weight_type
