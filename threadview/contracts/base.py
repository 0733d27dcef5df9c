"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All value types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Optional, TypeVar


T = TypeVar('T')


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Precondition violations
    MISSING_REQUIRED_DATA = auto()
    MISSING_REQUIRED_COLUMN = auto()
    INVALID_THREAD_INDEX = auto()
    INVALID_CATEGORY_INDEX = auto()
    MISMATCHED_WEIGHT_TYPE = auto()

    # Exhaustiveness violations
    UNHANDLED_SUMMARY_STRATEGY = auto()
    UNHANDLED_TRANSFORM = auto()
    UNHANDLED_IMPLEMENTATION = auto()
    UNHANDLED_SAMPLE_UNIT = auto()



@dataclass(frozen=True)
class Error:
    """
    Immutable error representation.
    Carried by every ThreadViewError so failures can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime


class ThreadViewError(Exception):
    """Base class for every failure raised by the thread view core."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.error = Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc)
        )

    @property
    def code(self) -> ErrorCode:
        return self.error.code


class PreconditionError(ThreadViewError):
    """
    Raised when a query is made against data that is not present.

    Callers must check the matching "has useful data" query first.
    """
    pass


class UnhandledVariantError(ThreadViewError):
    """
    Raised when a closed variant set receives a value it does not handle.

    This is a programming error (schema drift), never a recoverable one.
    """
    pass


def ensure_exists(
    value: Optional[T],
    message: str = "Expected a value to exist",
    code: ErrorCode = ErrorCode.MISSING_REQUIRED_DATA
) -> T:
    """Return value, or raise PreconditionError when it is None."""
    if value is None:
        raise PreconditionError(code, message)
    return value


# =============================================================================
# VIEW PARAMETER ENUMS (Closed variant sets)
# =============================================================================

class CallTreeSummaryStrategy(Enum):
    """
    Which table a call tree is built from.
    The set is closed; parsing anything else fails loudly.
    """
    TIMING = "timing"
    JS_ALLOCATIONS = "js-allocations"
    NATIVE_ALLOCATIONS = "native-allocations"
    NATIVE_RETAINED_ALLOCATIONS = "native-retained-allocations"
    NATIVE_DEALLOCATIONS_SITES = "native-deallocations-sites"
    NATIVE_DEALLOCATIONS_MEMORY = "native-deallocations-memory"

    @staticmethod
    def parse(value: str) -> CallTreeSummaryStrategy:
        return CallTreeSummaryStrategy(value)

    @property
    def is_native(self) -> bool:
        return self in _NATIVE_STRATEGIES


_NATIVE_STRATEGIES = frozenset({
    CallTreeSummaryStrategy.NATIVE_ALLOCATIONS,
    CallTreeSummaryStrategy.NATIVE_RETAINED_ALLOCATIONS,
    CallTreeSummaryStrategy.NATIVE_DEALLOCATIONS_SITES,
    CallTreeSummaryStrategy.NATIVE_DEALLOCATIONS_MEMORY,
})


class ImplementationFilter(Enum):
    """Which implementation's frames are kept in call stacks."""
    COMBINED = "combined"
    JS = "js"
    CPP = "cpp"


class WeightType(Enum):
    """Unit of a samples-like table's weight column."""
    SAMPLES = "samples"
    TRACING_MS = "tracing-ms"
    BYTES = "bytes"


class ViewMode(Enum):
    """Timeline organization; only ACTIVE_TAB restricts to one tab."""
    FULL = "full"
    ACTIVE_TAB = "active-tab"


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

@dataclass(frozen=True)
class StartEndRange:
    """Half-open [start, end) time range in milliseconds."""
    start: float
    end: float

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError("StartEndRange start must be before or equal to end")


@dataclass(frozen=True)
class PreviewSelection:
    """
    Transient sub-range of the committed range.

    NO SELECTION:
    =============
    has_selection=False means the bounds are meaningless.
    """
    has_selection: bool
    selection_start: float = 0.0
    selection_end: float = 0.0

    def __post_init__(self):
        if self.has_selection and self.selection_start > self.selection_end:
            raise ValueError("selection_start must be before or equal to selection_end")


NO_PREVIEW_SELECTION = PreviewSelection(has_selection=False)
