"""
Thread View Engine

Incrementally recomputed, referentially stable derived views of one
immutable performance profile. A raw thread goes through a fixed-order
filter pipeline; every stage is a single-slot memoized selector, and the
transform stack is folded through an identity-keyed cache so editing the
stack only re-applies the transforms that changed.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Profile tables, view parameter enums, transforms, errors
   - Outputs: Frozen dataclasses and enums
   - MUST NOT: Contain behavior beyond validation

2. MEMOIZATION (memo/)
   - Responsibility: Memo cells, selector composition, keyed transform cache
   - Allowed inputs: Pure functions and their arguments
   - MUST NOT: Deep-compare arguments, evict transform cache entries

3. PROCESSING (processing/)
   - Responsibility: Pure filters, transforms, merges and projections
   - Allowed inputs: Threads and view parameters
   - MUST NOT: Cache results, mutate inputs

4. SELECTORS (selectors/)
   - Responsibility: The per-thread-key filter pipeline and its outputs
   - Allowed inputs: AppState snapshots (state.py)
   - MUST NOT: Share memo cells between thread keys

5. OBSERVABILITY (observability/)
   - Responsibility: Evaluation log and cache metrics
   - MUST NOT: Alter evaluation results

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: every table and thread is frozen
- Identity stability: equal inputs (by identity) return the same object
- Explicit errors: missing data and unknown variants raise, never default
"""

from .contracts import (
    CallTreeSummaryStrategy, ImplementationFilter, ViewMode, WeightType,
    StartEndRange, PreviewSelection, NO_PREVIEW_SELECTION,
    ThreadViewError, PreconditionError, UnhandledVariantError, ErrorCode,
)
from .engine import ThreadViewConfig, ThreadViewEngine
from .observability import ObservabilityConfig, ObservabilityEngine
from .selectors import ProfileSelectors, ThreadSelectors, UrlStateSelectors
from .state import AppState, ProfileViewState, UrlState

__version__ = "0.1.0"

__all__ = [
    'CallTreeSummaryStrategy', 'ImplementationFilter', 'ViewMode', 'WeightType',
    'StartEndRange', 'PreviewSelection', 'NO_PREVIEW_SELECTION',
    'ThreadViewError', 'PreconditionError', 'UnhandledVariantError', 'ErrorCode',
    'ThreadViewConfig', 'ThreadViewEngine',
    'ObservabilityConfig', 'ObservabilityEngine',
    'ProfileSelectors', 'ThreadSelectors', 'UrlStateSelectors',
    'AppState', 'ProfileViewState', 'UrlState',
]
