"""
Engine Orchestration Module

Builds and owns the selector sets of one profile view.

DESIGN PRINCIPLES:
==================
1. One ThreadSelectors per thread key, created lazily and kept for the
   lifetime of the engine
2. Profile-wide selectors are shared; per-thread caches never are
3. Every evaluation is observable, and observation never alters results
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import time

import networkx as nx

from .contracts.profile import ThreadIndex, ThreadsKey, get_threads_key
from .memo import Selector, build_dependency_graph
from .observability import EvaluationEventType, ObservabilityConfig, ObservabilityEngine
from .selectors import ProfileSelectors, ThreadSelectors, UrlStateSelectors


@dataclass
class ThreadViewConfig:
    """Unified configuration for the thread view engine."""
    observability: ObservabilityConfig = None
    enable_observability: bool = True

    def __post_init__(self):
        self.observability = self.observability or ObservabilityConfig()


class ThreadViewEngine:
    """
    Entry point for hosts.

    USAGE:
    ======
    engine = ThreadViewEngine()
    selectors = engine.get_thread_selectors([0])
    thread = selectors.get_preview_filtered_thread(state)

    The engine holds no AppState; every query is answered for the state
    passed to it.
    """

    def __init__(self, config: Optional[ThreadViewConfig] = None):
        self._config = config or ThreadViewConfig()
        self._observability = (
            ObservabilityEngine(self._config.observability)
            if self._config.enable_observability else None
        )
        self._profile_selectors = ProfileSelectors(self._observability)
        self._url_selectors = UrlStateSelectors(self._observability)
        self._thread_selectors: Dict[ThreadsKey, ThreadSelectors] = {}

    # =========================================================================
    # SELECTOR SETS
    # =========================================================================

    def get_thread_selectors(self, thread_indexes: Sequence[ThreadIndex]) -> ThreadSelectors:
        """Selector set for a thread key; the same instance for the same key."""
        threads_key = get_threads_key(thread_indexes)
        selectors = self._thread_selectors.get(threads_key)
        if selectors is not None:
            return selectors

        start_time = time.time()
        selectors = ThreadSelectors(
            thread_indexes,
            self._profile_selectors,
            self._url_selectors,
            self._observability,
        )
        self._thread_selectors[threads_key] = selectors

        if self._observability:
            self._observability.log_event(
                'engine',
                EvaluationEventType.SELECTORS_CREATED,
                "create_thread_selectors",
                threads_key,
                duration_ms=(time.time() - start_time) * 1000,
                details={"selector_count": str(len(selectors.all_selectors()))},
            )
        return selectors

    def get_threads_keys(self) -> List[ThreadsKey]:
        return sorted(self._thread_selectors)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def profile_selectors(self) -> ProfileSelectors:
        return self._profile_selectors

    @property
    def url_selectors(self) -> UrlStateSelectors:
        return self._url_selectors

    @property
    def observability_layer(self) -> Optional[ObservabilityEngine]:
        """Direct access to observability layer; None when disabled."""
        return self._observability

    def get_metrics(self):
        """Get metrics collector."""
        if self._observability is None:
            return None
        return self._observability.get_metrics()

    def get_report(self) -> Dict:
        if self._observability is None:
            return {}
        return self._observability.generate_report()

    def dependency_graph(self, thread_indexes: Sequence[ThreadIndex]) -> nx.DiGraph:
        """Graph of every selector the thread key's values are derived from."""
        thread_selectors = self.get_thread_selectors(thread_indexes)
        roots: List[Selector] = (
            thread_selectors.all_selectors()
            + self._profile_selectors.all_selectors()
            + self._url_selectors.all_selectors()
        )
        return build_dependency_graph(roots)
