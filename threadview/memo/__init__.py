"""
Memoization Layer

RESPONSIBILITY: Single-slot memo cells, selector composition, and the
identity-keyed transform cache.

WHAT THIS LAYER MUST NOT DO:
============================
- Know anything about profiles beyond the transform cache key shape
- Deep-compare arguments
- Evict transform cache entries
"""

from .cell import (
    MemoCell, Selector, create_selector,
    shallow_equal, args_shallow_equal, is_primitive,
)
from .keyed import TransformContext, TransformCacheKey, KeyedTransformCache
from .graph import build_dependency_graph, upstream_of

__all__ = [
    'MemoCell', 'Selector', 'create_selector',
    'shallow_equal', 'args_shallow_equal', 'is_primitive',
    'TransformContext', 'TransformCacheKey', 'KeyedTransformCache',
    'build_dependency_graph', 'upstream_of',
]
