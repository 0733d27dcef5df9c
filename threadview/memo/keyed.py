"""
Keyed Transform Cache

Cross-call cache for the single most expensive step of the pipeline:
applying one transform to one thread state.

KEY CONTRACT:
=============
The key is a fixed-shape (thread, transform, context) triple hashed and
compared by IDENTITY of its fields. The key keeps strong references to its
fields, so an identity can never be recycled while its entry is alive.

RETENTION:
==========
Entries are never evicted for the lifetime of the owning selector set.
Growth is bounded in practice by the transform stacks a user builds in one
session; bounding it would change how cheap push/pop of transforms is.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING
import time

from ..contracts.profile import Category, MarkerGetter, Thread
from ..contracts.transforms import Transform

if TYPE_CHECKING:
    from ..observability import ObservabilityEngine


@dataclass(frozen=True, eq=False)
class TransformContext:
    """
    Everything besides the thread and the descriptor that a transform reads.
    Built by a memoized selector, so its identity only changes with its inputs.
    """
    default_category: int
    marker_getter: MarkerGetter
    marker_indexes: Sequence[int]
    marker_schema_by_name: Mapping[str, Any]
    categories: Tuple[Category, ...]


class TransformCacheKey:
    """Identity-compared (thread, transform, context) key."""

    __slots__ = ('thread', 'transform', 'context', '_hash')

    def __init__(self, thread: Thread, transform: Transform, context: TransformContext):
        self.thread = thread
        self.transform = transform
        self.context = context
        self._hash = hash((id(thread), id(transform), id(context)))

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransformCacheKey):
            return NotImplemented
        return (
            self.thread is other.thread
            and self.transform is other.transform
            and self.context is other.context
        )

    def __repr__(self) -> str:
        return f"TransformCacheKey({type(self.transform).__name__})"


ApplyTransformFn = Callable[[Thread, Transform, TransformContext], Thread]


class KeyedTransformCache:
    """
    Unbounded identity-keyed cache in front of an apply-transform function.

    Owned by one per-thread selector set; never shared between thread keys.
    """

    def __init__(
        self,
        apply_fn: ApplyTransformFn,
        observer: Optional[ObservabilityEngine] = None
    ):
        self._apply_fn = apply_fn
        self._observer = observer
        self._cache: Dict[TransformCacheKey, Thread] = {}
        self._hits = 0
        self._misses = 0

    def apply(self, thread: Thread, transform: Transform, context: TransformContext) -> Thread:
        """Return the cached result for this exact triple, applying on a miss."""
        key = TransformCacheKey(thread, transform, context)
        transform_name = type(transform).__name__

        cached = self._cache.get(key)
        if cached is not None:
            self._hits += 1
            if self._observer:
                self._observer.transform_reused(transform_name)
            return cached

        start_time = time.time()
        result = self._apply_fn(thread, transform, context)
        self._misses += 1
        self._cache[key] = result

        if self._observer:
            self._observer.transform_applied(
                transform_name, (time.time() - start_time) * 1000, len(self._cache)
            )
        return result

    def __contains__(self, key: TransformCacheKey) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self):
        """Clear all cache entries."""
        self._cache.clear()

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses
