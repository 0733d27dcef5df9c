"""
Memo Cells and Derived Selectors

A MemoCell wraps one pure function and remembers ONLY its most recent call.
A Selector composes cells: it reads its inputs from application state
(other selectors or plain projections), then asks its cell for the value.

EQUALITY CONTRACT:
==================
Arguments are compared element-wise by shallow equality:
- identical objects always match
- primitive values (None, bool, int, float, str, bytes, Enum members)
  of the same type match when they compare equal
- everything else (threads, tables, tuples, sets, callables) matches
  only by identity

Producers are responsible for creating a new object only when its
content changed. An unchanged upstream thread is the same object, so
every downstream cell answers in O(1).

FAILURE CONTRACT:
=================
If the wrapped function raises, the slot keeps its previous contents and
the exception propagates to the caller.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Generic, Optional, Sequence, Tuple, TypeVar, TYPE_CHECKING
import time

if TYPE_CHECKING:
    from ..observability import ObservabilityEngine


R = TypeVar('R')

State = Any
InputSelector = Callable[[State], Any]

_PRIMITIVE_TYPES = (type(None), bool, int, float, str, bytes, Enum)


def is_primitive(value: Any) -> bool:
    return isinstance(value, _PRIMITIVE_TYPES)


def shallow_equal(a: Any, b: Any) -> bool:
    """Identity for objects, value equality for primitives of the same type."""
    if a is b:
        return True
    if type(a) is not type(b) or not is_primitive(a):
        return False
    return a == b


def args_shallow_equal(previous: Sequence[Any], current: Sequence[Any]) -> bool:
    if len(previous) != len(current):
        return False
    return all(shallow_equal(p, c) for p, c in zip(previous, current))


class MemoCell(Generic[R]):
    """
    Single-slot memoizer for one pure function.

    Not thread-safe: a cell must stay confined to the thread that owns the
    surrounding view state.
    """

    _EMPTY = object()

    def __init__(
        self,
        compute: Callable[..., R],
        name: Optional[str] = None,
        observer: Optional[ObservabilityEngine] = None
    ):
        self._compute = compute
        self._name = name or getattr(compute, '__name__', 'cell')
        self._observer = observer
        self._last_args: Tuple[Any, ...] = ()
        self._last_result: Any = self._EMPTY
        self._recomputations = 0
        self._hits = 0

    def get(self, *args: Any) -> R:
        """Return the cached result if args match the previous call, else recompute."""
        if self._last_result is not self._EMPTY and args_shallow_equal(self._last_args, args):
            self._hits += 1
            if self._observer:
                self._observer.cell_hit(self._name)
            return self._last_result

        start_time = time.time()
        try:
            result = self._compute(*args)
        except Exception as e:
            if self._observer:
                self._observer.cell_failed(self._name, e)
            raise
        self._recomputations += 1

        self._last_args = args
        self._last_result = result

        if self._observer:
            self._observer.cell_recomputed(self._name, (time.time() - start_time) * 1000)
        return result

    def clear(self):
        """Drop the remembered call."""
        self._last_args = ()
        self._last_result = self._EMPTY

    @property
    def name(self) -> str:
        return self._name

    @property
    def recomputations(self) -> int:
        return self._recomputations

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def has_value(self) -> bool:
        return self._last_result is not self._EMPTY

    def reset_counters(self):
        self._recomputations = 0
        self._hits = 0


class Selector(Generic[R]):
    """
    A memoized derived value of application state.

    Evaluation is depth-first: every input selector is evaluated against the
    same state, then the combiner runs through this selector's MemoCell.
    The graph is built by composition, so cycles cannot be constructed
    without a programming error and are not checked for here.
    """

    def __init__(
        self,
        inputs: Sequence[InputSelector],
        combiner: Callable[..., R],
        name: Optional[str] = None,
        observer: Optional[ObservabilityEngine] = None
    ):
        if not inputs:
            raise ValueError("A selector needs at least one input selector")
        self._inputs: Tuple[InputSelector, ...] = tuple(inputs)
        self._name = name or getattr(combiner, '__name__', 'selector')
        self._cell: MemoCell[R] = MemoCell(combiner, name=self._name, observer=observer)

    def __call__(self, state: State) -> R:
        args = [input_selector(state) for input_selector in self._inputs]
        return self._cell.get(*args)

    @property
    def name(self) -> str:
        return self._name

    @property
    def dependencies(self) -> Tuple[InputSelector, ...]:
        return self._inputs

    @property
    def cell(self) -> MemoCell[R]:
        return self._cell

    def recomputations(self) -> int:
        return self._cell.recomputations

    def reset_recomputations(self):
        self._cell.reset_counters()

    def __repr__(self) -> str:
        return f"Selector({self._name})"


def create_selector(
    *inputs: InputSelector,
    combiner: Callable[..., R],
    name: Optional[str] = None,
    observer: Optional[ObservabilityEngine] = None
) -> Selector[R]:
    """Build a memoized selector from input selectors and a pure combiner."""
    return Selector(inputs, combiner, name=name, observer=observer)
