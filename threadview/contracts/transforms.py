"""
Transform Contracts

A transform is a named, parameterized rewrite of a thread's call stacks.
The variant set is CLOSED: every kind is a frozen dataclass tagged with a
TransformType, and consumers dispatch over exactly this set.

STACK CONTRACT:
===============
- A TransformStack is a tuple (order is significant)
- Editing a stack returns a NEW tuple that reuses the existing descriptor
  objects, so previously applied prefixes keep their identities
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from .base import ImplementationFilter
from .profile import IndexIntoFuncTable


CallNodePath = Tuple[IndexIntoFuncTable, ...]


class TransformType(Enum):
    FOCUS_SUBTREE = "focus-subtree"
    FOCUS_FUNCTION = "focus-function"
    MERGE_CALL_NODE = "merge-call-node"
    MERGE_FUNCTION = "merge-function"
    DROP_FUNCTION = "drop-function"
    COLLAPSE_FUNCTION_SUBTREE = "collapse-function-subtree"
    COLLAPSE_DIRECT_RECURSION = "collapse-direct-recursion"
    COLLAPSE_RECURSION = "collapse-recursion"
    FOCUS_CATEGORY = "focus-category"
    FILTER_SAMPLES = "filter-samples"


@dataclass(frozen=True)
class FocusSubtree:
    """Only keep samples under call_node_path, re-rooted at its last node."""
    call_node_path: CallNodePath
    implementation: ImplementationFilter = ImplementationFilter.COMBINED
    type: TransformType = TransformType.FOCUS_SUBTREE

    def __post_init__(self):
        if not self.call_node_path:
            raise ValueError("FocusSubtree requires a non-empty call node path")


@dataclass(frozen=True)
class FocusFunction:
    """Re-root every stack at the root-most frame of func_index."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.FOCUS_FUNCTION


@dataclass(frozen=True)
class MergeCallNode:
    """Remove the last node of call_node_path, re-parenting its children."""
    call_node_path: CallNodePath
    implementation: ImplementationFilter = ImplementationFilter.COMBINED
    type: TransformType = TransformType.MERGE_CALL_NODE

    def __post_init__(self):
        if not self.call_node_path:
            raise ValueError("MergeCallNode requires a non-empty call node path")


@dataclass(frozen=True)
class MergeFunction:
    """Remove every frame of func_index from every stack."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.MERGE_FUNCTION


@dataclass(frozen=True)
class DropFunction:
    """Drop every sample whose stack contains func_index."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.DROP_FUNCTION


@dataclass(frozen=True)
class CollapseFunctionSubtree:
    """Attribute everything called by func_index to func_index itself."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.COLLAPSE_FUNCTION_SUBTREE


@dataclass(frozen=True)
class CollapseDirectRecursion:
    """Collapse consecutive frames of func_index into one."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.COLLAPSE_DIRECT_RECURSION


@dataclass(frozen=True)
class CollapseRecursion:
    """Collapse every frame of func_index that has an ancestor of func_index."""
    func_index: IndexIntoFuncTable
    type: TransformType = TransformType.COLLAPSE_RECURSION


@dataclass(frozen=True)
class FocusCategory:
    """Only keep frames of one category."""
    category: int
    type: TransformType = TransformType.FOCUS_CATEGORY


@dataclass(frozen=True)
class FilterSamples:
    """Drop samples outside of the markers whose name or searchable data matches."""
    marker_search: str
    type: TransformType = TransformType.FILTER_SAMPLES


Transform = Union[
    FocusSubtree,
    FocusFunction,
    MergeCallNode,
    MergeFunction,
    DropFunction,
    CollapseFunctionSubtree,
    CollapseDirectRecursion,
    CollapseRecursion,
    FocusCategory,
    FilterSamples,
]

TransformStack = Tuple[Transform, ...]

EMPTY_TRANSFORM_STACK: TransformStack = ()


def push_transform(stack: TransformStack, transform: Transform) -> TransformStack:
    """Append a transform; the existing descriptors are reused as-is."""
    return stack + (transform,)


def pop_transforms_after(stack: TransformStack, index: int) -> TransformStack:
    """Keep transforms [0, index), dropping the rest."""
    if index < 0:
        raise ValueError("Transform index must be non-negative")
    return stack[:index]
