"""
Contracts

Immutable data shared by every layer: error taxonomy, view parameter enums,
profile tables and transform descriptors. No behavior beyond validation.
"""

from .base import (
    ErrorCode, Error, ThreadViewError, PreconditionError, UnhandledVariantError,
    ensure_exists,
    CallTreeSummaryStrategy, ImplementationFilter, WeightType, ViewMode,
    StartEndRange, PreviewSelection, NO_PREVIEW_SELECTION,
)
from .profile import (
    ThreadIndex, ThreadsKey, NULL_INDEX, get_threads_key,
    StringTable, Category, FuncTable, FrameTable, StackTable,
    SamplesTable, NativeAllocationsTable, JsAllocationsTable, JsTracerTable,
    RawMarkerTable, Marker, MarkerGetter,
    Thread, Page, SampleUnits, ProfileMeta, Profile,
    SamplesLikeTable, ThreadViewOptions, DEFAULT_THREAD_VIEW_OPTIONS,
    EventDelayInfo, JsTracerTiming, TransformLabel,
)
from .transforms import (
    TransformType, Transform, TransformStack, EMPTY_TRANSFORM_STACK, CallNodePath,
    FocusSubtree, FocusFunction, MergeCallNode, MergeFunction, DropFunction,
    CollapseFunctionSubtree, CollapseDirectRecursion, CollapseRecursion,
    FocusCategory, FilterSamples,
    push_transform, pop_transforms_after,
)

__all__ = [
    'ErrorCode', 'Error', 'ThreadViewError', 'PreconditionError', 'UnhandledVariantError',
    'ensure_exists',
    'CallTreeSummaryStrategy', 'ImplementationFilter', 'WeightType', 'ViewMode',
    'StartEndRange', 'PreviewSelection', 'NO_PREVIEW_SELECTION',
    'ThreadIndex', 'ThreadsKey', 'NULL_INDEX', 'get_threads_key',
    'StringTable', 'Category', 'FuncTable', 'FrameTable', 'StackTable',
    'SamplesTable', 'NativeAllocationsTable', 'JsAllocationsTable', 'JsTracerTable',
    'RawMarkerTable', 'Marker', 'MarkerGetter',
    'Thread', 'Page', 'SampleUnits', 'ProfileMeta', 'Profile',
    'SamplesLikeTable', 'ThreadViewOptions', 'DEFAULT_THREAD_VIEW_OPTIONS',
    'EventDelayInfo', 'JsTracerTiming', 'TransformLabel',
    'TransformType', 'Transform', 'TransformStack', 'EMPTY_TRANSFORM_STACK', 'CallNodePath',
    'FocusSubtree', 'FocusFunction', 'MergeCallNode', 'MergeFunction', 'DropFunction',
    'CollapseFunctionSubtree', 'CollapseDirectRecursion', 'CollapseRecursion',
    'FocusCategory', 'FilterSamples',
    'push_transform', 'pop_transforms_after',
]
