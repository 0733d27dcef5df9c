"""
Per-Thread Marker Selectors

Markers are derived from the raw (unfiltered) thread, so their indexes are
stable across every filter and transform the user applies.
"""

from __future__ import annotations
from typing import Callable, List, Tuple, TYPE_CHECKING
import math

from ..contracts.base import ErrorCode, PreconditionError
from ..contracts.profile import Marker, MarkerGetter, Thread
from ..memo import Selector

if TYPE_CHECKING:
    from ..state import AppState


def derive_markers(thread: Thread) -> Tuple[Marker, ...]:
    """Resolve the raw marker table's strings; instant markers get end=None."""
    table = thread.markers
    if table is None:
        return ()

    markers = []
    for i in range(table.length):
        end = float(table.end_time[i])
        markers.append(Marker(
            name=thread.string_table.get_string(int(table.name[i])),
            start=float(table.start_time[i]),
            end=None if math.isnan(end) else end,
            category=int(table.category[i]),
            data=table.data[i] if i < len(table.data) else None,
        ))
    return tuple(markers)


def make_marker_getter(markers: Tuple[Marker, ...]) -> MarkerGetter:
    def get_marker(marker_index: int) -> Marker:
        if not 0 <= marker_index < len(markers):
            raise PreconditionError(
                ErrorCode.MISSING_REQUIRED_DATA,
                f"Marker index {marker_index} is out of range"
            )
        return markers[marker_index]
    return get_marker


def marker_indexes(markers: Tuple[Marker, ...]) -> Tuple[int, ...]:
    return tuple(range(len(markers)))


class MarkerSelectors:
    """Marker list, getter and index list for one thread key."""

    def __init__(
        self,
        get_thread: Callable[[AppState], Thread],
        selector: Callable[..., Selector]
    ):
        self.get_full_marker_list = selector(
            get_thread, combiner=derive_markers, name='get_full_marker_list'
        )
        self.get_marker_getter = selector(
            self.get_full_marker_list, combiner=make_marker_getter, name='get_marker_getter'
        )
        self.get_full_marker_list_indexes = selector(
            self.get_full_marker_list, combiner=marker_indexes,
            name='get_full_marker_list_indexes'
        )

    def all_selectors(self) -> List[Selector]:
        return [
            self.get_full_marker_list,
            self.get_marker_getter,
            self.get_full_marker_list_indexes,
        ]
