"""
JS Tracer Timing

Both projections walk every traced event and can be slow on large traces;
callers should compute them off the interactive path.
"""

from __future__ import annotations
from typing import Dict, List, Tuple

from ..contracts.profile import JsTracerTable, JsTracerTiming, StringTable, Thread


_MICROSECONDS_PER_MS = 1000.0

# (start_ms, end_ms, event_index)
_Interval = Tuple[float, float, int]


def _event_intervals(js_tracer: JsTracerTable) -> List[_Interval]:
    intervals = []
    for i in range(js_tracer.length):
        start = float(js_tracer.timestamps[i]) / _MICROSECONDS_PER_MS
        end = start + float(js_tracer.durations[i]) / _MICROSECONDS_PER_MS
        intervals.append((start, end, i))
    intervals.sort(key=lambda interval: interval[0])
    return intervals


class _TimingRowBuilder:
    def __init__(self, name: str):
        self.name = name
        self.start: List[float] = []
        self.end: List[float] = []
        self.label: List[str] = []
        self.index: List[int] = []

    def add(self, start: float, end: float, label: str, index: int):
        self.start.append(start)
        self.end.append(end)
        self.label.append(label)
        self.index.append(index)

    def build(self) -> JsTracerTiming:
        return JsTracerTiming(
            name=self.name,
            start=tuple(self.start),
            end=tuple(self.end),
            label=tuple(self.label),
            index=tuple(self.index),
        )


def get_js_tracer_timing(js_tracer: JsTracerTable, thread: Thread) -> List[JsTracerTiming]:
    """
    Stack-based timing: one row per nesting depth.

    An event nests under every still-open event that started before it.
    """
    string_table = thread.string_table
    rows: List[_TimingRowBuilder] = []
    open_ends: List[float] = []

    for start, end, index in _event_intervals(js_tracer):
        while open_ends and open_ends[-1] <= start:
            open_ends.pop()
        depth = len(open_ends)
        if open_ends:
            end = min(end, open_ends[-1])
        if depth == len(rows):
            rows.append(_TimingRowBuilder(f"{thread.name} depth {depth}"))
        label = string_table.get_string(int(js_tracer.events[index]))
        rows[depth].add(start, end, label, index)
        open_ends.append(end)

    return [row.build() for row in rows]


def get_js_tracer_leaf_timing(
    js_tracer: JsTracerTable,
    string_table: StringTable
) -> List[JsTracerTiming]:
    """
    Self-time timing: one row per event name.

    Each row holds the slices of time where an event of that name was the
    innermost open event.
    """
    segments: List[_Interval] = []
    open_events: List[Tuple[float, int]] = []  # (end, index)
    cursor = 0.0

    def emit(until: float):
        if open_events and cursor < until:
            segments.append((cursor, until, open_events[-1][1]))

    for start, end, index in _event_intervals(js_tracer):
        while open_events and open_events[-1][0] <= start:
            closing_end = open_events[-1][0]
            emit(closing_end)
            cursor = max(cursor, closing_end)
            open_events.pop()
        emit(start)
        cursor = start
        if open_events:
            end = min(end, open_events[-1][0])
        open_events.append((end, index))

    while open_events:
        closing_end = open_events[-1][0]
        emit(closing_end)
        cursor = max(cursor, closing_end)
        open_events.pop()

    rows: Dict[str, _TimingRowBuilder] = {}
    for start, end, index in segments:
        label = string_table.get_string(int(js_tracer.events[index]))
        row = rows.get(label)
        if row is None:
            row = rows[label] = _TimingRowBuilder(label)
        row.add(start, end, label, index)

    return [row.build() for row in rows.values()]
