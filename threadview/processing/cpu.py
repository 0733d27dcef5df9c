"""
CPU Usage Processing

Converts raw per-sample CPU deltas into a CPU ratio in [0, 1].
"""

from __future__ import annotations
from dataclasses import replace

import numpy as np

from ..contracts.base import ErrorCode, PreconditionError, UnhandledVariantError
from ..contracts.profile import SampleUnits, Thread


# Conversion factor from a delta unit to milliseconds of CPU time.
_TIME_UNITS_TO_MS = {
    'ns': 1e-6,
    'µs': 1e-3,
    'us': 1e-3,
}

VARIABLE_CPU_CYCLES = 'variable CPU cycles'


def _elapsed_ms(times: np.ndarray, interval: float) -> np.ndarray:
    """Wall-clock time each sample accounts for; the first uses interval."""
    elapsed = np.empty(len(times), dtype=np.float64)
    if len(times) == 0:
        return elapsed
    elapsed[0] = interval
    elapsed[1:] = np.diff(times)
    return elapsed


def compute_thread_cpu_ratio(
    cpu_delta: np.ndarray,
    times: np.ndarray,
    delta_unit: str,
    interval: float
) -> np.ndarray:
    elapsed = _elapsed_ms(times, interval)
    deltas = np.nan_to_num(cpu_delta.astype(np.float64), nan=0.0)

    if delta_unit in _TIME_UNITS_TO_MS:
        cpu_ms = deltas * _TIME_UNITS_TO_MS[delta_unit]
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = np.where(elapsed > 0, cpu_ms / elapsed, 0.0)
    elif delta_unit == VARIABLE_CPU_CYCLES:
        # Cycle counts have no absolute scale: normalize by the busiest sample.
        with np.errstate(divide='ignore', invalid='ignore'):
            per_ms = np.where(elapsed > 0, deltas / elapsed, 0.0)
        peak = float(np.max(per_ms)) if len(per_ms) else 0.0
        ratio = per_ms / peak if peak > 0 else np.zeros(len(per_ms))
    else:
        raise UnhandledVariantError(
            ErrorCode.UNHANDLED_SAMPLE_UNIT,
            f"Unhandled thread CPU delta unit: {delta_unit!r}"
        )

    return np.clip(ratio, 0.0, 1.0)


def process_thread_cpu_delta(
    thread: Thread,
    sample_units: SampleUnits,
    interval: float
) -> Thread:
    """Return a thread whose samples carry a thread_cpu_ratio column."""
    samples = thread.samples
    if samples is None or samples.thread_cpu_delta is None:
        raise PreconditionError(
            ErrorCode.MISSING_REQUIRED_COLUMN,
            "CPU processing requires a samples table with a thread_cpu_delta column"
        )

    ratio = compute_thread_cpu_ratio(
        samples.thread_cpu_delta,
        samples.time,
        sample_units.thread_cpu_delta,
        interval,
    )
    return replace(thread, samples=replace(samples, thread_cpu_ratio=ratio))
