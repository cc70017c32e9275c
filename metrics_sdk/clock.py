"""
Timestamps for data points.

Times are epoch nanoseconds derived from the monotonic clock, anchored to the
wall clock once at import. Successive readings never go backwards even when
the system clock is adjusted.
"""
import time

_EPOCH_ANCHOR_NS = time.time_ns()
_MONOTONIC_ANCHOR_NS = time.monotonic_ns()


def time_ns() -> int:
    """Return the current time in epoch nanoseconds."""
    return _EPOCH_ANCHOR_NS + (time.monotonic_ns() - _MONOTONIC_ANCHOR_NS)
