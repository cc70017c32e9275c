"""
Aggregation temporality policy and cumulative/delta conversion.

Each instrument kind has a preferred temporality which a reader may override
when the kind supports the requested one. Conversion helpers keep the
invariants the data model relies on:

- a monotonic running sum never decreases;
- the first delta equals the first cumulative value;
- summing every delta since creation reproduces the cumulative total.
"""
import logging
from typing import Dict, Mapping, Optional

from .data import AggregationTemporality, Histogram
from .errors import TemporalityConversionError
from .instrument import InstrumentKind

logger = logging.getLogger(__name__)

CUMULATIVE = AggregationTemporality.CUMULATIVE
DELTA = AggregationTemporality.DELTA

PREFERRED_TEMPORALITY: Dict[InstrumentKind, AggregationTemporality] = {
    InstrumentKind.COUNTER: CUMULATIVE,
    InstrumentKind.UP_DOWN_COUNTER: CUMULATIVE,
    InstrumentKind.HISTOGRAM: CUMULATIVE,
    InstrumentKind.OBSERVABLE_COUNTER: CUMULATIVE,
    InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER: CUMULATIVE,
    InstrumentKind.OBSERVABLE_GAUGE: DELTA,
}

SUPPORTED_TEMPORALITIES = {
    kind: frozenset({CUMULATIVE, DELTA}) for kind in InstrumentKind
}

# Named presets accepted by METRICS_TEMPORALITY_PREFERENCE
_PRESETS = {
    'cumulative': {},
    'delta': {
        InstrumentKind.COUNTER: DELTA,
        InstrumentKind.HISTOGRAM: DELTA,
        InstrumentKind.OBSERVABLE_COUNTER: DELTA,
    },
    'lowmemory': {
        InstrumentKind.COUNTER: DELTA,
        InstrumentKind.HISTOGRAM: DELTA,
    },
}


class TemporalityPolicy:
    """
    Decides the output temporality for each instrument kind.

    Args:
        overrides (dict, optional): Requested temporality per instrument kind.
            Unsupported requests fall back to the preferred temporality.
    """

    def __init__(self, overrides: Optional[Mapping[InstrumentKind, AggregationTemporality]] = None):
        self.overrides = dict(overrides or {})
        self._resolved = {kind: self._resolve(kind) for kind in InstrumentKind}

    @classmethod
    def from_preference(cls, preference: str) -> 'TemporalityPolicy':
        """
        Build a policy from a preset name: cumulative, delta or lowmemory.

        Raises:
            ValueError: If the preset is unknown
        """
        try:
            return cls(_PRESETS[preference.strip().lower()])
        except KeyError:
            raise ValueError(
                f"Unknown temporality preference {preference!r}; expected one of {sorted(_PRESETS)}"
            ) from None

    @classmethod
    def from_config(cls) -> 'TemporalityPolicy':
        from . import config
        return cls.from_preference(config.TEMPORALITY_PREFERENCE)

    def _resolve(self, kind: InstrumentKind) -> AggregationTemporality:
        requested = self.overrides.get(kind)
        if requested is None:
            return PREFERRED_TEMPORALITY[kind]
        if requested not in SUPPORTED_TEMPORALITIES[kind]:
            logger.warning(
                "Temporality %s is not supported for %s; using %s",
                requested.name, kind.value, PREFERRED_TEMPORALITY[kind].name,
            )
            return PREFERRED_TEMPORALITY[kind]
        return requested

    def resolve(self, kind: InstrumentKind) -> AggregationTemporality:
        return self._resolved[kind]

    __call__ = resolve


def merge_sum(previous: Optional[float], delta: float, monotonic: bool, descriptor=None) -> float:
    """Fold a delta into a running cumulative sum."""
    if monotonic and delta < 0:
        raise TemporalityConversionError(
            f"Monotonic sum received a negative delta {delta}", descriptor
        )
    return delta if previous is None else previous + delta


def cumulative_to_delta_sum(current: float, previous: Optional[float], monotonic: bool,
                            descriptor=None) -> float:
    """Derive a delta from two successive cumulative readings."""
    if previous is None:
        return current
    delta = current - previous
    if monotonic and delta < 0:
        raise TemporalityConversionError(
            f"Monotonic cumulative value went from {previous} to {current}", descriptor
        )
    return delta


def _check_boundaries(left: Histogram, right: Histogram, descriptor) -> None:
    if left.boundaries != right.boundaries:
        raise TemporalityConversionError(
            f"Histogram boundaries changed from {left.boundaries} to {right.boundaries}", descriptor
        )


def _merge_extreme(fn, left: Optional[float], right: Optional[float]) -> Optional[float]:
    if left is None:
        return right
    if right is None:
        return left
    return fn(left, right)


def merge_histograms(previous: Optional[Histogram], delta: Histogram, descriptor=None) -> Histogram:
    """Fold a delta histogram into a cumulative one, bucket by bucket."""
    if previous is None:
        return delta
    _check_boundaries(previous, delta, descriptor)
    bucket_counts = [prev + curr for prev, curr in zip(previous.bucket_counts, delta.bucket_counts)]
    return Histogram(
        count=sum(bucket_counts),
        sum=previous.sum + delta.sum,
        boundaries=delta.boundaries,
        bucket_counts=bucket_counts,
        min=_merge_extreme(min, previous.min, delta.min),
        max=_merge_extreme(max, previous.max, delta.max),
    )


def subtract_histograms(current: Histogram, previous: Optional[Histogram], descriptor=None,
                        window_min: Optional[float] = None,
                        window_max: Optional[float] = None) -> Histogram:
    """
    Derive a delta histogram from two successive cumulative ones.

    Accumulators keep window-local state and never need this; it is exported
    for consumers that receive cumulative histograms and want deltas.

    min and max of a window cannot be recovered from cumulative snapshots; the
    caller passes the window-local extremes it tracked, or None.
    """
    if previous is None:
        return current
    _check_boundaries(previous, current, descriptor)
    bucket_counts = [curr - prev for prev, curr in zip(previous.bucket_counts, current.bucket_counts)]
    if any(count < 0 for count in bucket_counts):
        raise TemporalityConversionError(
            "Cumulative histogram bucket counts decreased between collections", descriptor
        )
    count = sum(bucket_counts)
    return Histogram(
        count=count,
        sum=current.sum - previous.sum,
        boundaries=current.boundaries,
        bucket_counts=bucket_counts,
        min=window_min if count else None,
        max=window_max if count else None,
    )
