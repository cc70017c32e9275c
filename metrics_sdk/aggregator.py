"""
Per-instrument accumulators.

An accumulator owns the only mutable state collection touches: the
measurements pending since the last successful collection and the previous
cumulative snapshot used to derive delta output. Collection is two-phase:
prepare() computes the points from the current state without mutating it,
and the returned commit() applies the new baseline. Instruments call commit()
only after prepare() succeeded, so a faulted collection leaves the pending
state in place for the next cycle. The one exception is a reset observable
sum, which drops its baseline when it faults (see ObservedSumAccumulator).
"""
import math
import threading
from bisect import bisect_left
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .collector import CollectionWindow
from .data import AggregationTemporality, DataPoint, Histogram
from .errors import InvalidMeasurementError, TemporalityConversionError
from .instrument import AttributesKey, attributes_from_key
from .temporality import cumulative_to_delta_sum, merge_histograms, merge_sum


@dataclass
class PreparedCollection:
    points: List[DataPoint]
    commit: Callable[[], None]


class Accumulator:
    """Common state: creation time, last successful collection end and the lock."""

    def __init__(self, descriptor, start_time: int):
        self.descriptor = descriptor
        self.start_time = start_time
        self.last_collection_end = start_time
        self.lock = threading.Lock()

    def _start_for(self, temporality: AggregationTemporality) -> int:
        if temporality is AggregationTemporality.DELTA:
            return self.last_collection_end
        return self.start_time

    def _point(self, temporality, window: CollectionWindow, key: AttributesKey, value,
               start_time: Optional[int] = None) -> DataPoint:
        return DataPoint(
            start_time=self._start_for(temporality) if start_time is None else start_time,
            end_time=window.end_time,
            attributes=attributes_from_key(key),
            value=value,
        )


class SumAccumulator(Accumulator):
    """Running sum fed by add() calls (counters and up/down counters)."""

    def __init__(self, descriptor, start_time: int, monotonic: bool):
        super().__init__(descriptor, start_time)
        self.monotonic = monotonic
        self._pending: Dict[AttributesKey, float] = {}
        self._cumulative: Dict[AttributesKey, float] = {}

    def record(self, value: float, key: AttributesKey) -> None:
        with self.lock:
            self._pending[key] = self._pending.get(key, 0) + value

    def prepare(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> PreparedCollection:
        new_cumulative = dict(self._cumulative)
        for key, delta in self._pending.items():
            new_cumulative[key] = merge_sum(
                new_cumulative.get(key), delta, self.monotonic, self.descriptor
            )

        if temporality is AggregationTemporality.DELTA:
            source = self._pending
        else:
            source = new_cumulative
        points = [self._point(temporality, window, key, value) for key, value in source.items()]

        def commit():
            self._cumulative = new_cumulative
            self._pending = {}
            self.last_collection_end = window.end_time

        return PreparedCollection(points, commit)


class _HistogramState:
    __slots__ = ('bucket_counts', 'sum', 'min', 'max')

    def __init__(self, size: int):
        self.bucket_counts = [0] * size
        self.sum = 0
        self.min = math.inf
        self.max = -math.inf

    def to_histogram(self, boundaries, record_min_max: bool) -> Histogram:
        count = sum(self.bucket_counts)
        has_extremes = record_min_max and count > 0
        return Histogram(
            count=count,
            sum=self.sum,
            boundaries=boundaries,
            bucket_counts=tuple(self.bucket_counts),
            min=self.min if has_extremes else None,
            max=self.max if has_extremes else None,
        )


class HistogramAccumulator(Accumulator):
    """
    Explicit bucket histogram fed by record() calls.

    Pending state tracks window-local min and max, so delta points report the
    extremes of their own window. Cumulative points merge them across windows.
    """

    def __init__(self, descriptor, start_time: int, boundaries: Sequence[float],
                 record_min_max: bool = True):
        super().__init__(descriptor, start_time)
        self.boundaries = tuple(float(b) for b in boundaries)
        if any(lower >= upper for lower, upper in zip(self.boundaries, self.boundaries[1:])):
            raise ValueError(f"Histogram boundaries must be strictly increasing: {self.boundaries}")
        self.record_min_max = record_min_max
        self._pending: Dict[AttributesKey, _HistogramState] = {}
        self._cumulative: Dict[AttributesKey, Histogram] = {}

    def record(self, value: float, key: AttributesKey) -> None:
        with self.lock:
            state = self._pending.get(key)
            if state is None:
                state = self._pending[key] = _HistogramState(len(self.boundaries) + 1)
            state.bucket_counts[bisect_left(self.boundaries, value)] += 1
            state.sum += value
            state.min = min(state.min, value)
            state.max = max(state.max, value)

    def prepare(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> PreparedCollection:
        deltas = {
            key: state.to_histogram(self.boundaries, self.record_min_max)
            for key, state in self._pending.items()
        }
        new_cumulative = dict(self._cumulative)
        for key, delta in deltas.items():
            new_cumulative[key] = merge_histograms(new_cumulative.get(key), delta, self.descriptor)

        source = deltas if temporality is AggregationTemporality.DELTA else new_cumulative
        points = [self._point(temporality, window, key, value) for key, value in source.items()]

        def commit():
            self._cumulative = new_cumulative
            self._pending = {}
            self.last_collection_end = window.end_time

        return PreparedCollection(points, commit)


class ObservedSumAccumulator(Accumulator):
    """
    Sum reported as cumulative readings by observable callbacks.

    Delta output subtracts the previous reading; the first delta equals the
    first reading. A monotonic sum that goes backwards is a conversion fault
    for that cycle, and the attribute set then starts a new series: its
    baseline is dropped and its start time moves to the end of the faulted
    window, so the next reading is reported as the series' first value.
    """

    def __init__(self, descriptor, start_time: int, monotonic: bool):
        super().__init__(descriptor, start_time)
        self.monotonic = monotonic
        self._cumulative: Dict[AttributesKey, float] = {}
        self._series_start: Dict[AttributesKey, int] = {}

    def _restart_series(self, key: AttributesKey, window: CollectionWindow) -> None:
        self._cumulative.pop(key, None)
        self._series_start[key] = window.end_time

    def _series_start_for(self, key: AttributesKey, temporality: AggregationTemporality) -> int:
        start = self._start_for(temporality)
        return max(start, self._series_start.get(key, start))

    def prepare(self, observations: Mapping[AttributesKey, float], window: CollectionWindow,
                temporality: AggregationTemporality) -> PreparedCollection:
        points = []
        for key, value in observations.items():
            if self.monotonic and value < 0:
                raise InvalidMeasurementError(
                    f"Monotonic observable reported a negative total {value}", self.descriptor
                )
            try:
                delta = cumulative_to_delta_sum(
                    value, self._cumulative.get(key), self.monotonic, self.descriptor
                )
            except TemporalityConversionError:
                # Kept even though the cycle faults
                self._restart_series(key, window)
                raise
            output = delta if temporality is AggregationTemporality.DELTA else value
            points.append(self._point(temporality, window, key, output,
                                      start_time=self._series_start_for(key, temporality)))

        def commit():
            self._cumulative.update(observations)
            self.last_collection_end = window.end_time

        return PreparedCollection(points, commit)


class LastValueAccumulator(Accumulator):
    """Gauge readings; the value is reported as observed whatever the temporality."""

    def prepare(self, observations: Mapping[AttributesKey, float], window: CollectionWindow,
                temporality: AggregationTemporality) -> PreparedCollection:
        points = [
            self._point(temporality, window, key, value) for key, value in observations.items()
        ]

        def commit():
            self.last_collection_end = window.end_time

        return PreparedCollection(points, commit)

