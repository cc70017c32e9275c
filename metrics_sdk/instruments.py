"""
SDK instruments.

Synchronous instruments (Counter, UpDownCounter, Histogram) record into an
accumulator; observable instruments run their callbacks when collected.
Recording never raises: invalid measurements are dropped with a warning.
Collection faults are raised from collect() and isolated by the assembler.
"""
import logging
import math
from typing import Any, Iterable, Mapping, Optional, Sequence

from . import config
from .aggregator import (
    HistogramAccumulator,
    LastValueAccumulator,
    ObservedSumAccumulator,
    SumAccumulator,
)
from .callbacks import Callback, CallbackRunner, Observation
from .clock import time_ns
from .collector import CollectionWindow, CollectOutcome, Collector
from .data import AggregationTemporality
from .errors import InvalidMeasurementError
from .instrument import AttributesKey, InstrumentDescriptor, InstrumentKind, normalize_attributes

logger = logging.getLogger(__name__)


def _is_valid_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class Instrument(Collector):
    """An instrument bound to a descriptor and, optionally, an instrumentation scope."""

    kind: InstrumentKind

    def __init__(self, descriptor: InstrumentDescriptor, scope=None):
        if descriptor.kind is not self.kind:
            raise ValueError(
                f"{self.__class__.__name__} needs a {self.kind.value} descriptor, got {descriptor.kind.value}"
            )
        self._descriptor = descriptor
        self.scope = scope

    @property
    def descriptor(self) -> InstrumentDescriptor:
        return self._descriptor

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._descriptor.name!r})"


class _SynchronousInstrument(Instrument):

    def __init__(self, descriptor, scope, accumulator):
        super().__init__(descriptor, scope)
        self._accumulator = accumulator

    def _accept(self, value: Any, attributes: Optional[Mapping[str, Any]]) -> Optional[AttributesKey]:
        if not _is_valid_number(value):
            logger.warning("Dropping invalid value %r for %s", value, self.name)
            return None
        try:
            return normalize_attributes(attributes)
        except ValueError as e:
            logger.warning("Dropping measurement for %s: %s", self.name, e)
            return None

    def collect(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> CollectOutcome:
        with self._accumulator.lock:
            prepared = self._accumulator.prepare(window, temporality)
            prepared.commit()
        return CollectOutcome(tuple(prepared.points))


class Counter(_SynchronousInstrument):
    """Monotonic sum of non-negative increments."""

    kind = InstrumentKind.COUNTER

    def __init__(self, descriptor: InstrumentDescriptor, scope=None, start_time: Optional[int] = None):
        accumulator = SumAccumulator(descriptor, time_ns() if start_time is None else start_time, monotonic=True)
        super().__init__(descriptor, scope, accumulator)

    def add(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        key = self._accept(amount, attributes)
        if key is None:
            return
        if amount < 0:
            logger.warning("Counter %s only accepts non-negative amounts, got %s", self.name, amount)
            return
        self._accumulator.record(amount, key)


class UpDownCounter(_SynchronousInstrument):
    """Sum of increments that may be negative."""

    kind = InstrumentKind.UP_DOWN_COUNTER

    def __init__(self, descriptor: InstrumentDescriptor, scope=None, start_time: Optional[int] = None):
        accumulator = SumAccumulator(descriptor, time_ns() if start_time is None else start_time, monotonic=False)
        super().__init__(descriptor, scope, accumulator)

    def add(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        key = self._accept(amount, attributes)
        if key is not None:
            self._accumulator.record(amount, key)


class Histogram(_SynchronousInstrument):
    """Distribution of recorded values over explicit bucket boundaries."""

    kind = InstrumentKind.HISTOGRAM

    def __init__(self, descriptor: InstrumentDescriptor, scope=None, start_time: Optional[int] = None,
                 boundaries: Optional[Sequence[float]] = None, record_min_max: bool = True):
        accumulator = HistogramAccumulator(
            descriptor,
            time_ns() if start_time is None else start_time,
            boundaries if boundaries is not None else config.HISTOGRAM_BOUNDARIES,
            record_min_max=record_min_max,
        )
        super().__init__(descriptor, scope, accumulator)

    @property
    def boundaries(self):
        return self._accumulator.boundaries

    def record(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        key = self._accept(amount, attributes)
        if key is not None:
            self._accumulator.record(amount, key)


class _ObservableInstrument(Instrument):

    def __init__(self, descriptor, scope, accumulator, callbacks: Optional[Iterable[Callback]],
                 runner: Optional[CallbackRunner]):
        super().__init__(descriptor, scope)
        self._accumulator = accumulator
        self._callbacks = list(callbacks or ())
        self._runner = runner or CallbackRunner()

    def add_callback(self, callback: Callback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callback) -> None:
        self._callbacks.remove(callback)

    def _check(self, observation: Any):
        if not isinstance(observation, Observation):
            raise InvalidMeasurementError(
                f"Callback returned {observation!r} instead of an Observation", self.descriptor
            )
        if not _is_valid_number(observation.value):
            raise InvalidMeasurementError(
                f"Callback observed invalid value {observation.value!r}", self.descriptor
            )
        try:
            key = normalize_attributes(observation.attributes)
        except ValueError as e:
            raise InvalidMeasurementError(str(e), self.descriptor, cause=e) from e
        return key, observation.value

    def collect(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> CollectOutcome:
        # The lock spans the callbacks so overlapping cycles cannot interleave
        # their readings with each other's commits.
        with self._accumulator.lock:
            observations = {}
            for callback in list(self._callbacks):
                for observation in self._runner.run(callback, self.descriptor):
                    key, value = self._check(observation)
                    observations[key] = value
            prepared = self._accumulator.prepare(observations, window, temporality)
            prepared.commit()
        return CollectOutcome(tuple(prepared.points))


class ObservableCounter(_ObservableInstrument):
    """Monotonic total reported by callbacks."""

    kind = InstrumentKind.OBSERVABLE_COUNTER

    def __init__(self, descriptor: InstrumentDescriptor, callbacks: Optional[Iterable[Callback]] = None,
                 scope=None, runner: Optional[CallbackRunner] = None, start_time: Optional[int] = None):
        accumulator = ObservedSumAccumulator(descriptor, time_ns() if start_time is None else start_time, monotonic=True)
        super().__init__(descriptor, scope, accumulator, callbacks, runner)


class ObservableUpDownCounter(_ObservableInstrument):
    """Non-monotonic total reported by callbacks."""

    kind = InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER

    def __init__(self, descriptor: InstrumentDescriptor, callbacks: Optional[Iterable[Callback]] = None,
                 scope=None, runner: Optional[CallbackRunner] = None, start_time: Optional[int] = None):
        accumulator = ObservedSumAccumulator(descriptor, time_ns() if start_time is None else start_time, monotonic=False)
        super().__init__(descriptor, scope, accumulator, callbacks, runner)


class ObservableGauge(_ObservableInstrument):
    """Current value reported by callbacks."""

    kind = InstrumentKind.OBSERVABLE_GAUGE

    def __init__(self, descriptor: InstrumentDescriptor, callbacks: Optional[Iterable[Callback]] = None,
                 scope=None, runner: Optional[CallbackRunner] = None, start_time: Optional[int] = None):
        accumulator = LastValueAccumulator(descriptor, time_ns() if start_time is None else start_time)
        super().__init__(descriptor, scope, accumulator, callbacks, runner)

