"""
No-op instruments, meter and provider.

Used when the SDK is disabled. Every class is stateless and cheap to
construct; nothing here is a process-wide singleton. A no-op instrument still
honours the collection capability and always yields zero points.
"""
from typing import Any, Iterable, Mapping, Optional

from .callbacks import Callback, Observation
from .collector import CollectionWindow, CollectOutcome
from .data import AggregationTemporality
from .instrument import InstrumentDescriptor, InstrumentKind
from .instruments import Instrument
from .resources import InstrumentationScope


class NoopInstrument(Instrument):

    def collect(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> CollectOutcome:
        return CollectOutcome()


class NoopCounter(NoopInstrument):
    kind = InstrumentKind.COUNTER

    def add(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        pass


class NoopUpDownCounter(NoopInstrument):
    kind = InstrumentKind.UP_DOWN_COUNTER

    def add(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        pass


class NoopHistogram(NoopInstrument):
    kind = InstrumentKind.HISTOGRAM

    def record(self, amount: float, attributes: Optional[Mapping[str, Any]] = None) -> None:
        pass


class _NoopObservable(NoopInstrument):

    def add_callback(self, callback: Callback) -> None:
        pass

    def remove_callback(self, callback: Callback) -> None:
        pass

    def observation(self) -> Observation:
        return Observation(0)


class NoopObservableCounter(_NoopObservable):
    kind = InstrumentKind.OBSERVABLE_COUNTER


class NoopObservableUpDownCounter(_NoopObservable):
    kind = InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER


class NoopObservableGauge(_NoopObservable):
    kind = InstrumentKind.OBSERVABLE_GAUGE


class NoopMeter:
    """Meter whose instruments record nothing."""

    def __init__(self, scope: Optional[InstrumentationScope] = None):
        self.scope = scope or InstrumentationScope('noop')

    def _descriptor(self, name, kind, unit, description):
        return InstrumentDescriptor(name, kind, unit, description)

    def create_counter(self, name: str, unit: str = '', description: str = '') -> NoopCounter:
        return NoopCounter(self._descriptor(name, InstrumentKind.COUNTER, unit, description), self.scope)

    def create_up_down_counter(self, name: str, unit: str = '', description: str = '') -> NoopUpDownCounter:
        return NoopUpDownCounter(
            self._descriptor(name, InstrumentKind.UP_DOWN_COUNTER, unit, description), self.scope
        )

    def create_histogram(self, name: str, unit: str = '', description: str = '',
                         boundaries=None) -> NoopHistogram:
        return NoopHistogram(self._descriptor(name, InstrumentKind.HISTOGRAM, unit, description), self.scope)

    def create_observable_counter(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                  unit: str = '', description: str = '') -> NoopObservableCounter:
        return NoopObservableCounter(
            self._descriptor(name, InstrumentKind.OBSERVABLE_COUNTER, unit, description), self.scope
        )

    def create_observable_up_down_counter(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                          unit: str = '', description: str = '') -> NoopObservableUpDownCounter:
        return NoopObservableUpDownCounter(
            self._descriptor(name, InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER, unit, description), self.scope
        )

    def create_observable_gauge(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                unit: str = '', description: str = '') -> NoopObservableGauge:
        return NoopObservableGauge(
            self._descriptor(name, InstrumentKind.OBSERVABLE_GAUGE, unit, description), self.scope
        )


class NoopMeterProvider:
    """Provider handed out when the SDK is disabled."""

    def get_meter(self, name: str, version: Optional[str] = None,
                  schema_url: Optional[str] = None) -> NoopMeter:
        return NoopMeter(InstrumentationScope(name, version, schema_url))

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def shutdown(self) -> None:
        pass
