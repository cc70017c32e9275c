"""
Meter and MeterProvider: instrument creation and registration.
"""
import logging
import threading
from typing import Iterable, Optional, Sequence

from . import config
from .assembler import CollectionAssembler
from .callbacks import Callback, CallbackRunner
from .instrument import InstrumentDescriptor, InstrumentKind
from .instruments import (
    Counter,
    Histogram,
    Instrument,
    ObservableCounter,
    ObservableGauge,
    ObservableUpDownCounter,
    UpDownCounter,
)
from .noop import NoopMeterProvider
from .registry import InstrumentRegistry
from .resources import InstrumentationScope, Resource

logger = logging.getLogger(__name__)


class Meter:
    """
    Creates instruments for one instrumentation scope and registers them.

    Creating an instrument whose descriptor matches an existing one in the
    same scope returns the existing instrument.
    """

    def __init__(self, scope: InstrumentationScope, registry: InstrumentRegistry,
                 runner: Optional[CallbackRunner] = None):
        self.scope = scope
        self._registry = registry
        self._runner = runner or CallbackRunner()
        self._lock = threading.Lock()

    def _get_or_create(self, kind: InstrumentKind, name: str, unit: str, description: str, factory):
        if not name:
            raise ValueError("Instrument name is required")
        descriptor = InstrumentDescriptor(name, kind, unit or '', description or '')
        with self._lock:
            existing = self._registry.find(self.scope, descriptor)
            if existing is not None:
                logger.debug("Reusing instrument %s in scope %s", name, self.scope.name)
                return existing
            instrument: Instrument = factory(descriptor)
            self._registry.register(self.scope, instrument)
        return instrument

    def create_counter(self, name: str, unit: str = '', description: str = '') -> Counter:
        return self._get_or_create(
            InstrumentKind.COUNTER, name, unit, description,
            lambda d: Counter(d, scope=self.scope),
        )

    def create_up_down_counter(self, name: str, unit: str = '', description: str = '') -> UpDownCounter:
        return self._get_or_create(
            InstrumentKind.UP_DOWN_COUNTER, name, unit, description,
            lambda d: UpDownCounter(d, scope=self.scope),
        )

    def create_histogram(self, name: str, unit: str = '', description: str = '',
                         boundaries: Optional[Sequence[float]] = None) -> Histogram:
        return self._get_or_create(
            InstrumentKind.HISTOGRAM, name, unit, description,
            lambda d: Histogram(d, scope=self.scope, boundaries=boundaries),
        )

    def create_observable_counter(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                  unit: str = '', description: str = '') -> ObservableCounter:
        return self._get_or_create(
            InstrumentKind.OBSERVABLE_COUNTER, name, unit, description,
            lambda d: ObservableCounter(d, callbacks, scope=self.scope, runner=self._runner),
        )

    def create_observable_up_down_counter(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                          unit: str = '', description: str = '') -> ObservableUpDownCounter:
        return self._get_or_create(
            InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER, name, unit, description,
            lambda d: ObservableUpDownCounter(d, callbacks, scope=self.scope, runner=self._runner),
        )

    def create_observable_gauge(self, name: str, callbacks: Optional[Iterable[Callback]] = None,
                                unit: str = '', description: str = '') -> ObservableGauge:
        return self._get_or_create(
            InstrumentKind.OBSERVABLE_GAUGE, name, unit, description,
            lambda d: ObservableGauge(d, callbacks, scope=self.scope, runner=self._runner),
        )


class MeterProvider:
    """
    Owns the instrument registry, the callback runner and the single reader
    observing this provider's resource.

    Args:
        resource (Resource, optional): Defaults to Resource.default()
        metric_reader (MetricReader, optional): Reader that collects from this provider
        callback_timeout (float, optional): Seconds per observable callback.
            Defaults to config.CALLBACK_TIMEOUT.
        collect_max_workers (int, optional): Instruments collected in parallel.
            Defaults to config.COLLECT_MAX_WORKERS.
    """

    def __init__(self, resource: Optional[Resource] = None, metric_reader=None,
                 callback_timeout: Optional[float] = None, collect_max_workers: Optional[int] = None):
        self.resource = resource or Resource.default()
        self.registry = InstrumentRegistry()
        self._runner = CallbackRunner(timeout=callback_timeout)
        self._assembler = CollectionAssembler(self.resource, self.registry, collect_max_workers)
        self._meters = {}
        self._lock = threading.Lock()
        self._shutdown = False
        self.metric_reader = metric_reader
        if metric_reader is not None:
            metric_reader.register_assembler(self._assembler)

    def get_meter(self, name: str, version: Optional[str] = None,
                  schema_url: Optional[str] = None) -> Meter:
        """
        Get the meter for an instrumentation scope, creating it on first use.

        Args:
            name (str): Name of the instrumenting library or module
            version (str, optional): Its version
            schema_url (str, optional): Schema URL of the emitted telemetry
        """
        if not name:
            logger.warning("Meter name is empty; instruments will be grouped under ''")
            name = ''
        scope = InstrumentationScope(name, version, schema_url)
        with self._lock:
            meter = self._meters.get(scope)
            if meter is None:
                meter = self._meters[scope] = Meter(scope, self.registry, self._runner)
        return meter

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        if self.metric_reader is None:
            return True
        return self.metric_reader.force_flush(timeout)

    def shutdown(self) -> None:
        if self._shutdown:
            logger.warning("MeterProvider shutdown called more than once")
            return
        self._shutdown = True
        if self.metric_reader is not None:
            self.metric_reader.shutdown()
        self._runner.shutdown()


def create_meter_provider(**kwargs):
    """
    Build the provider selected by configuration.

    Returns a NoopMeterProvider when METRICS_SDK_DISABLED is set, otherwise a
    MeterProvider built with the given keyword arguments.
    """
    if config.SDK_DISABLED:
        logger.info("Metrics SDK disabled; using no-op instruments")
        return NoopMeterProvider()
    return MeterProvider(**kwargs)
