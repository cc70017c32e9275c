"""
Metric readers: the entry points that start collection cycles.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from . import config
from .clock import time_ns
from .collector import CollectionWindow
from .data import CollectionResult
from .errors import CollectionInProgressError, MetricsSDKError, ReaderShutdownError
from .export import ExportResult, MetricExporter
from .temporality import TemporalityPolicy

logger = logging.getLogger(__name__)


class MetricReader(ABC):
    """
    Base class for readers.

    Collection calls on one reader are serialized: a cycle never starts while
    the previous one is still running. Each cycle's window starts where the
    previous successful cycle ended.

    Args:
        temporality_policy (TemporalityPolicy, optional): Output temporality per
            instrument kind. Defaults to TemporalityPolicy.from_config().
    """

    def __init__(self, temporality_policy: Optional[TemporalityPolicy] = None):
        self.temporality_policy = temporality_policy or TemporalityPolicy.from_config()
        self._assembler = None
        self._collect_lock = threading.Lock()
        self._last_collection_end = None
        self._shutdown = False

    def register_assembler(self, assembler) -> None:
        """Attach the reader to a MeterProvider's assembler. Called by MeterProvider."""
        if self._assembler is not None:
            raise MetricsSDKError(f"{self.__class__.__name__} is already registered with a MeterProvider")
        self._assembler = assembler
        self._last_collection_end = time_ns()

    def collect(self, timeout: Optional[float] = None) -> CollectionResult:
        """
        Run one collection cycle.

        Args:
            timeout (float, optional): Seconds to wait for a running cycle to
                finish before giving up. Waits indefinitely when None.

        Returns:
            CollectionResult: The snapshot of this cycle

        Raises:
            CollectionInProgressError: If the previous cycle did not finish in time
            StructuralCollectionError: If the registry's invariants are broken
            ReaderShutdownError: If the reader was shut down
        """
        if self._shutdown:
            raise ReaderShutdownError(f"{self.__class__.__name__} has been shut down")
        if self._assembler is None:
            raise MetricsSDKError(f"{self.__class__.__name__} is not registered with a MeterProvider")

        if not self._collect_lock.acquire(timeout=-1 if timeout is None else timeout):
            raise CollectionInProgressError("A collection cycle is already in progress for this reader")
        try:
            end_time = max(time_ns(), self._last_collection_end)
            window = CollectionWindow(self._last_collection_end, end_time)
            result = self._assembler.collect(window, self.temporality_policy.resolve)
            self._last_collection_end = end_time
            self._receive_metrics(result, timeout)
        finally:
            self._collect_lock.release()
        return result

    @abstractmethod
    def _receive_metrics(self, result: CollectionResult, timeout: Optional[float] = None) -> None:
        """Handle the result of a cycle (store it, export it...)."""

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        try:
            self.collect(timeout)
        except MetricsSDKError as e:
            logger.error("Flush of %s failed: %s", self.__class__.__name__, e)
            return False
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        self._shutdown = True


class InMemoryMetricReader(MetricReader):
    """Reader that keeps the result of the latest cycle in memory. Useful in tests."""

    def __init__(self, temporality_policy: Optional[TemporalityPolicy] = None):
        super().__init__(temporality_policy)
        self.last_result: Optional[CollectionResult] = None

    def get_metrics_data(self) -> CollectionResult:
        """Collect now and return the result."""
        return self.collect()

    def _receive_metrics(self, result: CollectionResult, timeout: Optional[float] = None) -> None:
        self.last_result = result


class PeriodicExportingMetricReader(MetricReader):
    """
    Collects on a background thread every export_interval seconds and hands
    each result to an exporter.

    Args:
        exporter (MetricExporter): Destination of every snapshot
        export_interval (float, optional): Seconds between cycles. Defaults to config.EXPORT_INTERVAL.
        export_timeout (float, optional): Seconds allowed per cycle. Defaults to config.EXPORT_TIMEOUT.
        temporality_policy (TemporalityPolicy, optional): See MetricReader
    """

    def __init__(self, exporter: MetricExporter, export_interval: Optional[float] = None,
                 export_timeout: Optional[float] = None,
                 temporality_policy: Optional[TemporalityPolicy] = None):
        super().__init__(temporality_policy)
        self.exporter = exporter
        self.export_interval = export_interval or config.EXPORT_INTERVAL
        self.export_timeout = export_timeout or config.EXPORT_TIMEOUT
        self._stop_event = threading.Event()
        self._thread = None

    def register_assembler(self, assembler) -> None:
        super().register_assembler(assembler)
        self._thread = threading.Thread(
            target=self._ticker,
            name='metrics-periodic-reader',
            daemon=True,
        )
        self._thread.start()

    def _ticker(self) -> None:
        while not self._stop_event.wait(self.export_interval):
            self._collect_and_export()

    def _collect_and_export(self) -> bool:
        try:
            self.collect(timeout=self.export_timeout)
            return True
        except Exception as e:
            logger.error("Error collecting metrics: %s", e)
            return False

    def _receive_metrics(self, result: CollectionResult, timeout: Optional[float] = None) -> None:
        try:
            export_result = self.exporter.export(result)
        except Exception as e:
            logger.error("Exporter %s raised: %s", self.exporter.__class__.__name__, e)
            return
        if export_result is not ExportResult.SUCCESS:
            logger.warning("Export of metrics failed")

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        return super().force_flush(timeout) and self.exporter.force_flush(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        if self._shutdown:
            return
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        # final cycle so nothing recorded since the last tick is lost
        if self._assembler is not None:
            self._collect_and_export()
        super().shutdown(timeout)
        self.exporter.shutdown()
