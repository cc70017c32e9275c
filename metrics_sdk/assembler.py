"""
Collection result assembler.

Runs one collection cycle over every registered instrument and assembles the
CollectionResult. Instrument faults are downgraded to entries of
CollectionResult.errors; only structural faults propagate.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from . import config
from .collector import CollectionWindow, CollectOutcome, Collector
from .data import AggregationTemporality, CollectionResult, MetricData, ResourceMetrics, ScopeMetrics
from .errors import CollectionError, InvalidMeasurementError, StructuralCollectionError
from .registry import InstrumentRegistry, validate_snapshot

logger = logging.getLogger(__name__)

TemporalitySelector = Callable[[object], AggregationTemporality]


class CollectionAssembler:
    """
    Produces one CollectionResult per call to collect().

    Args:
        resource (Resource): The resource every snapshot is attached to
        registry (InstrumentRegistry): Source of active instruments
        max_workers (int, optional): Instruments collected in parallel. 1 collects
            sequentially. Defaults to config.COLLECT_MAX_WORKERS.
    """

    def __init__(self, resource, registry: InstrumentRegistry, max_workers: Optional[int] = None):
        self.resource = resource
        self.registry = registry
        self.max_workers = max_workers or config.COLLECT_MAX_WORKERS

    def _snapshot(self):
        try:
            snapshot = self.registry.snapshot()
            validate_snapshot(snapshot)
        except StructuralCollectionError as e:
            logger.error("Aborting collection: %s", e)
            raise
        except Exception as e:
            logger.error("Aborting collection, instrument registry is unusable: %s", e)
            raise StructuralCollectionError(f"Instrument registry is unusable: {e}") from e
        return snapshot

    @staticmethod
    def _collect_one(instrument: Collector, window: CollectionWindow,
                     temporality: AggregationTemporality) -> CollectOutcome:
        try:
            return instrument.safe_collect(window, temporality)
        except Exception as e:
            # safe_collect is overridable; its contract is still never to escalate
            return CollectOutcome(fault=e)

    def _run(self, jobs: List[Tuple[Collector, AggregationTemporality]],
             window: CollectionWindow) -> List[CollectOutcome]:
        if self.max_workers <= 1 or len(jobs) <= 1:
            return [self._collect_one(instrument, window, temporality) for instrument, temporality in jobs]

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='metrics-collect') as pool:
            futures = [
                pool.submit(self._collect_one, instrument, window, temporality)
                for instrument, temporality in jobs
            ]
            return [future.result() for future in futures]

    def collect(self, window: CollectionWindow, temporality_for: TemporalitySelector) -> CollectionResult:
        """
        Collect every registered instrument for the given window.

        Args:
            window (CollectionWindow): Interval being collected
            temporality_for (callable): Maps an InstrumentKind to the output temporality

        Returns:
            CollectionResult: The snapshot and the faults of individual instruments

        Raises:
            StructuralCollectionError: If the registry's grouping invariants are broken
        """
        snapshot = self._snapshot()

        jobs = [
            (instrument, temporality_for(instrument.descriptor.kind))
            for _, instruments in snapshot
            for instrument in instruments
        ]
        outcomes = iter(zip(jobs, self._run(jobs, window)))

        errors = []
        scope_metrics = []
        for scope, instruments in snapshot:
            metrics = []
            for _ in instruments:
                (instrument, temporality), outcome = next(outcomes)
                descriptor = instrument.descriptor
                fault = outcome.fault
                metric = None
                if fault is None:
                    try:
                        metric = MetricData.build(descriptor, temporality, outcome.points)
                    except (TypeError, ValueError) as e:
                        fault = InvalidMeasurementError(str(e), descriptor, cause=e)
                if fault is not None:
                    error = CollectionError.from_exception(fault, descriptor, scope)
                    logger.warning(
                        "Instrument %s in scope %s failed to collect (%s): %s",
                        descriptor.name, scope.name, error.kind.value, error.message,
                    )
                    errors.append(error)
                    metric = MetricData.build(descriptor, temporality)
                metrics.append(metric)
            scope_metrics.append(ScopeMetrics(scope, metrics))

        result = CollectionResult(ResourceMetrics(self.resource, scope_metrics), errors)
        logger.debug(
            "Collected %d instruments in %d scopes with %d errors",
            len(jobs), len(scope_metrics), len(errors),
        )
        return result
