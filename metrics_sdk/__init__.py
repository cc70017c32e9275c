"""
Metrics SDK: turns instrument readings into CollectionResult snapshots.
"""
from .callbacks import CallbackOptions, CallbackRunner, Observation
from .collector import CollectionWindow, CollectOutcome, Collector
from .data import (
    AggregationTemporality,
    Buckets,
    CollectionResult,
    DataPoint,
    DataPointType,
    ExponentialHistogram,
    ExponentialHistogramMetricData,
    Histogram,
    HistogramMetricData,
    MetricData,
    ResourceMetrics,
    ScopeMetrics,
    SingularMetricData,
)
from .errors import (
    CallbackError,
    CallbackTimeoutError,
    CollectionError,
    CollectionErrorKind,
    CollectionInProgressError,
    InstrumentCollectionError,
    InvalidMeasurementError,
    MetricsSDKError,
    ReaderShutdownError,
    StructuralCollectionError,
    TemporalityConversionError,
)
from .export import ConsoleMetricExporter, ExportResult, HttpMetricExporter, MetricExporter
from .instrument import InstrumentDescriptor, InstrumentKind
from .meter import Meter, MeterProvider, create_meter_provider
from .noop import NoopMeter, NoopMeterProvider
from .reader import InMemoryMetricReader, MetricReader, PeriodicExportingMetricReader
from .resources import InstrumentationScope, Resource
from .temporality import (
    TemporalityPolicy,
    cumulative_to_delta_sum,
    merge_histograms,
    merge_sum,
    subtract_histograms,
)

__all__ = [
    'AggregationTemporality',
    'Buckets',
    'CallbackError',
    'CallbackOptions',
    'CallbackRunner',
    'CallbackTimeoutError',
    'CollectionError',
    'CollectionErrorKind',
    'CollectionInProgressError',
    'CollectionResult',
    'CollectionWindow',
    'CollectOutcome',
    'Collector',
    'ConsoleMetricExporter',
    'DataPoint',
    'DataPointType',
    'ExponentialHistogram',
    'ExponentialHistogramMetricData',
    'ExportResult',
    'Histogram',
    'HistogramMetricData',
    'HttpMetricExporter',
    'InMemoryMetricReader',
    'InstrumentCollectionError',
    'InstrumentDescriptor',
    'InstrumentKind',
    'InstrumentationScope',
    'InvalidMeasurementError',
    'Meter',
    'MeterProvider',
    'MetricData',
    'MetricExporter',
    'MetricReader',
    'MetricsSDKError',
    'NoopMeter',
    'NoopMeterProvider',
    'Observation',
    'PeriodicExportingMetricReader',
    'ReaderShutdownError',
    'Resource',
    'ResourceMetrics',
    'ScopeMetrics',
    'SingularMetricData',
    'StructuralCollectionError',
    'TemporalityConversionError',
    'TemporalityPolicy',
    'create_meter_provider',
    'cumulative_to_delta_sum',
    'merge_histograms',
    'merge_sum',
    'subtract_histograms',
]
