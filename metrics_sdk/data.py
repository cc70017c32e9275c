"""
Data model produced by one collection cycle.

CollectionResult
  └── ResourceMetrics (one per cycle)
        └── ScopeMetrics (one per instrumentation scope)
              └── MetricData (one per instrument)
                    └── DataPoint (one per attribute set)

Everything here is immutable and created fresh on every cycle.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple, Union

import pytz

from .errors import CollectionError, StructuralCollectionError


class AggregationTemporality(Enum):
    """Whether a value is a running total since creation or the change since the last report."""
    UNSPECIFIED = 0
    DELTA = 1
    CUMULATIVE = 2


class DataPointType(Enum):
    """The kind of value carried by the points of a MetricData."""
    SINGULAR = 0
    HISTOGRAM = 1
    EXPONENTIAL_HISTOGRAM = 2


def format_timestamp(time_ns: int) -> str:
    """Render epoch nanoseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(time_ns / 1e9, pytz.UTC).isoformat()


def _check_counts(counts: Sequence[int], what: str) -> None:
    for count in counts:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"{what} must be non-negative integers, got {count!r}")


def _check_min_max(count: int, min_: Optional[float], max_: Optional[float]) -> None:
    if count == 0 and (min_ is not None or max_ is not None):
        raise ValueError("An empty histogram cannot carry min or max")
    if min_ is not None and max_ is not None and min_ > max_:
        raise ValueError(f"Histogram min {min_} is greater than max {max_}")


@dataclass(frozen=True)
class Histogram:
    """
    Explicit bucket histogram value.

    bucket_counts[i] counts values in (boundaries[i-1], boundaries[i]]; the
    last bucket holds everything above the last boundary.
    """
    count: int
    sum: float
    boundaries: Tuple[float, ...]
    bucket_counts: Tuple[int, ...]
    min: Optional[float] = None
    max: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'boundaries', tuple(self.boundaries))
        object.__setattr__(self, 'bucket_counts', tuple(self.bucket_counts))

        if len(self.bucket_counts) != len(self.boundaries) + 1:
            raise ValueError(
                f"Expected {len(self.boundaries) + 1} bucket counts for "
                f"{len(self.boundaries)} boundaries, got {len(self.bucket_counts)}"
            )
        if any(lower >= upper for lower, upper in zip(self.boundaries, self.boundaries[1:])):
            raise ValueError(f"Histogram boundaries must be strictly increasing: {self.boundaries}")
        _check_counts(self.bucket_counts, "Bucket counts")
        if self.count != sum(self.bucket_counts):
            raise ValueError(
                f"Histogram count {self.count} does not match the bucket total {sum(self.bucket_counts)}"
            )
        if math.isnan(self.sum):
            raise ValueError("Histogram sum is NaN")
        _check_min_max(self.count, self.min, self.max)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'sum': self.sum,
            'min': self.min,
            'max': self.max,
            'boundaries': list(self.boundaries),
            'bucket_counts': list(self.bucket_counts),
        }


@dataclass(frozen=True)
class Buckets:
    """One side (positive or negative) of an exponential histogram."""
    offset: int
    bucket_counts: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, 'bucket_counts', tuple(self.bucket_counts))
        _check_counts(self.bucket_counts, "Bucket counts")

    def to_dict(self) -> Dict[str, Any]:
        return {'offset': self.offset, 'bucket_counts': list(self.bucket_counts)}


@dataclass(frozen=True)
class ExponentialHistogram:
    """Exponential bucket histogram value (base 2**(2**-scale))."""
    count: int
    sum: float
    scale: int
    zero_count: int
    positive: Buckets
    negative: Buckets
    min: Optional[float] = None
    max: Optional[float] = None

    def __post_init__(self):
        _check_counts((self.zero_count,), "Zero count")
        total = self.zero_count + sum(self.positive.bucket_counts) + sum(self.negative.bucket_counts)
        if self.count != total:
            raise ValueError(f"Histogram count {self.count} does not match the bucket total {total}")
        _check_min_max(self.count, self.min, self.max)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'sum': self.sum,
            'min': self.min,
            'max': self.max,
            'scale': self.scale,
            'zero_count': self.zero_count,
            'positive': self.positive.to_dict(),
            'negative': self.negative.to_dict(),
        }


Value = Union[int, float, Histogram, ExponentialHistogram]


@dataclass(frozen=True)
class DataPoint:
    """
    A timestamped, attributed value.

    Attributes:
        start_time: Start of the interval the value covers (epoch ns)
        end_time: Moment the value was collected (epoch ns)
        attributes: Read-only mapping identifying the time series
        value: A number, a Histogram or an ExponentialHistogram
    """
    start_time: int
    end_time: int
    attributes: Mapping[str, Any]
    value: Value

    def __post_init__(self):
        if self.start_time > self.end_time:
            raise ValueError(
                f"DataPoint start_time {self.start_time} is after end_time {self.end_time}"
            )
        object.__setattr__(self, 'attributes', MappingProxyType(dict(self.attributes)))

    def to_dict(self) -> Dict[str, Any]:
        value = self.value.to_dict() if hasattr(self.value, 'to_dict') else self.value
        return {
            'start_time_unix_nano': self.start_time,
            'time_unix_nano': self.end_time,
            'start_time': format_timestamp(self.start_time),
            'time': format_timestamp(self.end_time),
            'attributes': {k: list(v) if isinstance(v, tuple) else v for k, v in self.attributes.items()},
            'value': value,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class MetricData:
    """
    One instrument's output for one collection cycle.

    Use one of the concrete variants (or MetricData.build); the variant fixes
    data_point_type and the type every point's value must have.
    """
    descriptor: Any
    aggregation_temporality: AggregationTemporality
    data_points: Tuple[DataPoint, ...] = ()

    data_point_type: ClassVar[DataPointType]

    def __post_init__(self):
        if type(self) is MetricData:
            raise TypeError("MetricData is abstract; use MetricData.build or a concrete variant")
        object.__setattr__(self, 'data_points', tuple(self.data_points))
        for point in self.data_points:
            if not self._accepts(point.value):
                raise ValueError(
                    f"{self.data_point_type.name} metric {self.descriptor.name!r} "
                    f"cannot hold a value of type {type(point.value).__name__}"
                )

    @staticmethod
    def _accepts(value: Any) -> bool:
        raise NotImplementedError

    @staticmethod
    def build(descriptor, temporality: AggregationTemporality,
              points: Sequence[DataPoint] = ()) -> 'MetricData':
        """Create the variant matching the descriptor's instrument kind."""
        variant = _VARIANTS[descriptor.kind.data_point_type]
        return variant(descriptor, temporality, tuple(points))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'descriptor': self.descriptor.to_dict(),
            'aggregation_temporality': self.aggregation_temporality.name,
            'data_point_type': self.data_point_type.name,
            'data_points': [point.to_dict() for point in self.data_points],
        }


@dataclass(frozen=True)
class SingularMetricData(MetricData):
    """Points carry a single number (sums and gauges)."""
    data_point_type: ClassVar[DataPointType] = DataPointType.SINGULAR

    @staticmethod
    def _accepts(value: Any) -> bool:
        return _is_number(value)


@dataclass(frozen=True)
class HistogramMetricData(MetricData):
    data_point_type: ClassVar[DataPointType] = DataPointType.HISTOGRAM

    @staticmethod
    def _accepts(value: Any) -> bool:
        return isinstance(value, Histogram)


@dataclass(frozen=True)
class ExponentialHistogramMetricData(MetricData):
    data_point_type: ClassVar[DataPointType] = DataPointType.EXPONENTIAL_HISTOGRAM

    @staticmethod
    def _accepts(value: Any) -> bool:
        return isinstance(value, ExponentialHistogram)


_VARIANTS = {
    DataPointType.SINGULAR: SingularMetricData,
    DataPointType.HISTOGRAM: HistogramMetricData,
    DataPointType.EXPONENTIAL_HISTOGRAM: ExponentialHistogramMetricData,
}


@dataclass(frozen=True)
class ScopeMetrics:
    """All MetricData produced by instruments of one instrumentation scope."""
    scope: Any
    metrics: Tuple[MetricData, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'metrics', tuple(self.metrics))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scope': self.scope.to_dict(),
            'metrics': [metric.to_dict() for metric in self.metrics],
        }


@dataclass(frozen=True)
class ResourceMetrics:
    """The root of a snapshot: one resource and its scopes, in deterministic order."""
    resource: Any
    scope_metrics: Tuple[ScopeMetrics, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'scope_metrics', tuple(self.scope_metrics))
        seen = set()
        for scope_metrics in self.scope_metrics:
            if scope_metrics.scope in seen:
                raise StructuralCollectionError(
                    f"Scope {scope_metrics.scope!r} appears more than once in one snapshot"
                )
            seen.add(scope_metrics.scope)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource': self.resource.to_dict(),
            'scope_metrics': [scope_metrics.to_dict() for scope_metrics in self.scope_metrics],
        }


@dataclass(frozen=True)
class CollectionResult:
    """
    Output of one collection cycle.

    Non-empty errors means the snapshot is partial: the listed instruments
    failed, every other instrument's data is present and correct.
    """
    resource_metrics: ResourceMetrics
    errors: Tuple[CollectionError, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'errors', tuple(self.errors))

    @property
    def is_clean(self) -> bool:
        return not self.errors

    def iter_metrics(self):
        """Yield (scope, MetricData) pairs in snapshot order."""
        for scope_metrics in self.resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                yield scope_metrics.scope, metric

    def find_metric(self, name: str, scope_name: Optional[str] = None) -> Optional[MetricData]:
        """Return the first MetricData whose instrument has the given name."""
        for scope, metric in self.iter_metrics():
            if metric.descriptor.name == name and (scope_name is None or scope.name == scope_name):
                return metric
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_metrics': self.resource_metrics.to_dict(),
            'errors': [error.to_dict() for error in self.errors],
        }
