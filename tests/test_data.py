import json

import pytest

from metrics_sdk.data import (
    AggregationTemporality,
    Buckets,
    CollectionResult,
    DataPoint,
    DataPointType,
    ExponentialHistogram,
    Histogram,
    HistogramMetricData,
    MetricData,
    ResourceMetrics,
    ScopeMetrics,
    SingularMetricData,
)
from metrics_sdk.errors import CollectionError, CollectionErrorKind, StructuralCollectionError
from metrics_sdk.instrument import InstrumentDescriptor, InstrumentKind
from metrics_sdk.resources import InstrumentationScope, Resource

COUNTER = InstrumentDescriptor('requests', InstrumentKind.COUNTER, '1', 'Requests')
HISTOGRAM = InstrumentDescriptor('latency', InstrumentKind.HISTOGRAM, 'ms')


def test_histogram_requires_one_more_bucket_than_boundaries() -> None:
    with pytest.raises(ValueError):
        Histogram(count=1, sum=1.0, boundaries=(0, 10), bucket_counts=(0, 1))


def test_histogram_count_must_match_buckets() -> None:
    with pytest.raises(ValueError):
        Histogram(count=3, sum=1.0, boundaries=(0, 10), bucket_counts=(0, 1, 1))


def test_histogram_boundaries_must_increase() -> None:
    with pytest.raises(ValueError):
        Histogram(count=0, sum=0, boundaries=(10, 10), bucket_counts=(0, 0, 0))


def test_empty_histogram_has_no_extremes() -> None:
    with pytest.raises(ValueError):
        Histogram(count=0, sum=0, boundaries=(), bucket_counts=(0,), min=1.0)

    empty = Histogram(count=0, sum=0, boundaries=(), bucket_counts=(0,))
    assert empty.min is None and empty.max is None


def test_histogram_min_not_above_max() -> None:
    with pytest.raises(ValueError):
        Histogram(count=2, sum=3.0, boundaries=(), bucket_counts=(2,), min=2.0, max=1.0)


def test_exponential_histogram_count_includes_zero_bucket() -> None:
    value = ExponentialHistogram(
        count=4, sum=10.0, scale=1, zero_count=1,
        positive=Buckets(0, (2, 1)), negative=Buckets(0, ()),
        min=0.0, max=5.0,
    )
    assert value.to_dict()['positive'] == {'offset': 0, 'bucket_counts': [2, 1]}

    with pytest.raises(ValueError):
        ExponentialHistogram(count=5, sum=1.0, scale=0, zero_count=0,
                             positive=Buckets(0, (1,)), negative=Buckets(0, ()))


def test_data_point_rejects_inverted_interval() -> None:
    with pytest.raises(ValueError):
        DataPoint(start_time=10, end_time=5, attributes={}, value=1)


def test_data_point_attributes_are_read_only() -> None:
    source = {'route': '/'}
    point = DataPoint(start_time=1, end_time=2, attributes=source, value=1)
    source['route'] = '/changed'

    assert point.attributes['route'] == '/'
    with pytest.raises(TypeError):
        point.attributes['route'] = '/other'


def test_metric_data_is_abstract() -> None:
    with pytest.raises(TypeError):
        MetricData(COUNTER, AggregationTemporality.CUMULATIVE)


def test_build_picks_variant_from_instrument_kind() -> None:
    metric = MetricData.build(COUNTER, AggregationTemporality.DELTA)
    assert isinstance(metric, SingularMetricData)
    assert metric.data_point_type is DataPointType.SINGULAR
    assert metric.data_points == ()

    metric = MetricData.build(HISTOGRAM, AggregationTemporality.CUMULATIVE)
    assert isinstance(metric, HistogramMetricData)


def test_variant_rejects_mismatched_point_values() -> None:
    histogram = Histogram(count=1, sum=2.0, boundaries=(), bucket_counts=(1,), min=2.0, max=2.0)
    with pytest.raises(ValueError):
        SingularMetricData(COUNTER, AggregationTemporality.CUMULATIVE,
                           (DataPoint(1, 2, {}, histogram),))
    with pytest.raises(ValueError):
        SingularMetricData(COUNTER, AggregationTemporality.CUMULATIVE,
                           (DataPoint(1, 2, {}, True),))
    with pytest.raises(ValueError):
        HistogramMetricData(HISTOGRAM, AggregationTemporality.CUMULATIVE,
                            (DataPoint(1, 2, {}, 3),))


def test_resource_metrics_rejects_duplicate_scopes() -> None:
    scope = InstrumentationScope('lib', '1.0')
    same_identity = InstrumentationScope('lib', '1.0', 'https://example.com/schema')
    with pytest.raises(StructuralCollectionError):
        ResourceMetrics(Resource.create(), (ScopeMetrics(scope), ScopeMetrics(same_identity)))


def test_collection_result_lookup_and_serialization() -> None:
    scope = InstrumentationScope('lib')
    point = DataPoint(1_000_000_000, 2_000_000_000, {'route': '/', 'tags': ('a', 'b')}, 8)
    metric = MetricData.build(COUNTER, AggregationTemporality.CUMULATIVE, [point])
    error = CollectionError(CollectionErrorKind.CALLBACK_FAILED, HISTOGRAM, scope, 'boom')
    result = CollectionResult(
        ResourceMetrics(Resource.create({'service.name': 'svc'}), [ScopeMetrics(scope, [metric])]),
        [error],
    )

    assert not result.is_clean
    assert result.find_metric('requests') is metric
    assert result.find_metric('requests', scope_name='other') is None

    encoded = json.loads(json.dumps(result.to_dict()))
    scope_metrics = encoded['resource_metrics']['scope_metrics'][0]
    data_point = scope_metrics['metrics'][0]['data_points'][0]
    assert encoded['resource_metrics']['resource']['attributes'] == {'service.name': 'svc'}
    assert data_point['attributes'] == {'route': '/', 'tags': ['a', 'b']}
    assert data_point['start_time'].startswith('1970-01-01T00:00:01')
    assert encoded['errors'][0]['kind'] == 'callback_failed'
    assert encoded['errors'][0]['instrument'] == 'latency'


def test_every_data_point_type_has_a_metric_data_variant() -> None:
    from metrics_sdk.data import _VARIANTS
    from metrics_sdk.instrument import InstrumentKind as Kind

    assert set(_VARIANTS) == set(DataPointType)
    for kind in Kind:
        descriptor = InstrumentDescriptor(kind.value, kind)
        assert MetricData.build(descriptor, AggregationTemporality.DELTA).data_point_type is kind.data_point_type
