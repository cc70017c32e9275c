import pytest

from metrics_sdk.meter import MeterProvider
from metrics_sdk.reader import InMemoryMetricReader
from metrics_sdk.resources import Resource
from metrics_sdk.temporality import TemporalityPolicy


def make_provider(preference: str = 'cumulative', **kwargs):
    reader = InMemoryMetricReader(TemporalityPolicy.from_preference(preference))
    provider = MeterProvider(
        resource=Resource.create({'service.name': 'tests'}),
        metric_reader=reader,
        **kwargs,
    )
    return provider, reader


@pytest.fixture
def cumulative():
    provider, reader = make_provider('cumulative')
    yield provider, reader
    provider.shutdown()


@pytest.fixture
def delta():
    provider, reader = make_provider('delta')
    yield provider, reader
    provider.shutdown()


def values_by_attributes(metric):
    return {tuple(sorted(point.attributes.items())): point.value for point in metric.data_points}
