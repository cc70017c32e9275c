import math
import time

import pytest

from metrics_sdk.data import AggregationTemporality, Histogram
from metrics_sdk.instrument import InstrumentDescriptor, InstrumentKind, normalize_attributes
from metrics_sdk.instruments import Counter

from conftest import values_by_attributes


def test_counter_reports_running_total(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_counter('requests', unit='1')

    counter.add(5)
    counter.add(3)
    first = reader.collect().find_metric('requests')

    assert first.aggregation_temporality is AggregationTemporality.CUMULATIVE
    assert len(first.data_points) == 1
    assert first.data_points[0].value == 8
    assert dict(first.data_points[0].attributes) == {}

    time.sleep(0.001)
    counter.add(2)
    second = reader.collect().find_metric('requests')
    assert second.data_points[0].value == 10
    assert second.data_points[0].start_time == first.data_points[0].start_time
    assert second.data_points[0].end_time > first.data_points[0].end_time


def test_cumulative_counter_without_new_measurements_repeats_total(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_counter('requests')
    counter.add(4)
    reader.collect()

    metric = reader.collect().find_metric('requests')
    assert metric.data_points[0].value == 4


def test_delta_counter_reports_window_increments(delta) -> None:
    provider, reader = delta
    counter = provider.get_meter('app').create_counter('requests')

    counter.add(5)
    first = reader.collect().find_metric('requests')
    counter.add(3)
    second = reader.collect().find_metric('requests')
    third = reader.collect().find_metric('requests')

    assert first.aggregation_temporality is AggregationTemporality.DELTA
    assert first.data_points[0].value == 5
    assert second.data_points[0].value == 3
    assert second.data_points[0].start_time == first.data_points[0].end_time
    # A window without measurements yields no point for the attribute set
    assert third.data_points == ()


def test_deltas_add_up_to_cumulative_total() -> None:
    from conftest import make_provider

    delta_provider, delta_reader = make_provider('delta')
    cumulative_provider, cumulative_reader = make_provider('cumulative')
    delta_counter = delta_provider.get_meter('app').create_counter('requests')
    cumulative_counter = cumulative_provider.get_meter('app').create_counter('requests')

    total = 0
    for amounts in ([1, 2], [], [7], [0.5, 0.5, 3]):
        for amount in amounts:
            delta_counter.add(amount, {'route': '/'})
            cumulative_counter.add(amount, {'route': '/'})
        metric = delta_reader.collect().find_metric('requests')
        total += sum(point.value for point in metric.data_points)

    cumulative = cumulative_reader.collect().find_metric('requests')
    assert cumulative.data_points[0].value == total == 14

    delta_provider.shutdown()
    cumulative_provider.shutdown()


def test_counter_drops_invalid_measurements(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_counter('requests')

    counter.add(-1)
    counter.add(math.nan)
    counter.add(math.inf)
    counter.add(True)
    counter.add('3')
    counter.add(1, {'bad': {'nested': 'dict'}})
    counter.add(1, {'': 'empty key'})
    counter.add(2)

    result = reader.collect()
    assert result.is_clean
    assert result.find_metric('requests').data_points[0].value == 2


def test_up_down_counter_can_go_negative(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_up_down_counter('queue.size')
    counter.add(2)
    counter.add(-5)

    assert reader.collect().find_metric('queue.size').data_points[0].value == -3


def test_attribute_sets_are_separate_series(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_counter('requests')
    counter.add(1, {'route': '/', 'method': 'GET'})
    counter.add(2, {'method': 'GET', 'route': '/'})
    counter.add(4, {'route': '/health', 'method': 'GET'})

    values = values_by_attributes(reader.collect().find_metric('requests'))
    assert values == {
        (('method', 'GET'), ('route', '/')): 3,
        (('method', 'GET'), ('route', '/health')): 4,
    }


def test_histogram_buckets_and_extremes(cumulative) -> None:
    provider, reader = cumulative
    histogram = provider.get_meter('app').create_histogram('latency', unit='ms', boundaries=[0, 5, 10])
    for value in (1, 5, 7, 100):
        histogram.record(value)

    point = reader.collect().find_metric('latency').data_points[0]
    assert isinstance(point.value, Histogram)
    assert point.value.boundaries == (0.0, 5.0, 10.0)
    # Upper bounds are inclusive: 5 lands in (0, 5]
    assert point.value.bucket_counts == (0, 2, 1, 1)
    assert point.value.count == 4
    assert point.value.sum == 113
    assert (point.value.min, point.value.max) == (1, 100)


def test_delta_histogram_reports_window_extremes(delta) -> None:
    provider, reader = delta
    histogram = provider.get_meter('app').create_histogram('latency', boundaries=[10])
    histogram.record(1)
    histogram.record(50)
    first = reader.collect().find_metric('latency').data_points[0].value
    histogram.record(3)
    second = reader.collect().find_metric('latency').data_points[0].value

    assert (first.count, first.min, first.max) == (2, 1, 50)
    assert (second.count, second.min, second.max) == (1, 3, 3)
    assert second.bucket_counts == (1, 0)


def test_cumulative_histogram_merges_windows(cumulative) -> None:
    provider, reader = cumulative
    histogram = provider.get_meter('app').create_histogram('latency', boundaries=[10])
    histogram.record(4)
    reader.collect()
    histogram.record(20)
    histogram.record(2)
    value = reader.collect().find_metric('latency').data_points[0].value

    assert value.bucket_counts == (2, 1)
    assert value.sum == 26
    assert (value.min, value.max) == (2, 20)


def test_histogram_without_min_max(cumulative) -> None:
    provider, reader = cumulative
    descriptor = InstrumentDescriptor('sizes', InstrumentKind.HISTOGRAM)
    from metrics_sdk.instruments import Histogram as HistogramInstrument

    histogram = HistogramInstrument(descriptor, boundaries=[1], record_min_max=False)
    provider.registry.register(provider.get_meter('app').scope, histogram)
    histogram.record(3)

    value = reader.collect().find_metric('sizes').data_points[0].value
    assert value.count == 1
    assert value.min is None and value.max is None


def test_instrument_rejects_descriptor_of_other_kind() -> None:
    with pytest.raises(ValueError):
        Counter(InstrumentDescriptor('gauge', InstrumentKind.OBSERVABLE_GAUGE))


def test_normalize_attributes() -> None:
    assert normalize_attributes(None) == ()
    assert normalize_attributes({'b': 1, 'a': [1, 2.5]}) == (('a', (1, 2.5)), ('b', 1))
    with pytest.raises(ValueError):
        normalize_attributes({'mixed': ['a', 1]})
    with pytest.raises(ValueError):
        normalize_attributes({1: 'not a str key'})
    with pytest.raises(ValueError):
        normalize_attributes({'obj': object()})


def test_cumulative_reread_only_moves_end_time(cumulative) -> None:
    provider, reader = cumulative
    counter = provider.get_meter('app').create_counter('requests')
    counter.add(5)
    counter.add(3)

    first = reader.collect().find_metric('requests').data_points[0]
    time.sleep(0.001)
    second = reader.collect().find_metric('requests').data_points[0]

    assert first.value == second.value == 8
    assert second.start_time == first.start_time
    assert second.end_time > first.end_time


def test_concurrent_recording_loses_nothing(delta) -> None:
    import threading

    provider, reader = delta
    counter = provider.get_meter('app').create_counter('requests')
    histogram = provider.get_meter('app').create_histogram('latency', boundaries=[1])
    threads_count, adds = 4, 500
    collected = {'requests': 0, 'latency': 0}

    def work():
        for _ in range(adds):
            counter.add(1)
            histogram.record(0.5)

    def drain():
        result = reader.collect()
        for name in collected:
            for point in result.find_metric(name).data_points:
                collected[name] += point.value if name == 'requests' else point.value.count

    threads = [threading.Thread(target=work) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    while any(thread.is_alive() for thread in threads):
        drain()
    for thread in threads:
        thread.join()
    drain()

    assert collected == {'requests': threads_count * adds, 'latency': threads_count * adds}
