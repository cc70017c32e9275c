import pytest

from metrics_sdk.data import AggregationTemporality, Histogram
from metrics_sdk.errors import TemporalityConversionError
from metrics_sdk.instrument import InstrumentKind
from metrics_sdk.temporality import (
    TemporalityPolicy,
    cumulative_to_delta_sum,
    merge_histograms,
    merge_sum,
    subtract_histograms,
)

CUMULATIVE = AggregationTemporality.CUMULATIVE
DELTA = AggregationTemporality.DELTA


def test_default_policy_uses_preferred_temporalities() -> None:
    policy = TemporalityPolicy()
    assert policy.resolve(InstrumentKind.COUNTER) is CUMULATIVE
    assert policy.resolve(InstrumentKind.HISTOGRAM) is CUMULATIVE
    assert policy(InstrumentKind.OBSERVABLE_GAUGE) is DELTA


def test_presets() -> None:
    delta = TemporalityPolicy.from_preference('delta')
    assert delta(InstrumentKind.COUNTER) is DELTA
    assert delta(InstrumentKind.OBSERVABLE_COUNTER) is DELTA
    assert delta(InstrumentKind.UP_DOWN_COUNTER) is CUMULATIVE

    low_memory = TemporalityPolicy.from_preference(' LowMemory ')
    assert low_memory(InstrumentKind.HISTOGRAM) is DELTA
    assert low_memory(InstrumentKind.OBSERVABLE_COUNTER) is CUMULATIVE


def test_unknown_preset_is_rejected() -> None:
    with pytest.raises(ValueError):
        TemporalityPolicy.from_preference('sometimes')


def test_unsupported_override_falls_back_to_preferred() -> None:
    policy = TemporalityPolicy({InstrumentKind.COUNTER: AggregationTemporality.UNSPECIFIED})
    assert policy(InstrumentKind.COUNTER) is CUMULATIVE


def test_from_config(monkeypatch) -> None:
    from metrics_sdk import config

    monkeypatch.setattr(config, 'TEMPORALITY_PREFERENCE', 'delta')
    assert TemporalityPolicy.from_config()(InstrumentKind.COUNTER) is DELTA


def test_sum_conversions() -> None:
    assert merge_sum(None, 5, monotonic=True) == 5
    assert merge_sum(5, 3, monotonic=True) == 8
    assert merge_sum(5, -7, monotonic=False) == -2
    with pytest.raises(TemporalityConversionError):
        merge_sum(5, -1, monotonic=True)

    assert cumulative_to_delta_sum(10, None, monotonic=True) == 10
    assert cumulative_to_delta_sum(15, 10, monotonic=True) == 5
    assert cumulative_to_delta_sum(4, 10, monotonic=False) == -6
    with pytest.raises(TemporalityConversionError):
        cumulative_to_delta_sum(4, 10, monotonic=True)


def _histogram(bucket_counts, total, boundaries=(10,), min_=None, max_=None):
    return Histogram(count=sum(bucket_counts), sum=total, boundaries=boundaries,
                     bucket_counts=bucket_counts, min=min_, max=max_)


def test_histogram_merge_and_subtract() -> None:
    first = _histogram((1, 0), 4.0, min_=4.0, max_=4.0)
    second = _histogram((1, 1), 24.0, min_=4.0, max_=20.0)

    merged = merge_histograms(first, second)
    assert merged.bucket_counts == (2, 1)
    assert merged.sum == 28.0
    assert (merged.min, merged.max) == (4.0, 20.0)

    delta = subtract_histograms(merged, first, window_min=4.0, window_max=20.0)
    assert delta.bucket_counts == (1, 1)
    assert delta.sum == 24.0
    assert (delta.min, delta.max) == (4.0, 20.0)

    unchanged = subtract_histograms(first, first, window_min=1.0, window_max=2.0)
    assert unchanged.count == 0
    assert unchanged.min is None and unchanged.max is None


def test_histogram_conversion_faults() -> None:
    current = _histogram((1, 0), 1.0)
    with pytest.raises(TemporalityConversionError):
        merge_histograms(current, _histogram((1, 0), 1.0, boundaries=(5,)))
    with pytest.raises(TemporalityConversionError):
        subtract_histograms(current, _histogram((2, 0), 2.0))
