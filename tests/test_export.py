import io
import json

import requests

from metrics_sdk.export import ConsoleMetricExporter, ExportResult, HttpMetricExporter, MetricsBuffer


class FakeResponse:

    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def _result(cumulative):
    provider, reader = cumulative
    provider.get_meter('app').create_counter('requests').add(3, {'route': '/'})
    return reader.collect()


def _exporter(tmp_path, **kwargs):
    return HttpMetricExporter(
        server_url='http://metrics.test/',
        api_key='secret',
        source_name='host-1',
        buffer_file=str(tmp_path / 'buffer.json'),
        max_retries=2,
        retry_delay=0,
        request_timeout=1,
        **kwargs,
    )


def test_console_exporter_writes_json(cumulative) -> None:
    out = io.StringIO()
    exporter = ConsoleMetricExporter(out=out)

    assert exporter.export(_result(cumulative)) is ExportResult.SUCCESS
    payload = json.loads(out.getvalue())
    metric = payload['resource_metrics']['scope_metrics'][0]['metrics'][0]
    assert metric['descriptor']['name'] == 'requests'
    assert metric['data_points'][0]['value'] == 3
    assert payload['errors'] == []


def test_http_exporter_posts_snapshot(cumulative, tmp_path, monkeypatch) -> None:
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers))
        return FakeResponse()

    monkeypatch.setattr(requests, 'post', fake_post)
    exporter = _exporter(tmp_path)

    assert exporter.export(_result(cumulative)) is ExportResult.SUCCESS
    url, payload, headers = calls[0]
    assert url == 'http://metrics.test/api/metrics/'
    assert headers['X-API-Key'] == 'secret'
    assert payload['source'] == 'host-1'
    assert 'exported_at' in payload
    assert exporter.get_buffered_count() == 0


def test_http_exporter_retries_then_buffers(cumulative, tmp_path, monkeypatch) -> None:
    attempts = []

    def refused(url, **kwargs):
        attempts.append(url)
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(requests, 'post', refused)
    exporter = _exporter(tmp_path)

    assert exporter.export(_result(cumulative)) is ExportResult.FAILURE
    assert len(attempts) == 2
    assert exporter.get_buffered_count() == 1
    assert len(MetricsBuffer(str(tmp_path / 'buffer.json'))) == 1


def test_http_errors_are_not_retried(cumulative, tmp_path, monkeypatch) -> None:
    attempts = []

    def rejected(url, **kwargs):
        attempts.append(url)
        return FakeResponse(500)

    monkeypatch.setattr(requests, 'post', rejected)
    exporter = _exporter(tmp_path)

    assert exporter.export(_result(cumulative)) is ExportResult.FAILURE
    assert len(attempts) == 1


def test_buffered_snapshots_are_replayed(cumulative, tmp_path, monkeypatch) -> None:
    buffer = MetricsBuffer(str(tmp_path / 'buffer.json'))
    buffer.add({'source': 'host-1', 'resource_metrics': {}})
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json))
        return FakeResponse()

    monkeypatch.setattr(requests, 'post', fake_post)
    exporter = _exporter(tmp_path)
    assert exporter.get_buffered_count() == 1

    assert exporter.export(_result(cumulative)) is ExportResult.SUCCESS
    assert calls[0][0] == 'http://metrics.test/api/metrics/bulk'
    assert len(calls[0][1]['snapshots']) == 1
    assert calls[1][0] == 'http://metrics.test/api/metrics/'
    assert exporter.get_buffered_count() == 0
    assert exporter.force_flush()


def test_buffer_drops_oldest_when_full(tmp_path) -> None:
    buffer = MetricsBuffer(str(tmp_path / 'buffer.json'), max_size=2)
    for index in range(3):
        buffer.add({'index': index})

    assert [item['index'] for item in buffer.get_all()] == [1, 2]
    buffer.clear()
    assert len(MetricsBuffer(str(tmp_path / 'buffer.json'))) == 0


def test_health_check(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(requests, 'get', lambda url, **kwargs: FakeResponse(200))
    assert _exporter(tmp_path).health_check()

    def unreachable(url, **kwargs):
        raise requests.ConnectionError('down')

    monkeypatch.setattr(requests, 'get', unreachable)
    assert not _exporter(tmp_path).health_check()
