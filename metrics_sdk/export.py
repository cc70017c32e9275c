"""
Exporters receiving CollectionResult snapshots from a reader.
"""
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO

import pytz
import requests
from retrying import retry

from . import config
from .data import CollectionResult

logger = logging.getLogger(__name__)


class ExportResult(Enum):
    SUCCESS = 0
    FAILURE = 1


class MetricExporter(ABC):
    """Receives one CollectionResult per cycle. Must not raise into the reader."""

    @abstractmethod
    def export(self, result: CollectionResult) -> ExportResult:
        """
        Export one snapshot.

        Args:
            result (CollectionResult): The snapshot to export

        Returns:
            ExportResult: SUCCESS or FAILURE
        """

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def shutdown(self) -> None:
        pass


class ConsoleMetricExporter(MetricExporter):
    """
    Writes every snapshot as JSON to a stream.

    Args:
        out (TextIO, optional): Destination stream. Defaults to sys.stdout.
        indent (int, optional): JSON indentation
    """

    def __init__(self, out: Optional[TextIO] = None, indent: Optional[int] = None):
        self.out = out or sys.stdout
        self.indent = indent

    def export(self, result: CollectionResult) -> ExportResult:
        logger.info(
            "DRY RUN: Would send %d scopes with %d errors",
            len(result.resource_metrics.scope_metrics), len(result.errors),
        )
        self.out.write(json.dumps(result.to_dict(), indent=self.indent) + '\n')
        self.out.flush()
        return ExportResult.SUCCESS


class MetricsBuffer:
    """Buffer for storing snapshots when the server is unavailable."""

    def __init__(self, buffer_file: Optional[str] = None, max_size: Optional[int] = None):
        """
        Initialize the metrics buffer.

        Args:
            buffer_file (str, optional): Path to the buffer file. Defaults to config.BUFFER_FILE.
            max_size (int, optional): Maximum snapshots kept; oldest are dropped first.
                Defaults to config.BUFFER_SIZE.
        """
        self.buffer_file = buffer_file or config.BUFFER_FILE
        self.buffer = deque(maxlen=max_size or config.BUFFER_SIZE)
        self._load_buffer()

    def add(self, payload: Dict[str, Any]) -> None:
        self.buffer.append(payload)
        self._save_buffer()

    def get_all(self) -> List[Dict[str, Any]]:
        return list(self.buffer)

    def clear(self) -> None:
        """Clear all snapshots from the buffer."""
        self.buffer.clear()
        self._save_buffer()

    def _save_buffer(self) -> None:
        """Save buffer to disk."""
        try:
            with open(self.buffer_file, 'w') as f:
                json.dump(list(self.buffer), f)
        except IOError as e:
            logger.error("Failed to save buffer: %s", str(e))

    def _load_buffer(self) -> None:
        """Load buffer from disk if it exists."""
        if os.path.exists(self.buffer_file):
            try:
                with open(self.buffer_file, 'r') as f:
                    self.buffer.extend(json.load(f))
            except (IOError, json.JSONDecodeError) as e:
                logger.error("Failed to load buffer: %s", str(e))

    def __len__(self) -> int:
        return len(self.buffer)


class HttpMetricExporter(MetricExporter):
    """
    Posts JSON snapshots to a metrics server.

    Connection errors and timeouts are retried; snapshots that still fail are
    buffered on disk and replayed before the next export.
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        api_key: Optional[str] = None,
        source_name: Optional[str] = None,
        buffer_file: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[int] = None,
        request_timeout: Optional[int] = None,
    ):
        """
        Initialize the exporter.

        Args:
            server_url (str, optional): URL of the metrics server. Defaults to config.SERVER_URL.
            api_key (str, optional): API key for authentication. Defaults to config.API_KEY.
            source_name (str, optional): Source name sent with every snapshot. Defaults to config.SOURCE_NAME.
            buffer_file (str, optional): Path to the buffer file. Defaults to config.BUFFER_FILE.
            max_retries (int, optional): Maximum number of attempts. Defaults to config.MAX_RETRIES.
            retry_delay (int, optional): Delay between retries in seconds. Defaults to config.RETRY_DELAY.
            request_timeout (int, optional): Request timeout in seconds. Defaults to config.REQUEST_TIMEOUT.
        """
        self.server_url = server_url or config.SERVER_URL
        self.api_key = api_key if api_key is not None else config.API_KEY
        self.source_name = source_name or config.SOURCE_NAME
        self.max_retries = max_retries or config.MAX_RETRIES
        self.retry_delay = config.RETRY_DELAY if retry_delay is None else retry_delay
        self.request_timeout = request_timeout or config.REQUEST_TIMEOUT
        self.buffer = MetricsBuffer(buffer_file)

    @property
    def metrics_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/api/metrics/"

    @property
    def bulk_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/api/metrics/bulk"

    def _headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'X-API-Key': self.api_key,
        }

    def _retry_if_connection_error(self, exception: Exception) -> bool:
        """Return True if we should retry (in this case when it's a connection error)."""
        return isinstance(exception, (requests.ConnectionError, requests.Timeout))

    def _post(self, url: str, payload: Dict[str, Any]) -> bool:
        @retry(
            retry_on_exception=self._retry_if_connection_error,
            stop_max_attempt_number=self.max_retries,
            wait_fixed=self.retry_delay * 1000  # milliseconds
        )
        def _send_request():
            response = requests.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.request_timeout
            )
            response.raise_for_status()
            return True

        try:
            return _send_request()
        except requests.exceptions.RequestException as e:
            logger.error("Failed to send metrics after %s retries: %s", self.max_retries, str(e))
            return False

    def _flush_buffer(self) -> None:
        if len(self.buffer) == 0:
            return
        buffered = self.buffer.get_all()
        if self._post(self.bulk_url, {'snapshots': buffered}):
            self.buffer.clear()
            logger.info("Successfully sent %d buffered snapshots", len(buffered))

    def build_payload(self, result: CollectionResult) -> Dict[str, Any]:
        payload = result.to_dict()
        payload['source'] = self.source_name
        payload['exported_at'] = datetime.now(pytz.UTC).isoformat()
        return payload

    def export(self, result: CollectionResult) -> ExportResult:
        self._flush_buffer()
        payload = self.build_payload(result)
        if self._post(self.metrics_url, payload):
            logger.debug("Successfully sent metrics snapshot")
            return ExportResult.SUCCESS
        self.buffer.add(payload)
        logger.warning("Failed to send metrics snapshot, added to buffer")
        return ExportResult.FAILURE

    def force_flush(self, timeout: Optional[float] = None) -> bool:
        self._flush_buffer()
        return len(self.buffer) == 0

    def health_check(self) -> bool:
        """
        Check if the metrics server is accessible.

        Returns:
            bool: True if server is accessible, False otherwise
        """
        try:
            response = requests.get(
                f"{self.server_url.rstrip('/')}/health",
                headers={'X-API-Key': self.api_key},
                timeout=self.request_timeout
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def get_buffered_count(self) -> int:
        return len(self.buffer)
