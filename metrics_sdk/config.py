"""
Configuration settings for the Metrics SDK.
"""
import os
import socket


def _float_list(raw: str):
    return tuple(float(part) for part in raw.split(',') if part.strip())


# Resource configuration
SERVICE_NAME = os.getenv('METRICS_SERVICE_NAME', 'unknown_service')
SOURCE_NAME = os.getenv('METRICS_SOURCE_NAME', socket.gethostname())

# Server configuration
SERVER_URL = os.getenv('METRICS_SERVER_URL', 'http://localhost:8000/')
API_KEY = os.getenv('METRICS_API_KEY', '')

# HTTP client configuration
REQUEST_TIMEOUT = int(os.getenv('METRICS_REQUEST_TIMEOUT', '30'))  # seconds
MAX_RETRIES = int(os.getenv('METRICS_MAX_RETRIES', '3'))
RETRY_DELAY = int(os.getenv('METRICS_RETRY_DELAY', '5'))  # seconds

# Buffer configuration
BUFFER_SIZE = int(os.getenv('METRICS_BUFFER_SIZE', '1000'))  # maximum number of snapshots to store
BUFFER_FILE = os.getenv('METRICS_BUFFER_FILE', 'metrics_buffer.json')  # temporary storage for failed exports

# Collection configuration
EXPORT_INTERVAL = float(os.getenv('METRICS_EXPORT_INTERVAL', '60'))  # seconds
EXPORT_TIMEOUT = float(os.getenv('METRICS_EXPORT_TIMEOUT', '30'))  # seconds
CALLBACK_TIMEOUT = float(os.getenv('METRICS_CALLBACK_TIMEOUT', '10'))  # seconds, per observable callback
CALLBACK_WORKERS = int(os.getenv('METRICS_CALLBACK_WORKERS', '4'))
COLLECT_MAX_WORKERS = int(os.getenv('METRICS_COLLECT_MAX_WORKERS', '1'))  # 1 collects instruments sequentially
TEMPORALITY_PREFERENCE = os.getenv('METRICS_TEMPORALITY_PREFERENCE', 'cumulative')
HISTOGRAM_BOUNDARIES = _float_list(os.getenv(
    'METRICS_HISTOGRAM_BOUNDARIES',
    '0,5,10,25,50,75,100,250,500,750,1000,2500,5000,7500,10000',
))

# Installs no-op instruments instead of the SDK when set
SDK_DISABLED = os.getenv('METRICS_SDK_DISABLED', 'false').lower() in ('1', 'true', 'yes')

# Logging configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
