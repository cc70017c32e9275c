#!/usr/bin/env python3
"""
CLI application that registers metric sources, runs collection rounds and
exports every snapshot.
"""
import argparse
import importlib
import inspect
import json
import logging
import os
import pkgutil
import sys
import time
from typing import Any, Dict, List, Optional, Tuple, Type

from metrics_sdk import config as sdk_config
from metrics_sdk.errors import MetricsSDKError
from metrics_sdk.export import ConsoleMetricExporter, ExportResult, HttpMetricExporter
from metrics_sdk.meter import MeterProvider
from metrics_sdk.reader import InMemoryMetricReader
from metrics_sdk.resources import Resource
from metrics_sdk.source import MetricSource
from metrics_sdk.temporality import TemporalityPolicy

# Setup logging
logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Registry for dynamically discovering metric sources.
    This eliminates the need for main.py to have specific knowledge of sources.
    """

    def __init__(self):
        self.sources = {}

    def discover_sources(self, package_name: str = 'collectors'):
        """
        Discover all classes under the package that inherit from MetricSource.
        """
        try:
            package = importlib.import_module(package_name)
        except ImportError as e:
            logger.warning("Could not import source package %s: %s", package_name, e)
            return

        for module_name in self._find_source_modules(package):
            try:
                logger.debug("Attempting to import module: %s", module_name)
                module = importlib.import_module(module_name)
                self._register_sources_from_module(module)
            except ImportError as e:
                logger.warning("Could not import source module %s: %s", module_name, e)

    def _find_source_modules(self, package) -> List[str]:
        """
        Find all modules in the package that might contain sources.
        """
        modules = []
        prefix = package.__name__ + "."

        for _, name, is_pkg in pkgutil.iter_modules(package.__path__, prefix):
            if is_pkg:
                try:
                    subpackage = importlib.import_module(name)
                    modules.extend(self._find_source_modules(subpackage))
                except ImportError as e:
                    logger.warning("Could not import source package %s: %s", name, e)
            else:
                modules.append(name)

        return modules

    def _register_sources_from_module(self, module):
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if issubclass(obj, MetricSource) and obj is not MetricSource and not inspect.isabstract(obj):
                source_type = obj.__name__.replace('Collector', '').lower()
                self.sources[source_type] = obj
                logger.info("Registered source: %s from class %s", source_type, obj.__name__)

    def get_source_class(self, source_type: str) -> Optional[Type[MetricSource]]:
        return self.sources.get(source_type.lower())

    def get_available_sources(self) -> List[str]:
        return sorted(self.sources)


def setup_logging(log_level: str) -> None:
    """
    Setup logging with the specified log level.

    Args:
        log_level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_collector_spec(spec: str) -> Tuple[str, Dict[str, Any]]:
    """
    Parse a source specification string into a source type and parameters.

    Args:
        spec (str): Source specification in format "type:param1=value1,param2=value2"

    Returns:
        tuple: (source_type, parameters_dict)
    """
    parts = spec.split(':', 1)
    source_type = parts[0].strip().lower()
    if source_type.endswith('collector'):
        source_type = source_type[:-len('collector')]

    params = {}
    if len(parts) > 1 and parts[1].strip():
        for param in parts[1].strip().split(','):
            if '=' in param:
                key, value = param.split('=', 1)
                params[key.strip()] = value.strip()

    return source_type, params


def instantiate_source(registry: SourceRegistry, source_type: str,
                       params: Dict[str, Any]) -> Optional[MetricSource]:
    source_class = registry.get_source_class(source_type)
    if not source_class:
        available = registry.get_available_sources()
        logger.error("Source type not found: %s. Available sources: %s",
                     source_type, available if available else "None discovered")
        return None
    try:
        return source_class(**params)
    except Exception as e:
        logger.error("Error instantiating source %s: %s", source_type, e)
        return None


def load_config_from_file(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Args:
        config_file (str): Path to the JSON config file

    Returns:
        dict: Configuration dictionary with argument names as keys
    """
    if not os.path.exists(config_file):
        logger.error("Config file not found: %s", config_file)
        return {}

    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
            logger.debug("Loaded configuration from %s: %s", config_file, config)
            return config
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Error parsing config file %s: %s", config_file, e)
        return {}


def apply_config_defaults(parser: argparse.ArgumentParser, config: Dict[str, Any]) -> None:
    """
    Use configuration file values as the parser's defaults.
    Command line arguments take precedence over config file values.

    Args:
        parser (argparse.ArgumentParser): Parser to update
        config (dict): Configuration keyed by argument name (dashes or underscores)
    """
    parser.set_defaults(**{key.replace('-', '_'): value for key, value in config.items()})


def build_exporter(args: argparse.Namespace):
    if args.dry_run:
        return ConsoleMetricExporter(indent=2 if args.pretty else None)
    return HttpMetricExporter(
        server_url=args.server_url,
        api_key=args.api_key,
        source_name=args.source_name,
        buffer_file=args.buffer_file,
        max_retries=args.max_retries,
        retry_delay=args.retry_delay,
        request_timeout=args.request_timeout,
    )


def build_parser(early_parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Collect and export metrics from pluggable sources.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        parents=[early_parser],
    )
    parser.add_argument('--interval', type=float, default=sdk_config.EXPORT_INTERVAL,
                        help='Interval between collections in seconds')
    parser.add_argument('--count', type=int, default=0,
                        help='Number of collection rounds (0 for infinite)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Do not send metrics to server, print them')
    parser.add_argument('--pretty', action='store_true',
                        help='Indent JSON output in dry-run mode')
    parser.add_argument('--collectors', type=str, nargs='*',
                        help='Sources to run in format "type:param1=value1,param2=value2"')
    parser.add_argument('--temporality', type=str, default=sdk_config.TEMPORALITY_PREFERENCE,
                        choices=['cumulative', 'delta', 'lowmemory'],
                        help='Aggregation temporality preference')
    parser.add_argument('--callback-timeout', type=float, default=sdk_config.CALLBACK_TIMEOUT,
                        help='Seconds each observable callback may take')
    parser.add_argument('--service-name', type=str, default=sdk_config.SERVICE_NAME,
                        help='service.name of the resource')

    # Exporter configuration
    parser.add_argument('--server-url', type=str, default=sdk_config.SERVER_URL,
                        help='URL of the metrics server')
    parser.add_argument('--api-key', type=str, default=sdk_config.API_KEY,
                        help='API key for authentication')
    parser.add_argument('--source-name', type=str, default=sdk_config.SOURCE_NAME,
                        help='Source name for metrics')
    parser.add_argument('--buffer-file', type=str, default=sdk_config.BUFFER_FILE,
                        help='Path to the buffer file')
    parser.add_argument('--max-retries', type=int, default=sdk_config.MAX_RETRIES,
                        help='Maximum number of retries')
    parser.add_argument('--retry-delay', type=int, default=sdk_config.RETRY_DELAY,
                        help='Delay between retries in seconds')
    parser.add_argument('--request-timeout', type=int, default=sdk_config.REQUEST_TIMEOUT,
                        help='Request timeout in seconds')
    return parser


def run_rounds(args: argparse.Namespace, sources: List[MetricSource],
               reader: InMemoryMetricReader, exporter) -> int:
    """
    Run collection rounds until args.count is reached or interrupted.

    Returns:
        int: Number of rounds whose export failed
    """
    failed_exports = 0
    round_count = 0
    next_collection_time = time.time()
    try:
        while args.count == 0 or round_count < args.count:
            if time.time() > next_collection_time:
                next_collection_time = time.time()

            round_count += 1
            logger.info("Collection round %s%s", round_count,
                        ("/%s" % args.count if args.count > 0 else ""))

            for source in sources:
                source.safe_tick()

            collection_start_time = time.time()
            try:
                result = reader.collect()
            except MetricsSDKError as e:
                logger.error("Collection round %s aborted: %s", round_count, e)
                failed_exports += 1
            else:
                for error in result.errors:
                    logger.warning("Partial data: %s", error.message)
                if exporter.export(result) is not ExportResult.SUCCESS:
                    failed_exports += 1
            logger.debug("Collection took %.2f seconds", time.time() - collection_start_time)

            if args.count == 0 or round_count < args.count:
                next_collection_time += args.interval
                wait_time = next_collection_time - time.time()
                if wait_time > 0:
                    logger.info("Waiting %.2f seconds until next collection...", wait_time)
                    time.sleep(wait_time)
                else:
                    logger.warning("Collection took longer than interval. Next collection will start immediately.")
    except KeyboardInterrupt:
        logger.info("Collection interrupted by user.")
    return failed_exports


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments, using a --config-file's values as defaults.

    Args:
        argv (list, optional): Arguments to parse. Defaults to sys.argv[1:].

    Returns:
        argparse.Namespace: The parsed arguments
    """
    early_parser = argparse.ArgumentParser(add_help=False)
    early_parser.add_argument('--config-file', type=str,
                              help='Path to JSON configuration file')
    early_parser.add_argument('--log-level', type=str, default=sdk_config.LOG_LEVEL,
                              choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                              help='Log level')

    early_args, _ = early_parser.parse_known_args(argv)
    setup_logging(early_args.log_level)

    parser = build_parser(early_parser)
    if early_args.config_file:
        logger.info("Loading configuration from %s", early_args.config_file)
        apply_config_defaults(parser, load_config_from_file(early_args.config_file))

    args = parser.parse_args(argv)
    if not args.collectors:
        parser.error("the --collectors argument is required either on command line or in config file")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to parse arguments and run the sources."""
    args = parse_arguments(argv)

    registry = SourceRegistry()
    registry.discover_sources()
    logger.info("Available sources: %s", registry.get_available_sources())

    sources = []
    for spec in args.collectors:
        source_type, params = parse_collector_spec(spec)
        source = instantiate_source(registry, source_type, params)
        if source is not None:
            sources.append(source)
    if not sources:
        logger.error("No usable sources. Use --collectors to specify the sources to run.")
        return 1

    reader = InMemoryMetricReader(TemporalityPolicy.from_preference(args.temporality))
    provider = MeterProvider(
        resource=Resource.default().merge(Resource.create({'service.name': args.service_name})),
        metric_reader=reader,
        callback_timeout=args.callback_timeout,
    )
    for source in sources:
        source.register(provider.get_meter(source.scope_name, source.scope_version))

    exporter = build_exporter(args)
    if isinstance(exporter, HttpMetricExporter) and not exporter.health_check():
        logger.warning("Metrics server is not accessible. Snapshots will be buffered.")

    failed_exports = run_rounds(args, sources, reader, exporter)

    provider.shutdown()
    if isinstance(exporter, HttpMetricExporter) and exporter.get_buffered_count() > 0:
        logger.info("There are %s snapshots in the buffer.", exporter.get_buffered_count())
    exporter.shutdown()

    logger.info("Collection completed.")
    return 1 if failed_exports else 0


if __name__ == "__main__":
    sys.exit(main())
