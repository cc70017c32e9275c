import logging
from typing import Iterable

import psutil

from metrics_sdk.callbacks import CallbackOptions, Observation
from metrics_sdk.source import MetricSource

logger = logging.getLogger(__name__)


class SystemCollector(MetricSource):
    """Host and process usage read with psutil when collected."""

    def __init__(self, per_cpu: bool = False):
        if isinstance(per_cpu, str):
            per_cpu = per_cpu.lower() in ('1', 'true', 'yes')
        self.per_cpu = per_cpu
        self._process = psutil.Process()
        # First call primes psutil's CPU counters; it always reports 0.0
        psutil.cpu_percent(interval=None, percpu=self.per_cpu)

    def observe_cpu(self, options: CallbackOptions) -> Iterable[Observation]:
        if self.per_cpu:
            for index, percent in enumerate(psutil.cpu_percent(interval=None, percpu=True)):
                yield Observation(percent, {'cpu': index})
        else:
            yield Observation(psutil.cpu_percent(interval=None))

    def observe_memory(self, options: CallbackOptions) -> Iterable[Observation]:
        memory = psutil.virtual_memory()
        yield Observation(memory.percent)

    def observe_process_cpu_time(self, options: CallbackOptions) -> Iterable[Observation]:
        times = self._process.cpu_times()
        yield Observation(times.user, {'state': 'user'})
        yield Observation(times.system, {'state': 'system'})

    def observe_threads(self, options: CallbackOptions) -> Iterable[Observation]:
        yield Observation(self._process.num_threads())

    def register(self, meter) -> None:
        meter.create_observable_gauge(
            'system.cpu.utilization', [self.observe_cpu], unit='%',
            description='CPU usage percentage',
        )
        meter.create_observable_gauge(
            'system.memory.utilization', [self.observe_memory], unit='%',
            description='Memory usage percentage',
        )
        meter.create_observable_counter(
            'process.cpu.time', [self.observe_process_cpu_time], unit='s',
            description='CPU time consumed by this process',
        )
        meter.create_observable_up_down_counter(
            'process.thread.count', [self.observe_threads], unit='{thread}',
            description='Threads of this process',
        )
        logger.debug("Registered system instruments (per_cpu=%s)", self.per_cpu)
