import logging
import random
from typing import Iterable

from metrics_sdk.callbacks import CallbackOptions, Observation
from metrics_sdk.source import MetricSource

logger = logging.getLogger(__name__)


class DemoCollector(MetricSource):
    """
    Synthetic request traffic.

    Every round adds a random number of requests and records their latencies.
    With fail_every=N the queue-depth callback raises on every Nth round, which
    shows up as one entry in the result's errors while the other instruments
    are still reported.
    """

    def __init__(self, requests_per_round: int = 20, fail_every: int = 0, seed: int = None):
        self.requests_per_round = int(requests_per_round)
        self.fail_every = int(fail_every)
        self._random = random.Random(None if seed is None else int(seed))
        self._rounds = 0
        self._requests = None
        self._latency = None
        self._in_flight = None

    def observe_queue_depth(self, options: CallbackOptions) -> Iterable[Observation]:
        if self.fail_every and self._rounds % self.fail_every == 0:
            raise RuntimeError(f"queue depth unavailable in round {self._rounds}")
        return [Observation(self._random.randint(0, 50), {'queue': 'default'})]

    def register(self, meter) -> None:
        self._requests = meter.create_counter(
            'demo.requests', unit='{request}', description='Requests handled',
        )
        self._latency = meter.create_histogram(
            'demo.request.duration', unit='ms', description='Request latency',
        )
        self._in_flight = meter.create_up_down_counter(
            'demo.requests.in_flight', unit='{request}', description='Requests in progress',
        )
        meter.create_observable_gauge(
            'demo.queue.depth', [self.observe_queue_depth], unit='{item}',
            description='Items waiting in the work queue',
        )

    def tick(self) -> None:
        self._rounds += 1
        count = self._random.randint(0, self.requests_per_round)
        for _ in range(count):
            route = self._random.choice(('/', '/api/items', '/health'))
            self._in_flight.add(1, {'route': route})
            self._requests.add(1, {'route': route})
            self._latency.record(self._random.expovariate(1 / 40.0), {'route': route})
            self._in_flight.add(-1, {'route': route})
        logger.debug("Demo round %s recorded %s requests", self._rounds, count)
