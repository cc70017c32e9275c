"""
Observable callback invocation with a bounded wait.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from . import config
from .errors import CallbackError, CallbackTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """A single value reported by an observable callback."""
    value: float
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CallbackOptions:
    """Passed to every observable callback."""
    timeout_seconds: Optional[float] = None


Callback = Callable[[CallbackOptions], Iterable[Observation]]


def _invoke(callback: Callback, options: CallbackOptions):
    # Materialize inside the worker so generator callbacks are bounded too
    try:
        return list(callback(options) or ()), None
    except Exception as e:
        return None, e


class CallbackRunner:
    """
    Runs observable callbacks, each bounded by a timeout.

    Callbacks run on a small thread pool so a hung callback only faults its
    own instrument. A callback still running from an earlier timed out call
    is not submitted again; it faults at once until that call returns, so
    one hung callback holds at most one worker. A timeout of 0 or less runs
    callbacks inline without a bound.

    Args:
        timeout (float, optional): Seconds to wait per callback. Defaults to config.CALLBACK_TIMEOUT.
        max_workers (int, optional): Pool size. Defaults to config.CALLBACK_WORKERS.
    """

    def __init__(self, timeout: Optional[float] = None, max_workers: Optional[int] = None):
        self.timeout = config.CALLBACK_TIMEOUT if timeout is None else timeout
        self.max_workers = max_workers or config.CALLBACK_WORKERS
        self._executor = None
        self._lock = threading.Lock()
        self._shutdown = False
        # callback -> future of a call that outlived its timeout
        self._in_flight: Dict[Callback, Future] = {}

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix='metrics-callback',
                )
            return self._executor

    def run(self, callback: Callback, descriptor=None) -> List[Observation]:
        """
        Invoke one callback and return its observations.

        Raises:
            CallbackError: If the callback raised
            CallbackTimeoutError: If the callback did not return in time
        """
        options = CallbackOptions(timeout_seconds=self.timeout if self.timeout > 0 else None)

        if self.timeout <= 0 or self._shutdown:
            observations, error = _invoke(callback, options)
        else:
            name = getattr(callback, '__name__', callback)
            with self._lock:
                previous = self._in_flight.get(callback)
                if previous is not None and previous.done():
                    del self._in_flight[callback]
                    previous = None
            if previous is not None:
                raise CallbackTimeoutError(
                    f"Callback {name!r} is still running from an earlier collection",
                    descriptor,
                )

            future = self._get_executor().submit(_invoke, callback, options)
            try:
                observations, error = future.result(timeout=self.timeout)
            except FutureTimeoutError:
                if not future.cancel():
                    with self._lock:
                        self._in_flight[callback] = future
                raise CallbackTimeoutError(
                    f"Callback {name!r} did not return within {self.timeout}s",
                    descriptor,
                ) from None

        if error is not None:
            raise CallbackError(f"Callback raised: {error!r}", descriptor, cause=error)
        return observations

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True
            self._in_flight.clear()
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
