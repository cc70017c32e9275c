"""
Base collector class: the collection capability every instrument exposes.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from .data import AggregationTemporality, DataPoint
from .errors import InstrumentCollectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionWindow:
    """The [start_time, end_time) interval of one collection cycle, in epoch ns."""
    start_time: int
    end_time: int

    def __post_init__(self):
        if self.start_time > self.end_time:
            raise ValueError(
                f"Collection window starts at {self.start_time} after it ends at {self.end_time}"
            )


@dataclass(frozen=True)
class CollectOutcome:
    """Points produced by one instrument, or the fault that prevented it."""
    points: Tuple[DataPoint, ...] = ()
    fault: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.fault is None


class Collector(ABC):
    """
    Abstract base class for everything the assembler can collect from.

    Subclasses implement:
    - descriptor: the immutable InstrumentDescriptor
    - collect(): produce the data points for one window
    """

    @property
    @abstractmethod
    def descriptor(self):
        """
        Get the descriptor of the instrument.

        Returns:
            InstrumentDescriptor: Identity of the instrument
        """

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    def collect(self, window: CollectionWindow,
                temporality: AggregationTemporality) -> CollectOutcome:
        """
        Collect data points for one window.

        Implementations may raise; safe_collect() turns exceptions into faults.
        State that temporality requires resetting must only be reset once the
        points have been produced successfully.

        Args:
            window (CollectionWindow): Interval being collected
            temporality (AggregationTemporality): Requested output temporality

        Returns:
            CollectOutcome: The collected points
        """

    def safe_collect(self, window: CollectionWindow,
                     temporality: AggregationTemporality) -> CollectOutcome:
        """
        Collect, catching any exception.

        Returns:
            CollectOutcome: The collected points, or an empty outcome with the fault
        """
        try:
            outcome = self.collect(window, temporality)
        except InstrumentCollectionError as e:
            if e.descriptor is None:
                e.descriptor = self.descriptor
            logger.warning("Error collecting metrics from %s: %s", self.name, e.message)
            return CollectOutcome(fault=e)
        except Exception as e:
            logger.warning("Error collecting metrics from %s: %s", self.name, str(e))
            return CollectOutcome(fault=e)

        if outcome.fault is not None:
            logger.warning("%s collection error: %s", self.name, outcome.fault)
            return CollectOutcome(fault=outcome.fault)
        return outcome
