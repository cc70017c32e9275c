"""
Base class for pluggable metric sources used by the CLI.
"""
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class MetricSource(ABC):
    """
    Abstract base class for metric sources.

    A source registers its instruments on a meter once, and may record into
    its synchronous instruments on every collection round through tick().
    """

    scope_version = None

    @property
    def name(self) -> str:
        """
        Get the name of the source.

        Returns:
            str: The name of the source (class name by default)
        """
        return self.__class__.__name__

    @property
    def scope_name(self) -> str:
        """Instrumentation scope the source's instruments are grouped under."""
        return f"collectors.{self.name}"

    @abstractmethod
    def register(self, meter) -> None:
        """
        Create the source's instruments.

        Args:
            meter (Meter): Meter of the source's instrumentation scope
        """

    def tick(self) -> None:
        """Record measurements for the coming collection round. Does nothing by default."""

    def safe_tick(self) -> None:
        """Run tick(), logging instead of raising on failure."""
        try:
            self.tick()
        except Exception as e:
            logger.error("Error recording metrics from %s: %s", self.name, str(e))
