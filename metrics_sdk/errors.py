"""
Error types raised and recorded during metric collection.

Two failure classes exist:
- instrument faults (InstrumentCollectionError and subclasses) are caught at
  the assembler boundary and recorded in CollectionResult.errors;
- structural faults (StructuralCollectionError) abort the whole cycle.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class CollectionErrorKind(Enum):
    """Closed set of reasons an instrument's collection can fail."""
    CALLBACK_FAILED = 'callback_failed'
    CALLBACK_TIMEOUT = 'callback_timeout'
    INVALID_VALUE = 'invalid_value'
    CONVERSION_FAILED = 'conversion_failed'
    INTERNAL = 'internal'


class MetricsSDKError(Exception):
    """Base class for all errors raised by the SDK."""


class InstrumentCollectionError(MetricsSDKError):
    """A fault isolated to a single instrument's collection."""

    kind = CollectionErrorKind.INTERNAL

    def __init__(self, message: str, descriptor=None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.cause = cause


class CallbackError(InstrumentCollectionError):
    """An observable callback raised."""
    kind = CollectionErrorKind.CALLBACK_FAILED


class CallbackTimeoutError(InstrumentCollectionError):
    """An observable callback did not return within the configured timeout."""
    kind = CollectionErrorKind.CALLBACK_TIMEOUT


class InvalidMeasurementError(InstrumentCollectionError):
    """A recorded or observed value failed validation."""
    kind = CollectionErrorKind.INVALID_VALUE


class TemporalityConversionError(InstrumentCollectionError):
    """Cumulative/delta conversion met data it cannot convert (e.g. a decreasing monotonic sum)."""
    kind = CollectionErrorKind.CONVERSION_FAILED


class StructuralCollectionError(MetricsSDKError):
    """The registry or grouping invariants are broken; the cycle's result cannot be trusted."""


class CollectionInProgressError(MetricsSDKError):
    """A reader could not start a cycle because its previous cycle is still running."""


class ReaderShutdownError(MetricsSDKError):
    """Collection was requested from a reader that has been shut down."""


@dataclass(frozen=True)
class CollectionError:
    """
    One entry of CollectionResult.errors.

    Attributes:
        kind: Why the instrument failed
        descriptor: Descriptor of the offending instrument, if known
        scope: Instrumentation scope the instrument belongs to, if known
        message: Human readable description
        cause: The underlying exception
    """
    kind: CollectionErrorKind
    descriptor: Any
    scope: Any
    message: str
    cause: Optional[BaseException] = None

    @classmethod
    def from_exception(cls, error: BaseException, descriptor=None, scope=None) -> 'CollectionError':
        if isinstance(error, InstrumentCollectionError):
            return cls(
                kind=error.kind,
                descriptor=error.descriptor if error.descriptor is not None else descriptor,
                scope=scope,
                message=error.message,
                cause=error.cause if error.cause is not None else error,
            )
        return cls(
            kind=CollectionErrorKind.INTERNAL,
            descriptor=descriptor,
            scope=scope,
            message=str(error) or error.__class__.__name__,
            cause=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'instrument': self.descriptor.name if self.descriptor is not None else None,
            'scope': self.scope.name if self.scope is not None else None,
            'message': self.message,
            'cause': repr(self.cause) if self.cause is not None else None,
        }
