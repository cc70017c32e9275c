"""
Instrument identity and measurement attribute handling.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .data import DataPointType

AttributesKey = Tuple[Tuple[str, Any], ...]

_PRIMITIVES = (str, bool, int, float)


class InstrumentKind(Enum):
    COUNTER = 'counter'
    UP_DOWN_COUNTER = 'up_down_counter'
    HISTOGRAM = 'histogram'
    OBSERVABLE_COUNTER = 'observable_counter'
    OBSERVABLE_UP_DOWN_COUNTER = 'observable_up_down_counter'
    OBSERVABLE_GAUGE = 'observable_gauge'

    @property
    def is_observable(self) -> bool:
        return self in _OBSERVABLE_KINDS

    @property
    def is_monotonic(self) -> bool:
        return self in _MONOTONIC_KINDS

    @property
    def data_point_type(self) -> DataPointType:
        return _DATA_POINT_TYPES[self]


_OBSERVABLE_KINDS = frozenset({
    InstrumentKind.OBSERVABLE_COUNTER,
    InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER,
    InstrumentKind.OBSERVABLE_GAUGE,
})

_MONOTONIC_KINDS = frozenset({
    InstrumentKind.COUNTER,
    InstrumentKind.OBSERVABLE_COUNTER,
})

_DATA_POINT_TYPES = {
    InstrumentKind.COUNTER: DataPointType.SINGULAR,
    InstrumentKind.UP_DOWN_COUNTER: DataPointType.SINGULAR,
    InstrumentKind.HISTOGRAM: DataPointType.HISTOGRAM,
    InstrumentKind.OBSERVABLE_COUNTER: DataPointType.SINGULAR,
    InstrumentKind.OBSERVABLE_UP_DOWN_COUNTER: DataPointType.SINGULAR,
    InstrumentKind.OBSERVABLE_GAUGE: DataPointType.SINGULAR,
}


@dataclass(frozen=True)
class InstrumentDescriptor:
    """Immutable identity of an instrument, fixed at registration time."""
    name: str
    kind: InstrumentKind
    unit: str = ''
    description: str = ''

    @property
    def identity(self) -> Tuple[str, InstrumentKind, str, str]:
        """Key under which two descriptors are the same instrument (names are case-insensitive)."""
        return (self.name.lower(), self.kind, self.unit, self.description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'unit': self.unit,
            'description': self.description,
        }


def _normalize_value(key: str, value: Any) -> Any:
    if isinstance(value, _PRIMITIVES):
        return value
    if isinstance(value, (list, tuple)):
        items = tuple(value)
        if not items:
            return items
        # bool is an int subclass; homogeneity is judged on the exact type
        # except that int and float may mix.
        first = type(items[0])
        for item in items:
            if not isinstance(item, _PRIMITIVES):
                raise ValueError(f"Attribute {key!r} contains a non-primitive element: {item!r}")
            same = type(item) is first or (
                first in (int, float) and type(item) in (int, float)
            )
            if not same:
                raise ValueError(f"Attribute {key!r} must be a homogeneous sequence")
        return items
    raise ValueError(
        f"Attribute {key!r} has unsupported type {type(value).__name__}; "
        f"expected str, bool, int, float or a homogeneous sequence of them"
    )


def normalize_attributes(attributes: Optional[Mapping[str, Any]]) -> AttributesKey:
    """
    Validate attributes and return a hashable key for the attribute set.

    Raises:
        ValueError: If a key is not a non-empty string or a value is not allowed
    """
    if not attributes:
        return ()
    items = []
    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            raise ValueError(f"Attribute keys must be non-empty strings, got {key!r}")
        items.append((key, _normalize_value(key, value)))
    return tuple(sorted(items, key=lambda item: item[0]))


def attributes_from_key(key: AttributesKey) -> Dict[str, Any]:
    return dict(key)
