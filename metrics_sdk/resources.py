"""
Resource and instrumentation scope identities.

Both are opaque, hashable keys as far as collection is concerned; they are
created once and never mutated.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from . import config
from .instrument import normalize_attributes


@dataclass(frozen=True)
class Resource:
    """Identity of the process or service producing telemetry."""
    _items: Tuple[Tuple[str, Any], ...] = ()
    schema_url: Optional[str] = None

    @classmethod
    def create(cls, attributes: Optional[Mapping[str, Any]] = None,
               schema_url: Optional[str] = None) -> 'Resource':
        return cls(normalize_attributes(attributes), schema_url)

    @classmethod
    def default(cls) -> 'Resource':
        return cls.create({
            'service.name': config.SERVICE_NAME,
            'host.name': config.SOURCE_NAME,
            'telemetry.sdk.name': 'metrics_sdk',
            'telemetry.sdk.language': 'python',
        })

    @property
    def attributes(self) -> Dict[str, Any]:
        return dict(self._items)

    def merge(self, other: 'Resource') -> 'Resource':
        """Return a resource holding both attribute sets; other's values win on conflict."""
        merged = self.attributes
        merged.update(other.attributes)
        return Resource.create(merged, other.schema_url or self.schema_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'attributes': {k: list(v) if isinstance(v, tuple) else v for k, v in self._items},
            'schema_url': self.schema_url,
        }


@dataclass(frozen=True)
class InstrumentationScope:
    """The library or module (name + version) that created a set of instruments."""
    name: str
    version: Optional[str] = None
    # Grouping identity is (name, version) only
    schema_url: Optional[str] = field(default=None, compare=False)

    @property
    def sort_key(self) -> Tuple[str, bool, str]:
        # A scope without a version sorts before one with an empty version
        return (self.name, self.version is not None, self.version or '')

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'version': self.version, 'schema_url': self.schema_url}
