"""
Registry of active instruments grouped by instrumentation scope.
"""
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .collector import Collector
from .errors import StructuralCollectionError

logger = logging.getLogger(__name__)


class InstrumentRegistry:
    """
    Thread-safe mapping of instrumentation scope to its instruments.

    Instruments keep their registration order within a scope; scopes are
    returned ordered by (name, version).
    """

    def __init__(self):
        self._scopes: Dict[object, List[Collector]] = {}
        self._lock = threading.Lock()

    def register(self, scope, instrument: Collector) -> None:
        """
        Register an instrument under a scope.

        Args:
            scope (InstrumentationScope): Scope the instrument was created by
            instrument (Collector): The instrument to register
        """
        with self._lock:
            self._scopes.setdefault(scope, []).append(instrument)
        logger.debug("Registered instrument %s under scope %s", instrument.descriptor.name, scope.name)

    def unregister(self, scope, instrument: Collector) -> None:
        with self._lock:
            instruments = self._scopes.get(scope, [])
            if instrument in instruments:
                instruments.remove(instrument)
            if not instruments:
                self._scopes.pop(scope, None)

    def find(self, scope, descriptor) -> Optional[Collector]:
        """Return the instrument registered under scope with the same identity, or None."""
        with self._lock:
            for instrument in self._scopes.get(scope, ()):
                if instrument.descriptor.identity == descriptor.identity:
                    return instrument
        return None

    def snapshot(self) -> List[Tuple[object, List[Collector]]]:
        """Return (scope, instruments) pairs ordered by scope name then version."""
        with self._lock:
            items = [(scope, list(instruments)) for scope, instruments in self._scopes.items()]
        return sorted(items, key=lambda item: item[0].sort_key)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(instruments) for instruments in self._scopes.values())


def validate_snapshot(snapshot: List[Tuple[object, List[Collector]]]) -> None:
    """
    Check the grouping invariants collection relies on.

    Raises:
        StructuralCollectionError: On a duplicate scope, an entry without the
            collect capability, or two instruments with the same identity in one scope
    """
    seen_scopes = set()
    for scope, instruments in snapshot:
        if scope in seen_scopes:
            raise StructuralCollectionError(f"Scope {scope!r} is registered twice")
        seen_scopes.add(scope)

        identities = set()
        for instrument in instruments:
            if not callable(getattr(instrument, 'safe_collect', None)):
                raise StructuralCollectionError(
                    f"{instrument!r} in scope {scope.name!r} does not expose a collect capability"
                )
            identity = instrument.descriptor.identity
            if identity in identities:
                raise StructuralCollectionError(
                    f"Instrument {instrument.descriptor.name!r} is registered twice in scope {scope.name!r}"
                )
            identities.add(identity)
