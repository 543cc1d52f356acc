"""Ordered handler entries backing dispatch.

Every mutation re-sorts the whole stack synchronously by
``(phase index, position rank, sequence)``.  The sequence number is part
of the key, so entries sharing a phase position keep their registration
order no matter how many times the stack is re-sorted.
"""

import itertools
import logging
from typing import Any, Iterator, List, Optional, Tuple

from .entry import HandlerEntry, unwrap_handler
from .phases import PhaseRegistry

logger = logging.getLogger(__name__)


class PipelineStack:
    """Ordered collection of :class:`HandlerEntry` for one pipeline.

    Attributes:
        registry: Phase registry providing the phase order.
    """

    def __init__(self, registry: PhaseRegistry):
        self.registry = registry
        self._entries: List[HandlerEntry] = []
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HandlerEntry]:
        return iter(self.sorted_view())

    def sort_key(self, entry: HandlerEntry) -> Tuple[int, int, int]:
        phase_index, position_rank = self.registry.rank(entry.phase, entry.position)
        return phase_index, position_rank, entry.sequence

    def register(self, entry: HandlerEntry) -> HandlerEntry:
        """Append ``entry`` and re-sort.

        The phase is resolved before the stack is touched, so an unknown
        phase leaves the stack unchanged.

        Raises:
            UnknownPhaseError: ``entry.phase`` is not a defined phase.
        """
        self.registry.rank(entry.phase, entry.position)
        entry.sequence = next(self._sequence)
        self._entries.append(entry)
        self.resort()
        logger.debug("Registered %r", entry)
        return entry

    def resort(self) -> None:
        """Recompute the total order from the current phase registry."""
        keyed = [(self.sort_key(entry), entry) for entry in self._entries]
        keyed.sort(key=lambda pair: pair[0])
        self._entries[:] = [entry for _, entry in keyed]

    def sorted_view(self) -> Tuple[HandlerEntry, ...]:
        """Immutable snapshot of the current dispatch order."""
        return tuple(self._entries)

    def find(self, handler: Any) -> Optional[HandlerEntry]:
        """Entry registered for ``handler``.

        Every entry is tried by identity first; only then are entries
        whose handler wraps ``handler`` (one ``__wrapped__`` level)
        considered.
        """
        for entry in self._entries:
            if entry.handler is handler:
                return entry
        for entry in self._entries:
            if unwrap_handler(entry.handler) is handler:
                return entry
        return None

    def describe(self) -> List[dict]:
        return [
            {
                "name": entry.name,
                "phase": entry.full_phase,
                "scope": entry.scope,
                "sequence": entry.sequence,
                "route": entry.route.path if entry.route is not None else None,
            }
            for entry in self._entries
        ]
