"""Phase registry — the declared global order of request-handling phases.

Every application owns its own :class:`PhaseRegistry`.  Handlers are
registered into a phase (optionally ``"<phase>:before"`` or
``"<phase>:after"``) and the pipeline stack sorts them by the rank the
registry assigns.

Usage:
    registry = PhaseRegistry()
    registry.define("custom")                      # before "routes"
    registry.define(["initial", "metrics", "auth"])  # ordered merge
"""

import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .exceptions import InvalidPhaseError, PhaseOrderingConflict, UnknownPhaseError

logger = logging.getLogger(__name__)

DEFAULT_PHASES: Tuple[str, ...] = (
    "initial",
    "session",
    "auth",
    "parse",
    "routes",
    "files",
    "final",
)

# Unordered registrations (plain ``use()`` and routes) run as the first
# handlers of this phase, and single-name phase definitions land before it.
ANCHOR_PHASE = "routes"

_SUB_POSITION_RE = re.compile(r"^(.+):(before|after)$")


class SubPosition(str, Enum):
    """Placement of a handler within its phase."""

    BEFORE = "before"
    MAIN = "main"
    AFTER = "after"

    @property
    def rank(self) -> int:
        return _POSITION_RANKS[self]


# Rank 1 is reserved for unordered entries of the anchor phase.
UNORDERED_RANK = 1

_POSITION_RANKS = {
    SubPosition.BEFORE: 0,
    SubPosition.MAIN: 2,
    SubPosition.AFTER: 3,
}


def parse_phase_name(full_name: str) -> Tuple[str, SubPosition]:
    """Split ``"routes:before"`` into ``("routes", SubPosition.BEFORE)``.

    Names without a ``:before``/``:after`` suffix are returned as-is with
    ``SubPosition.MAIN``.
    """
    if not isinstance(full_name, str) or not full_name.strip():
        raise InvalidPhaseError(f"Phase name must be a non-empty string (got {full_name!r})")
    name = full_name.strip()
    m = _SUB_POSITION_RE.match(name)
    if m:
        return m.group(1), SubPosition(m.group(2))
    return name, SubPosition.MAIN


def _validate_names(names: Sequence[str]) -> List[str]:
    validated: List[str] = []
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise InvalidPhaseError(f"Phase name must be a non-empty string (got {name!r})")
        name = name.strip()
        if ":" in name:
            raise InvalidPhaseError(f"Phase name cannot contain ':' (got {name!r})")
        if name in validated:
            raise InvalidPhaseError(f"Duplicate phase name: {name}")
        validated.append(name)
    return validated


def merge_phase_names(current: Sequence[str], names: Sequence[str]) -> List[str]:
    """Zip-merge ``names`` into ``current`` preserving both orders.

    A name found only in ``names`` is inserted right after its
    predecessor in ``names`` (or at the very start when it is the first
    one).  A name present in both lists must not appear before the
    merge cursor, otherwise the two lists disagree and
    :class:`PhaseOrderingConflict` is raised.

    Returns:
        A new list; ``current`` is never modified.
    """
    merged = list(current)
    if not names:
        return merged

    first = names[0]
    if first in merged:
        cursor = merged.index(first)
    else:
        merged.insert(0, first)
        cursor = 0

    for previous, name in zip(names, names[1:]):
        if name in merged[cursor + 1:]:
            cursor = merged.index(name, cursor + 1)
            continue
        if name in merged:
            raise PhaseOrderingConflict(name, previous)
        cursor = merged.index(previous) + 1
        merged.insert(cursor, name)

    return merged


class PhaseRegistry:
    """Ordered, duplicate-free list of phase names owned by one pipeline.

    Attributes:
        anchor: Phase that hosts unordered registrations.
    """

    def __init__(
        self,
        phases: Optional[Iterable[str]] = None,
        anchor: str = ANCHOR_PHASE,
    ):
        names = _validate_names(list(DEFAULT_PHASES if phases is None else phases))
        if anchor not in names:
            raise InvalidPhaseError(f"Anchor phase {anchor!r} missing from {names}")
        self._names: List[str] = names
        self.anchor = anchor

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self):
        return iter(tuple(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"PhaseRegistry({self._names!r})"

    def index(self, name: str) -> int:
        try:
            return self._names.index(name)
        except ValueError:
            raise UnknownPhaseError(name) from None

    def define(self, name_or_names: Union[str, Sequence[str]]) -> Tuple[str, ...]:
        """Add one phase before the anchor, or merge an ordered list.

        Args:
            name_or_names: A single new phase name or an ordered list of
                names describing the desired relative order.

        Returns:
            The resulting phase order.

        Raises:
            PhaseOrderingConflict: The list contradicts the current order.
            InvalidPhaseError: A name is empty, contains ``:`` or repeats.
        """
        if isinstance(name_or_names, str):
            self.add_before(self.anchor, name_or_names)
        else:
            self.merge(name_or_names)
        return self.names

    def add_before(self, existing: str, name: str) -> None:
        (name,) = _validate_names([name])
        if name in self._names:
            logger.debug("Phase %s already defined", name)
            return
        position = self.index(existing)
        self._names.insert(position, name)
        logger.info("Defined phase %s before %s", name, existing)

    def merge(self, names: Sequence[str]) -> None:
        names = _validate_names(list(names))
        merged = merge_phase_names(self._names, names)
        if merged != self._names:
            logger.info("Merged phases %s -> %s", names, merged)
        self._names = merged

    def rank(self, phase: Optional[str], position: SubPosition = SubPosition.MAIN) -> Tuple[int, int]:
        """Sort rank of a ``(phase, position)`` pair.

        ``phase=None`` denotes an unordered registration, which ranks
        between the anchor's ``before`` and ``main`` handlers.
        """
        if phase is None:
            return self.index(self.anchor), UNORDERED_RANK
        return self.index(phase), position.rank
