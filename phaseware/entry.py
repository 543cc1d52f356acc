"""Handler entries, the unit stored in a pipeline stack.

One :class:`HandlerEntry` is created per registration.  It carries the
handler, its phase/sub-position, its scope and a sequence number used
only to break ties between entries of the same phase position.
"""

import inspect
import logging
from typing import Any, Callable, Optional

from .phases import SubPosition
from .scope import Scope, ScopeMatch, ScopeMatcher

logger = logging.getLogger(__name__)

# Instrumentation wrappers expose the function they wrap under this
# attribute (``functools.wraps`` sets it automatically).
WRAPPED_ATTRIBUTE = "__wrapped__"

_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def unwrap_handler(handler: Any) -> Optional[Any]:
    """Return the handler wrapped by ``handler`` (one level), if any."""
    return getattr(handler, WRAPPED_ATTRIBUTE, None)


def is_error_handler(handler: Callable) -> bool:
    """True when ``handler`` takes ``(error, request, response, next)``.

    Arity is the only discriminator: four required positional parameters
    mark an error handler, anything else is a regular
    ``(request, response, next)`` handler.  Parameters with a default
    value do not count.
    """
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return False
    required = [
        p for p in signature.parameters.values()
        if p.kind in _POSITIONAL_KINDS and p.default is inspect.Parameter.empty
    ]
    return len(required) == 4


def describe_handler(handler: Any) -> str:
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None)
    return name or type(handler).__name__


class HandlerEntry:
    """A registered handler plus its ordering and scoping metadata.

    Attributes:
        handler: ``(request, response, next)`` or
            ``(error, request, response, next)`` callable.
        phase: Phase name, or ``None`` for unordered registrations.
        position: Sub-position within the phase.
        matcher: Compiled scope.
        route: The :class:`~phaseware.routing.Route` this entry
            dispatches to, for route entries.
        sequence: Registration order, assigned by the stack.
    """

    def __init__(
        self,
        handler: Callable,
        phase: Optional[str] = None,
        position: SubPosition = SubPosition.MAIN,
        scope: Scope = None,
        route=None,
    ):
        self.handler = handler
        self.phase = phase
        self.position = position
        self.matcher = ScopeMatcher(scope)
        self.route = route
        self.sequence: Optional[int] = None
        self.error_handler = is_error_handler(handler)
        self.name = describe_handler(handler)

    def __repr__(self) -> str:
        return (
            f"HandlerEntry({self.name}, phase={self.full_phase!r}, "
            f"scope={self.scope!r}, sequence={self.sequence})"
        )

    @property
    def scope(self) -> Scope:
        return self.matcher.scope

    @property
    def full_phase(self) -> Optional[str]:
        """Phase name as registered, e.g. ``"routes:before"``."""
        if self.phase is None:
            return None
        if self.position is SubPosition.MAIN:
            return self.phase
        return f"{self.phase}:{self.position.value}"

    def match(self, path: str) -> Optional[ScopeMatch]:
        if self.route is not None:
            return self.route.match(path)
        return self.matcher.match(path)

    def handle_request(self, request, response, next_: Callable) -> None:
        if self.error_handler:
            next_()
            return
        self._invoke(next_, request, response)

    def handle_error(self, error: Any, request, response, next_: Callable) -> None:
        if not self.error_handler:
            next_(error)
            return
        self._invoke(next_, error, request, response)

    def _invoke(self, next_: Callable, *args: Any) -> None:
        fired = False

        def proceed(err: Any = None) -> None:
            nonlocal fired
            fired = True
            next_(err)

        try:
            self.handler(*args, proceed)
        except Exception as exc:
            if fired:
                raise
            logger.debug("Handler %s raised %r, forwarding to error chain", self.name, exc)
            proceed(exc)
