"""Routes and the continuation-passing router.

:class:`Router` walks a snapshot of its :class:`~phaseware.stack.PipelineStack`
one entry at a time.  Each handler receives a ``next`` continuation;
the following matching entry runs only when the previous one calls it.
An error passed to ``next`` skips every entry that is not an error
handler until one consumes it or the stack is exhausted.

Two string values of ``next`` are reserved: ``"route"`` skips the
remaining handlers of the current route, ``"router"`` leaves the router.
"""

import logging
from typing import Any, Callable, List, Optional, Tuple

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule

from .entry import HandlerEntry
from .exceptions import InvalidHandlerError
from .scope import ScopeMatch
from .stack import PipelineStack

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")

SKIP_ROUTE = "route"
SKIP_ROUTER = "router"


class ContinuationLoop:
    """The ``next`` continuation of one handler chain.

    ``step(err, proceed)`` advances the chain by one handler.  A
    continuation fired while a step is still running is queued and picked
    up by the loop once the handler returns, so a long chain of
    synchronous handlers runs in constant stack depth.  A continuation
    fired later (after the handler returned) starts the loop again from
    the caller's frame.

    An exception raised by a handler after it fired its continuation is
    held until the rest of the chain has run, then re-raised.
    """

    def __init__(self, step: Callable[[Any, Callable], None]):
        self._step = step
        self._running = False
        self._queued: List[Any] = []

    def __call__(self, err: Any = None) -> None:
        if self._running:
            self._queued.append(err)
            return
        self._run(err)

    def _run(self, err: Any) -> None:
        raised: Optional[BaseException] = None
        self._running = True
        try:
            while True:
                try:
                    self._step(err, self)
                except Exception as exc:
                    if not self._queued:
                        raise
                    if raised is None:
                        raised = exc
                if not self._queued:
                    break
                err = self._queued.pop(0)
        finally:
            self._running = False
        if raised is not None:
            raise raised


class Route:
    """Handlers bound to one path, dispatched by HTTP method.

    The path uses Werkzeug rule syntax, e.g. ``/items/<int:item_id>``;
    converter values end up in ``request.params``.
    """

    def __init__(self, path: str):
        if not isinstance(path, str) or not path.startswith("/"):
            raise ValueError(f"Route path must start with '/' (got {path!r})")
        self.path = path
        self._map = Map(
            [Rule(path, endpoint=path)],
            strict_slashes=False,
            merge_slashes=False,
        )
        self._handlers: List[Tuple[Optional[str], HandlerEntry]] = []

    def __repr__(self) -> str:
        return f"Route({self.path!r}, methods={sorted(self.methods)})"

    @property
    def methods(self) -> set:
        return {verb or "*" for verb, _ in self._handlers}

    def add(self, method: Optional[str], *handlers: Callable) -> "Route":
        """Attach handlers for ``method`` (``None`` = every method)."""
        verb = method.upper() if method else None
        for handler in handlers:
            if not callable(handler):
                raise InvalidHandlerError(
                    f"Route.{(method or 'all').lower()}() requires callables "
                    f"(got {type(handler).__name__})"
                )
            self._handlers.append((verb, HandlerEntry(handler)))
        return self

    def all(self, *handlers: Callable) -> "Route":
        return self.add(None, *handlers)

    def get(self, *handlers: Callable) -> "Route":
        return self.add("GET", *handlers)

    def post(self, *handlers: Callable) -> "Route":
        return self.add("POST", *handlers)

    def put(self, *handlers: Callable) -> "Route":
        return self.add("PUT", *handlers)

    def patch(self, *handlers: Callable) -> "Route":
        return self.add("PATCH", *handlers)

    def delete(self, *handlers: Callable) -> "Route":
        return self.add("DELETE", *handlers)

    def options(self, *handlers: Callable) -> "Route":
        return self.add("OPTIONS", *handlers)

    def head(self, *handlers: Callable) -> "Route":
        return self.add("HEAD", *handlers)

    def match(self, path: str) -> Optional[ScopeMatch]:
        adapter = self._map.bind("localhost")
        try:
            _, params = adapter.match(path)
        except HTTPException:
            return None
        return ScopeMatch(consumed="", sub_path=path, params=params)

    def _effective_method(self, method: str) -> str:
        method = method.upper()
        if method == "HEAD" and not any(verb == "HEAD" for verb, _ in self._handlers):
            return "GET"
        return method

    def handles_method(self, method: str) -> bool:
        method = self._effective_method(method)
        return any(verb is None or verb == method for verb, _ in self._handlers)

    def dispatch(self, request, response, done: Callable) -> None:
        method = self._effective_method(request.method)
        handlers = tuple(self._handlers)
        index = 0

        def step(err: Any, proceed: Callable) -> None:
            nonlocal index
            if err == SKIP_ROUTE:
                done()
                return
            if err == SKIP_ROUTER:
                done(err)
                return

            while index < len(handlers):
                verb, entry = handlers[index]
                index += 1
                if verb is None or verb == method:
                    break
            else:
                done(err)
                return

            if err is not None:
                entry.handle_error(err, request, response, proceed)
            else:
                entry.handle_request(request, response, proceed)

        ContinuationLoop(step)()


class Router:
    """Walks the sorted stack, applying scopes along the way."""

    def __init__(self, stack: PipelineStack):
        self.stack = stack

    def route(self, path: str) -> Route:
        """Create a route and register it as an unordered entry."""
        route = Route(path)
        self.stack.register(HandlerEntry(route.dispatch, route=route))
        return route

    def handle(self, request, response, done: Callable) -> None:
        """Dispatch ``request`` through the current stack snapshot.

        ``done(err)`` is invoked once the stack is exhausted, with the
        pending error if nothing consumed it.
        """
        entries = self.stack.sorted_view()
        parent_base = request.base_path
        index = 0
        removed = ""
        slash_added = False

        def step(err: Any, proceed: Callable) -> None:
            nonlocal index, removed, slash_added

            # Undo the path rewrite of the entry that just ran.
            if slash_added:
                request.sub_path = request.sub_path[1:]
                slash_added = False
            if removed:
                request.base_path = parent_base
                request.sub_path = removed + request.sub_path
                removed = ""

            if err == SKIP_ROUTER:
                done()
                return
            if err == SKIP_ROUTE:
                err = None

            path = request.sub_path
            while index < len(entries):
                entry = entries[index]
                index += 1
                match = entry.match(path)
                if match is None:
                    continue
                if entry.route is not None:
                    if err is not None or not entry.route.handles_method(request.method):
                        continue
                break
            else:
                done(err)
                return

            request.params = dict(match.params)
            if match.consumed:
                removed = match.consumed
                sub_path = match.sub_path
                if not sub_path.startswith("/"):
                    sub_path = "/" + sub_path
                    slash_added = True
                request.sub_path = sub_path
                request.base_path = parent_base + removed.rstrip("/")

            if err is not None:
                entry.handle_error(err, request, response, proceed)
            else:
                entry.handle_request(request, response, proceed)

        ContinuationLoop(step)()
