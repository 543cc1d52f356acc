"""Application — phase-ordered middleware pipeline with a WSGI front.

Handlers are registered into named phases instead of being appended in
call order.  Any structural change (a new handler, a new route, a phase
definition) re-sorts the pipeline stack, so the dispatch order is always
fully resolved between requests.

Usage:
    app = Application()

    app.middleware("initial", log_request)
    app.middleware("auth", "/admin", require_admin)
    app.middleware("routes:after", ["/api", re.compile(r"^/v\\d+")], audit)

    @app.get("/items/<int:item_id>")
    def show_item(request, response, next_):
        response.send_json({"id": request.params["item_id"]})

    app.use(error_page)                             # unordered, first in "routes"
    app.middleware("routes", "/admin", admin_app)   # mounted sub-app
"""

import logging
from typing import Any, Callable, Optional, Sequence, Union

from werkzeug.exceptions import HTTPException, InternalServerError, NotFound

from .config import ConfigLoader
from .entry import HandlerEntry
from .exceptions import InvalidHandlerError
from .mount import MountAdapter
from .phases import PhaseRegistry, SubPosition, parse_phase_name
from .routing import HTTP_METHODS, Route, Router
from .scope import Scope, is_scope
from .signals import app_mounted
from .stack import PipelineStack
from .wrappers import Request, Response, prepare

logger = logging.getLogger(__name__)


class Application:
    """A pipeline of phase-ordered handlers.

    Attributes:
        name: Label used in logs and reprs.
        phases: The application's own phase registry.
        stack: Sorted handler entries.
        router: Dispatcher walking ``stack``.
        request_class: Per-application request class (capability set).
        response_class: Per-application response class.
        mount_path: Scope this app is mounted under, ``"/"`` at top level.
        parent: Application this app is mounted on, if any.
    """

    request_class = Request
    response_class = Response

    def __init__(self, name: Optional[str] = None, phases: Optional[Sequence[str]] = None):
        self.name = name
        self.phases = PhaseRegistry(phases)
        self.stack = PipelineStack(self.phases)
        self.router = Router(self.stack)
        self.request_class = type("Request", (self.request_class,), {"app": self})
        self.response_class = type("Response", (self.response_class,), {"app": self})
        self.mount_path: Any = "/"
        self.parent: Optional["Application"] = None
        self.config_loader = ConfigLoader(self)

    def __repr__(self) -> str:
        return f"<Application {self.name or hex(id(self))}>"

    # ── Registration ──────────────────────────────────────────────────

    def use(self, *args: Any) -> "Application":
        """Register unordered handlers, optionally scoped.

        ``use(handler, ...)`` or ``use(scope, handler, ...)``.  Handlers
        may be applications, which are mounted.
        """
        scope, handlers = self._split_scope(args, "use")
        for handler in handlers:
            self._register(handler, phase=None, scope=scope)
        return self

    def middleware(self, phase: str, *args: Any):
        """Register a handler into ``phase`` (``"name"``, ``"name:before"``
        or ``"name:after"``).

        ``middleware(phase, handler)`` or ``middleware(phase, scope,
        handler)``.  Called with the phase alone it returns a decorator.

        Raises:
            UnknownPhaseError: ``phase`` was never defined.
            InvalidHandlerError: The handler is not callable.
        """
        if not args:
            def decorator(handler: Callable) -> Callable:
                self.middleware(phase, handler)
                return handler

            return decorator

        if len(args) == 1:
            scope, handler = None, args[0]
        elif len(args) == 2:
            scope, handler = args
        else:
            raise TypeError("middleware() takes a phase, an optional scope and one handler")

        name, position = parse_phase_name(phase)
        self.phases.index(name)
        self._register(handler, phase=name, scope=scope, position=position)
        return self

    def middleware_from_config(self, factory: Callable, config: Any) -> Optional[Callable]:
        """Build a handler from ``factory`` and a config record.

        See :meth:`phaseware.config.ConfigLoader.from_config`.
        """
        return self.config_loader.from_config(factory, config)

    def load_middleware(self, source: Any) -> "Application":
        """Register every entry of a middleware manifest (YAML or mapping)."""
        self.config_loader.load_manifest(source)
        return self

    def define_middleware_phases(self, name_or_names: Union[str, Sequence[str]]) -> "Application":
        """Add a phase before ``routes`` or merge an ordered phase list.

        Raises:
            PhaseOrderingConflict: ``name_or_names`` contradicts the
                current order.  The registry is left unchanged.
        """
        self.phases.define(name_or_names)
        self.stack.resort()
        return self

    def route(self, path: str) -> Route:
        return self.router.route(path)

    def find_layer_by_handler(self, handler: Any) -> Optional[HandlerEntry]:
        return self.stack.find(handler)

    def on_mount(self, receiver: Callable) -> Callable:
        """Subscribe ``receiver(sender, parent=...)`` to this app's mounts."""
        app_mounted.connect(receiver, sender=self, weak=False)
        return receiver

    def request_helper(self, func: Callable) -> Callable:
        """Add ``func`` as a method of this application's requests."""
        setattr(self.request_class, func.__name__, func)
        return func

    def response_helper(self, func: Callable) -> Callable:
        """Add ``func`` as a method of this application's responses."""
        setattr(self.response_class, func.__name__, func)
        return func

    def wrap_wsgi(self, middleware: Callable, *args: Any, **kwargs: Any) -> "Application":
        """Wrap the WSGI entry point, e.g. ``app.wrap_wsgi(ProxyFix, x_for=1)``."""
        self.wsgi_app = middleware(self.wsgi_app, *args, **kwargs)
        return self

    def _split_scope(self, args: Sequence[Any], caller: str):
        if not args:
            raise TypeError(f"{caller}() requires at least one handler")
        if len(args) > 1 and (args[0] is None or is_scope(args[0])):
            return args[0], args[1:]
        if is_scope(args[0]):
            raise TypeError(f"{caller}() requires at least one handler")
        return None, args

    def _register(
        self,
        handler: Any,
        phase: Optional[str],
        scope: Scope,
        position: SubPosition = SubPosition.MAIN,
    ) -> HandlerEntry:
        if isinstance(handler, Application):
            adapter = MountAdapter(handler, parent=self, mount_path=scope)
            entry = self.stack.register(
                HandlerEntry(adapter, phase=phase, position=position, scope=scope)
            )
            adapter.attach()
            return entry

        if not callable(handler):
            raise InvalidHandlerError(
                f"Handler must be callable (got {type(handler).__name__})"
            )
        return self.stack.register(
            HandlerEntry(handler, phase=phase, position=position, scope=scope)
        )

    # ── Dispatch ──────────────────────────────────────────────────────

    def handle(self, request, response, done: Optional[Callable] = None) -> None:
        """Dispatch one request through the pipeline.

        Args:
            request: Werkzeug request (any subclass).
            response: Werkzeug response that handlers write to.
            done: ``done(err=None)`` called when the pipeline is
                exhausted.  Defaults to a final handler that answers 404
                or the pending error.
        """
        prepare(request, response)
        if done is None:
            done = self._final_handler(request, response)
        request.__class__ = self.request_class
        response.__class__ = self.response_class
        self.router.handle(request, response, done)

    def _final_handler(self, request, response) -> Callable:
        def finish(err: Any = None) -> None:
            if response.finished:
                if err is not None:
                    logger.error(
                        "Error after response was finished for %s %s: %r",
                        request.method, request.original_url, err,
                    )
                return

            if err is None:
                err = NotFound(f"Cannot {request.method} {request.original_url}")
            elif not isinstance(err, HTTPException):
                logger.error(
                    "Unhandled error for %s %s", request.method, request.original_url,
                    exc_info=err if isinstance(err, BaseException) else None,
                )
                err = InternalServerError()

            response.mimetype = "text/plain"
            response.send(err.description or err.name, status=err.code)

        return finish

    # ── WSGI ──────────────────────────────────────────────────────────

    def wsgi_app(self, environ, start_response):
        request = self.request_class(environ)
        response = self.response_class()
        self.handle(request, response)
        if not response.finished:
            logger.warning(
                "Handler chain did not complete for %s %s",
                request.method, request.original_url,
            )
            response.status_code = 500
            response.mimetype = "text/plain"
            response.send("Request handling did not complete")
        return response(environ, start_response)

    def __call__(self, environ, start_response):
        return self.wsgi_app(environ, start_response)

    def run(self, host: str = "127.0.0.1", port: int = 5000, **options: Any) -> None:
        """Serve the app with the Werkzeug development server."""
        from werkzeug.serving import run_simple

        logger.info("Serving %r on http://%s:%d", self, host, port)
        run_simple(host, port, self, **options)


def _route_shortcut(method: Optional[str]):
    def register(self: Application, path: str, *handlers: Callable):
        route = self.route(path)
        if not handlers:
            def decorator(handler: Callable) -> Callable:
                route.add(method, handler)
                return handler

            return decorator
        route.add(method, *handlers)
        return self

    verb = (method or "all").lower()
    register.__name__ = verb
    register.__qualname__ = f"Application.{verb}"
    register.__doc__ = (
        f"Register ``{method or 'any-method'}`` handlers for ``path``; "
        "returns a decorator when no handler is given."
    )
    return register


for _method in HTTP_METHODS:
    setattr(Application, _method.lower(), _route_shortcut(_method))
Application.all = _route_shortcut(None)
del _method
