"""Mounting a complete application as a single handler entry.

While a mounted application dispatches, the shared request/response
objects are swapped onto the mounted application's classes.  The
capability set of the outer application is captured in a
:class:`MountContext` on the way in and put back on the way out, so
handlers that run later in the outer pipeline never observe what the
inner pipeline installed.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .signals import app_mounted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MountContext:
    """Outer capability set saved around one nested dispatch."""

    request_class: type
    response_class: type
    mount_path: Any
    parent: Any

    @classmethod
    def capture(cls, request, response, mount_path: Any = None, parent: Any = None) -> "MountContext":
        return cls(
            request_class=type(request),
            response_class=type(response),
            mount_path=mount_path,
            parent=parent,
        )

    def restore(self, request, response) -> None:
        if type(request) is not self.request_class:
            request.__class__ = self.request_class
        if type(response) is not self.response_class:
            response.__class__ = self.response_class


class MountAdapter:
    """Handler that dispatches into a mounted application.

    Attributes:
        app: The mounted application.
        parent: The application it is mounted on.
        mount_path: Scope it was mounted under (``"/"`` when unscoped).
    """

    def __init__(self, app, parent, mount_path: Any = None):
        self.app = app
        self.parent = parent
        self.mount_path = "/" if mount_path is None else mount_path
        self.__wrapped__ = app
        self._notified = False

    def __repr__(self) -> str:
        return f"MountAdapter({self.app!r}, mount_path={self.mount_path!r})"

    @property
    def __name__(self) -> str:
        return f"mounted_app[{getattr(self.app, 'name', None) or type(self.app).__name__}]"

    def attach(self) -> None:
        """Point the mounted app at its parent and notify it once."""
        self.app.mount_path = self.mount_path
        self.app.parent = self.parent
        if self._notified:
            return
        self._notified = True
        logger.info("Mounted %r on %r at %r", self.app, self.parent, self.mount_path)
        app_mounted.send(self.app, parent=self.parent)

    def __call__(self, request, response, next_: Callable) -> None:
        self.app.mount_path = self.mount_path
        self.app.parent = self.parent
        context = MountContext.capture(request, response, self.mount_path, self.parent)

        def leave(err: Optional[Any] = None) -> None:
            context.restore(request, response)
            next_(err)

        try:
            self.app.handle(request, response, leave)
        except Exception:
            context.restore(request, response)
            raise
