"""Request context for code that cannot receive the request explicitly.

:func:`phaseware.contrib.context` binds the request for the rest of the
synchronous dispatch; :data:`current_request` then proxies to it.
"""

from contextvars import ContextVar, Token

from werkzeug.local import LocalProxy

_cv_request: ContextVar = ContextVar("phaseware.request")

current_request = LocalProxy(_cv_request, unbound_message="Working outside of a phaseware request context.")


def bind_request(request) -> Token:
    return _cv_request.set(request)


def unbind_request(token: Token) -> None:
    _cv_request.reset(token)


def has_request() -> bool:
    return _cv_request.get(None) is not None
