"""Named middleware, looked up by attribute.

Built-in handler factories live in this package.  WSGI middleware from
other distributions is listed in :data:`MIDDLEWARE_MODULES` and imported
on first access; when its distribution is not installed the lookup
still succeeds and returns a placeholder that raises
:class:`~phaseware.exceptions.MiddlewareNotInstalled` once it is used.

Usage:
    from phaseware import contrib

    app.middleware("initial", contrib.status())
    app.wrap_wsgi(contrib.proxy_fix, x_for=1)
"""

import importlib
import logging
from typing import Any, Callable, Dict, Tuple

from ..exceptions import MiddlewareNotInstalled

logger = logging.getLogger(__name__)

__all__ = [
    "status",
    "url_not_found",
    "context",
    "wsgi_app",
    "lookup",
    "MIDDLEWARE_MODULES",
]

_IMPORT_MAP = {
    "status": ".builtins",
    "url_not_found": ".builtins",
    "context": ".builtins",
    "wsgi_app": ".wsgi",
}

# name -> ("module:attribute", distribution to install)
MIDDLEWARE_MODULES: Dict[str, Tuple[str, str]] = {
    "proxy_fix": ("werkzeug.middleware.proxy_fix:ProxyFix", "werkzeug"),
    "shared_data": ("werkzeug.middleware.shared_data:SharedDataMiddleware", "werkzeug"),
    "profiler": ("werkzeug.middleware.profiler:ProfilerMiddleware", "werkzeug"),
    "lint": ("werkzeug.middleware.lint:LintMiddleware", "werkzeug"),
    "dispatcher": ("werkzeug.middleware.dispatcher:DispatcherMiddleware", "werkzeug"),
    "whitenoise": ("whitenoise:WhiteNoise", "whitenoise"),
    "sessions": ("beaker.middleware:SessionMiddleware", "Beaker"),
}


def _placeholder(name: str, distribution: str) -> Callable:
    def missing_middleware(*args: Any, **kwargs: Any):
        raise MiddlewareNotInstalled(name, distribution)

    missing_middleware.__name__ = name
    missing_middleware.__qualname__ = name
    missing_middleware.installed = False
    return missing_middleware


def lookup(name: str) -> Callable:
    """Return the catalogued middleware ``name`` or a placeholder.

    Raises:
        AttributeError: ``name`` is not catalogued.
    """
    try:
        target, distribution = MIDDLEWARE_MODULES[name]
    except KeyError:
        raise AttributeError(f"module 'phaseware.contrib' has no attribute {name}") from None

    module_name, _, attribute = target.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        logger.warning(
            "Middleware %s unavailable (%s is not installed); using a placeholder",
            name, distribution,
        )
        return _placeholder(name, distribution)
    return getattr(module, attribute)


def __getattr__(name):
    if name in _IMPORT_MAP:
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    return lookup(name)
