"""Embedding foreign WSGI applications as terminal handlers."""

import logging

from werkzeug.test import run_wsgi_app

logger = logging.getLogger(__name__)


def wsgi_app(app):
    """Handler that answers the request with the WSGI application ``app``.

    The scope prefix consumed so far is appended to ``SCRIPT_NAME`` and
    the remaining sub-path becomes ``PATH_INFO``, so the embedded
    application builds URLs relative to where it was mounted.
    """

    def wsgi_handler(request, response, next_):
        environ = dict(request.environ)
        environ["SCRIPT_NAME"] = environ.get("SCRIPT_NAME", "").rstrip("/") + request.base_path
        environ["PATH_INFO"] = request.sub_path

        app_iter, status, headers = run_wsgi_app(app, environ, buffered=True)
        logger.debug("Embedded %r answered %s for %s", app, status, request.sub_path)

        response.status = status
        response.headers.clear()
        response.headers.extend(headers)
        response.set_data(b"".join(app_iter))
        response.end()

    wsgi_handler.__wrapped__ = app
    return wsgi_handler
