"""Handler factories that ship with phaseware."""

from datetime import datetime, timezone

from werkzeug.exceptions import NotFound

from ..context import bind_request, unbind_request


def status():
    """Respond with the start time and uptime of the process."""
    started = datetime.now(timezone.utc)

    def status_handler(request, response, next_):
        uptime = (datetime.now(timezone.utc) - started).total_seconds()
        response.send_json({"started": started.isoformat(), "uptime": uptime})

    return status_handler


def url_not_found():
    """Forward a 404 for whatever reached this point of the pipeline."""

    def url_not_found_handler(request, response, next_):
        next_(NotFound(f"Cannot {request.method} {request.original_url}"))

    return url_not_found_handler


def context():
    """Expose the request as :data:`phaseware.context.current_request`."""

    def context_handler(request, response, next_):
        token = bind_request(request)
        try:
            next_()
        finally:
            unbind_request(token)

    return context_handler
