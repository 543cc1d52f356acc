"""Request and response objects flowing through a pipeline.

Both extend the Werkzeug wrappers.  The same pair of objects is passed
by reference through every handler of a dispatch, including handlers of
mounted sub-applications; each application swaps them onto its own
subclasses (see :meth:`phaseware.app.Application.handle`).
"""

import json
from typing import Any, Dict, Optional

from werkzeug.wrappers import Request as BaseRequest
from werkzeug.wrappers import Response as BaseResponse


class Request(BaseRequest):
    """Werkzeug request plus dispatch state.

    Dispatch attributes (set by :func:`prepare`):
        sub_path: Path as seen by the current handler; rewritten while a
            scoped handler or a mounted application runs.
        base_path: Prefix consumed by the enclosing scopes.
        original_url: Path and query string as received, never rewritten.
        params: Parameters captured by the matching route or scope.
        response: The response object paired with this request.
    """

    app = None

    def param(self, name: str, default: Any = None) -> Any:
        """Look up ``name`` in route params, then query, then form data."""
        if name in self.params:
            return self.params[name]
        if name in self.args:
            return self.args[name]
        if self.method in ("POST", "PUT", "PATCH") and name in self.form:
            return self.form[name]
        return default

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    def accepts(self, *mimetypes: str) -> Optional[str]:
        """Best match among ``mimetypes`` for the Accept header."""
        return self.accept_mimetypes.best_match(mimetypes)


class Response(BaseResponse):
    """Werkzeug response plus Express-style writers.

    Handlers own completion: a handler that calls :meth:`send`,
    :meth:`send_json`, :meth:`redirect` or :meth:`end` finishes the
    response and should not invoke its continuation.
    """

    app = None

    def set_header(self, name: str, value: Any) -> "Response":
        self.headers[name] = str(value)
        return self

    def send(self, body: Any = b"", status: Optional[int] = None) -> "Response":
        if isinstance(body, (dict, list)):
            return self.send_json(body, status=status)
        if status is not None:
            self.status_code = status
        self.set_data(body)
        return self.end()

    def send_json(self, payload: Any, status: Optional[int] = None) -> "Response":
        if status is not None:
            self.status_code = status
        self.mimetype = "application/json"
        self.set_data(json.dumps(payload, default=str))
        return self.end()

    def redirect(self, location: str, code: int = 302) -> "Response":
        self.status_code = code
        self.headers["Location"] = location
        return self.end()

    def end(self) -> "Response":
        self.finished = True
        return self


def prepare(request: BaseRequest, response: BaseResponse) -> None:
    """Initialise dispatch state on a request/response pair once."""
    state: Dict[str, Any] = vars(request)
    if "original_url" not in state:
        query = request.query_string.decode("latin-1") if request.query_string else ""
        request.original_url = request.path + (f"?{query}" if query else "")
        request.sub_path = request.path
        request.base_path = ""
        request.params = {}
    if "finished" not in vars(response):
        response.finished = False
        response.locals = {}
    request.response = response
    response.request = request


