"""Shared fixtures for phaseware tests."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

import pytest
from werkzeug.test import EnvironBuilder

from phaseware import Application, Request, Response


# ── Helpers ───────────────────────────────────────────────────────────────


class Recorder:
    """Builds handlers that log their name when they run."""

    def __init__(self):
        self.calls: List[str] = []
        self.errors: List[Any] = []

    def step(self, name: str):
        def handler(request, response, next_):
            self.calls.append(name)
            next_()

        handler.__name__ = f"step_{name}"
        return handler

    def fail(self, name: str, error: Any):
        def handler(request, response, next_):
            self.calls.append(name)
            next_(error)

        handler.__name__ = f"fail_{name}"
        return handler

    def catch(self, name: str, propagate: bool = False):
        def handler(err, request, response, next_):
            self.calls.append(name)
            self.errors.append(err)
            next_(err if propagate else None)

        handler.__name__ = f"catch_{name}"
        return handler


@dataclass
class Outcome:
    request: Request
    response: Response
    done: bool = False
    error: Optional[Any] = None
    done_calls: List[Any] = field(default_factory=list)


def run_dispatch(app: Application, path: str = "/", method: str = "GET", **kwargs) -> Outcome:
    builder = EnvironBuilder(path=path, method=method, **kwargs)
    try:
        request = builder.get_request(Request)
    finally:
        builder.close()
    response = Response()
    outcome = Outcome(request=request, response=response)

    def done(err=None):
        outcome.done = True
        outcome.error = err
        outcome.done_calls.append(err)

    app.handle(request, response, done)
    return outcome


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def app():
    return Application(name="test")


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def dispatch():
    return run_dispatch
