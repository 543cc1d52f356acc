"""Tests for the named middleware in phaseware.contrib."""

from unittest.mock import patch

import pytest
from flask import Flask, request as flask_request
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.test import Client

from phaseware import contrib
from phaseware.context import current_request, has_request
from phaseware.exceptions import MiddlewareNotInstalled


# ── Tests: Built-ins ─────────────────────────────────────────────────────


class TestBuiltins:
    def test_status(self, app, dispatch):
        app.middleware("initial", "/status", contrib.status())

        outcome = dispatch(app, "/status")

        payload = outcome.response.get_json()
        assert payload["uptime"] >= 0
        assert "T" in payload["started"]
        assert outcome.response.mimetype == "application/json"

    def test_url_not_found(self, app, dispatch):
        app.middleware("final", contrib.url_not_found())

        outcome = dispatch(app, "/nope", method="POST")

        assert outcome.error.code == 404
        assert outcome.error.description == "Cannot POST /nope"

    def test_context_binds_request_for_the_dispatch(self, app, dispatch):
        seen = {}

        def deep_helper():
            return current_request.sub_path

        def handler(request, response, next_):
            seen["path"] = deep_helper()
            seen["same"] = current_request._get_current_object() is request
            next_()

        app.middleware("initial", contrib.context())
        app.middleware("auth", "/api", handler)

        dispatch(app, "/api/items")

        assert seen == {"path": "/items", "same": True}
        assert has_request() is False

    def test_context_unbound_outside_dispatch(self):
        with pytest.raises(RuntimeError):
            current_request.path

    def test_from_import(self):
        from phaseware.contrib import status, wsgi_app

        assert callable(status)
        assert callable(wsgi_app)


# ── Tests: Catalog ───────────────────────────────────────────────────────


class TestCatalog:
    def test_installed_middleware_returned_unmodified(self):
        assert contrib.proxy_fix is ProxyFix

    def test_unknown_name(self):
        with pytest.raises(AttributeError):
            contrib.does_not_exist

    def test_missing_distribution_yields_placeholder(self):
        catalog = {"imaginary": ("phaseware_imaginary_pkg.middleware:Thing", "phaseware-imaginary")}
        with patch.dict(contrib.MIDDLEWARE_MODULES, catalog):
            placeholder = contrib.imaginary

        assert callable(placeholder)
        assert placeholder.installed is False
        with pytest.raises(MiddlewareNotInstalled) as exc_info:
            placeholder()
        assert "phaseware.contrib.imaginary is not installed" in str(exc_info.value)
        assert "pip install phaseware-imaginary" in str(exc_info.value)

    def test_placeholder_registration_succeeds_and_fails_on_use(self, app, recorder, dispatch):
        catalog = {"imaginary": ("phaseware_imaginary_pkg:Thing", "phaseware-imaginary")}
        with patch.dict(contrib.MIDDLEWARE_MODULES, catalog):
            app.middleware("session", contrib.lookup("imaginary"))
        app.middleware("final", recorder.catch("catch"))

        dispatch(app)

        assert recorder.calls == ["catch"]
        assert isinstance(recorder.errors[0], MiddlewareNotInstalled)

    def test_wrap_wsgi_with_catalog_entry(self, app):
        def show_remote(request, response, next_):
            response.send(request.remote_addr)

        app.use(show_remote)
        app.wrap_wsgi(contrib.proxy_fix, x_for=1)

        client = Client(app)
        result = client.get("/", headers={"X-Forwarded-For": "203.0.113.9"})

        assert result.get_data(as_text=True) == "203.0.113.9"


# ── Tests: Foreign WSGI apps ─────────────────────────────────────────────


@pytest.fixture
def flask_app():
    flask_app = Flask("embedded")

    @flask_app.route("/hello")
    def hello():
        return f"hello from {flask_request.script_root}{flask_request.path}"

    @flask_app.route("/teapot")
    def teapot():
        return "short and stout", 418, {"X-Pot": "yes"}

    return flask_app


class TestWsgiApp:
    def test_embedded_flask_app(self, app, flask_app):
        app.use("/flask", contrib.wsgi_app(flask_app))

        client = Client(app)
        result = client.get("/flask/hello")

        assert result.status_code == 200
        assert result.get_data(as_text=True) == "hello from /flask/hello"

    def test_status_and_headers_copied(self, app, flask_app):
        app.middleware("routes", "/flask", contrib.wsgi_app(flask_app))

        result = Client(app).get("/flask/teapot")

        assert result.status_code == 418
        assert result.headers["X-Pot"] == "yes"
        assert result.get_data(as_text=True) == "short and stout"

    def test_earlier_phases_still_run(self, app, flask_app, recorder):
        app.middleware("auth", recorder.step("auth"))
        app.use("/flask", contrib.wsgi_app(flask_app))

        Client(app).get("/flask/hello")

        assert recorder.calls == ["auth"]

    def test_find_layer_for_embedded_app(self, app, flask_app):
        app.use("/flask", contrib.wsgi_app(flask_app))

        assert app.find_layer_by_handler(flask_app) is not None
