"""Tests for scoped dispatch and route handlers."""

import re

import pytest

from phaseware import Application
from phaseware.exceptions import InvalidHandlerError
from phaseware.routing import Route


def _capture(seen, name="seen"):
    def handler(request, response, next_):
        seen.append((name, request.sub_path, request.base_path, request.original_url, dict(request.params)))
        next_()

    return handler


# ── Tests: Scoped handlers ───────────────────────────────────────────────


class TestScopedHandlers:
    @pytest.mark.parametrize("path,fires", [
        ("/scope", True),
        ("/scope/item", True),
        ("/", False),
        ("/other", False),
    ])
    def test_prefix_scope(self, app, dispatch, path, fires):
        seen = []
        app.middleware("initial", "/scope", _capture(seen))

        dispatch(app, path)

        assert bool(seen) is fires

    def test_handler_sees_rewritten_path(self, app, dispatch):
        seen = []
        app.middleware("auth", "/scope", _capture(seen))

        dispatch(app, "/scope/id")

        assert seen == [("seen", "/id", "/scope", "/scope/id", {})]

    def test_path_restored_for_later_handlers(self, app, dispatch):
        seen = []
        app.middleware("auth", "/scope", _capture(seen, "scoped"))
        app.middleware("parse", _capture(seen, "global"))

        dispatch(app, "/scope/id")

        assert seen[1] == ("global", "/scope/id", "", "/scope/id", {})

    def test_list_scope_fires_once_per_request(self, app, recorder, dispatch):
        scope = ["/scope", re.compile(r"^/(a|b)")]
        app.middleware("initial", scope, recorder.step("listed"))

        for path in ["/scope", "/a", "/b/x", "/c", "/scope/a"]:
            dispatch(app, path)

        assert recorder.calls == ["listed"] * 4

    def test_registration_order_wins_over_scope_list_order(self, app, recorder, dispatch):
        app.middleware("initial", [re.compile(r"^/(a|b)"), "/scope"], recorder.step("first"))
        app.middleware("initial", ["/scope", re.compile(r"^/(a|b)")], recorder.step("second"))

        dispatch(app, "/a")
        dispatch(app, "/scope")

        assert recorder.calls == ["first", "second", "first", "second"]

    def test_regex_scope_params(self, app, dispatch):
        seen = []
        app.use(re.compile(r"^/users/(?P<uid>\d+)"), _capture(seen))

        dispatch(app, "/users/7/posts")

        assert seen == [("seen", "/posts", "/users/7", "/users/7/posts", {"uid": "7"})]

    def test_use_with_scope_and_several_handlers(self, app, recorder, dispatch):
        app.use("/api", recorder.step("one"), recorder.step("two"))

        dispatch(app, "/api/x")
        dispatch(app, "/web")

        assert recorder.calls == ["one", "two"]

    def test_use_requires_a_handler(self, app):
        with pytest.raises(TypeError):
            app.use("/api")
        with pytest.raises(TypeError):
            app.use()


# ── Tests: Routes ────────────────────────────────────────────────────────


class TestRoutes:
    def test_converter_params(self, app, dispatch):
        seen = []
        app.get("/items/<int:item_id>", _capture(seen))

        dispatch(app, "/items/5")

        assert seen[0][4] == {"item_id": 5}

    def test_method_mismatch_skips_route(self, app, recorder, dispatch):
        app.get("/items", recorder.step("get"))
        app.post("/items", recorder.step("post"))

        dispatch(app, "/items", method="POST")
        dispatch(app, "/items", method="DELETE")

        assert recorder.calls == ["post"]

    def test_head_falls_back_to_get(self, app, recorder, dispatch):
        app.get("/items", recorder.step("get"))

        dispatch(app, "/items", method="HEAD")

        assert recorder.calls == ["get"]

    def test_all_methods(self, app, recorder, dispatch):
        app.all("/any", recorder.step("all"))

        dispatch(app, "/any", method="PATCH")
        dispatch(app, "/any", method="OPTIONS")

        assert recorder.calls == ["all", "all"]

    def test_decorator_form(self, app, dispatch):
        @app.put("/things/<name>")
        def update(request, response, next_):
            response.send_json({"name": request.params["name"]})

        outcome = dispatch(app, "/things/lamp", method="PUT")

        assert outcome.response.get_json() == {"name": "lamp"}
        assert outcome.response.finished
        assert outcome.done is False

    def test_route_object_chaining(self, app, recorder, dispatch):
        app.route("/r").get(recorder.step("get")).delete(recorder.step("delete"))

        dispatch(app, "/r", method="DELETE")

        assert recorder.calls == ["delete"]

    def test_route_rejects_non_callables(self):
        with pytest.raises(InvalidHandlerError):
            Route("/x").get("nope")

    def test_route_path_must_be_absolute(self):
        with pytest.raises(ValueError):
            Route("relative")

    def test_route_error_handler(self, app, recorder, dispatch):
        boom = ValueError("boom")
        app.get("/fail", recorder.fail("fail", boom), recorder.catch("route-catch"))

        outcome = dispatch(app, "/fail")

        assert recorder.calls == ["fail", "route-catch"]
        assert outcome.error is None


# ── Tests: Request and response helpers ──────────────────────────────────


class TestHelpers:
    def test_param_lookup_order(self, app, dispatch):
        seen = {}

        @app.get("/p/<name>")
        def handler(request, response, next_):
            seen["route"] = request.param("name")
            seen["query"] = request.param("q")
            seen["missing"] = request.param("missing", "default")
            next_()

        dispatch(app, "/p/alpha", query_string={"q": "beta", "name": "ignored"})

        assert seen == {"route": "alpha", "query": "beta", "missing": "default"}

    def test_request_helper_is_per_application(self, app, dispatch):
        other = Application()
        seen = {}

        @app.request_helper
        def client_id(self):
            return self.get_header("X-Client", "anonymous")

        def handler(request, response, next_):
            seen["id"] = request.client_id()
            next_()

        app.middleware("initial", handler)
        dispatch(app, "/", headers={"X-Client": "c-1"})

        assert seen["id"] == "c-1"
        assert not hasattr(other.request_class, "client_id")

    def test_response_helpers(self, app, dispatch):
        @app.response_helper
        def send_text(self, text):
            self.mimetype = "text/plain"
            return self.send(text)

        app.middleware("routes", lambda req, res, nxt: res.set_header("X-Seen", 1).send_text("hi"))

        outcome = dispatch(app)

        assert outcome.response.headers["X-Seen"] == "1"
        assert outcome.response.get_data(as_text=True) == "hi"
        assert outcome.response.mimetype == "text/plain"

    def test_redirect(self, app, dispatch):
        app.middleware("routes", lambda req, res, nxt: res.redirect("/elsewhere"))

        outcome = dispatch(app)

        assert outcome.response.status_code == 302
        assert outcome.response.headers["Location"] == "/elsewhere"
