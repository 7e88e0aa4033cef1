import asyncio
import json
import logging

import pytest

from stacker.app import App, mount_request, normalize_prefix, prefix_matches
from stacker.config import Settings
from stacker.service import DispatchResult, MicroService
from stacker.testclient import TestClient
from stacker.transport import BufferedSink, RawHTTPRequest

from conftest import run


@pytest.fixture
def app(settings):
    return App(settings=settings)


def test_prefix_helpers():
    assert normalize_prefix("") == "/"
    assert normalize_prefix("api/") == "/api"
    assert prefix_matches("/api", "/api")
    assert prefix_matches("/api", "/api/users")
    assert not prefix_matches("/api", "/apix")
    assert prefix_matches("/", "/anything")


def test_mount_request_moves_prefix_to_root_path():
    raw = RawHTTPRequest(path="/api/users")
    mounted = mount_request(raw, "/api")
    assert mounted.path == "/users"
    assert mounted.root_path == "/api"
    assert mount_request(RawHTTPRequest(path="/api"), "/api").path == "/"
    assert raw.path == "/api/users"


def test_service_sees_path_relative_to_prefix(app, settings):
    users = MicroService("users", settings=settings)

    @users.get("/{id}")
    def show(request):
        return {"id": request.param("id"), "full": request.full_path}

    app.register_microservice(users, "/users")
    resp = TestClient(app).get("/users/3")
    assert resp.json() == {"id": "3", "full": "/users/3"}


def test_pass_through_moves_to_next_service(app, settings):
    first = MicroService("first", settings=settings)
    second = MicroService("second", settings=settings)
    log = []
    first.use(lambda request: log.append("first-mw"))
    first.register_route("GET", "/a", lambda request: "from first")
    second.register_route("GET", "/b", lambda request: "from second")
    app.register_microservice(first)
    app.register_microservice(second)
    client = TestClient(app)

    assert client.get("/a").text == "from first"
    resp = client.get("/b")
    assert resp.text == "from second"
    assert resp.result is DispatchResult.RESPONDED
    assert resp.pass_through_calls == 0
    assert log == ["first-mw", "first-mw"]


def test_unanswered_request_is_404(app, settings):
    app.register_microservice(MicroService(settings=settings), "/api")
    sink = BufferedSink()
    result = run(app.handle(RawHTTPRequest("DELETE", "/api/missing"), sink))
    assert result is DispatchResult.RESPONDED
    assert sink.status_code == 404
    assert sink.body == b"Cannot DELETE /api/missing"


def test_caller_pass_through_runs_when_nothing_answers(app, settings):
    app.register_microservice(MicroService(settings=settings))
    resp = TestClient(app).get("/nothing")
    assert resp.passed_through
    assert resp.pass_through_calls == 1
    assert resp.status_code is None


def test_unmatched_prefix_is_skipped(app, settings):
    api = MicroService(settings=settings)
    api.register_route("*", "/*", lambda request: "api")
    app.register_microservice(api, "/api")
    assert TestClient(app).get("/other").passed_through


def test_on_event_rejects_unknown_event_error(app):
    with pytest.raises(ValueError):
        app.on_event("reload")


# ASGI


def _asgi_call(app, scope, messages):
    sent = []
    queue = list(messages)
    never = asyncio.Event()

    async def receive():
        if queue:
            return queue.pop(0)
        await never.wait()

    async def send(message):
        sent.append(message)

    run(app(scope, receive, send))
    return sent


def _scope(method="GET", path="/", headers=None, query_string=b""):
    return {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string,
        "headers": headers or [],
    }


def test_asgi_lifespan_runs_hooks(app):
    calls = []

    @app.on_event("startup")
    def startup():
        calls.append("startup")

    @app.on_event("shutdown")
    async def shutdown():
        calls.append("shutdown")

    sent = _asgi_call(
        app,
        {"type": "lifespan"},
        [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}],
    )
    assert calls == ["startup", "shutdown"]
    assert [m["type"] for m in sent] == [
        "lifespan.startup.complete",
        "lifespan.shutdown.complete",
    ]


def test_asgi_http_dispatch_with_json_body(app, settings):
    service = MicroService(settings=settings)

    @service.post("/echo")
    def echo(request):
        return {"body": request.body, "q": request.query_param("q")}

    app.register_microservice(service)
    payload = json.dumps({"x": 1}).encode()
    sent = _asgi_call(
        app,
        _scope(
            "POST",
            "/echo",
            headers=[(b"content-type", b"application/json")],
            query_string=b"q=search",
        ),
        [{"type": "http.request", "body": payload, "more_body": False}],
    )
    start, body = sent
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    headers = dict(start["headers"])
    assert headers[b"content-type"] == b"application/json"
    assert headers[b"content-length"] == str(len(body["body"])).encode()
    assert json.loads(body["body"]) == {"body": {"x": 1}, "q": "search"}


def test_asgi_chunked_body_and_404(app):
    sent = _asgi_call(
        app,
        _scope("POST", "/nowhere"),
        [
            {"type": "http.request", "body": b"a", "more_body": True},
            {"type": "http.request", "body": b"b", "more_body": False},
        ],
    )
    assert sent[0]["status"] == 404
    assert sent[1]["body"] == b"Cannot POST /nowhere"


def test_asgi_body_too_large_error():
    app = App(settings=Settings(max_body_size=4))
    sent = _asgi_call(
        app,
        _scope("POST", "/"),
        [{"type": "http.request", "body": b"too long", "more_body": False}],
    )
    assert sent[0]["status"] == 413


def test_asgi_malformed_json_is_400_error(app):
    sent = _asgi_call(
        app,
        _scope("POST", "/", headers=[(b"content-type", b"application/json")]),
        [{"type": "http.request", "body": b"{oops", "more_body": False}],
    )
    assert sent[0]["status"] == 400


def test_asgi_disconnect_before_body_sends_nothing(app):
    sent = _asgi_call(app, _scope("POST", "/"), [{"type": "http.disconnect"}])
    assert sent == []


def test_asgi_unsupported_scope_error(app):
    with pytest.raises(NotImplementedError):
        _asgi_call(app, {"type": "websocket"}, [])


def test_asgi_unknown_charset_is_400_error(app):
    sent = _asgi_call(
        app,
        _scope("POST", "/", headers=[(b"content-type", b"text/plain; charset=bogus")]),
        [{"type": "http.request", "body": b"hello", "more_body": False}],
    )
    assert sent[0]["status"] == 400
    assert sent[1]["body"] == b"unsupported charset"


def test_asgi_receive_failure_after_body_is_collected(app, settings, caplog):
    service = MicroService(settings=settings)

    @service.get("/")
    async def index(request):
        await asyncio.sleep(0)
        return "ok"

    app.register_microservice(service)
    messages = [{"type": "http.request", "body": b"", "more_body": False}]
    sent = []

    async def receive():
        if messages:
            return messages.pop(0)
        raise RuntimeError("transport gone")

    async def send(message):
        sent.append(message)

    with caplog.at_level(logging.WARNING, logger="stacker.asgi"):
        run(app(_scope(), receive, send))
    assert sent[0]["status"] == 200
    assert sent[1]["body"] == b"ok"
    assert "Disconnect watcher stopped with an error" in caplog.text
