import pytest

from stacker.asgi import decode_headers, parse_body
from stacker.exceptions import BadRequest
from stacker.transport import (
    BufferedSink,
    RawHTTPRequest,
    RawRequest,
    ResponseSink,
    is_disconnected,
)

from conftest import run


def test_buffered_sink_accepts_one_send_error():
    sink = BufferedSink()
    sink.set_status(201)
    sink.send(b"x")
    assert sink.sent
    with pytest.raises(RuntimeError):
        sink.send(b"y")
    assert sink.body == b"x"


def test_protocols_are_satisfied():
    assert isinstance(RawHTTPRequest(), RawRequest)
    assert isinstance(BufferedSink(), ResponseSink)


def test_is_disconnected_supports_sync_async_and_absent_probes():
    async def gone():
        return True

    assert run(is_disconnected(RawHTTPRequest(disconnect_probe=gone))) is True
    assert run(is_disconnected(RawHTTPRequest(disconnect_probe=lambda: False))) is False
    assert run(is_disconnected(object())) is False


def test_mounted_keeps_nested_root_path():
    raw = RawHTTPRequest(path="/v1/users", root_path="/api")
    mounted = raw.mounted("/v1")
    assert mounted.root_path == "/api/v1"
    assert mounted.path == "/users"


def test_decode_headers_joins_repeats():
    headers = decode_headers(
        [(b"Accept", b"text/html"), (b"accept", b"application/json"), (b"X-A", b"1")]
    )
    assert headers == {"accept": "text/html, application/json", "x-a": "1"}


@pytest.mark.parametrize(
    "data,content_type,expected",
    [
        (b"", "application/json", None),
        (b'{"a": 1}', "application/json; charset=utf-8", {"a": 1}),
        (b'{"a": 1}', "application/vnd.api+json", {"a": 1}),
        (b"a=1&b=2&b=3", "application/x-www-form-urlencoded", {"a": "1", "b": ["2", "3"]}),
        (b"hello", "text/plain", "hello"),
        (b"\x00\x01", "application/octet-stream", b"\x00\x01"),
        (b"raw", "", b"raw"),
    ],
)
def test_parse_body(data, content_type, expected):
    assert parse_body(data, content_type) == expected


def test_parse_body_invalid_json():
    with pytest.raises(BadRequest):
        parse_body(b"{", "application/json")


@pytest.mark.parametrize(
    "content_type",
    [
        "text/plain; charset=bogus",
        "application/x-www-form-urlencoded; charset=nope",
        "application/json; charset=x",
    ],
)
def test_parse_body_unknown_charset_error(content_type):
    with pytest.raises(BadRequest) as info:
        parse_body(b"a=1", content_type)
    assert info.value.detail == "unsupported charset"


def test_parse_body_honours_known_charset():
    assert parse_body("café".encode("latin-1"), "text/plain; charset=ISO-8859-1") == "café"
