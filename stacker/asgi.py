"""ASGI transport adapter.

Turns an ASGI ``http`` scope into the raw request / response sink pair the
dispatch pipeline consumes. Body size limits and body parsing happen
here, before any middleware runs.
"""

from __future__ import annotations

import asyncio
import codecs
import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Tuple
from urllib.parse import parse_qs

from .exceptions import BadRequest, HTTPException
from .logging_utils import get_logger
from .transport import RawHTTPRequest

Scope = Dict[str, Any]
Receive = Callable[[], Awaitable[Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Awaitable[None]]

logger = get_logger("asgi")


class PayloadTooLarge(HTTPException):
    def __init__(self, limit: int) -> None:
        super().__init__(413, f"request body exceeds {limit} bytes")
        self.limit = limit


class ClientDisconnected(Exception):
    """The client went away before the request body was read."""


def _collapse(parsed: Mapping[str, List[str]]) -> Dict[str, Any]:
    return {k: (v[0] if len(v) == 1 else v) for k, v in parsed.items()}


def decode_headers(raw_headers: Any) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for key, value in raw_headers or []:
        name = key.decode("latin-1").lower() if isinstance(key, bytes) else str(key).lower()
        val = value.decode("latin-1") if isinstance(value, bytes) else str(value)
        if name in headers:
            headers[name] = f"{headers[name]}, {val}"
        else:
            headers[name] = val
    return headers


def parse_body(data: bytes, content_type: str) -> Any:
    """Decode *data* according to *content_type*."""

    if not data:
        return None
    media, _, params = content_type.partition(";")
    media = media.strip().lower()
    charset = "utf-8"
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset" and value:
            charset = value.strip('"')
    try:
        charset = codecs.lookup(charset).name
    except LookupError as exc:
        raise BadRequest("unsupported charset") from exc
    if media == "application/json" or media.endswith("+json"):
        try:
            return json.loads(data.decode(charset))
        except ValueError as exc:
            raise BadRequest("malformed JSON body") from exc
    if media == "application/x-www-form-urlencoded":
        return _collapse(parse_qs(data.decode(charset, errors="replace")))
    if media.startswith("text/"):
        return data.decode(charset, errors="replace")
    return data


async def read_request(
    scope: Scope, receive: Receive, *, max_body_size: int
) -> RawHTTPRequest:
    """Read the full request described by *scope* from *receive*."""

    headers = decode_headers(scope.get("headers"))
    declared = headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_body_size:
        raise PayloadTooLarge(max_body_size)
    chunks: List[bytes] = []
    size = 0
    while True:
        message = await receive()
        if message.get("type") == "http.disconnect":
            raise ClientDisconnected()
        chunk = message.get("body", b"") or b""
        size += len(chunk)
        if size > max_body_size:
            raise PayloadTooLarge(max_body_size)
        chunks.append(chunk)
        if not message.get("more_body", False):
            break
    query_string = scope.get("query_string", b"") or b""
    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    return RawHTTPRequest(
        method=str(scope.get("method", "GET")).upper(),
        path=str(scope.get("path", "/")) or "/",
        headers=headers,
        query=_collapse(parse_qs(query_string)),
        body=parse_body(b"".join(chunks), headers.get("content-type", "")),
        root_path=str(scope.get("root_path", "") or ""),
    )


class DisconnectWatcher:
    """Listen for ``http.disconnect`` while the pipeline runs."""

    def __init__(self, receive: Receive) -> None:
        self._gone = False
        self._task = asyncio.ensure_future(self._watch(receive))

    async def _watch(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message.get("type") == "http.disconnect":
                self._gone = True
                return

    def disconnected(self) -> bool:
        return self._gone

    async def close(self) -> None:
        """Stop listening and collect the outcome of the listener task."""
        self._task.cancel()
        await asyncio.wait([self._task])
        if not self._task.cancelled() and self._task.exception() is not None:
            logger.warning(
                "Disconnect watcher stopped with an error",
                exc_info=self._task.exception(),
            )


class ASGIResponseSink:
    """Response sink writing ASGI ``http.response.*`` messages."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self._headers: Dict[str, str] = {}
        self._status = 200
        self.sent = False
        self.closed = False

    def set_headers(self, headers: Mapping[str, str]) -> None:
        for key, value in headers.items():
            self._headers[key.lower()] = value

    def set_status(self, status_code: int) -> None:
        self._status = status_code

    def _encoded_headers(self, body: bytes) -> List[Tuple[bytes, bytes]]:
        headers = dict(self._headers)
        headers.setdefault("content-length", str(len(body)))
        return [(k.encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()]

    async def send(self, body: bytes) -> None:
        if self.sent:
            raise RuntimeError("response already sent")
        self.sent = True
        await self._send(
            {
                "type": "http.response.start",
                "status": self._status,
                "headers": self._encoded_headers(body),
            }
        )
        await self._send({"type": "http.response.body", "body": body})


__all__ = [
    "ASGIResponseSink",
    "ClientDisconnected",
    "DisconnectWatcher",
    "PayloadTooLarge",
    "decode_headers",
    "parse_body",
    "read_request",
]
