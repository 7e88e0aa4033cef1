"""Contracts between the dispatch pipeline and an HTTP transport.

The pipeline consumes a raw request, a response sink and a pass-through
action. Each sink operation and the pass-through may be plain functions or
coroutines; the pipeline awaits whatever comes back.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping, Protocol, Union, runtime_checkable


@runtime_checkable
class RawRequest(Protocol):
    """Request as supplied by the transport, body and query already parsed."""

    method: str
    path: str
    headers: Mapping[str, str]
    query: Mapping[str, Any]
    body: Any


@runtime_checkable
class ResponseSink(Protocol):
    """Write side of the transport. Expects exactly one ``send``."""

    def set_headers(self, headers: Mapping[str, str]) -> Any: ...

    def set_status(self, status_code: int) -> Any: ...

    def send(self, body: bytes) -> Any: ...


PassThrough = Callable[[], Union[None, Awaitable[None]]]


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable, else return it unchanged."""

    if inspect.isawaitable(value):
        return await value
    return value


async def is_disconnected(raw: Any) -> bool:
    """Ask *raw* whether the client went away; ``False`` when unsupported."""

    probe = getattr(raw, "is_disconnected", None)
    if probe is None:
        return False
    return bool(await maybe_await(probe()))


def sink_closed(sink: Any) -> bool:
    return bool(getattr(sink, "closed", False))


@dataclass
class RawHTTPRequest:
    """In-memory raw request used by adapters and the test client."""

    method: str = "GET"
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    root_path: str = ""
    disconnect_probe: Callable[[], Any] | None = None

    def is_disconnected(self) -> Any:
        if self.disconnect_probe is None:
            return False
        return self.disconnect_probe()

    def mounted(self, prefix: str) -> "RawHTTPRequest":
        """Return a copy with *prefix* moved from ``path`` to ``root_path``."""

        prefix = prefix.rstrip("/")
        if not prefix:
            return self
        rest = self.path[len(prefix):] or "/"
        return replace(self, path=rest, root_path=self.root_path + prefix)


class BufferedSink:
    """Collect the response in memory."""

    def __init__(self) -> None:
        self.status_code: int | None = None
        self.headers: dict[str, str] = {}
        self.body: bytes | None = None
        self.sends = 0
        self.closed = False

    @property
    def sent(self) -> bool:
        return self.sends > 0

    def set_headers(self, headers: Mapping[str, str]) -> None:
        self.headers.update(headers)

    def set_status(self, status_code: int) -> None:
        self.status_code = status_code

    def send(self, body: bytes) -> None:
        if self.sends:
            raise RuntimeError("response already sent")
        self.sends += 1
        self.body = body


__all__ = [
    "BufferedSink",
    "PassThrough",
    "RawHTTPRequest",
    "RawRequest",
    "ResponseSink",
    "is_disconnected",
    "maybe_await",
    "sink_closed",
]
