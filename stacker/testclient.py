"""Simple in-memory HTTP client for Stacker services."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .app import App
from .service import DispatchResult, MicroService
from .transport import BufferedSink, RawHTTPRequest


@dataclass
class Response:
    """Container for HTTP response data."""

    status_code: int | None
    text: str
    headers: Mapping[str, str]
    content: bytes
    result: DispatchResult
    pass_through_calls: int = 0

    @property
    def passed_through(self) -> bool:
        return self.result is DispatchResult.PASSED_THROUGH

    def json(self) -> Any:
        """Return the body parsed as JSON."""
        return json.loads(self.text)


class TestClient:
    """Execute requests against a ``MicroService`` or ``App`` without a server."""

    __test__ = False  # prevent Pytest from treating this as a test case

    def __init__(self, target: Union[MicroService, App]) -> None:
        self.target = target

    async def arequest(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a request from inside a running event loop."""
        if body is not None and json_body is not None:
            raise ValueError("provide either json_body or body")
        hdrs = {k.lower(): v for k, v in (headers or {}).items()}
        if json_body is not None:
            hdrs.setdefault("content-type", "application/json")
            body = json_body
        raw = RawHTTPRequest(
            method=method.upper(),
            path=path,
            headers=hdrs,
            query=dict(params or {}),
            body=body,
        )
        sink = BufferedSink()
        calls = 0

        def pass_through() -> None:
            nonlocal calls
            calls += 1

        result = await self.target.handle(raw, sink, pass_through)
        content = sink.body or b""
        try:
            text = content.decode()
        except UnicodeDecodeError:
            text = content.decode("latin1")
        return Response(
            status_code=sink.status_code,
            text=text,
            headers=dict(sink.headers),
            content=content,
            result=result,
            pass_through_calls=calls,
        )

    def request(self, method: str, path: str, **kwargs: Any) -> Response:
        """Send an HTTP request and return the response."""
        return asyncio.run(self.arequest(method, path, **kwargs))

    def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a GET request."""
        return self.request("GET", path, params=params, headers=headers)

    def post(
        self,
        path: str,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a POST request."""
        return self.request(
            "POST", path, json_body=json_body, params=params, headers=headers
        )

    def put(
        self,
        path: str,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send a PUT request."""
        return self.request("PUT", path, json_body=json_body, headers=headers)

    def delete(
        self, path: str, headers: Mapping[str, str] | None = None
    ) -> Response:
        """Send a DELETE request."""
        return self.request("DELETE", path, headers=headers)


__all__ = ["Response", "TestClient"]
