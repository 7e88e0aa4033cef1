"""Read-only request context handed to middleware and handlers."""

from __future__ import annotations

import json
from http.cookies import SimpleCookie
from types import MappingProxyType, SimpleNamespace
from typing import Any, Mapping, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import BadRequest, UnprocessableEntity

T = TypeVar("T")


class Request:
    """Represent an incoming HTTP request.

    The transport parses headers, query and body before the pipeline runs;
    this class only exposes them. ``state`` is the one writable area,
    meant for handlers of the same chain to hand data forward.
    """

    __slots__ = (
        "_method",
        "_path",
        "_root_path",
        "_params",
        "_query",
        "_body",
        "_headers",
        "_cookies",
        "state",
    )

    def __init__(
        self,
        method: str = "GET",
        path: str = "/",
        *,
        params: Mapping[str, str] | None = None,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        root_path: str = "",
    ) -> None:
        self._method = method.upper()
        self._path = path or "/"
        self._root_path = root_path
        self._params = MappingProxyType(dict(params or {}))
        self._query = MappingProxyType(dict(query or {}))
        self._body = body
        self._headers = MappingProxyType(
            {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        )
        self._cookies: Mapping[str, str] | None = None
        self.state = SimpleNamespace()

    @classmethod
    def from_raw(
        cls, raw: Any, params: Mapping[str, str] | None = None
    ) -> "Request":
        """Build a request from a transport-level raw request."""

        return cls(
            method=getattr(raw, "method", "GET"),
            path=getattr(raw, "path", "/"),
            params=params,
            query=getattr(raw, "query", None),
            body=getattr(raw, "body", None),
            headers=getattr(raw, "headers", None),
            root_path=getattr(raw, "root_path", "") or "",
        )

    @property
    def method(self) -> str:
        return self._method

    @property
    def path(self) -> str:
        return self._path

    @property
    def root_path(self) -> str:
        return self._root_path

    @property
    def full_path(self) -> str:
        return (self._root_path + self._path) if self._root_path else self._path

    @property
    def params(self) -> Mapping[str, str]:
        return self._params

    @property
    def query(self) -> Mapping[str, Any]:
        return self._query

    @property
    def body(self) -> Any:
        return self._body

    @property
    def headers(self) -> Mapping[str, str]:
        return self._headers

    @property
    def cookies(self) -> Mapping[str, str]:
        """Lazily parse cookies from the request headers."""
        if self._cookies is None:
            jar: SimpleCookie = SimpleCookie()
            jar.load(self._headers.get("cookie", ""))
            self._cookies = MappingProxyType(
                {k: morsel.value for k, morsel in jar.items()}
            )
        return self._cookies

    def param(self, name: str, default: Any = None) -> Any:
        return self._params.get(name, default)

    def query_param(self, name: str, default: Any = None) -> Any:
        return self._query.get(name, default)

    def header(self, name: str, default: Any = None) -> Any:
        return self._headers.get(name.lower(), default)

    def json(self) -> Any:
        """Return the body as decoded JSON.

        Bodies the transport already parsed are returned as-is; text and
        bytes are decoded, raising :class:`BadRequest` when malformed.
        """
        body = self._body
        if body is None or body == b"" or body == "":
            return None
        if not isinstance(body, (str, bytes, bytearray)):
            return body
        try:
            return json.loads(body)
        except ValueError as exc:
            raise BadRequest("malformed JSON body") from exc

    def parse_body(self, model: type[T]) -> T:
        """Validate the body against *model* using pydantic.

        Validation failures raise :class:`UnprocessableEntity` carrying the
        error list so the caller gets a 422 with details.
        """
        payload = self.json()
        try:
            return TypeAdapter(model).validate_python(
                {} if payload is None else payload
            )
        except PydanticValidationError as exc:
            errors = []
            for err in exc.errors():
                errors.append(
                    {
                        "loc": ["body", *err.get("loc", ())],
                        "msg": err.get("msg", ""),
                        "type": err.get("type", "value_error"),
                    }
                )
            raise UnprocessableEntity({"detail": errors}) from exc

    def __repr__(self) -> str:
        return f"Request({self._method} {self.full_path})"


__all__ = ["Request"]
