"""HTTP response model and status utilities."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from .exceptions import ResponseFinalizedError, ValidationError

JSON_MEDIA_TYPE = "application/json"
TEXT_MEDIA_TYPE = "text/html; charset=utf-8"
PLAIN_MEDIA_TYPE = "text/plain; charset=utf-8"
BINARY_MEDIA_TYPE = "application/octet-stream"


def is_structured(value: Any) -> bool:
    """Return ``True`` when *value* should be serialized as JSON."""

    if isinstance(value, (str, bytes, bytearray)):
        return False
    if isinstance(value, (Mapping, list, tuple, BaseModel)):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def render_json(value: Any) -> bytes:
    """Encode a structured value as JSON bytes."""

    return json.dumps(to_jsonable_python(value), separators=(",", ":")).encode()


def _validate_status(status_code: Any) -> int:
    if isinstance(status_code, bool) or not isinstance(status_code, int):
        raise ValidationError(
            message="Status code must be an integer",
            field="status_code",
            value=status_code,
        )
    if not 100 <= status_code <= 599:
        raise ValidationError(
            message="Invalid status code",
            field="status_code",
            value=status_code,
        )
    return status_code


class Response:
    """HTTP response built incrementally and consumed once.

    The builder methods return the response itself so calls can be
    chained::

        Response().set_status(201).set_header("Location", "/users/1")

    Once :meth:`freeze` is called (the dispatch pipeline does so when it
    writes the response) every builder method raises
    :class:`~stacker.exceptions.ResponseFinalizedError`.
    """

    def __init__(
        self,
        content: Any = None,
        *,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
        media_type: str | None = None,
    ) -> None:
        self._frozen = False
        self._status_code = _validate_status(status_code)
        self._headers: dict[str, str] = {}
        self._content: Any = content
        if headers:
            self.set_headers(headers)
        if media_type is not None:
            self._headers.setdefault("content-type", media_type)

    # Builder phase

    def _check_mutable(self, operation: str) -> None:
        if self._frozen:
            raise ResponseFinalizedError(operation)

    def set_status(self, status_code: int) -> "Response":
        """Set the status code."""
        self._check_mutable("set status")
        self._status_code = _validate_status(status_code)
        return self

    def set_header(self, key: str, value: str) -> "Response":
        """Set or replace a header."""
        self._check_mutable("set header")
        self._headers[str(key).lower()] = str(value)
        return self

    def set_headers(self, headers: Mapping[str, str]) -> "Response":
        """Merge *headers* into the response, last write wins."""
        self._check_mutable("set headers")
        for key, value in headers.items():
            self._headers[str(key).lower()] = str(value)
        return self

    def set_content(self, content: Any) -> "Response":
        """Replace the body."""
        self._check_mutable("set content")
        self._content = content
        return self

    def freeze(self) -> "Response":
        """End the builder phase."""
        self._frozen = True
        return self

    # Read accessors

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def headers(self) -> Mapping[str, str]:
        return MappingProxyType(self._headers)

    @property
    def content(self) -> Any:
        return self._content

    @property
    def is_structured(self) -> bool:
        return is_structured(self._content)

    @property
    def media_type(self) -> str:
        explicit = self._headers.get("content-type")
        if explicit:
            return explicit
        if self.is_structured:
            return JSON_MEDIA_TYPE
        if isinstance(self._content, (bytes, bytearray)):
            return BINARY_MEDIA_TYPE
        return TEXT_MEDIA_TYPE

    def body(self) -> bytes:
        """Return the encoded body."""
        content = self._content
        if content is None:
            return b""
        if isinstance(content, (bytes, bytearray)):
            return bytes(content)
        if self.is_structured:
            return render_json(content)
        return str(content).encode()

    def serialize(self) -> tuple[int, bytes, dict[str, str]]:
        """Return ``(status_code, body, headers)`` for transmission."""
        headers = dict(self._headers)
        headers.setdefault("content-type", self.media_type)
        return self._status_code, self.body(), headers

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(status_code={self._status_code}, "
            f"media_type={self.media_type!r})"
        )

    # Constructors

    @classmethod
    def json(cls, data: Any, status: int = 200) -> "Response":
        """CREATE JSON response."""
        return cls(data, status_code=status, media_type=JSON_MEDIA_TYPE)

    @classmethod
    def text(cls, text: str, status: int = 200) -> "Response":
        """CREATE text response."""
        return cls(text, status_code=status, media_type=PLAIN_MEDIA_TYPE)

    @classmethod
    def binary(cls, data: bytes, status: int = 200) -> "Response":
        """CREATE binary response."""
        return cls(data, status_code=status, media_type=BINARY_MEDIA_TYPE)


class JSONResponse(Response):
    """Serialize content to JSON."""

    def __init__(
        self,
        content: Any,
        *,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            content,
            status_code=status_code,
            headers=headers,
            media_type=JSON_MEDIA_TYPE,
        )

    def body(self) -> bytes:
        return render_json(self.content)


class PlainTextResponse(Response):
    """Return plain text content."""

    def __init__(
        self,
        content: str,
        *,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            content,
            status_code=status_code,
            headers=headers,
            media_type=PLAIN_MEDIA_TYPE,
        )


class HTMLResponse(Response):
    """Return HTML content."""

    def __init__(
        self,
        content: str,
        *,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            content,
            status_code=status_code,
            headers=headers,
            media_type="text/html; charset=utf-8",
        )


class RedirectResponse(Response):
    """Redirect to a different URL."""

    def __init__(
        self,
        url: str,
        *,
        status_code: int = 307,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            "",
            status_code=status_code,
            headers={"location": url, **(headers or {})},
            media_type=TEXT_MEDIA_TYPE,
        )


HTTP_200_OK = 200
HTTP_201_CREATED = 201
HTTP_204_NO_CONTENT = 204
HTTP_400_BAD_REQUEST = 400
HTTP_404_NOT_FOUND = 404
HTTP_413_REQUEST_ENTITY_TOO_LARGE = 413
HTTP_500_INTERNAL_SERVER_ERROR = 500


__all__ = [
    "HTMLResponse",
    "JSONResponse",
    "PlainTextResponse",
    "RedirectResponse",
    "Response",
    "is_structured",
    "render_json",
    "JSON_MEDIA_TYPE",
    "TEXT_MEDIA_TYPE",
    "PLAIN_MEDIA_TYPE",
    "BINARY_MEDIA_TYPE",
    "HTTP_200_OK",
    "HTTP_201_CREATED",
    "HTTP_204_NO_CONTENT",
    "HTTP_400_BAD_REQUEST",
    "HTTP_404_NOT_FOUND",
    "HTTP_413_REQUEST_ENTITY_TOO_LARGE",
    "HTTP_500_INTERNAL_SERVER_ERROR",
]
