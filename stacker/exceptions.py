"""Error hierarchy for Stacker."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, Optional


class StackerError(Exception):
    """BASE ERROR CLASS."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ValidationError(StackerError):
    """VALIDATION ERRORS."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        if field:
            message = f"{field}: {message}"
        super().__init__("STACKER_VALIDATION_ERROR", message)
        self.field = field
        self.value = value


class RouteRegistrationError(StackerError):
    """Route could not be added to a route table."""

    def __init__(self, message: str):
        super().__init__("STACKER_ROUTE_ERROR", message)


class ControllerBindingError(StackerError):
    """Controller description references actions the controller lacks."""

    def __init__(self, controller: str, missing: list[str]):
        names = ", ".join(missing)
        super().__init__(
            "STACKER_CONTROLLER_ERROR",
            f"{controller} does not expose action(s): {names}",
        )
        self.controller = controller
        self.missing = list(missing)


class ResponseFinalizedError(StackerError):
    """Builder call on a response that was already consumed."""

    def __init__(self, operation: str):
        super().__init__(
            "STACKER_RESPONSE_FINALIZED",
            f"cannot {operation} on a finalized response",
        )


class HTTPException(Exception):
    """Error carrying an HTTP status code and optional headers.

    ``detail`` is surfaced to the caller verbatim: mappings and lists are
    sent as JSON, anything else as text. When ``detail`` is ``None`` the
    standard reason phrase for ``status_code`` is used.
    """

    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if detail is None:
            try:
                detail = HTTPStatus(status_code).phrase
            except ValueError:
                detail = ""
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.headers = dict(headers or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.status_code}, {self.detail!r})"


class _StatusError(HTTPException):
    status_code_default = 500

    def __init__(
        self,
        detail: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(self.status_code_default, detail, headers)


class BadRequest(_StatusError):
    status_code_default = 400


class Unauthorized(_StatusError):
    status_code_default = 401


class Forbidden(_StatusError):
    status_code_default = 403


class NotFound(_StatusError):
    status_code_default = 404


class MethodNotAllowed(_StatusError):
    status_code_default = 405


class Conflict(_StatusError):
    status_code_default = 409


class UnprocessableEntity(_StatusError):
    status_code_default = 422


class TooManyRequests(_StatusError):
    status_code_default = 429


__all__ = [
    "StackerError",
    "ValidationError",
    "RouteRegistrationError",
    "ControllerBindingError",
    "ResponseFinalizedError",
    "HTTPException",
    "BadRequest",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "MethodNotAllowed",
    "Conflict",
    "UnprocessableEntity",
    "TooManyRequests",
]
