"""Classify what a middleware or handler produced.

Every step of a request chain ends in exactly one of three outcomes:

``Continue``
    The step returned ``None``; the chain moves on.
``Respond``
    The step produced a value that becomes the response.
``Fail``
    The step raised, synchronously or while its result was awaited.

Classification looks only at the final value, never at how it arrived,
so ``async def`` handlers and plain functions behave the same.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Union

from .exceptions import HTTPException
from .logging_utils import get_logger
from .responses import (
    BINARY_MEDIA_TYPE,
    JSON_MEDIA_TYPE,
    TEXT_MEDIA_TYPE,
    Response,
    is_structured,
)

_LOGGER = get_logger()


@dataclass(frozen=True)
class Continue:
    """No answer; hand control to the next step."""


@dataclass(frozen=True)
class Respond:
    response: Response


@dataclass(frozen=True)
class Fail:
    error: BaseException


Outcome = Union[Continue, Respond, Fail]

CONTINUE = Continue()


def classify(value: Any, *, text_media_type: str = TEXT_MEDIA_TYPE) -> Outcome:
    """Map a resolved step value onto an :data:`Outcome`."""

    if value is None:
        return CONTINUE
    if isinstance(value, Response):
        return Respond(value)
    if is_structured(value):
        return Respond(Response(value, media_type=JSON_MEDIA_TYPE))
    if isinstance(value, (bytes, bytearray)):
        return Respond(Response(bytes(value), media_type=BINARY_MEDIA_TYPE))
    return Respond(Response(str(value), media_type=text_media_type))


async def invoke(
    step: Callable[..., Any],
    *args: Any,
    text_media_type: str = TEXT_MEDIA_TYPE,
) -> Outcome:
    """Call *step*, await its result if needed and classify it."""

    try:
        result = step(*args)
        if inspect.isawaitable(result):
            result = await result
        return classify(result, text_media_type=text_media_type)
    except Exception as exc:  # noqa: BLE001
        return Fail(exc)


def error_response(
    error: BaseException, *, text_media_type: str = TEXT_MEDIA_TYPE
) -> Response:
    """Translate *error* into the response the caller receives."""

    if isinstance(error, HTTPException):
        detail = error.detail
        if is_structured(detail):
            response = Response(
                detail,
                status_code=error.status_code,
                media_type=JSON_MEDIA_TYPE,
            )
        else:
            response = Response(
                str(detail),
                status_code=error.status_code,
                media_type=text_media_type,
            )
        return response.set_headers(error.headers)
    _LOGGER.error(
        "Unhandled error in request chain: %s: %s",
        type(error).__name__,
        error,
        exc_info=error,
    )
    return Response(
        f"Error 500. <br /><br />Message: {error}.",
        status_code=500,
        media_type=text_media_type,
    )


__all__ = [
    "CONTINUE",
    "Continue",
    "Fail",
    "Outcome",
    "Respond",
    "classify",
    "error_response",
    "invoke",
]
