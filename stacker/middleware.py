"""Middleware shipped with Stacker.

A middleware is any callable taking the :class:`~stacker.request.Request`.
Returning ``None`` lets the request continue; returning a value or raising
ends the chain exactly as a route handler would.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Iterable

from .exceptions import BadRequest, TooManyRequests
from .logging_utils import get_logger, log_event
from .request import Request


class RequestLoggerMiddleware:
    """Emit a structured log line for every request and tag it with an id."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        *,
        level: int = logging.INFO,
    ) -> None:
        self.logger = logger or get_logger("request")
        self.level = level

    def _ensure_request_id(self, request: Request) -> str:
        """Return a stable request identifier, generating one if absent."""

        request_id = getattr(request.state, "request_id", None)
        if not request_id:
            request_id = request.header("x-request-id") or uuid.uuid4().hex
            request.state.request_id = request_id
        return request_id

    def __call__(self, request: Request) -> None:
        payload = {
            "event": "request",
            "method": request.method,
            "path": request.full_path,
            "route": getattr(request.state, "route", None) or request.path,
            "request_id": self._ensure_request_id(request),
        }
        log_event(self.logger, self.level, payload)
        return None


class TrustedHostMiddleware:
    """Permit only configured host names."""

    def __init__(self, allowed_hosts: Iterable[str]) -> None:
        self.allowed = {host.lower() for host in allowed_hosts}
        self.allow_any = "*" in self.allowed

    def __call__(self, request: Request) -> None:
        if self.allow_any:
            return None
        host = request.header("host", "").split(":", 1)[0].lower()
        if host not in self.allowed:
            raise BadRequest("host not allowed")
        return None


def forwarded_client(request: Request) -> str:
    """Return the first ``x-forwarded-for`` hop, or ``"anonymous"``."""

    forwarded = request.header("x-forwarded-for", "")
    return forwarded.split(",", 1)[0].strip() or "anonymous"


class RateLimitMiddleware:
    """Allow at most ``limit`` requests per ``window`` seconds for each key.

    The key defaults to the client address from ``x-forwarded-for``. With
    ``per_route`` the matched route pattern is appended, so ``/users/1``
    and ``/users/2`` share a budget. Keys idle for a full window are
    evicted.
    """

    def __init__(
        self,
        limit: int,
        window: float = 1.0,
        *,
        key: Callable[[Request], str] = forwarded_client,
        per_route: bool = False,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window <= 0:
            raise ValueError("window must be positive")
        self.limit = limit
        self.window = window
        self.key = key
        self.per_route = per_route
        self.timer = timer
        self._hits: Dict[str, Deque[float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def _bucket_key(self, request: Request) -> str:
        client = self.key(request)
        if not self.per_route:
            return client
        route = getattr(request.state, "route", None) or request.path
        return f"{client} {request.method} {route}"

    def _sweep(self, cutoff: float) -> None:
        for name in [k for k, hits in self._hits.items() if hits[-1] <= cutoff]:
            del self._hits[name]

    def _retry_after(self, request: Request) -> float | None:
        """Record a hit; seconds until the next slot when over the limit."""

        name = self._bucket_key(request)
        now = self.timer()
        cutoff = now - self.window
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window
            hits = self._hits.setdefault(name, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                return hits[0] + self.window - now
            hits.append(now)
            return None

    def __call__(self, request: Request) -> None:
        wait = self._retry_after(request)
        if wait is None:
            return None
        raise TooManyRequests(
            {"detail": "Too Many Requests"},
            headers={
                "retry-after": str(max(1, math.ceil(wait))),
                "x-ratelimit-limit": str(self.limit),
                "x-ratelimit-remaining": "0",
            },
        )


__all__ = [
    "RateLimitMiddleware",
    "RequestLoggerMiddleware",
    "TrustedHostMiddleware",
    "forwarded_client",
]
