"""Dispatch pipeline: middleware, route chains and exactly-once termination."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config import Settings, load_settings
from .controller import Controller, ControllerRoutes, expand_controller
from .exceptions import HTTPException
from .logging_utils import get_logger, log_event
from .metrics import dispatch_duration_seconds, dispatch_total, handler_errors_total
from .outcome import CONTINUE, Continue, Fail, Outcome, Respond, error_response, invoke
from .request import Request
from .routing import Handler, RouteEntry, RouteTable
from .transport import PassThrough, is_disconnected, maybe_await, sink_closed

_LOGGER = get_logger()

Middleware = Callable[[Request], Any]
ExceptionHandler = Callable[[Request, Exception], Any]


class DispatchResult(str, Enum):
    """Terminal action taken for one request."""

    RESPONDED = "responded"
    PASSED_THROUGH = "passed_through"
    ABORTED = "aborted"


@dataclass
class DispatchState:
    """Per-request bookkeeping owned by a single :meth:`MicroService.handle` call."""

    raw: Any
    sink: Any
    request: Request
    terminal: bool = False
    result: Optional[DispatchResult] = None

    def conclude(self, result: DispatchResult) -> bool:
        """Mark the request terminal; ``False`` if it already was."""
        if self.terminal:
            return False
        self.terminal = True
        self.result = result
        return True


class MicroService:
    """Route requests through middleware and handler chains.

    Every call to :meth:`handle` ends in exactly one of: a response written
    to the sink, the transport's pass-through being called, or nothing at
    all because the client disconnected first.
    """

    def __init__(
        self,
        name: str = "Micro Stacker",
        *,
        settings: Settings | None = None,
    ) -> None:
        self.name = name
        self.settings = settings or load_settings()
        self.routes = RouteTable()
        self._middleware: List[Middleware] = []
        self.exception_handlers: Dict[type, ExceptionHandler] = {}

    # Registration

    def register_middleware(self, middleware: Middleware) -> Middleware:
        """Append *middleware*; it applies to requests dispatched afterwards."""

        if not callable(middleware):
            raise TypeError(f"middleware must be callable, got {middleware!r}")
        self._middleware.append(middleware)
        _LOGGER.debug("Middleware registered on %s: %r", self.name, middleware)
        return middleware

    use = register_middleware

    @property
    def middleware(self) -> Tuple[Middleware, ...]:
        return tuple(self._middleware)

    def register_route(
        self,
        method: str,
        path: str,
        handlers: Handler | Sequence[Handler],
    ) -> RouteEntry:
        """Add or overwrite the route for *method* and *path*."""

        return self.routes.add(method, path, handlers)

    def route(
        self, path: str, methods: Optional[List[str]] = None
    ) -> Callable[[Handler], Handler]:
        """Decorator for route registration."""
        if methods is None:
            methods = ["GET"]

        def decorator(func: Handler) -> Handler:
            for method in methods:
                self.register_route(method, path, func)
            return func

        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["GET"])

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["POST"])

    def put(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["PUT"])

    def patch(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["PATCH"])

    def delete(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["DELETE"])

    def all(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, ["*"])

    def bind_controller(
        self, description: ControllerRoutes, instance: Any
    ) -> List[RouteEntry]:
        """Register the routes described for *instance*."""

        expanded = expand_controller(
            description,
            instance,
            strict=self.settings.strict_controllers,
        )
        return [
            self.register_route(method, path, chain)
            for method, path, chain in expanded
        ]

    def register_controller(self, controller: Controller) -> List[RouteEntry]:
        """Bind *controller* using the description from its ``routes()``."""

        return self.bind_controller(controller.routes(), controller)

    def add_exception_handler(
        self, exc_type: type, handler: ExceptionHandler
    ) -> None:
        """Register a custom *handler* for exceptions of type *exc_type*."""

        self.exception_handlers[exc_type] = handler

    def _lookup_handler(self, exc: BaseException) -> Optional[ExceptionHandler]:
        for cls in type(exc).__mro__:
            if cls in self.exception_handlers:
                return self.exception_handlers[cls]
        return None

    # Dispatch

    async def handle(
        self,
        raw_request: Any,
        sink: Any,
        pass_through: PassThrough,
    ) -> DispatchResult:
        """Run one request through the pipeline."""

        start = time.perf_counter()
        self.routes.freeze()
        method = str(getattr(raw_request, "method", "GET")).upper()
        path = getattr(raw_request, "path", "/") or "/"
        matched = self.routes.match(method, path)
        entry, params = matched if matched is not None else (None, {})
        request = Request.from_raw(raw_request, params)
        request.state.route = entry.path if entry is not None else None
        state = DispatchState(raw=raw_request, sink=sink, request=request)

        outcome = await self._run_chain(state, tuple(self._middleware))
        if isinstance(outcome, Continue) and entry is not None:
            outcome = await self._run_chain(state, entry.handlers)
        result = await self._conclude(state, outcome, pass_through)

        duration = time.perf_counter() - start
        dispatch_total.labels(service=self.name, result=result.value).inc()
        dispatch_duration_seconds.labels(service=self.name).observe(duration)
        log_event(
            _LOGGER,
            logging.DEBUG,
            {
                "event": "dispatch",
                "service": self.name,
                "method": method,
                "path": request.full_path,
                "route": request.state.route,
                "result": result.value,
                "duration_ms": round(duration * 1000, 3),
            },
        )
        return result

    async def _client_gone(self, state: DispatchState) -> bool:
        if sink_closed(state.sink):
            return True
        return await is_disconnected(state.raw)

    async def _run_chain(
        self, state: DispatchState, steps: Sequence[Callable[..., Any]]
    ) -> Optional[Outcome]:
        """Run *steps* in order; ``None`` means the client went away."""

        for step in steps:
            if await self._client_gone(state):
                return None
            outcome = await invoke(
                step,
                state.request,
                text_media_type=self.settings.text_media_type,
            )
            if not isinstance(outcome, Continue):
                return outcome
        return CONTINUE

    async def _conclude(
        self,
        state: DispatchState,
        outcome: Optional[Outcome],
        pass_through: PassThrough,
    ) -> DispatchResult:
        if outcome is None:
            return self._mark(state, DispatchResult.ABORTED)
        if isinstance(outcome, Continue):
            result = self._mark(state, DispatchResult.PASSED_THROUGH)
            await maybe_await(pass_through())
            return result
        status, body, headers = await self._render(state.request, outcome)
        if await self._client_gone(state):
            return self._mark(state, DispatchResult.ABORTED)
        result = self._mark(state, DispatchResult.RESPONDED)
        await maybe_await(state.sink.set_headers(headers))
        await maybe_await(state.sink.set_status(status))
        await maybe_await(state.sink.send(body))
        return result

    def _mark(self, state: DispatchState, result: DispatchResult) -> DispatchResult:
        if not state.conclude(result):
            _LOGGER.error(
                "Refusing second terminal action %s for %r (already %s)",
                result.value,
                state.request,
                state.result.value if state.result else None,
            )
            raise RuntimeError("request already reached a terminal action")
        return result

    async def _render(
        self, request: Request, outcome: Outcome
    ) -> Tuple[int, bytes, Dict[str, str]]:
        """Serialize the response for *outcome*, falling back on failures."""

        if isinstance(outcome, Respond):
            try:
                return outcome.response.freeze().serialize()
            except Exception as exc:  # noqa: BLE001
                outcome = Fail(exc)
        response = await self._translate(request, outcome.error)
        try:
            return response.freeze().serialize()
        except Exception as exc:  # noqa: BLE001
            fallback = error_response(
                exc, text_media_type=self.settings.text_media_type
            )
            return fallback.freeze().serialize()

    async def _translate(self, request: Request, error: BaseException):
        kind = "http" if isinstance(error, HTTPException) else "unclassified"
        handler_errors_total.labels(service=self.name, kind=kind).inc()
        text_type = self.settings.text_media_type
        handler = self._lookup_handler(error)
        if handler is not None:
            custom = await invoke(handler, request, error, text_media_type=text_type)
            if isinstance(custom, Respond):
                return custom.response
            if isinstance(custom, Fail):
                _LOGGER.error(
                    "Exception handler for %s failed",
                    type(error).__name__,
                    exc_info=custom.error,
                )
                error = custom.error
        try:
            return error_response(error, text_media_type=text_type)
        except Exception as exc:  # noqa: BLE001
            return error_response(exc, text_media_type=text_type)


__all__ = [
    "DispatchResult",
    "DispatchState",
    "ExceptionHandler",
    "MicroService",
    "Middleware",
]
