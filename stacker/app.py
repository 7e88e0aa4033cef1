"""Application object mounting micro-services under path prefixes."""

from __future__ import annotations

import inspect
from typing import Any, Callable, List, Optional, Tuple

from .asgi import (
    ASGIResponseSink,
    ClientDisconnected,
    DisconnectWatcher,
    Receive,
    Scope,
    Send,
    read_request,
)
from .config import Settings, load_settings
from .exceptions import HTTPException
from .logging_utils import get_logger
from .outcome import error_response
from .responses import Response
from .service import DispatchResult, MicroService
from .transport import PassThrough, RawHTTPRequest, maybe_await

_LOGGER = get_logger()

EventHandler = Callable[[], Any]


def normalize_prefix(prefix: str) -> str:
    prefix = "/" + prefix.strip().strip("/")
    return "/" if prefix == "/" else prefix


def prefix_matches(prefix: str, path: str) -> bool:
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


def mount_request(raw: Any, prefix: str) -> Any:
    """Return *raw* with *prefix* moved from its path to its root path."""

    if prefix == "/":
        return raw
    if isinstance(raw, RawHTTPRequest):
        return raw.mounted(prefix)
    probe = getattr(raw, "is_disconnected", None)
    return RawHTTPRequest(
        method=raw.method,
        path=raw.path,
        headers=raw.headers,
        query=raw.query,
        body=raw.body,
        root_path=getattr(raw, "root_path", "") or "",
        disconnect_probe=probe,
    ).mounted(prefix)


class _Relay:
    """Carries the result of whichever stage ended the request."""

    def __init__(self) -> None:
        self.result = DispatchResult.PASSED_THROUGH


class App:
    """Mount :class:`MicroService` instances and serve them over ASGI.

    Services are consulted in mount order. A service that passes the
    request through hands it to the next matching service; when none
    answers the caller's pass-through runs, or a 404 is written.
    """

    def __init__(
        self,
        name: str = "Stacker",
        *,
        settings: Settings | None = None,
    ) -> None:
        self.name = name
        self.settings = settings or load_settings()
        self._mounts: List[Tuple[str, MicroService]] = []
        self._startup: List[EventHandler] = []
        self._shutdown: List[EventHandler] = []

    @property
    def mounts(self) -> List[Tuple[str, MicroService]]:
        return list(self._mounts)

    def register_microservice(
        self, service: MicroService, prefix: str = "/"
    ) -> None:
        """Mount *service* under *prefix*."""

        prefix = normalize_prefix(prefix)
        self._mounts.append((prefix, service))
        _LOGGER.info("Mounted %s at %s", service.name, prefix)

    def on_event(self, event: str) -> Callable[[EventHandler], EventHandler]:
        """Register a startup or shutdown handler."""
        if event not in {"startup", "shutdown"}:
            raise ValueError(f"Unsupported event {event!r}")
        collection = self._startup if event == "startup" else self._shutdown

        def decorator(func: EventHandler) -> EventHandler:
            collection.append(func)
            return func

        return decorator

    async def handle(
        self,
        raw_request: Any,
        sink: Any,
        pass_through: Optional[PassThrough] = None,
    ) -> DispatchResult:
        """Offer the request to each mounted service in turn."""

        mounts = tuple(self._mounts)
        path = getattr(raw_request, "path", "/") or "/"
        relay = _Relay()

        async def stage(index: int) -> None:
            for position in range(index, len(mounts)):
                prefix, service = mounts[position]
                if not prefix_matches(prefix, path):
                    continue

                async def next_stage(after: int = position + 1) -> None:
                    await stage(after)

                result = await service.handle(
                    mount_request(raw_request, prefix), sink, next_stage
                )
                if result is not DispatchResult.PASSED_THROUGH:
                    relay.result = result
                return
            if pass_through is not None:
                relay.result = DispatchResult.PASSED_THROUGH
                await maybe_await(pass_through())
                return
            relay.result = DispatchResult.RESPONDED
            await self._not_found(raw_request, sink)

        await stage(0)
        return relay.result

    async def _not_found(self, raw_request: Any, sink: Any) -> None:
        method = str(getattr(raw_request, "method", "GET")).upper()
        path = getattr(raw_request, "path", "/") or "/"
        response = Response(
            f"Cannot {method} {path}",
            status_code=404,
            media_type=self.settings.text_media_type,
        )
        await _write(sink, response)

    # ASGI

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Dispatch ASGI *scope* to the mounted services."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
        elif scope["type"] == "http":
            await self._handle_http(scope, receive, send)
        else:
            raise NotImplementedError(f"Unsupported scope type {scope['type']}")

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        await receive()  # lifespan.startup
        for func in self._startup:
            result = func()
            if inspect.isawaitable(result):
                await result
        await send({"type": "lifespan.startup.complete"})
        await receive()  # lifespan.shutdown
        for func in self._shutdown:
            result = func()
            if inspect.isawaitable(result):
                await result
        await send({"type": "lifespan.shutdown.complete"})

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = ASGIResponseSink(send)
        try:
            raw = await read_request(
                scope, receive, max_body_size=self.settings.max_body_size
            )
        except ClientDisconnected:
            _LOGGER.debug("Client disconnected before the body was read")
            return
        except HTTPException as exc:
            await _write(
                sink,
                error_response(exc, text_media_type=self.settings.text_media_type),
            )
            return
        watcher = DisconnectWatcher(receive)
        raw.disconnect_probe = watcher.disconnected
        try:
            await self.handle(raw, sink)
        finally:
            await watcher.close()


async def _write(sink: Any, response: Response) -> None:
    status, body, headers = response.freeze().serialize()
    await maybe_await(sink.set_headers(headers))
    await maybe_await(sink.set_status(status))
    await maybe_await(sink.send(body))


__all__ = ["App", "mount_request", "normalize_prefix", "prefix_matches"]
