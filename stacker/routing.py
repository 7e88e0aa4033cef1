"""Route table mapping (method, path pattern) to handler chains."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .exceptions import RouteRegistrationError
from .logging_utils import get_logger

logger = get_logger("routing")

Handler = Callable[..., Any]

ANY_METHOD = "*"
_ANY_ALIASES = {"*", "ALL", "ANY"}
_SEGMENT = re.compile(r"\{(\w+)\}|:(\w+)")


def normalize_method(method: str) -> str:
    """Upper-case *method*, folding the catch-all aliases onto ``*``."""
    method = str(method).strip().upper()
    if not method:
        raise RouteRegistrationError("HTTP method must not be empty")
    return ANY_METHOD if method in _ANY_ALIASES else method


def normalize_path(path: str) -> str:
    path = "/" + str(path).strip().lstrip("/")
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def compile_pattern(path: str) -> Tuple["re.Pattern[str]", Tuple[str, ...]]:
    """Compile a path pattern into a regex and its parameter names.

    ``{name}`` and ``:name`` match a single path segment; a trailing ``*``
    matches the rest of the path.
    """
    names: List[str] = []
    parts: List[str] = []
    idx = 0
    body = path
    wildcard = body.endswith("*")
    if wildcard:
        body = body[:-1]
    if "*" in body:
        raise RouteRegistrationError(
            f"Invalid route pattern: {path} ('*' is only allowed at the end)"
        )
    for match in _SEGMENT.finditer(body):
        name = match.group(1) or match.group(2)
        if name in names:
            raise RouteRegistrationError(
                f"Invalid route pattern: {path} (duplicate parameter '{name}')"
            )
        names.append(name)
        parts.append(re.escape(body[idx:match.start()]))
        parts.append(f"(?P<{name}>[^/]+)")
        idx = match.end()
    parts.append(re.escape(body[idx:]))
    pattern = "".join(parts)
    if wildcard:
        pattern += ".*"
    elif pattern != "/":
        pattern += "/?"
    return re.compile(f"^{pattern}$"), tuple(names)


@dataclass(frozen=True)
class RouteEntry:
    """A registered route and its ordered handler chain."""

    method: str
    path: str
    handlers: Tuple[Handler, ...]
    regex: "re.Pattern[str]" = field(repr=False, compare=False)
    param_names: Tuple[str, ...] = ()

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        if self.method != ANY_METHOD and self.method != method:
            return None
        found = self.regex.match(path)
        if found is None:
            return None
        return found.groupdict()


class RouteTable:
    """Ordered collection of :class:`RouteEntry` objects.

    Registration order is match priority. Re-registering a
    ``(method, path)`` pair replaces the entry in place. Once frozen the
    table only serves lookups.
    """

    def __init__(self) -> None:
        self._entries: List[RouteEntry] = []
        self._index: Dict[Tuple[str, str], int] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add(
        self,
        method: str,
        path: str,
        handlers: Handler | Sequence[Handler],
    ) -> RouteEntry:
        """Add or overwrite the route for *method* and *path*."""
        if self._frozen:
            raise RouteRegistrationError(
                f"Cannot register {method} {path}: routes are frozen once "
                "requests are being served"
            )
        method = normalize_method(method)
        path = normalize_path(path)
        chain = _as_chain(handlers)
        if not chain:
            raise RouteRegistrationError(f"Route {method} {path} has no handlers")
        for handler in chain:
            if not callable(handler):
                raise RouteRegistrationError(
                    f"Handler for {method} {path} is not callable: {handler!r}"
                )
        regex, names = compile_pattern(path)
        entry = RouteEntry(
            method=method,
            path=path,
            handlers=chain,
            regex=regex,
            param_names=names,
        )
        key = (method, path)
        if key in self._index:
            self._entries[self._index[key]] = entry
            logger.info(f"Route replaced: {method} {path}")
        else:
            self._index[key] = len(self._entries)
            self._entries.append(entry)
            logger.info(f"Route registered: {method} {path}")
        return entry

    def match(
        self, method: str, path: str
    ) -> Optional[Tuple[RouteEntry, Dict[str, str]]]:
        """Return the first entry matching *method* and *path*."""
        method = method.upper()
        for entry in self._entries:
            params = entry.match(method, path)
            if params is not None:
                logger.debug(f"Route matched: {method} {path} -> {entry.path}")
                return entry, params
        return None

    def get_routes(self) -> List[RouteEntry]:
        """Get all registered routes."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


def _as_chain(handlers: Handler | Iterable[Handler]) -> Tuple[Handler, ...]:
    if callable(handlers):
        return (handlers,)
    return tuple(handlers)


__all__ = [
    "ANY_METHOD",
    "Handler",
    "RouteEntry",
    "RouteTable",
    "compile_pattern",
    "normalize_method",
    "normalize_path",
]
