"""Bind declarative controller route maps to handler chains.

A controller description maps HTTP methods to paths and paths to one or
more action names::

    {
        "get": {"/users": "index", "/users/{id}": ["load_user", "show"]},
        "post": {"/users": "store"},
    }

Action names are looked up in a capability table built once from the
controller instance. Names missing from that table never become
handlers.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple, Union

from .exceptions import ControllerBindingError
from .logging_utils import get_logger

logger = get_logger("controller")

ActionNames = Union[str, Sequence[str]]
ControllerRoutes = Mapping[str, Mapping[str, ActionNames]]

_RESERVED = frozenset({"routes"})


class Controller:
    """Base class for controllers that declare their own routes."""

    def routes(self) -> ControllerRoutes:
        """Return the ``{method: {path: action(s)}}`` description."""
        return {}


def capability_table(instance: Any) -> Dict[str, Callable[..., Any]]:
    """Return the public callables *instance* exposes, bound to it."""

    table: Dict[str, Callable[..., Any]] = {}
    reserved = _RESERVED if isinstance(instance, Controller) else frozenset()
    for name in dir(instance):
        if name.startswith("_") or name in reserved:
            continue
        try:
            static = inspect.getattr_static(instance, name)
        except AttributeError:
            continue
        if isinstance(static, property) or inspect.isclass(static):
            continue
        value = getattr(instance, name)
        if callable(value):
            table[name] = value
    return table


def _action_list(actions: ActionNames) -> List[str]:
    if isinstance(actions, str):
        return [actions]
    return [str(action) for action in actions]


def expand_controller(
    description: ControllerRoutes,
    instance: Any,
    *,
    strict: bool = False,
) -> List[Tuple[str, str, Tuple[Callable[..., Any], ...]]]:
    """Resolve *description* against *instance*.

    Returns ``(method, path, chain)`` triples in declaration order. Unknown
    actions are dropped with a warning, and routes left with no actions
    are skipped. With ``strict`` any unknown action raises
    :class:`ControllerBindingError` before anything is returned.
    """

    table = capability_table(instance)
    owner = type(instance).__name__
    expanded: List[Tuple[str, str, Tuple[Callable[..., Any], ...]]] = []
    missing: List[str] = []
    for method, paths in description.items():
        for path, actions in paths.items():
            chain = []
            for action in _action_list(actions):
                handler = table.get(action)
                if handler is None:
                    missing.append(action)
                    logger.warning(
                        "Dropping unknown action %s.%s for %s %s",
                        owner,
                        action,
                        method.upper(),
                        path,
                    )
                    continue
                chain.append(handler)
            if not chain:
                logger.warning(
                    "Skipping %s %s: no invocable actions on %s",
                    method.upper(),
                    path,
                    owner,
                )
                continue
            expanded.append((method, path, tuple(chain)))
    if strict and missing:
        raise ControllerBindingError(owner, missing)
    return expanded


__all__ = [
    "ActionNames",
    "Controller",
    "ControllerRoutes",
    "capability_table",
    "expand_controller",
]
