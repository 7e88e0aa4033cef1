"""
Pytest configuration and shared fixtures for the Stacker test suite.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, List

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stacker.config import Settings  # noqa: E402
from stacker.service import MicroService  # noqa: E402
from stacker.transport import BufferedSink, RawHTTPRequest  # noqa: E402


# ============================================================================
# Function-level fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Provide default settings independent of the environment."""
    return Settings()


@pytest.fixture
def service(settings: Settings) -> MicroService:
    """Provide an empty micro-service."""
    return MicroService("test", settings=settings)


@pytest.fixture
def sink() -> BufferedSink:
    """Provide an in-memory response sink."""
    return BufferedSink()


class PassThroughRecorder:
    """Count pass-through invocations."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


@pytest.fixture
def pass_through() -> PassThroughRecorder:
    return PassThroughRecorder()


@pytest.fixture
def dispatch(
    service: MicroService, sink: BufferedSink, pass_through: PassThroughRecorder
) -> Callable[..., Any]:
    """Run one request through ``service`` and return the dispatch result."""

    def _dispatch(method: str = "GET", path: str = "/", **kwargs: Any) -> Any:
        raw = RawHTTPRequest(method=method, path=path, **kwargs)
        return asyncio.run(service.handle(raw, sink, pass_through))

    return _dispatch


# ============================================================================
# Test utilities
# ============================================================================

def run(coro):
    """Synchronously execute an async coroutine."""
    return asyncio.run(coro)


def recorder(log: List[str], name: str, value: Any = None) -> Callable[..., Any]:
    """Return a handler appending *name* to *log* and returning *value*."""

    def handler(request):
        log.append(name)
        return value

    handler.__name__ = name
    return handler


# ============================================================================
# Hooks
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names."""
    for item in items:
        if "error" in item.name or "invalid" in item.name:
            item.add_marker(pytest.mark.error_handling)
