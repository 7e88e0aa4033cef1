"""Stacker: a small request-routing layer for Python web services."""

__version__ = "0.1.0"

from .app import App
from .config import Settings, load_settings
from .controller import Controller
from .exceptions import (
    BadRequest,
    Conflict,
    ControllerBindingError,
    Forbidden,
    HTTPException,
    MethodNotAllowed,
    NotFound,
    ResponseFinalizedError,
    RouteRegistrationError,
    StackerError,
    TooManyRequests,
    Unauthorized,
    UnprocessableEntity,
    ValidationError,
)
from .middleware import (
    RateLimitMiddleware,
    RequestLoggerMiddleware,
    TrustedHostMiddleware,
)
from .outcome import Continue, Fail, Respond
from .request import Request
from .responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from .service import DispatchResult, MicroService
from .testclient import TestClient

__all__ = [
    "__version__",
    "App",
    "MicroService",
    "Controller",
    "DispatchResult",
    "Request",
    "Response",
    "JSONResponse",
    "PlainTextResponse",
    "HTMLResponse",
    "RedirectResponse",
    "Continue",
    "Respond",
    "Fail",
    "Settings",
    "load_settings",
    "RequestLoggerMiddleware",
    "TrustedHostMiddleware",
    "RateLimitMiddleware",
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
    "TestClient",
]
