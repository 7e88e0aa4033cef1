"""Environment-specific configuration loader."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .responses import TEXT_MEDIA_TYPE

ALLOWED_ENVS = {"dev", "prod"}
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings populated from the environment."""

    environment: str = "dev"
    debug: bool = False
    text_media_type: str = TEXT_MEDIA_TYPE
    strict_controllers: bool = False
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    log_level: str = "INFO"


def validate_settings(settings: Settings) -> None:
    """Validate *settings* for safe operation.

    Raises
    ------
    ValueError
        If the environment is unsupported, production settings are
        insecure, or a numeric limit is not positive.
    """

    env = settings.environment
    if env not in ALLOWED_ENVS:
        raise ValueError(f"Unsupported environment: {env}")
    if env == "prod" and settings.debug:
        raise ValueError("Debug must be disabled in production")
    if settings.max_body_size <= 0:
        raise ValueError("STACKER_MAX_BODY_SIZE must be a positive integer")
    if not settings.text_media_type.strip():
        raise ValueError("STACKER_TEXT_MEDIA_TYPE must not be empty")


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def load_settings() -> Settings:
    """Return configuration derived from `STACKER_*` variables."""

    env = os.getenv("STACKER_ENV", "dev").strip().lower()
    raw_limit = os.getenv("STACKER_MAX_BODY_SIZE", str(DEFAULT_MAX_BODY_SIZE))
    try:
        max_body_size = int(raw_limit)
    except ValueError as exc:
        raise ValueError(
            "STACKER_MAX_BODY_SIZE must be a positive integer"
        ) from exc
    settings = Settings(
        environment=env,
        debug=_flag("STACKER_DEBUG"),
        text_media_type=os.getenv("STACKER_TEXT_MEDIA_TYPE", TEXT_MEDIA_TYPE),
        strict_controllers=_flag("STACKER_STRICT_CONTROLLERS"),
        max_body_size=max_body_size,
        log_level=os.getenv("STACKER_LOG_LEVEL", "INFO").strip().upper(),
    )
    validate_settings(settings)
    return settings


__all__ = [
    "ALLOWED_ENVS",
    "DEFAULT_MAX_BODY_SIZE",
    "Settings",
    "load_settings",
    "validate_settings",
]
