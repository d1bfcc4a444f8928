from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, MutableMapping, Optional

import structlog

_request_id: ContextVar[Optional[str]] = ContextVar("sunbeam_request_id", default=None)

# Substrings of field names whose values are credentials (client secrets,
# claws, session and access tokens, Authorization headers)
_CREDENTIAL_MARKERS = ("secret", "token", "claw", "authorization")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def get_correlation_id() -> Optional[str]:
    return _request_id.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind the X-Request-ID for the current request, generating one if absent."""
    cid = correlation_id or uuid.uuid4().hex
    _request_id.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    cid = _request_id.get()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def _redact_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credential-looking string fields; the event name is left alone."""
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str):
            continue
        if any(marker in key.lower() for marker in _CREDENTIAL_MARKERS):
            event_dict[key] = _mask(value)
    return event_dict


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Install the structlog pipeline: level, timestamp, request id, redaction, render."""
    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_correlation_id,
            _redact_credentials,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _LEVELS.get(level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


configure_logging(
    os.getenv("LOG_LEVEL", "INFO"),
    json_output=_env_flag("LOG_JSON", "true") and not _env_flag("LOG_DEV_MODE", "false"),
)


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
