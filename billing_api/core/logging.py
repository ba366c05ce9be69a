"""
Logging for the billing API.

Every record emitted under the `billing_api` logger carries the request's
log context: `request_id`, plus the `account_reference` / `user_reference`
the request is about when its path names one. Production renders JSON
lines; other environments render one readable line per record.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

LOGGER_NAME = "billing_api"
CONTEXT_FIELDS = ("request_id", "account_reference", "user_reference")
RECORD_FIELDS = CONTEXT_FIELDS + ("subscription_id", "event_type", "error_code")
MAX_EXTRA_LENGTH = 500

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
account_reference_ctx_var: ContextVar[Optional[str]] = ContextVar("account_reference", default=None)
user_reference_ctx_var: ContextVar[Optional[str]] = ContextVar("user_reference", default=None)

_CONTEXT_VARS: Dict[str, ContextVar] = {
    "request_id": request_id_ctx_var,
    "account_reference": account_reference_ctx_var,
    "user_reference": user_reference_ctx_var,
}


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def current_log_context() -> Dict[str, Optional[str]]:
    return {name: var.get() for name, var in _CONTEXT_VARS.items()}


def bind_log_context(**values: Optional[str]) -> Dict[str, object]:
    """Set context fields for the current request; returns tokens for reset_log_context."""
    unknown = set(values) - set(_CONTEXT_VARS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {', '.join(sorted(unknown))}")
    return {name: _CONTEXT_VARS[name].set(value) for name, value in values.items()}


def reset_log_context(tokens: Dict[str, object]) -> None:
    for name, token in tokens.items():
        _CONTEXT_VARS[name].reset(token)


class LogContextFilter(logging.Filter):
    """Copy the request's log context onto records that don't set it themselves."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in current_log_context().items():
            if getattr(record, name, None) is None:
                setattr(record, name, value)
        return True


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in RECORD_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = "".join(
            f" [{label}={getattr(record, key)}]"
            for key, label in (("request_id", "rid"), ("account_reference", "account"), ("user_reference", "user"))
            if getattr(record, key, None)
        )
        return f"{_timestamp(record)} {record.levelname} [{LOGGER_NAME}]{tags} {record.getMessage()}"


def configure_logging(env: str = "development") -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(LogContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def log_event(
    level: str,
    msg: str,
    *,
    account_reference: Optional[str] = None,
    subscription_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Log a lifecycle event; unset context fields fall back to the request's log context."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    payload: Dict[str, object] = current_log_context()
    if account_reference is not None:
        payload["account_reference"] = account_reference
    payload["subscription_id"] = subscription_id
    if event_type:
        payload["event_type"] = event_type
    if error_code:
        payload["error_code"] = error_code
    for key, value in (extra or {}).items():
        text = str(value)
        payload[key] = text if len(text) <= MAX_EXTRA_LENGTH else text[:MAX_EXTRA_LENGTH] + "...<truncated>"

    getattr(logger, level, logger.info)(msg, extra=payload)
