"""Redaction helpers for safe logging.

Connection strings, webhook secrets and contact data must never reach a log
line as-is; every value taken from the database or environment goes through
one of these first.
"""

import re
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_DSN_PASSWORD_PATTERN = re.compile(r"(password\s*=\s*)('(?:[^'\\]|\\.)*'|\S+)")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact phone numbers and email addresses from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_url(url: str) -> str:
    """Hide the password of a database URL or libpq key=value DSN."""
    if "://" not in url:
        return _DSN_PASSWORD_PATTERN.sub(rf"\g<1>{_REDACTED}", url)
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return _REDACTED


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # structure only, never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}
