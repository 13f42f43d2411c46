"""Redaction of sensitive values before they reach an audit log."""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import Any, FrozenSet

REDACTED = "[REDACTED]"

SENSITIVE_KEYS: FrozenSet[str] = frozenset({
    "password",
    "token",
    "auth",
    "secret",
    "authorization",
    "api_key",
    "access_token",
    "refresh_token",
})


def sanitize(record: Any) -> Any:
    """
    Return a copy of ``record`` that is safe to write to an audit log.

    Mappings are copied one level deep and every key matching the denylist
    (case-insensitive) gets its value replaced by ``[REDACTED]``. Dataclasses
    are converted to dicts first, exceptions are reduced to their message and
    type. Anything else is returned as is.
    """
    if record is None:
        return None

    if isinstance(record, BaseException):
        return {"error": str(record), "error_type": type(record).__name__}

    if is_dataclass(record) and not isinstance(record, type):
        record = asdict(record)

    if not isinstance(record, Mapping):
        return record

    sanitized = dict(record)
    for key in sanitized:
        if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
            sanitized[key] = REDACTED

    return sanitized
