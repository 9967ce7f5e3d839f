"""
Helpers for keeping credentials out of logs and error payloads.

A key is treated as sensitive when it contains (case-insensitively) any of the
fragments in SENSITIVE_FRAGMENTS. This is a substring match on purpose, so
"db_password", "api_key" and "Authorization" are all masked.
"""

import re
from typing import Any, Mapping

MASK = "***"

SENSITIVE_FRAGMENTS = ("password", "token", "secret", "key", "auth")

# user:pass@host inside DSN-like strings
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.\-]*://)(?P<user>[^:/@\s]+):(?P<pw>[^@\s]+)@", re.IGNORECASE)

# password=..., pwd: ...
_INLINE_SECRET = re.compile(r"(?P<name>password|passwd|pwd|token|secret)(?P<sep>\s*[=:]\s*)(?P<value>'[^']*'|\"[^\"]*\"|[^\s;,]+)", re.IGNORECASE)


def is_sensitive_key(key: Any) -> bool:
    """Return True when `key` names a value that must never be logged."""
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_FRAGMENTS)


def mask_sensitive(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a copy of `payload` with sensitive values replaced by '***'.

    Nested mappings are masked recursively; the input is never mutated.
    """
    if not payload:
        return {}

    out: dict[str, Any] = {}
    for k, v in payload.items():
        if is_sensitive_key(k):
            out[k] = MASK
        elif isinstance(v, Mapping):
            out[k] = mask_sensitive(v)
        else:
            out[k] = v
    return out


def sanitize_params(params: Any) -> Any:
    """
    Sanitize statement parameters for logging.

    - mapping -> masked copy
    - list/tuple of mappings (executemany) -> {"record_count": n}
    - anything else is returned unchanged
    """
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return mask_sensitive(params)
    if isinstance(params, (list, tuple)):
        return {"record_count": len(params)}
    return params


def sanitize_message(message: str | None) -> str:
    """Strip credentials that drivers sometimes echo back inside error text."""
    if not message:
        return ""
    cleaned = _URL_CREDENTIALS.sub(lambda m: f"{m.group('scheme')}{m.group('user')}:{MASK}@", message)
    cleaned = _INLINE_SECRET.sub(lambda m: f"{m.group('name')}{m.group('sep')}{MASK}", cleaned)
    return cleaned


__all__ = [
    "MASK",
    "SENSITIVE_FRAGMENTS",
    "is_sensitive_key",
    "mask_sensitive",
    "sanitize_params",
    "sanitize_message",
]
