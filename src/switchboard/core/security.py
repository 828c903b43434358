"""Secret masking for logs and journaled events.

Task contexts and handoff fields are caller data. They can carry tokens or
credentials picked up from a codebase, so anything that leaves the process
through logs or the event journal passes through these helpers first.
"""

from collections.abc import Mapping
from typing import Any

MAX_LLM_RESPONSE_LENGTH = 100_000  # Backend responses beyond this are rejected

SENSITIVE_FIELD_NAMES = frozenset(
    {
        "password",
        "api_key",
        "apikey",
        "api-key",
        "secret",
        "token",
        "credential",
        "auth",
        "private",
        "bearer",
        "authorization",
    }
)

SENSITIVE_PREFIXES = (
    "sk-",
    "pk-",
    "api-",
    "bearer ",
    "token ",
    "secret_",
    "ghp_",
    "AIza",
)


def mask_api_key(api_key: str, visible_chars: int = 4) -> str:
    """Mask a secret, keeping a short prefix and the last few characters.

    Example:
        >>> mask_api_key("sk-1234567890abcdef")
        'sk-...cdef'
    """
    if not api_key:
        return "<empty>"
    if len(api_key) <= visible_chars + 4:
        return "*" * len(api_key)
    if "-" in api_key[:6]:
        prefix = api_key[: api_key.index("-") + 1]
        return f"{prefix}...{api_key[-visible_chars:]}"
    return f"...{api_key[-visible_chars:]}"


def is_sensitive_field(field_name: str) -> bool:
    """Return True if the field name suggests a secret."""
    if not field_name:
        return False
    field_lower = field_name.lower()
    return any(sensitive in field_lower for sensitive in SENSITIVE_FIELD_NAMES)


def is_sensitive_value(value: Any) -> bool:
    """Return True if a string value looks like a secret."""
    if not isinstance(value, str):
        return False
    value_lower = value.lower()
    return any(value_lower.startswith(prefix.lower()) for prefix in SENSITIVE_PREFIXES)


def sanitize_for_logging(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values masked, recursively.

    Example:
        >>> sanitize_for_logging({"api_key": "sk-secret123", "lang": "rust"})
        {'api_key': '<REDACTED>', 'lang': 'rust'}
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_field(str(key)):
            result[key] = "<REDACTED>"
        elif isinstance(value, str) and is_sensitive_value(value):
            result[key] = mask_api_key(value)
        elif isinstance(value, Mapping):
            result[key] = sanitize_for_logging(value)
        else:
            result[key] = value
    return result
