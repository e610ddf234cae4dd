"""Redaction rules and error exposure policy for the Completo AI API.

Provider credentials reach this service through settings and leave it in
request headers (`Authorization`, `x-api-key`), so both key names and
credential-shaped values are masked before anything is logged.
"""

import re
from collections.abc import Mapping


REDACTED = "[REDACTED]"

# Substrings of field or header names whose values are never logged
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "x-api-key",
        "authorization",
        "bearer",
        "secret",
        "password",
        "token",
        "cookie",
        "session_id",
    }
)

# Credential-shaped substrings masked inside free text (exception messages,
# upstream error bodies)
SECRET_VALUE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)\b(api[_-]?key|secret)=\S+"),
)

# Fields an error body may carry beyond `correlation_id` and `type`
ERROR_DETAIL_FIELDS: Mapping[str, frozenset[str]] = {
    "production": frozenset(),
    "development": frozenset(
        {"details", "traceback", "exception_type", "validation_errors"}
    ),
    "test": frozenset({"details", "exception_type", "validation_errors"}),
}


def get_allowed_error_fields(environment: str) -> frozenset[str]:
    """Fields allowed in an error body for `environment`.

    Unknown environments get the development set; only production hides
    diagnostics entirely.
    """
    base = frozenset({"correlation_id", "type"})
    return base | ERROR_DETAIL_FIELDS.get(environment, ERROR_DETAIL_FIELDS["development"])


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def mask_secrets(text: str) -> str:
    """Replace credential-shaped substrings of `text` with a placeholder."""
    for pattern in SECRET_VALUE_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text
