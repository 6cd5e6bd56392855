"""Redaction module to mask secrets in outputs and logs."""
import re
from typing import Any, Dict

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = (
    "password",
    "apikey",
    "api_key",
    "access_token",
    "refresh_token",
    "service_role",
    "supabase_service_role",
    "authorization",
)

# JWTs (Supabase anon/service keys are JWTs)
_JWT_RE = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")

_PATTERNS = [
    (re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^"\',\s}]+)', re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r'(apikey["\']?\s*[:=]\s*["\']?)([^"\',\s}]+)', re.IGNORECASE), r"\1" + REDACTED),
    (re.compile(r"(Bearer\s+)([^\s\"',]+)", re.IGNORECASE), r"\1" + REDACTED),
]


def redact_string(text: str) -> str:
    """Redact secrets from a string."""
    if not text:
        return text

    result = _JWT_RE.sub(REDACTED, text)
    for pattern, replacement in _PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def redact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively redact secrets from a dictionary."""
    if not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
            redacted[key] = REDACTED
        else:
            redacted[key] = redact_json(value)
    return redacted


def redact_json(data: Any) -> Any:
    """Redact secrets from JSON-serializable data."""
    if isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [redact_json(item) for item in data]
    elif isinstance(data, str):
        return redact_string(data)
    else:
        return data
