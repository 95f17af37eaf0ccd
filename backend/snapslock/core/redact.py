from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***"

_SENSITIVE_KEY_PARTS = (
    "token",
    "api_key",
    "apikey",
    "api_secret",
    "authorization",
    "password",
    "secret",
    "cookie",
    "credential",
    "code_verifier",
    "nonce",
)

_BEARER_RE = re.compile(r"(?i)\bBearer\s+([^\s]+)")
_QUERY_SECRET_RE = re.compile(
    r"(?i)\b(code|access_token|refresh_token|id_token|api_key|signature|code_verifier)=([^&\s]+)"
)
_JWT_RE = re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]+")
_BASIC_AUTH_URI_RE = re.compile(r"(?i)\b(https?://)([^/\s:@]+):([^/\s@]+)@")


def is_sensitive_key(key: str) -> bool:
    key_l = key.lower()
    return any(part in key_l for part in _SENSITIVE_KEY_PARTS)


def redact_text(text: str) -> str:
    text = _BASIC_AUTH_URI_RE.sub(r"\1\2:" + REDACTED + "@", text)
    text = _BEARER_RE.sub("Bearer " + REDACTED, text)
    text = _QUERY_SECRET_RE.sub(r"\1=" + REDACTED, text)
    text = _JWT_RE.sub(REDACTED, text)
    return text


def redact_any(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, bytes):
        return redact_text(value.decode("utf-8", errors="replace")).encode("utf-8")
    if isinstance(value, Mapping):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and is_sensitive_key(k):
                out[k] = REDACTED
            else:
                out[k] = redact_any(v)
        return out
    if isinstance(value, (list, tuple)):
        seq = [redact_any(v) for v in value]
        return type(value)(seq) if isinstance(value, tuple) else seq
    return value
