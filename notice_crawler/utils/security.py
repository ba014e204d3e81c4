"""
Redaction helpers for log lines that may carry credentials or device tokens.
"""
from __future__ import annotations

import re


def redact_secrets(text: str) -> str:
    """Redact common secret patterns from logs and error strings."""
    if not isinstance(text, str):
        return text

    redacted = text

    # Query params like apiKey=, api_key=, key=, token=, secret=
    redacted = re.sub(r"(?i)(api[_-]?key|key|token|secret)=([^&\s]+)", r"\1=***REDACTED***", redacted)

    # Authorization: Bearer <token>, with or without the header prefix
    redacted = re.sub(r"(?i)Bearer\s+[A-Za-z0-9._\-]+", "Bearer ***REDACTED***", redacted)

    # JSON fields carrying device registration tokens
    redacted = re.sub(r'(?i)("token"\s*:\s*")[^"]+(")', r"\1***REDACTED***\2", redacted)

    return redacted


def mask_token(token: str, visible: int = 6) -> str:
    """Shorten a push token for logs: keep a recognisable prefix only."""
    if not token:
        return ""
    return token[:visible] + "…" if len(token) > visible else token
