"""Secret redaction — a pure text filter applied before anything touches disk."""

from __future__ import annotations

import re

PLACEHOLDER = "[REDACTED]"

TOKEN_PATTERNS: list[re.Pattern[str]] = [
    # OpenAI / Anthropic style keys
    re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_-]{20,}"),
    # Supermemory keys
    re.compile(r"\bsm_[A-Za-z0-9]{10,}\b"),
    # Google OAuth refresh tokens
    re.compile(r"\b1//0[A-Za-z0-9_-]{20,}"),
    # JWT-ish
    re.compile(r"\beyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"),
    # GitHub tokens
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{30,}\b"),
    # AWS access key ids
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
    # Slack tokens
    re.compile(r"\bxox[abposr]-[A-Za-z0-9-]{10,}"),
]


def redact(text: str) -> str:
    """Replace credential-shaped substrings with a fixed placeholder. Idempotent."""
    out = text
    for pattern in TOKEN_PATTERNS:
        out = pattern.sub(PLACEHOLDER, out)
    return out
