"""Turn classifier — conservative, rule-ordered extraction of candidate memories.

Each line goes to the first category whose pattern matches; unmatched lines
are dropped. Missing a real decision is cheaper than staging noise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from vaultmem.redact import redact

Category = Literal["decision", "commitment", "preference", "lesson"]

MIN_LINE_CHARS = 12
MAX_PER_CATEGORY = 3

_CONTEXT_BLOCK_RE = re.compile(r"<local-vault-context>[\s\S]*?</local-vault-context>\s*")
_ROLE_MARKER_RE = re.compile(r"^\[(role:[a-z]+|/[a-z]+)\]$", re.IGNORECASE)
_ACK_RE = re.compile(r"^(ok|okay|k|sure|thanks|cool|lol|haha)\b", re.IGNORECASE)


# Ordered: first match wins.
RULES: list[tuple[Category, re.Pattern[str]]] = [
    (
        "decision",
        re.compile(
            r"(we decided|decision:|we will use|going with|let's use|choose|chosen)", re.IGNORECASE
        ),
    ),
    (
        "commitment",
        re.compile(
            r"(i will|we will|i'll|we'll|promise|follow up|remind me|\bdue\b|by tomorrow|by monday)",
            re.IGNORECASE,
        ),
    ),
    (
        "preference",
        re.compile(
            r"(i prefer|i like|i love|i hate|my preference|i don't want|i do not want)",
            re.IGNORECASE,
        ),
    ),
    ("lesson", re.compile(r"(lesson|note to self|never again|avoid|rule:)", re.IGNORECASE)),
]


@dataclass
class Captured:
    decisions: list[str] = field(default_factory=list)
    commitments: list[str] = field(default_factory=list)
    preferences: list[str] = field(default_factory=list)
    lessons: list[str] = field(default_factory=list)

    def bucket(self, category: Category) -> list[str]:
        return getattr(self, category + "s")

    def is_empty(self) -> bool:
        return not (self.decisions or self.commitments or self.preferences or self.lessons)


def clean_text(text: str) -> str:
    """Redact secrets and strip injected context blocks."""
    return _CONTEXT_BLOCK_RE.sub("", redact(text)).strip()


def is_high_signal(line: str) -> bool:
    t = line.strip()
    if len(t) < MIN_LINE_CHARS:
        return False
    return not _ACK_RE.match(t)


def match_category(line: str) -> Category | None:
    for category, pattern in RULES:
        if pattern.search(line):
            return category
    return None


def _unique(items: list[str], limit: int) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        key = item.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(key)
        if len(out) >= limit:
            break
    return out


def classify(turn_text: str, max_per_category: int = MAX_PER_CATEGORY) -> Captured:
    """Split a turn into typed candidate statements."""
    raw = Captured()
    for line in clean_text(turn_text).splitlines():
        line = line.strip()
        if not line or _ROLE_MARKER_RE.match(line) or not is_high_signal(line):
            continue
        category = match_category(line)
        if category:
            raw.bucket(category).append(line)

    return Captured(
        decisions=_unique(raw.decisions, max_per_category),
        commitments=_unique(raw.commitments, max_per_category),
        preferences=_unique(raw.preferences, max_per_category),
        lessons=_unique(raw.lessons, max_per_category),
    )
