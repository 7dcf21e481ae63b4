"""Backfill — copy legacy notes into the tier files, once.

Every imported line carries a stable marker derived from its source and text,
so re-running the import against already-migrated content adds nothing.
Nothing is ever deleted. Legacy sources are read under LEGACY_READ_BYTES.

    MEMORY.md  ## Preferences bullets   → user
    MEMORY.md  ## Lessons bullets       → fact
    DECISIONS.md  "- Decision:" lines   → fact
    memory/YYYY-MM-DD.md bullets        → episodic
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import frontmatter

from vaultmem.memory.store import heading_key, now_iso
from vaultmem.redact import redact

if TYPE_CHECKING:
    from vaultmem.memory.store import Tier, VaultStore

logger = logging.getLogger(__name__)

TARGET_FILE = "backfill_legacy.md"
MIN_BULLET_CHARS = 8
LEGACY_READ_BYTES = 200_000

_BULLET_RE = re.compile(r"^[-*]\s+(.+)$")
_SUBHEADING_RE = re.compile(r"^#{2,6}\s+(.+)$")
_DECISION_LINE_RE = re.compile(r"^-\s+Decision:\s+(.+)$", re.IGNORECASE)


@dataclass
class BackfillItem:
    tier: Tier
    text: str
    source: str

    @property
    def marker(self) -> str:
        return hashlib.sha1(f"{self.source}\n{self.text}".encode()).hexdigest()[:12]

    def render(self) -> str:
        return f"- {self.text} <!-- backfill:{self.marker} src:{self.source} -->"


@dataclass
class BackfillFileResult:
    file: str
    added: int = 0
    skipped: int = 0


@dataclass
class BackfillReport:
    dry_run: bool
    scanned_items: int = 0
    files: list[BackfillFileResult] = field(default_factory=list)

    @property
    def added(self) -> int:
        return sum(f.added for f in self.files)


def collect_bullets(md: str) -> list[str]:
    out = []
    for line in md.splitlines():
        m = _BULLET_RE.match(line.strip())
        if m and len(m.group(1).strip()) >= MIN_BULLET_CHARS:
            out.append(m.group(1).strip())
    return out


def parse_by_heading(md: str, heading: str) -> list[str]:
    """Bullets under the sub-heading whose alphanumeric content equals `heading`."""
    key = heading_key(heading)
    on = False
    out = []
    for line in md.splitlines():
        h = _SUBHEADING_RE.match(line)
        if h:
            on = heading_key(h.group(1)) == key
            continue
        if not on:
            continue
        m = _BULLET_RE.match(line.strip())
        if m:
            out.append(m.group(1).strip())
    return out


def _read(path: Path, max_bytes: int | None = None) -> str:
    """Missing or unreadable files read as empty. Legacy sources pass a cap;
    the tier file being extended is read whole because it is rewritten."""
    try:
        with path.open("rb") as f:
            data = f.read() if max_bytes is None else f.read(max_bytes)
    except OSError:
        return ""
    return data.decode("utf-8", errors="ignore")


def collect_legacy(store: VaultStore) -> list[BackfillItem]:
    items: list[BackfillItem] = []

    memory_md = _read(store.paths.memory_md, LEGACY_READ_BYTES)
    for text in parse_by_heading(memory_md, "Preferences"):
        items.append(BackfillItem("user", redact(text), "MEMORY:preferences"))
    for text in parse_by_heading(memory_md, "Lessons"):
        items.append(BackfillItem("fact", redact(text), "MEMORY:lessons"))

    for line in _read(store.paths.decisions_md, LEGACY_READ_BYTES).splitlines():
        m = _DECISION_LINE_RE.match(line)
        if m:
            items.append(BackfillItem("fact", redact(m.group(1).strip()), "DECISIONS"))

    for daily in store.recent_dailies(limit=0):
        for text in collect_bullets(_read(daily, LEGACY_READ_BYTES)):
            items.append(BackfillItem("episodic", redact(text), f"daily:{daily.name}"))

    return items


def _new_file_header(tier: str) -> str:
    post = frontmatter.Post("", tier=tier, source="backfill", created=now_iso())
    return frontmatter.dumps(post) + f"\n\n# backfill_legacy ({tier})\n\n"


def backfill(store: VaultStore, apply: bool = False) -> BackfillReport:
    """Import legacy items into tier files. Dry run unless apply=True."""
    items = collect_legacy(store)
    report = BackfillReport(dry_run=not apply, scanned_items=len(items))

    grouped: dict[str, list[BackfillItem]] = {}
    for item in items:
        grouped.setdefault(item.tier, []).append(item)

    for tier, batch in grouped.items():
        path = store.tier_dir(tier) / TARGET_FILE  # type: ignore[arg-type]
        before = _read(path)
        result = BackfillFileResult(file=str(path))
        seen_markers: set[str] = set()
        to_append: list[str] = []

        for item in batch:
            if f"backfill:{item.marker}" in before or item.marker in seen_markers:
                result.skipped += 1
                continue
            seen_markers.add(item.marker)
            to_append.append(item.render())
            result.added += 1

        if apply and to_append:
            path.parent.mkdir(parents=True, exist_ok=True)
            head = before or _new_file_header(tier)
            if not head.endswith("\n"):
                head += "\n"
            path.write_text(head + "\n".join(to_append) + "\n", encoding="utf-8")
            logger.info("Backfilled %d lines into %s", len(to_append), path)

        report.files.append(result)

    return report
