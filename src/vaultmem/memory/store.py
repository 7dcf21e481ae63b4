"""Vault store — the filesystem is the database.

Every collection is a plain file under the vault root. Reads reconstruct state
by parsing; writes are explicit read-derive-write or append. There is no
cross-process locking: two processes appending to the same collection can
allocate the same id. Inside one process, shared_store() hands every entry
point the same VaultStore per vault root, so its lock serializes
allocate-then-append across all writers.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

from vaultmem.memory.records import dump_json_line, iter_json_lines
from vaultmem.redact import redact

logger = logging.getLogger(__name__)

Tier = Literal["user", "fact", "episodic"]
TIERS: tuple[Tier, ...] = ("user", "fact", "episodic")

DEFAULT_READ_BYTES = 40_000
DAILY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$")


class VaultError(ValueError):
    """Raised for programming errors against the vault (bad collection, bad record)."""


@dataclass(frozen=True)
class VaultPaths:
    root: Path
    memory_md: Path
    working_set: Path
    vault_index: Path
    inbox_md: Path
    commitments_md: Path
    decisions_md: Path
    anchors_dir: Path
    daily_dir: Path
    tiers_dir: Path
    transcripts_dir: Path
    ledger_jsonl: Path
    manifests_dir: Path

    @classmethod
    def from_root(cls, root: Path) -> VaultPaths:
        anchors = root / "project_anchors"
        daily = root / "memory"
        context = root / "context"
        return cls(
            root=root,
            memory_md=root / "MEMORY.md",
            working_set=anchors / "WORKING_SET.md",
            vault_index=anchors / "VAULT_INDEX.md",
            inbox_md=anchors / "MEMORY_INBOX.md",
            commitments_md=anchors / "COMMITMENTS.md",
            decisions_md=anchors / "DECISIONS.md",
            anchors_dir=anchors,
            daily_dir=daily,
            tiers_dir=daily / "tiers",
            transcripts_dir=daily / "transcripts",
            ledger_jsonl=context / "promotion_ledger.jsonl",
            manifests_dir=context / "manifests",
        )


# Minimal header written when a collection file is first created.
_HEADERS = {
    "memory": "# MEMORY\n",
    "inbox": "# MEMORY_INBOX\n\nStaging area for auto-captured candidate memories.\n",
    "commitments": "# COMMITMENTS\n\n## Open\n\n## Done\n",
    "decisions": "# DECISIONS\n",
    "ledger": "",
}


def heading_key(title: str) -> str:
    """Compare headings on their alphanumeric content: '📚 Lessons' == 'Lessons'."""
    return re.sub(r"[^a-z0-9]+", " ", title.lower()).strip()


def today_ymd(day: date | None = None) -> str:
    return (day or date.today()).strftime("%Y%m%d")


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class VaultStore:
    """Read/write access to the vault directory tree."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()
        self.paths = VaultPaths.from_root(self.root)
        self.lock = threading.RLock()
        self._counters: dict[tuple[str, str], int] = {}
        self._collections: dict[str, Path] = {
            "memory": self.paths.memory_md,
            "inbox": self.paths.inbox_md,
            "commitments": self.paths.commitments_md,
            "decisions": self.paths.decisions_md,
            "ledger": self.paths.ledger_jsonl,
        }

    # ── 1. Collections ────────────────────────────────────────

    def path(self, name: str) -> Path:
        try:
            return self._collections[name]
        except KeyError:
            raise VaultError(f"Unknown collection: {name}") from None

    def ensure(self, name: str) -> Path:
        """Create the collection file with its header if absent. Idempotent."""
        path = self.path(name)
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(_HEADERS[name], encoding="utf-8")
            logger.debug("Created %s", path)
        return path

    def read(self, name: str, max_bytes: int | None = None) -> str:
        """Read a whole collection. Missing file reads as empty."""
        path = self.path(name)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return ""
        if max_bytes is not None:
            data = data[:max_bytes]
        return data.decode("utf-8", errors="ignore")

    def scan(self, name: str) -> Iterator[str]:
        yield from self.read(name).splitlines()

    def append(self, name: str, text: str) -> Path:
        path = self.ensure(name)
        with path.open("a", encoding="utf-8") as f:
            f.write(text)
        return path

    def write(self, name: str, text: str) -> Path:
        path = self.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def rewrite(self, name: str, transform: Callable[[str], str]) -> bool:
        """Read, derive the next state, write. Returns whether anything changed."""
        with self.lock:
            current = self.read(name)
            updated = transform(current)
            if updated == current:
                return False
            self.write(name, updated)
            return True

    def append_json(self, name: str, obj: dict[str, Any]) -> Path:
        return self.append(name, dump_json_line(obj))

    def scan_json(self, name: str) -> Iterator[dict[str, Any]]:
        yield from iter_json_lines(self.read(name))

    # ── 2. Heading-append ─────────────────────────────────────

    def append_under_heading(self, name: str, heading: str, bullet: str) -> Path:
        """Add `- bullet` at the end of the `## heading` section.

        Creates the file (header + heading) when absent and appends the heading
        when missing. Existing lines are never moved or removed.
        """
        line = f"- {bullet.strip()}"
        key = heading_key(heading)

        def transform(content: str) -> str:
            if not content:
                return f"{_HEADERS.get(name, '')}\n## {heading}\n{line}\n".lstrip("\n")
            lines = content.splitlines()
            for i, raw in enumerate(lines):
                m = _HEADING_RE.match(raw)
                if not m or heading_key(m.group(2)) != key:
                    continue
                level = len(m.group(1))
                end = len(lines)
                for j in range(i + 1, len(lines)):
                    nxt = _HEADING_RE.match(lines[j])
                    if nxt and len(nxt.group(1)) <= level:
                        end = j
                        break
                insert_at = end
                while insert_at > i + 1 and not lines[insert_at - 1].strip():
                    insert_at -= 1
                lines.insert(insert_at, line)
                return "\n".join(lines) + "\n"
            return content.rstrip("\n") + f"\n\n## {heading}\n{line}\n"

        self.rewrite(name, transform)
        return self.path(name)

    # ── 3. Id allocation ──────────────────────────────────────

    def next_id(self, prefix: str, content: str, day: date | None = None) -> str:
        """Next `<prefix>-<YYYYMMDD>-<seq>` id for today.

        The sequence is the larger of the highest one found in `content` and the
        in-process counter, plus one. Callers hold `self.lock` across allocation
        and the append that uses the id.
        """
        ymd = today_ymd(day)
        pattern = re.compile(rf"\b{re.escape(prefix)}-{ymd}-(\d{{3,}})\b")
        with self.lock:
            seen = max((int(n) for n in pattern.findall(content)), default=0)
            seq = max(seen, self._counters.get((prefix, ymd), 0)) + 1
            self._counters[(prefix, ymd)] = seq
        return f"{prefix}-{ymd}-{seq:03d}"

    # ── 4. Capped reads for search/context ────────────────────

    def safe_read(self, path: Path, max_bytes: int = DEFAULT_READ_BYTES) -> str:
        """Read at most max_bytes, redact secrets. Missing/unreadable → ''."""
        try:
            with path.open("rb") as f:
                data = f.read(max_bytes)
        except OSError:
            return ""
        return redact(data.decode("utf-8", errors="ignore"))

    # ── 5. Daily logs & tiers ─────────────────────────────────

    def daily_path(self, day: date | None = None) -> Path:
        return self.paths.daily_dir / f"{(day or date.today()).isoformat()}.md"

    def append_remember(self, text: str, day: date | None = None) -> Path:
        """Append a `[remember]` entry to today's daily log."""
        path = self.daily_path(day)
        path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not path.exists() or path.stat().st_size == 0
        with path.open("a", encoding="utf-8") as f:
            if is_new:
                f.write(f"# {path.stem}\n\n")
            f.write(f"- [remember] {redact(text).strip()}\n")
        return path

    def recent_dailies(self, limit: int = 7) -> list[Path]:
        if not self.paths.daily_dir.is_dir():
            return []
        files = sorted(p for p in self.paths.daily_dir.iterdir() if DAILY_RE.match(p.name))
        return files[-limit:] if limit else files

    def anchor_files(self) -> list[Path]:
        if not self.paths.anchors_dir.is_dir():
            return []
        return sorted(self.paths.anchors_dir.glob("*.md"))

    def tier_dir(self, tier: Tier) -> Path:
        if tier not in TIERS:
            raise VaultError(f"Unknown tier: {tier}")
        return self.paths.tiers_dir / tier

    def tier_files(self, tier: Tier) -> list[Path]:
        d = self.tier_dir(tier)
        if not d.is_dir():
            return []
        return sorted(d.glob("*.md"))

    def append_tier(self, tier: Tier, text: str, file_name: str = "notes.md") -> Path:
        """Append a bullet record to a tier file."""
        path = self.tier_dir(tier) / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            if path.stat().st_size == 0:
                f.write(f"# {tier}\n\n")
            f.write(f"- {redact(text).strip()}\n")
        return path


_shared: dict[Path, VaultStore] = {}
_shared_lock = threading.Lock()


def shared_store(root: Path) -> VaultStore:
    """The process-wide VaultStore for a vault root, created on first use."""
    key = Path(root).expanduser().resolve()
    with _shared_lock:
        store = _shared.get(key)
        if store is None:
            store = _shared[key] = VaultStore(key)
        return store
