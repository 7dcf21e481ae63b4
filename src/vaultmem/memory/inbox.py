"""Inbox — staging area for candidate memories awaiting promotion."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from vaultmem.memory.records import (
    INBOX_HEADER_RE,
    InboxEntry,
    InboxStatus,
    InboxType,
    parse_inbox,
    render_inbox_entry,
    set_block_status,
)
from vaultmem.memory.store import now_iso
from vaultmem.redact import redact

if TYPE_CHECKING:
    from vaultmem.memory.store import VaultStore

logger = logging.getLogger(__name__)

_CREATED_RE = re.compile(r"^-\s+Created:\s+(.+)$")


class Inbox:
    def __init__(self, store: VaultStore) -> None:
        self.store = store

    @property
    def file(self) -> Path:
        return self.store.path("inbox")

    def append(self, type: InboxType, text: str) -> InboxEntry:
        """Stage a new pending entry. Text is redacted before it touches disk."""
        with self.store.lock:
            self.store.ensure("inbox")
            entry = InboxEntry(
                id=self.store.next_id("M", self.store.read("inbox")),
                type=type,
                status="pending",
                created_at=now_iso(),
                text=" ".join(redact(text).split()),
            )
            self.store.append("inbox", render_inbox_entry(entry))
        logger.debug("Staged %s (%s)", entry.id, entry.type)
        return entry

    def recent(self, limit: int = 10) -> list[InboxEntry]:
        """Last `limit` well-formed entries in file order."""
        self.store.ensure("inbox")
        entries = parse_inbox(self.store.read("inbox"))
        return entries[-limit:] if limit > 0 else []

    def get(self, entry_id: str) -> InboxEntry | None:
        for entry in parse_inbox(self.store.read("inbox")):
            if entry.id == entry_id:
                return entry
        return None

    def set_status(self, entry_id: str, old: InboxStatus, new: InboxStatus) -> bool:
        return self.store.rewrite(
            "inbox", lambda md: set_block_status(md, INBOX_HEADER_RE, entry_id, old, new)
        )

    def mark_promoted(self, entry_id: str) -> bool:
        return self.set_status(entry_id, "pending", "promoted")

    def prune(self, retention_days: int = 30, now: datetime | None = None) -> int:
        """Drop entries created before now - retention_days. Returns count removed.

        The header above the first entry is preserved, as are entries whose
        Created field cannot be parsed.
        """
        days = max(1, min(365, int(retention_days)))
        cutoff = (now or datetime.now()) - timedelta(days=days)
        before = len(parse_inbox(self.store.read("inbox")))

        def transform(md: str) -> str:
            header: list[str] = []
            blocks: list[list[str]] = []
            for raw in md.splitlines():
                if INBOX_HEADER_RE.match(raw):
                    blocks.append([raw])
                elif blocks:
                    blocks[-1].append(raw)
                else:
                    header.append(raw)

            kept = ["\n".join(b).strip("\n") for b in blocks if not _is_expired(b, cutoff)]
            out = "\n".join(header).rstrip()
            if kept:
                out += "\n\n" + "\n\n".join(kept)
            return out + "\n"

        if not self.store.path("inbox").exists():
            return 0
        self.store.rewrite("inbox", transform)
        pruned = max(0, before - len(parse_inbox(self.store.read("inbox"))))
        if pruned:
            logger.info("Pruned %d inbox entries older than %d days", pruned, days)
        return pruned


def _is_expired(block: list[str], cutoff: datetime) -> bool:
    for raw in block:
        m = _CREATED_RE.match(raw)
        if not m:
            continue
        try:
            created = datetime.fromisoformat(m.group(1).strip().replace("Z", "+00:00"))
        except ValueError:
            return False
        if created.tzinfo is not None:
            created = created.astimezone().replace(tzinfo=None)
        return created < cutoff
    return False
