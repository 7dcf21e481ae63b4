"""Promotion engine — commit approved inbox entries into durable files.

Each inbox type maps to one promotion variant. The engine marks the entry
promoted, lets the variant write the durable record and report where it went,
then appends exactly one ledger record. A failed variant puts the entry back
to pending.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from vaultmem.memory.commitments import Commitments
from vaultmem.memory.inbox import Inbox
from vaultmem.memory.ledger import (
    LedgerSource,
    LedgerTarget,
    PromotionLedgerRecord,
    append_promotion_record,
)
from vaultmem.memory.records import Decision, InboxEntry, render_decision
from vaultmem.memory.store import now_iso
from vaultmem.redact import redact

if TYPE_CHECKING:
    from vaultmem.memory.store import VaultStore

logger = logging.getLogger(__name__)

COMMITMENTS_HEADING = "✅ Commitments"
LESSONS_HEADING = "📚 Lessons"
PREFERENCES_HEADING = "🎛 Preferences"

SNIPPET_CHARS = 160
AUTO_PROMOTE_WINDOW = 15


@dataclass
class PromotionTarget:
    """Where a promoted entry landed."""

    kind: str
    file: Path
    label: str
    ref: str | None = None


@dataclass
class PromoteResult:
    ok: bool
    message: str
    entry_id: str = ""
    target: PromotionTarget | None = None


def append_decision(store: VaultStore, text: str) -> Decision:
    """Append an immutable decision record to DECISIONS.md."""
    with store.lock:
        store.ensure("decisions")
        decision = Decision(
            id=store.next_id("D", store.read("decisions")),
            date=date.today().isoformat(),
            text=" ".join(redact(text).split()),
        )
        store.append("decisions", render_decision(decision))
    return decision


# ── Variants ──────────────────────────────────────────────────


class Promotion(Protocol):
    kind: str

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget: ...


class DecisionPromotion:
    kind = "decision"

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget:
        decision = append_decision(store, entry.text)
        return PromotionTarget(
            kind=self.kind,
            file=store.path("decisions"),
            label=f"DECISIONS ({decision.id})",
            ref=decision.id,
        )


class CommitmentPromotion:
    kind = "commitment"

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget:
        commitment = Commitments(store).add(entry.text)
        store.append_under_heading("memory", COMMITMENTS_HEADING, entry.text)
        return PromotionTarget(
            kind=self.kind,
            file=store.path("commitments"),
            label=f"COMMITMENTS ({commitment.id}) + MEMORY.md (Commitments)",
            ref=commitment.id,
        )


class LessonPromotion:
    kind = "lesson"

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget:
        path = store.append_under_heading("memory", LESSONS_HEADING, entry.text)
        return PromotionTarget(kind=self.kind, file=path, label="MEMORY.md (Lessons)")


class PreferencePromotion:
    kind = "preference"

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget:
        path = store.append_under_heading("memory", PREFERENCES_HEADING, entry.text)
        return PromotionTarget(kind=self.kind, file=path, label="MEMORY.md (Preferences)")


class OtherPromotion:
    kind = "other"

    def apply(self, store: VaultStore, entry: InboxEntry) -> PromotionTarget:
        path = store.append_under_heading(
            "memory", COMMITMENTS_HEADING, f"[inbox:{entry.type}] {entry.text}"
        )
        return PromotionTarget(kind=self.kind, file=path, label="MEMORY.md (Commitments)")


PROMOTIONS: dict[str, Promotion] = {
    "decision": DecisionPromotion(),
    "commitment": CommitmentPromotion(),
    "lesson": LessonPromotion(),
    "preference": PreferencePromotion(),
}
FALLBACK_PROMOTION: Promotion = OtherPromotion()


# ── Engine ────────────────────────────────────────────────────


class Promoter:
    """Pending → promoted transitions, each recorded in the ledger."""

    def __init__(self, store: VaultStore) -> None:
        self.store = store
        self.inbox = Inbox(store)

    def promote(
        self,
        entry_id: str,
        who: str = "user",
        when: str = "manual",
        why: str = "manual approval via promote command",
    ) -> PromoteResult:
        """Promote one entry by id. Missing or already-promoted ids give ok=False."""
        with self.store.lock:
            # Status is re-read from disk so a stale caller cannot promote twice.
            entry = self.inbox.get(entry_id)
            if entry is None:
                return PromoteResult(False, f"Not found in inbox: {entry_id}", entry_id)
            if entry.status == "promoted":
                return PromoteResult(False, f"Already promoted: {entry_id}", entry_id)

            source = LedgerSource(
                inbox_id=entry.id,
                type=entry.type,
                origin_file=str(self.inbox.file),
                snippet=entry.text[:SNIPPET_CHARS],
            )
            # Flip first: an entry that cannot be marked promoted gets no durable record.
            if not self.inbox.mark_promoted(entry.id):
                logger.warning("Could not mark %s promoted; skipping", entry.id)
                return PromoteResult(False, f"Could not mark promoted: {entry_id}", entry_id)
            try:
                target = PROMOTIONS.get(entry.type, FALLBACK_PROMOTION).apply(self.store, entry)
            except Exception:
                self.inbox.set_status(entry.id, "promoted", "pending")
                raise
            record = PromotionLedgerRecord(
                at=now_iso(),
                who=who,
                when=when,
                why=why,
                source=source,
                target=LedgerTarget(kind=target.kind, file=str(target.file), ref=target.ref),
            )
            append_promotion_record(self.store, record)

        logger.info("Promoted %s → %s (%s)", entry.id, target.kind, who)
        return PromoteResult(True, f"Promoted {entry.id} → {target.label}", entry.id, target)

    def auto_promote_safe(self, window: int = AUTO_PROMOTE_WINDOW) -> list[PromoteResult]:
        """Promote recent pending entries that pass should_auto_promote_safe."""
        results = []
        for entry in self.inbox.recent(window):
            if not should_auto_promote_safe(entry):
                continue
            results.append(
                self.promote(
                    entry.id,
                    who="auto-promote:safe",
                    when="capture",
                    why="safe auto-promotion rule matched",
                )
            )
        return results


# ── Safe auto-promotion predicate ─────────────────────────────

_PLACEHOLDER_RES = [
    re.compile(r"<one sentence>", re.IGNORECASE),
    re.compile(r"\bdecision:\s*(\.\.\.|…)", re.IGNORECASE),
    re.compile(r"\bdecision:\s*<.*?>", re.IGNORECASE),
    re.compile(r"\bwhy:\s*(\.\.\.|…)", re.IGNORECASE),
    re.compile(r"\bwhy:\s*<.*?>", re.IGNORECASE),
]
_DECISIVE_MARKERS = ("we decided", "going with", "chosen")
_WEEKDAY_RE = re.compile(
    r"\bby\s+(tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b"
)
_ISO_DEADLINE_RE = re.compile(r"\b(by|due)\s+\d{4}-\d{2}-\d{2}\b")
_DUE_RE = re.compile(r"\bdue\b")
_TOMORROW_RE = re.compile(r"\btomorrow\b")


def _normalize(text: str) -> str:
    """Lowercase, drop markdown emphasis, strip leading punctuation.

    '**Decision:** use sqlite' and '`decision`: use sqlite' both become
    'decision: use sqlite'.
    """
    t = re.sub(r"[*_`]", "", text.strip().lower())
    return re.sub(r"^[^a-z0-9]+", "", t).strip()


def should_auto_promote_safe(entry: InboxEntry) -> bool:
    if entry.status != "pending":
        return False

    raw = (entry.text or "").strip()
    t = _normalize(raw)

    if entry.type == "decision":
        if "?" in t:
            return False
        if any(p.search(raw) or p.search(t) for p in _PLACEHOLDER_RES):
            return False
        return t.startswith("decision:") or any(m in t for m in _DECISIVE_MARKERS)

    if entry.type == "commitment":
        return bool(
            "remind me" in t
            or _DUE_RE.search(t)
            or _WEEKDAY_RE.search(t)
            or _ISO_DEADLINE_RE.search(t)
            or _TOMORROW_RE.search(t)
        )

    return False
