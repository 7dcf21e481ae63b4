"""Tests for promotion variants, the ledger, and safe auto-promotion."""

from __future__ import annotations

import pytest
from pathlib import Path

from vaultmem.memory.inbox import Inbox
from vaultmem.memory.ledger import (
    LedgerSchemaError,
    LedgerSource,
    LedgerTarget,
    PromotionLedgerRecord,
    append_promotion_record,
    read_promotion_ledger,
)
from vaultmem.memory.promote import Promoter, should_auto_promote_safe
from vaultmem.memory.records import InboxEntry, parse_commitments, parse_decisions
from vaultmem.memory.store import VaultError, VaultStore


@pytest.fixture
def store(tmp_path: Path) -> VaultStore:
    return VaultStore(tmp_path / "vault")


@pytest.fixture
def promoter(store: VaultStore) -> Promoter:
    return Promoter(store)


def _entry(type: str, text: str, status: str = "pending") -> InboxEntry:
    return InboxEntry("M-20260218-001", type, status, "2026-02-18T10:00:00", text)  # type: ignore[arg-type]


class TestPromoteVariants:
    def test_decision(self, store: VaultStore, promoter: Promoter):
        entry = Inbox(store).append("decision", "Decision: use sqlite for local state")
        result = promoter.promote(entry.id)
        assert result.ok
        decisions = parse_decisions(store.read("decisions"))
        assert [d.text for d in decisions] == [entry.text]
        assert result.message == f"Promoted {entry.id} → DECISIONS ({decisions[0].id})"

    def test_commitment_goes_to_both_files(self, store: VaultStore, promoter: Promoter):
        entry = Inbox(store).append("commitment", "I will send the report by Friday")
        result = promoter.promote(entry.id)
        assert result.ok
        assert [c.text for c in parse_commitments(store.read("commitments"))] == [entry.text]
        memory = store.read("memory")
        assert "## ✅ Commitments" in memory
        assert f"- {entry.text}" in memory

    def test_lesson_and_preference(self, store: VaultStore, promoter: Promoter):
        inbox = Inbox(store)
        lesson = inbox.append("lesson", "Lesson: never deploy on Friday")
        pref = inbox.append("preference", "I prefer short answers")
        assert promoter.promote(lesson.id).message.endswith("MEMORY.md (Lessons)")
        assert promoter.promote(pref.id).message.endswith("MEMORY.md (Preferences)")
        memory = store.read("memory")
        assert memory.index("## 📚 Lessons") < memory.index("- Lesson: never deploy on Friday")
        assert memory.index("## 🎛 Preferences") < memory.index("- I prefer short answers")

    def test_other_falls_back_to_commitments_heading(self, store: VaultStore, promoter: Promoter):
        entry = Inbox(store).append("other", "Misc thing worth keeping")
        result = promoter.promote(entry.id)
        assert result.message.endswith("MEMORY.md (Commitments)")
        assert "- [inbox:other] Misc thing worth keeping" in store.read("memory")

    def test_not_found(self, promoter: Promoter):
        result = promoter.promote("M-20000101-001")
        assert not result.ok
        assert result.message == "Not found in inbox: M-20000101-001"


class TestPromotionLedger:
    def test_double_promotion_single_record(self, store: VaultStore, promoter: Promoter):
        entry = Inbox(store).append("lesson", "Avoid shared mutable defaults")
        assert promoter.promote(entry.id).ok
        second = promoter.promote(entry.id)
        assert not second.ok
        assert second.message == f"Already promoted: {entry.id}"
        assert len(list(read_promotion_ledger(store))) == 1
        assert Inbox(store).get(entry.id).status == "promoted"

    def test_reordered_fields_promoted_once(self, store: VaultStore, promoter: Promoter):
        store.ensure("inbox")
        store.append(
            "inbox",
            "\n## M-20260218-001 (decision)\n- Created: 2026-02-18T10:00:00\n"
            "- Status: pending\n- Text: We decided to use sqlite\n",
        )
        assert promoter.promote("M-20260218-001").ok
        second = promoter.promote("M-20260218-001")
        assert not second.ok
        assert second.message == "Already promoted: M-20260218-001"
        assert len(list(read_promotion_ledger(store))) == 1
        assert len(parse_decisions(store.read("decisions"))) == 1

    def test_unflippable_status_writes_nothing(self, store: VaultStore, promoter: Promoter, monkeypatch):
        entry = Inbox(store).append("decision", "We decided to use sqlite")
        monkeypatch.setattr(promoter.inbox, "mark_promoted", lambda entry_id: False)
        result = promoter.promote(entry.id)
        assert not result.ok
        assert result.message == f"Could not mark promoted: {entry.id}"
        assert not store.path("decisions").exists()
        assert list(read_promotion_ledger(store)) == []

    def test_failed_variant_restores_pending(self, store: VaultStore, promoter: Promoter, monkeypatch):
        entry = Inbox(store).append("lesson", "Avoid shared mutable defaults")

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(store, "append_under_heading", boom)
        with pytest.raises(OSError):
            promoter.promote(entry.id)
        assert Inbox(store).get(entry.id).status == "pending"
        assert list(read_promotion_ledger(store)) == []

    def test_decision_record_shape(self, store: VaultStore, promoter: Promoter):
        text = "We decided to use sqlite " + "because it is simple " * 20
        entry = Inbox(store).append("decision", text)
        promoter.promote(entry.id, who="alice", when="review", why="looks right")
        [record] = list(read_promotion_ledger(store))
        assert record["who"] == "alice"
        assert record["when"] == "review"
        assert record["target"]["kind"] == "decision"
        assert record["target"]["file"].endswith("DECISIONS.md")
        assert record["target"]["ref"].startswith("D-")
        snippet = record["source"]["snippet"]
        assert snippet and entry.text.startswith(snippet)
        assert len(snippet) == 160
        assert record["source"]["inboxId"] == entry.id
        assert record["source"]["originFile"].endswith("MEMORY_INBOX.md")

    def test_record_round_trips_through_validation(self, store: VaultStore, promoter: Promoter):
        entry = Inbox(store).append("preference", "I like tabs")
        promoter.promote(entry.id)
        [raw] = list(read_promotion_ledger(store))
        assert PromotionLedgerRecord.from_dict(raw).to_dict() == raw


class TestLedgerSchema:
    def _record(self, **overrides) -> PromotionLedgerRecord:
        fields = dict(
            at="2026-02-18T10:00:00",
            who="user",
            when="manual",
            why="ok",
            source=LedgerSource("M-20260218-001", "lesson", "MEMORY_INBOX.md", "snippet"),
            target=LedgerTarget("lesson", "MEMORY.md"),
        )
        fields.update(overrides)
        return PromotionLedgerRecord(**fields)

    def test_valid(self):
        assert self._record().to_dict()["target"] == {"kind": "lesson", "file": "MEMORY.md"}

    @pytest.mark.parametrize("field", ["at", "who", "when", "why"])
    def test_empty_top_level_field(self, field: str):
        with pytest.raises(LedgerSchemaError, match=field):
            self._record(**{field: "  "})

    def test_empty_snippet(self):
        with pytest.raises(LedgerSchemaError, match="source.snippet"):
            LedgerSource("M-20260218-001", "lesson", "MEMORY_INBOX.md", "")

    def test_empty_ref(self):
        with pytest.raises(LedgerSchemaError, match="target.ref"):
            LedgerTarget("decision", "DECISIONS.md", ref="")

    def test_missing_source_in_dict(self):
        with pytest.raises(LedgerSchemaError):
            PromotionLedgerRecord.from_dict({"at": "x", "who": "y", "when": "z", "why": "w"})

    def test_schema_error_is_value_error(self):
        assert issubclass(LedgerSchemaError, VaultError)
        assert issubclass(LedgerSchemaError, ValueError)

    def test_nothing_written_for_bad_record(self, store: VaultStore):
        with pytest.raises(LedgerSchemaError):
            append_promotion_record(store, {"at": "x"})  # type: ignore[arg-type]
        assert not store.paths.ledger_jsonl.exists()


class TestSafeAutoPromote:
    @pytest.mark.parametrize(
        "text",
        [
            "Decision: use sqlite",
            "**Decision:** use sqlite",
            "We decided to drop Python 2",
            "Going with the monorepo layout",
        ],
    )
    def test_decisions_accepted(self, text: str):
        assert should_auto_promote_safe(_entry("decision", text))

    @pytest.mark.parametrize(
        "text",
        [
            "Decision: should we use sqlite?",
            "Decision: <one sentence>",
            "Decision: ...",
            "We might use sqlite",
        ],
    )
    def test_decisions_rejected(self, text: str):
        assert not should_auto_promote_safe(_entry("decision", text))

    @pytest.mark.parametrize(
        "text",
        [
            "Remind me to call the bank",
            "I will ship the fix by tomorrow",
            "Report due next week",
            "I'll send it by Friday",
            "Finish the draft by 2026-03-01",
        ],
    )
    def test_commitments_accepted(self, text: str):
        assert should_auto_promote_safe(_entry("commitment", text))

    def test_commitment_without_deadline(self):
        assert not should_auto_promote_safe(_entry("commitment", "I will look into it"))

    def test_other_types_and_promoted_never(self):
        assert not should_auto_promote_safe(_entry("lesson", "Decision: use sqlite"))
        assert not should_auto_promote_safe(_entry("decision", "Decision: use sqlite", status="promoted"))

    def test_sweep(self, store: VaultStore, promoter: Promoter):
        inbox = Inbox(store)
        good = inbox.append("decision", "Decision: use sqlite")
        vague = inbox.append("decision", "Maybe we choose postgres?")
        results = promoter.auto_promote_safe()
        assert [r.entry_id for r in results] == [good.id]
        [record] = list(read_promotion_ledger(store))
        assert record["who"] == "auto-promote:safe"
        assert record["when"] == "capture"
        assert inbox.get(vague.id).status == "pending"
        assert promoter.auto_promote_safe() == []
