"""Tests for the capture and recall hooks."""

from __future__ import annotations

import json
import logging
import pytest
from pathlib import Path

from vaultmem.config import VaultConfig
from vaultmem.hooks.capture import (
    CaptureHook,
    build_capture_handler,
    extract_text_blocks,
    get_last_turn,
    join_turn,
)
from vaultmem.hooks.recall import (
    RecallHook,
    build_recall_handler,
    build_working_set_summary,
    clip_context,
)
from vaultmem.memory.inbox import Inbox
from vaultmem.memory.ledger import LedgerSchemaError, read_promotion_ledger
from vaultmem.memory.manifest import manifest_path
from vaultmem.memory.store import VaultStore
from vaultmem.scheduler.jobs import Scheduler
from vaultmem.tools.commands import get_commands

WORKING_SET = """# WORKING_SET

## Locked Rules (non-negotiable)
- rule one
- rule two
- rule three
- rule four
- rule five
- rule six

## Current Focus (Top 3)
- ship the capture hook

## Parking Lot
- someday maybe
"""


@pytest.fixture
def config(tmp_path: Path) -> VaultConfig:
    return VaultConfig(vault_root=tmp_path / "vault", auto_capture=True)


@pytest.fixture
def store(config: VaultConfig) -> VaultStore:
    return VaultStore(config.vault_root)


def _event(*messages: dict, success: bool = True, session: str = "s1") -> dict:
    return {"success": success, "messages": list(messages), "sessionKey": session}


USER_DECISION = {"role": "user", "content": "We decided to use sqlite for storage"}
ASSISTANT_COMMIT = {
    "role": "assistant",
    "content": [
        {"type": "text", "text": "I will send the summary tomorrow"},
        {"type": "tool_use", "name": "search"},
    ],
}


class TestTurnExtraction:
    def test_last_turn_starts_at_last_user(self):
        messages = [
            {"role": "user", "content": "old"},
            {"role": "assistant", "content": "old reply"},
            {"role": "user", "content": "new"},
            {"role": "assistant", "content": "new reply"},
        ]
        assert get_last_turn(messages) == messages[2:]

    def test_no_user_message(self):
        messages = [{"role": "assistant", "content": "hi"}]
        assert get_last_turn(messages) == messages

    def test_extract_text_blocks(self):
        blocks = extract_text_blocks([USER_DECISION, ASSISTANT_COMMIT, {"role": "tool", "content": "x"}, "junk"])
        assert blocks == [
            ("user", "We decided to use sqlite for storage"),
            ("assistant", "I will send the summary tomorrow"),
        ]

    def test_join_turn(self):
        assert join_turn([("user", "hi")]) == "[role:user]\nhi\n[/user]"


class TestCaptureHook:
    @pytest.mark.asyncio
    async def test_conservative_stages_candidates(self, config: VaultConfig, store: VaultStore):
        handler = build_capture_handler(config, store)
        await handler(_event(USER_DECISION, ASSISTANT_COMMIT))
        entries = Inbox(store).recent()
        assert [(e.type, e.text) for e in entries] == [
            ("decision", "We decided to use sqlite for storage"),
            ("commitment", "I will send the summary tomorrow"),
        ]

    @pytest.mark.asyncio
    async def test_disabled_or_failed_turn_is_noop(self, config: VaultConfig, store: VaultStore):
        config.auto_capture = False
        await CaptureHook(config, store)(_event(USER_DECISION))
        config.auto_capture = True
        await CaptureHook(config, store)(_event(USER_DECISION, success=False))
        await CaptureHook(config, store)(_event())
        assert not store.paths.inbox_md.exists()

    @pytest.mark.asyncio
    async def test_cooldown_per_session(self, config: VaultConfig, store: VaultStore):
        handler = CaptureHook(config, store)
        await handler(_event(USER_DECISION, session="a"))
        await handler(_event({"role": "user", "content": "Going with the blue theme"}, session="a"))
        await handler(_event({"role": "user", "content": "Going with the red theme"}, session="b"))
        texts = [e.text for e in Inbox(store).recent()]
        assert texts == ["We decided to use sqlite for storage", "Going with the red theme"]

    @pytest.mark.asyncio
    async def test_zero_cooldown(self, config: VaultConfig, store: VaultStore):
        config.capture_cooldown_seconds = 0
        handler = CaptureHook(config, store)
        await handler(_event(USER_DECISION))
        await handler(_event({"role": "user", "content": "Going with the blue theme"}))
        assert len(Inbox(store).recent()) == 2

    @pytest.mark.asyncio
    async def test_everything_mode_logs_daily(self, config: VaultConfig, store: VaultStore):
        config.capture_mode = "everything"
        await CaptureHook(config, store)(_event(USER_DECISION))
        daily = store.daily_path().read_text(encoding="utf-8")
        assert "- [remember] [role:user]" in daily
        assert not store.paths.inbox_md.exists()

    @pytest.mark.asyncio
    async def test_hybrid_mode_writes_transcript(self, config: VaultConfig, store: VaultStore):
        config.capture_mode = "hybrid"
        secret = "sk-" + "s" * 30
        await CaptureHook(config, store)(
            _event({"role": "user", "content": f"We decided to rotate {secret} weekly"})
        )
        [transcript] = list(store.paths.transcripts_dir.glob("*.jsonl"))
        [record] = [json.loads(line) for line in transcript.read_text(encoding="utf-8").splitlines()]
        assert record["sessionKey"] == "s1"
        assert secret not in record["turn"]
        assert "[REDACTED]" in record["turn"]
        assert len(Inbox(store).recent()) == 1

    @pytest.mark.asyncio
    async def test_safe_auto_promote(self, config: VaultConfig, store: VaultStore):
        config.auto_promote = "safe"
        await CaptureHook(config, store)(
            _event({"role": "user", "content": "Decision: use sqlite for local state"})
        )
        [entry] = Inbox(store).recent()
        assert entry.status == "promoted"
        [record] = list(read_promotion_ledger(store))
        assert record["who"] == "auto-promote:safe"

    @pytest.mark.asyncio
    async def test_background_failures_logged(self, config: VaultConfig, store: VaultStore, monkeypatch, caplog):
        config.auto_promote = "safe"
        hook = CaptureHook(config, store)

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(hook.inbox, "prune", boom)
        monkeypatch.setattr(hook.promoter, "auto_promote_safe", boom)
        with caplog.at_level(logging.WARNING, logger="vaultmem.hooks.capture"):
            await hook(_event(USER_DECISION))
        assert "Inbox prune failed" in caplog.text
        assert "Auto-promotion sweep failed" in caplog.text
        assert len(Inbox(store).recent()) == 1

    @pytest.mark.asyncio
    async def test_ledger_schema_error_propagates(self, config: VaultConfig, store: VaultStore, monkeypatch):
        config.auto_promote = "safe"
        hook = CaptureHook(config, store)

        def bad_record(*args, **kwargs):
            raise LedgerSchemaError("promotion ledger record missing required field: why")

        monkeypatch.setattr(hook.promoter, "auto_promote_safe", bad_record)
        with pytest.raises(LedgerSchemaError):
            await hook(_event(USER_DECISION))


class TestWorkingSetSummary:
    def test_sections_capped(self, store: VaultStore):
        store.paths.working_set.parent.mkdir(parents=True)
        store.paths.working_set.write_text(WORKING_SET, encoding="utf-8")
        summary = build_working_set_summary(store)
        assert summary.startswith("## Working Set\n### Locked Rules (non-negotiable)")
        assert "- rule five" in summary
        assert "- rule six" not in summary
        assert "- ship the capture hook" in summary
        assert "someday" not in summary

    def test_missing_file(self, store: VaultStore):
        assert build_working_set_summary(store) == ""


class TestClipContext:
    def test_short_untouched(self):
        assert clip_context("abc", 500) == "abc"

    def test_long_clipped_to_budget(self):
        out = clip_context("<local-vault-context>\n" + "x" * 2000, 500)
        assert len(out) == 500
        assert out.endswith("\n…\n</local-vault-context>")


class TestRecallHook:
    @pytest.fixture
    def vault(self, store: VaultStore) -> VaultStore:
        store.paths.working_set.parent.mkdir(parents=True, exist_ok=True)
        store.paths.working_set.write_text(WORKING_SET, encoding="utf-8")
        store.append_tier("fact", "We picked sqlite because it needs no server")
        return store

    @pytest.mark.asyncio
    async def test_short_prompt(self, config: VaultConfig, vault: VaultStore):
        assert await RecallHook(config, vault)({"prompt": "?"}) is None

    @pytest.mark.asyncio
    async def test_quiet_without_trigger(self, config: VaultConfig, vault: VaultStore):
        assert await RecallHook(config, vault)({"prompt": "hello there friend"}) is None
        assert not manifest_path(vault).exists()

    @pytest.mark.asyncio
    async def test_deep_recall(self, config: VaultConfig, vault: VaultStore):
        handler = build_recall_handler(config, vault)
        result = await handler({"prompt": "why did we pick sqlite?", "sessionKey": "s9"})
        context = result["prepend_context"]
        assert context.startswith("<local-vault-context>\n")
        assert context.endswith("</local-vault-context>")
        assert "## Working Set" in context
        assert "## Recall Matches" in context
        assert "no server" in context

        [record] = [json.loads(line) for line in manifest_path(vault).read_text(encoding="utf-8").splitlines()]
        assert record["sessionKey"] == "s9"
        assert record["deepRecall"] is True
        assert record["triggerMatched"] is True
        loaded = {d["path"] for d in record["filesLoaded"]}
        assert str(vault.paths.working_set) in loaded
        assert any(p.endswith("notes.md") for p in loaded)

    @pytest.mark.asyncio
    async def test_keyword_injects_without_search(self, config: VaultConfig, vault: VaultStore):
        config.recall_keywords = ["Roadmap"]
        result = await RecallHook(config, vault)({"prompt": "what is on the roadmap for sqlite"})
        context = result["prepend_context"]
        assert "## Working Set" in context
        assert "## Recall Matches" not in context
        [record] = [json.loads(line) for line in manifest_path(vault).read_text(encoding="utf-8").splitlines()]
        assert record["deepRecall"] is False

    @pytest.mark.asyncio
    async def test_budget_respected(self, config: VaultConfig, vault: VaultStore):
        config.max_inject_chars = 500
        vault.paths.vault_index.write_text("# VAULT_INDEX\n" + "- entry line\n" * 400, encoding="utf-8")
        result = await RecallHook(config, vault)({"prompt": "recall everything"})
        assert len(result["prepend_context"]) <= 500

    @pytest.mark.asyncio
    async def test_manifest_disabled(self, config: VaultConfig, vault: VaultStore):
        config.emit_manifest = False
        await RecallHook(config, vault)({"prompt": "why sqlite"})
        assert not manifest_path(vault).exists()


class TestStoreSharing:
    def test_entry_points_share_one_store(self, config: VaultConfig):
        capture = CaptureHook(config)
        assert RecallHook(config).store is capture.store
        assert Scheduler(config)._store is capture.store

    @pytest.mark.asyncio
    async def test_commands_see_captured_ids(self, config: VaultConfig):
        await CaptureHook(config)(_event(USER_DECISION))
        entry_id = Inbox(CaptureHook(config).store).recent()[0].id
        assert get_commands(config)["promote"](entry_id).startswith(f"Promoted {entry_id}")
