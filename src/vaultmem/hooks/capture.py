"""Turn-completion hook — stage candidate memories from the last turn.

Event shape (from the host):
    {"success": bool, "messages": [{"role": ..., "content": str | [blocks]}], "sessionKey": str}

Inbox pruning and the safe auto-promotion sweep are background maintenance:
their failures are logged here and never fail the turn. Ledger schema errors
are programming errors and propagate.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import TYPE_CHECKING, Any

from vaultmem.memory.classifier import classify
from vaultmem.memory.inbox import Inbox
from vaultmem.memory.ledger import LedgerSchemaError
from vaultmem.memory.manifest import UNKNOWN_SESSION
from vaultmem.memory.promote import Promoter
from vaultmem.memory.records import InboxEntry, dump_json_line
from vaultmem.memory.store import VaultStore, now_iso, shared_store
from vaultmem.redact import redact

if TYPE_CHECKING:
    from vaultmem.config import VaultConfig

logger = logging.getLogger(__name__)


def get_last_turn(messages: list[Any]) -> list[Any]:
    """Messages from the last user message onward (all of them if there is none)."""
    for i in range(len(messages) - 1, -1, -1):
        msg = messages[i]
        if isinstance(msg, dict) and msg.get("role") == "user":
            return messages[i:]
    return messages


def extract_text_blocks(turn: list[Any]) -> list[tuple[str, str]]:
    """(role, text) for user/assistant messages with string or text-block content."""
    out: list[tuple[str, str]] = []
    for msg in turn:
        if not isinstance(msg, dict):
            continue
        role = msg.get("role")
        if role not in ("user", "assistant"):
            continue
        content = msg.get("content")
        parts: list[str] = []
        if isinstance(content, str):
            parts.append(content)
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str):
                    parts.append(block["text"])
        if parts:
            out.append((role, "\n".join(parts)))
    return out


def join_turn(blocks: list[tuple[str, str]]) -> str:
    return "\n\n".join(f"[role:{role}]\n{text}\n[/{role}]" for role, text in blocks)


class CaptureHook:
    """Async handler for the host's turn-completion event."""

    def __init__(self, config: VaultConfig, store: VaultStore | None = None) -> None:
        self.config = config
        self.store = store or shared_store(config.vault_root)
        self.inbox = Inbox(self.store)
        self.promoter = Promoter(self.store)
        self._last_capture: dict[str, float] = {}

    async def __call__(self, event: dict[str, Any]) -> None:
        if not self.config.auto_capture or not event.get("success"):
            return
        messages = event.get("messages")
        if not isinstance(messages, list) or not messages:
            return

        blocks = extract_text_blocks(get_last_turn(messages))
        if not blocks:
            return

        session_key = str(event.get("sessionKey") or UNKNOWN_SESSION)
        if self._cooling_down(session_key):
            logger.debug("Capture skipped for %s (cooldown)", session_key)
            return
        self._last_capture[session_key] = time.monotonic()

        joined = join_turn(blocks)
        if self.config.capture_mode == "everything":
            self.store.append_remember(joined)
            return
        if self.config.capture_mode == "hybrid":
            self.append_transcript(session_key, joined)

        staged = self.capture_conservative(joined)
        if staged:
            logger.info("Staged %d candidate memories", len(staged))

        try:
            self.inbox.prune(self.config.inbox_retention_days)
        except Exception as e:
            logger.warning("Inbox prune failed: %s", e)

        if self.config.auto_promote == "safe":
            try:
                for result in self.promoter.auto_promote_safe():
                    logger.info("Auto-promote: %s", result.message)
            except LedgerSchemaError:
                raise
            except Exception as e:
                logger.warning("Auto-promotion sweep failed: %s", e)

    def _cooling_down(self, session_key: str) -> bool:
        cooldown = self.config.capture_cooldown_seconds
        last = self._last_capture.get(session_key)
        return cooldown > 0 and last is not None and time.monotonic() - last < cooldown

    def capture_conservative(self, turn_text: str) -> list[InboxEntry]:
        """Classify the turn and stage every candidate in the inbox."""
        captured = classify(turn_text)
        staged: list[InboxEntry] = []
        for text in captured.decisions:
            staged.append(self.inbox.append("decision", text))
        for text in captured.commitments:
            staged.append(self.inbox.append("commitment", text))
        for text in captured.preferences:
            staged.append(self.inbox.append("preference", text))
        for text in captured.lessons:
            staged.append(self.inbox.append("lesson", text))
        return staged

    def append_transcript(self, session_key: str, turn_text: str) -> None:
        path = self.store.paths.transcripts_dir / f"{date.today().isoformat()}.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {"timestamp": now_iso(), "sessionKey": session_key, "turn": redact(turn_text)}
        with path.open("a", encoding="utf-8") as f:
            f.write(dump_json_line(record))


def build_capture_handler(config: VaultConfig, store: VaultStore | None = None) -> CaptureHook:
    return CaptureHook(config, store)
