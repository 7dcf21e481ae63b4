"""User commands over the vault.

Every command takes the raw argument text and returns a short reply string,
so the same table serves the host's slash commands and the CLI.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import TYPE_CHECKING, Callable

from vaultmem.memory.backfill import backfill
from vaultmem.memory.commitments import Commitments
from vaultmem.memory.inbox import Inbox
from vaultmem.memory.promote import Promoter
from vaultmem.memory.retention import cleanup_context_retention
from vaultmem.memory.search import TieredSearch
from vaultmem.memory.store import VaultStore, shared_store

if TYPE_CHECKING:
    from vaultmem.config import VaultConfig

INBOX_DEFAULT = 10
INBOX_MAX = 25
RECALL_MAX_HITS = 7


def _apply_flag(text: str) -> bool | None:
    mode = text.strip().lower() or "preview"
    if mode not in ("preview", "apply"):
        return None
    return mode == "apply"


def get_commands(config: VaultConfig, store: VaultStore | None = None) -> dict[str, Callable[[str], str]]:
    """Return a dict of command_name -> callable(argument_text) -> reply."""
    store = store or shared_store(config.vault_root)
    inbox = Inbox(store)
    commitments = Commitments(store)
    promoter = Promoter(store)
    searcher = TieredSearch(store)

    def remember(text: str) -> str:
        """Save a note to today's daily log."""
        text = text.strip()
        if not text:
            return "Usage: /remember <text>"
        return f"Saved to {store.append_remember(text)}"

    def recall(text: str) -> str:
        """Search the vault, tiers first."""
        q = text.strip()
        if not q:
            return "Usage: /recall <query>"
        hits = searcher.search(q, RECALL_MAX_HITS)
        if not hits:
            return "No matches."
        lines = [f"- {h.text}\n  ({h.file}:{h.line}) [{h.tier}]" for h in hits]
        return f"Matches for: {q}\n\n" + "\n".join(lines)

    def list_inbox(text: str) -> str:
        """List recent staged candidates."""
        try:
            limit = max(1, min(INBOX_MAX, int(text.strip() or INBOX_DEFAULT)))
        except ValueError:
            limit = INBOX_DEFAULT
        items = inbox.recent(limit)
        if not items:
            return "Inbox is empty."
        lines = "\n".join(f"- {e.id} ({e.type}) [{e.status}] — {e.text[:120]}" for e in items)
        return f"Memory Inbox (last {len(items)})\n\n{lines}\n\nUse /promote <id> to promote one."

    def promote(text: str) -> str:
        """Promote one inbox entry into the long-term files."""
        entry_id = text.strip()
        if not entry_id:
            return "Usage: /promote <M-YYYYMMDD-###>"
        return promoter.promote(entry_id).message

    def commit(text: str) -> str:
        """Record an open commitment directly."""
        text = text.strip()
        if not text:
            return "Usage: /commit <text>"
        return f"Added commitment {commitments.add(text).id}"

    def list_commitments(text: str) -> str:
        items = commitments.by_status("open", 20)
        if not items:
            return "No open commitments."
        lines = "\n".join(f"- {c.id} — {c.text[:140]}" for c in items)
        return f"Open commitments ({len(items)})\n\n{lines}\n\nUse /done <id> to close one."

    def done(text: str) -> str:
        commitment_id = text.strip()
        if not commitment_id:
            return "Usage: /done <C-YYYYMMDD-###>"
        if commitments.mark_done(commitment_id):
            return f"Marked done: {commitment_id}"
        return f"Not found/open: {commitment_id}"

    def retention(text: str) -> str:
        """Garbage-collect manifests and the promotion ledger (preview by default)."""
        apply = _apply_flag(text)
        if apply is None:
            return "Usage: /retention [preview|apply]"
        result = cleanup_context_retention(store, config.retention, dry_run=not apply)
        return json.dumps(asdict(result), indent=2)

    def run_backfill(text: str) -> str:
        """Import legacy notes into the tiers (preview by default)."""
        apply = _apply_flag(text)
        if apply is None:
            return "Usage: /backfill [preview|apply]"
        report = backfill(store, apply=apply)
        return json.dumps({**asdict(report), "added": report.added}, indent=2)

    return {
        "remember": remember,
        "recall": recall,
        "inbox": list_inbox,
        "promote": promote,
        "commit": commit,
        "commitments": list_commitments,
        "done": done,
        "retention": retention,
        "backfill": run_backfill,
    }
