"""Context manifests — one JSON line per recall decision, one file per day.

Write-only from the pipeline's point of view; humans and tools read them.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from vaultmem.memory.records import dump_json_line
from vaultmem.memory.store import now_iso

if TYPE_CHECKING:
    from vaultmem.memory.search import FileDecision
    from vaultmem.memory.store import VaultStore

ManifestReason = Literal["relevance", "recency", "token_budget"]

UNKNOWN_SESSION = "(unknown-session)"


def _uniq(reasons: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(reasons))


def manifest_path(store: VaultStore, day: date | None = None) -> Path:
    return store.paths.manifests_dir / f"{(day or date.today()).isoformat()}.jsonl"


def emit_context_manifest(
    store: VaultStore,
    *,
    loaded: list[FileDecision],
    skipped: list[FileDecision],
    deep_recall: bool,
    trigger_matched: bool,
    max_inject_chars: int,
    session_key: str | None = None,
) -> Path:
    path = manifest_path(store)
    path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "timestamp": now_iso(),
        "sessionKey": session_key or UNKNOWN_SESSION,
        "deepRecall": deep_recall,
        "triggerMatched": trigger_matched,
        "maxInjectChars": max_inject_chars,
        "filesLoaded": [{"path": d.path, "reasons": _uniq(d.reasons)} for d in loaded],
        "filesSkipped": [{"path": d.path, "reasons": _uniq(d.reasons)} for d in skipped],
    }
    with path.open("a", encoding="utf-8") as f:
        f.write(dump_json_line(record))
    return path
