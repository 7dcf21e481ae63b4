"""Retention for derived logs: daily manifest files and the promotion ledger.

Today's data is always kept, whatever the limits say. Every routine defaults
to a dry run that only reports what it would do.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vaultmem.config import RetentionConfig
    from vaultmem.memory.store import VaultStore

logger = logging.getLogger(__name__)

MIN_LEDGER_BYTES = 1024
_MANIFEST_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.jsonl$")
_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


@dataclass
class CleanupTargetResult:
    scanned: int = 0
    kept: int = 0
    deleted: int = 0
    rewritten: bool = False
    bytes_before: int | None = None
    bytes_after: int | None = None


@dataclass
class CleanupResult:
    manifests: CleanupTargetResult
    promotion_ledger: CleanupTargetResult
    dry_run: bool


def _cutoff(retention_days: int, today: date) -> str:
    return (today - timedelta(days=max(1, retention_days))).isoformat()


def cleanup_manifest_files(
    store: VaultStore,
    cfg: RetentionConfig,
    dry_run: bool = True,
    today: date | None = None,
) -> CleanupTargetResult:
    directory = store.paths.manifests_dir
    if not directory.is_dir():
        return CleanupTargetResult()
    files = sorted(p.name for p in directory.iterdir() if _MANIFEST_RE.match(p.name))

    today = today or date.today()
    today_file = f"{today.isoformat()}.jsonl"
    cutoff = _cutoff(cfg.retention_days, today)

    keep = [f for f in files if f == today_file or f[:10] >= cutoff]
    max_files = max(1, cfg.manifest_max_files)
    if len(keep) > max_files:
        must_keep = [today_file] if today_file in keep else []
        rest = [f for f in keep if f != today_file]
        room = max(0, max_files - len(must_keep))
        keep = sorted(must_keep + (rest[-room:] if room else []))

    keep_set = set(keep)
    to_delete = [f for f in files if f not in keep_set and f != today_file]

    if not dry_run:
        for name in to_delete:
            (directory / name).unlink(missing_ok=True)
        if to_delete:
            logger.info("Deleted %d manifest files", len(to_delete))

    return CleanupTargetResult(scanned=len(files), kept=len(keep), deleted=len(to_delete))


def _ledger_date(line: str) -> str | None:
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return None
    at = obj.get("at") if isinstance(obj, dict) else None
    if isinstance(at, str) and _DATE_PREFIX_RE.match(at):
        return at[:10]
    return None


def _serialize(lines: list[str]) -> str:
    return "\n".join(lines) + ("\n" if lines else "")


def cleanup_promotion_ledger(
    store: VaultStore,
    cfg: RetentionConfig,
    dry_run: bool = True,
    today: date | None = None,
) -> CleanupTargetResult:
    path = store.path("ledger")
    if not path.exists():
        return CleanupTargetResult(bytes_before=0, bytes_after=0)

    content = store.read("ledger")
    before = len(content.encode("utf-8"))
    lines = [ln for ln in content.splitlines() if ln.strip()]

    today_str = (today or date.today()).isoformat()
    cutoff = _cutoff(cfg.retention_days, today or date.today())

    dated = [(ln, _ledger_date(ln)) for ln in lines]
    kept = [(ln, d) for ln, d in dated if d is not None and (d == today_str or d >= cutoff)]

    max_bytes = max(MIN_LEDGER_BYTES, cfg.promotion_ledger_max_bytes)
    if len(_serialize([ln for ln, _ in kept]).encode("utf-8")) > max_bytes:
        todays = [ln for ln, d in kept if d == today_str]
        older = [ln for ln, d in kept if d != today_str]
        # Oldest first; today's lines are never evicted.
        while older and len(_serialize(older + todays).encode("utf-8")) > max_bytes:
            older.pop(0)
        next_lines = older + todays
    else:
        next_lines = [ln for ln, _ in kept]

    next_content = _serialize(next_lines)
    rewritten = next_content != content
    if not dry_run and rewritten:
        store.write("ledger", next_content)
        logger.info("Rewrote promotion ledger: %d → %d lines", len(lines), len(next_lines))

    return CleanupTargetResult(
        scanned=len(lines),
        kept=len(next_lines),
        deleted=max(0, len(lines) - len(next_lines)),
        rewritten=rewritten,
        bytes_before=before,
        bytes_after=len(next_content.encode("utf-8")),
    )


def cleanup_context_retention(
    store: VaultStore,
    cfg: RetentionConfig,
    dry_run: bool = True,
    today: date | None = None,
) -> CleanupResult:
    return CleanupResult(
        manifests=cleanup_manifest_files(store, cfg, dry_run, today),
        promotion_ledger=cleanup_promotion_ledger(store, cfg, dry_run, today),
        dry_run=dry_run,
    )
