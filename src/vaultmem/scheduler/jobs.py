"""Scheduler for vault maintenance using pure asyncio.

Jobs (once per day at the configured hour):
- Retention: trim context manifests and the promotion ledger
- Inbox pruning: drop staged entries past their retention window
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from vaultmem.memory.inbox import Inbox
from vaultmem.memory.retention import cleanup_context_retention
from vaultmem.memory.store import VaultStore, shared_store

if TYPE_CHECKING:
    from vaultmem.config import VaultConfig

logger = logging.getLogger(__name__)


def _parse_cron_hour(cron_expr: str) -> int:
    """Extract hour from simple cron expression like '0 3 * * *'."""
    parts = cron_expr.split()
    if len(parts) >= 2:
        try:
            return int(parts[1])
        except ValueError:
            pass
    return 3  # default: 3 AM


class Scheduler:
    """Simple asyncio-based scheduler for vault maintenance."""

    def __init__(self, config: VaultConfig, store: VaultStore | None = None) -> None:
        self._config = config
        self._store = store or shared_store(config.vault_root)
        self._maintenance_hour = _parse_cron_hour(config.scheduler.maintenance_cron)
        self._tick_interval = config.scheduler.tick_interval
        self.last_run_date: str | None = None

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown_event is set."""
        logger.info(
            "Scheduler started (tick=%ds, maintenance@%02d:00)",
            self._tick_interval,
            self._maintenance_hour,
        )

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self._tick_interval)
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass

            await self.tick(datetime.now())

        logger.info("Scheduler stopped.")

    async def tick(self, now: datetime) -> bool:
        """Run daily maintenance if it is due. Returns True when it ran."""
        today = now.strftime("%Y-%m-%d")
        if now.hour != self._maintenance_hour or self.last_run_date == today:
            return False
        await self._retention()
        await self._prune_inbox()
        self.last_run_date = today
        return True

    async def _retention(self) -> None:
        try:
            result = cleanup_context_retention(self._store, self._config.retention, dry_run=False)
        except Exception as e:
            logger.error("Retention failed: %s", e)
            return
        if result.manifests.deleted or result.promotion_ledger.rewritten:
            logger.info(
                "Retention: deleted %d manifests, ledger %d → %d bytes",
                result.manifests.deleted,
                result.promotion_ledger.bytes_before,
                result.promotion_ledger.bytes_after,
            )

    async def _prune_inbox(self) -> None:
        try:
            pruned = Inbox(self._store).prune(self._config.inbox_retention_days)
        except Exception as e:
            logger.error("Inbox prune failed: %s", e)
            return
        if pruned:
            logger.info("Pruned %d inbox entries", pruned)
