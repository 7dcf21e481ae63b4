"""Daemon process — keeps the vault tidy in the background.

Usage: python -m vaultmem serve

Manages:
- Scheduler (retention + inbox pruning)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import signal

from vaultmem.config import VaultConfig, load_config
from vaultmem.memory.store import shared_store
from vaultmem.scheduler.jobs import Scheduler

logger = logging.getLogger(__name__)


class VaultDaemon:
    """Always-on maintenance process."""

    def __init__(self, config: VaultConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    def stop(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        self._setup_signals()
        store = shared_store(self.config.vault_root)
        logger.info("vaultmem daemon started (vault=%s)", self.config.vault_root)
        await Scheduler(self.config, store).start(self._shutdown_event)
        logger.info("vaultmem daemon stopped.")
