"""Commitment tracking — open follow-ups that can be closed exactly once."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vaultmem.memory.records import (
    COMMITMENT_HEADER_RE,
    Commitment,
    CommitmentStatus,
    parse_commitments,
    render_commitment,
    set_block_status,
)
from vaultmem.memory.store import now_iso
from vaultmem.redact import redact

if TYPE_CHECKING:
    from vaultmem.memory.store import VaultStore

logger = logging.getLogger(__name__)


class Commitments:
    def __init__(self, store: VaultStore) -> None:
        self.store = store

    def add(self, text: str) -> Commitment:
        with self.store.lock:
            self.store.ensure("commitments")
            commitment = Commitment(
                id=self.store.next_id("C", self.store.read("commitments")),
                status="open",
                created_at=now_iso(),
                text=" ".join(redact(text).split()),
            )
            self.store.append("commitments", render_commitment(commitment))
        logger.info("Added commitment %s", commitment.id)
        return commitment

    def by_status(self, status: CommitmentStatus, limit: int = 20) -> list[Commitment]:
        self.store.ensure("commitments")
        matching = [c for c in parse_commitments(self.store.read("commitments")) if c.status == status]
        return matching[-limit:] if limit > 0 else []

    def mark_done(self, commitment_id: str) -> bool:
        """Close an open commitment. False when missing or already done."""
        if not self.store.path("commitments").exists():
            return False
        changed = self.store.rewrite(
            "commitments",
            lambda md: set_block_status(md, COMMITMENT_HEADER_RE, commitment_id, "open", "done"),
        )
        if changed:
            logger.info("Closed commitment %s", commitment_id)
        return changed
