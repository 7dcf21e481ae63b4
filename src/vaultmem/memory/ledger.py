"""Promotion ledger — append-only JSONL audit trail, one line per promotion.

Records are validated when constructed. A record with a missing or empty
required field raises LedgerSchemaError and is never written.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vaultmem.memory.store import VaultError

if TYPE_CHECKING:
    from vaultmem.memory.store import VaultStore


class LedgerSchemaError(VaultError):
    """A promotion ledger record is missing a required field."""


def _require(value: Any, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise LedgerSchemaError(f"promotion ledger record missing required field: {field_name}")


@dataclass(frozen=True)
class LedgerSource:
    inbox_id: str
    type: str
    origin_file: str
    snippet: str

    def __post_init__(self) -> None:
        _require(self.inbox_id, "source.inboxId")
        _require(self.type, "source.type")
        _require(self.origin_file, "source.originFile")
        _require(self.snippet, "source.snippet")


@dataclass(frozen=True)
class LedgerTarget:
    kind: str
    file: str
    ref: str | None = None

    def __post_init__(self) -> None:
        _require(self.kind, "target.kind")
        _require(self.file, "target.file")
        if self.ref is not None:
            _require(self.ref, "target.ref")


@dataclass(frozen=True)
class PromotionLedgerRecord:
    at: str
    who: str
    when: str
    why: str
    source: LedgerSource
    target: LedgerTarget

    def __post_init__(self) -> None:
        _require(self.at, "at")
        _require(self.who, "who")
        _require(self.when, "when")
        _require(self.why, "why")
        if not isinstance(self.source, LedgerSource):
            raise LedgerSchemaError("promotion ledger record missing required field: source")
        if not isinstance(self.target, LedgerTarget):
            raise LedgerSchemaError("promotion ledger record missing required field: target")

    def to_dict(self) -> dict[str, Any]:
        target: dict[str, Any] = {"kind": self.target.kind, "file": self.target.file}
        if self.target.ref is not None:
            target["ref"] = self.target.ref
        return {
            "at": self.at,
            "who": self.who,
            "when": self.when,
            "why": self.why,
            "source": {
                "inboxId": self.source.inbox_id,
                "type": self.source.type,
                "originFile": self.source.origin_file,
                "snippet": self.source.snippet,
            },
            "target": target,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromotionLedgerRecord:
        """Rebuild (and thereby validate) a record from its JSON form."""
        source = data.get("source")
        target = data.get("target")
        if not isinstance(source, dict):
            raise LedgerSchemaError("promotion ledger record missing required field: source")
        if not isinstance(target, dict):
            raise LedgerSchemaError("promotion ledger record missing required field: target")
        return cls(
            at=data.get("at"),  # type: ignore[arg-type]
            who=data.get("who"),  # type: ignore[arg-type]
            when=data.get("when"),  # type: ignore[arg-type]
            why=data.get("why"),  # type: ignore[arg-type]
            source=LedgerSource(
                inbox_id=source.get("inboxId"),
                type=source.get("type"),
                origin_file=source.get("originFile"),
                snippet=source.get("snippet"),
            ),
            target=LedgerTarget(kind=target.get("kind"), file=target.get("file"), ref=target.get("ref")),
        )


def append_promotion_record(store: VaultStore, record: PromotionLedgerRecord) -> Path:
    if not isinstance(record, PromotionLedgerRecord):
        raise LedgerSchemaError("not a PromotionLedgerRecord")
    return store.append_json("ledger", record.to_dict())


def read_promotion_ledger(store: VaultStore) -> Iterator[dict[str, Any]]:
    """Raw ledger lines as dicts, malformed lines skipped."""
    yield from store.scan_json("ledger")
