"""Record codecs — markdown blocks and JSON lines.

Markdown grammars:

    ## M-20260218-001 (decision)        ### C-20260218-001          ## D-20260218-001
    - Status: pending                   - Status: open              - Date: 2026-02-18
    - Created: 2026-02-18T10:00:00      - Created: ...              - Decision: ...
    - Text: ...                         - Text: ...

Parsers are best-effort: a block missing any field is dropped, never raised on.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

InboxType = Literal["decision", "commitment", "lesson", "preference", "other"]
InboxStatus = Literal["pending", "promoted"]
CommitmentStatus = Literal["open", "done"]

INBOX_TYPES: tuple[str, ...] = ("decision", "commitment", "lesson", "preference", "other")

INBOX_HEADER_RE = re.compile(r"^##\s+(M-\d{8}-\d{3,})\s+\(([^)]+)\)\s*$")
COMMITMENT_HEADER_RE = re.compile(r"^###\s+(C-\d{8}-\d{3,})\s*$")
DECISION_HEADER_RE = re.compile(r"^##\s+(D-\d{8}-\d{3,})\s*$")

_FIELD_RE = re.compile(r"^-\s+(Status|Created|Text|Date|Decision):\s+(.+)$")


@dataclass
class InboxEntry:
    id: str
    type: InboxType
    status: InboxStatus
    created_at: str
    text: str


@dataclass
class Commitment:
    id: str
    status: CommitmentStatus
    created_at: str
    text: str


@dataclass
class Decision:
    id: str
    date: str
    text: str


# ── Rendering ─────────────────────────────────────────────────


def render_inbox_entry(entry: InboxEntry) -> str:
    return (
        f"\n## {entry.id} ({entry.type})\n"
        f"- Status: {entry.status}\n"
        f"- Created: {entry.created_at}\n"
        f"- Text: {entry.text}\n"
    )


def render_commitment(commitment: Commitment) -> str:
    return (
        f"\n### {commitment.id}\n"
        f"- Status: {commitment.status}\n"
        f"- Created: {commitment.created_at}\n"
        f"- Text: {commitment.text}\n"
    )


def render_decision(decision: Decision) -> str:
    return f"\n## {decision.id}\n- Date: {decision.date}\n- Decision: {decision.text}\n"


# ── Parsing ───────────────────────────────────────────────────


def _parse_blocks(md: str, header_re: re.Pattern[str]) -> Iterator[tuple[re.Match[str], dict[str, str]]]:
    """Yield (header match, fields) for every block introduced by header_re."""
    header: re.Match[str] | None = None
    fields: dict[str, str] = {}
    for raw in md.splitlines():
        m = header_re.match(raw)
        if m:
            if header:
                yield header, fields
            header, fields = m, {}
            continue
        if header is None:
            continue
        f = _FIELD_RE.match(raw)
        if f and f.group(1) not in fields:
            fields[f.group(1)] = f.group(2).strip()
    if header:
        yield header, fields


def parse_inbox(md: str) -> list[InboxEntry]:
    entries: list[InboxEntry] = []
    for header, fields in _parse_blocks(md, INBOX_HEADER_RE):
        status = fields.get("Status", "").lower()
        if status not in ("pending", "promoted"):
            continue
        if not fields.get("Created") or not fields.get("Text"):
            continue
        etype = header.group(2).strip().lower()
        entries.append(
            InboxEntry(
                id=header.group(1),
                type=etype if etype in INBOX_TYPES else "other",  # type: ignore[arg-type]
                status=status,  # type: ignore[arg-type]
                created_at=fields["Created"],
                text=fields["Text"],
            )
        )
    return entries


def parse_commitments(md: str) -> list[Commitment]:
    out: list[Commitment] = []
    for header, fields in _parse_blocks(md, COMMITMENT_HEADER_RE):
        status = fields.get("Status", "").lower()
        if status not in ("open", "done"):
            continue
        if not fields.get("Created") or not fields.get("Text"):
            continue
        out.append(
            Commitment(
                id=header.group(1),
                status=status,  # type: ignore[arg-type]
                created_at=fields["Created"],
                text=fields["Text"],
            )
        )
    return out


def parse_decisions(md: str) -> list[Decision]:
    out: list[Decision] = []
    for header, fields in _parse_blocks(md, DECISION_HEADER_RE):
        if not fields.get("Date") or not fields.get("Decision"):
            continue
        out.append(Decision(id=header.group(1), date=fields["Date"], text=fields["Decision"]))
    return out


def set_block_status(md: str, header_re: re.Pattern[str], block_id: str, old: str, new: str) -> str:
    """Flip the Status field of block `block_id` from `old` to `new`.

    Blocks are delimited exactly as the parsers see them, and the first Status
    line inside the block is the one that counts, wherever it sits among the
    other fields. Returns the content unchanged when that status is not `old`.
    """
    lines = md.splitlines(keepends=True)
    in_block = False
    for i, raw in enumerate(lines):
        line = raw.rstrip("\r\n")
        m = header_re.match(line)
        if m:
            in_block = m.group(1) == block_id
            continue
        if not in_block:
            continue
        f = _FIELD_RE.match(line)
        if not f or f.group(1) != "Status":
            continue
        if f.group(2).strip().lower() != old:
            return md
        lines[i] = f"- Status: {new}" + raw[len(line):]
        return "".join(lines)
    return md


# ── JSON lines ────────────────────────────────────────────────


def dump_json_line(obj: dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")) + "\n"


def iter_json_lines(text: str) -> Iterator[dict[str, Any]]:
    """Yield each JSON object line, skipping blanks and malformed lines."""
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON line: %.80s", line)
            continue
        if isinstance(obj, dict):
            yield obj
