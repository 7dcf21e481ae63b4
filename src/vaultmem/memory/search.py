"""Tiered lexical search.

Files are visited in strict priority order — user, fact, episodic tier
directories, then the legacy flat files — and the walk stops once the hit cap
or the character budget is reached. A line that appears in several tiers is
returned once, from the highest-priority tier.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import frontmatter

from vaultmem.memory.store import TIERS

if TYPE_CHECKING:
    from vaultmem.memory.store import VaultStore

logger = logging.getLogger(__name__)

MIN_QUERY_CHARS = 2
MIN_TOKEN_CHARS = 3
CHUNK_MAX_CHARS = 160
SEARCH_READ_BYTES = 120_000
RECENT_DAILY_FILES = 7
DEFAULT_MAX_HITS = 7
DEFAULT_MAX_CHARS = 1200

FULL_MATCH_SCORE = 10
TOKEN_SCORE = 2

LEGACY_TIER = "legacy"

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_COMMENT_RE = re.compile(r"<!--.*?-->")
_HEADING_RE = re.compile(r"^#{1,6}\s")


@dataclass
class SearchHit:
    file: str
    line: int
    text: str
    tier: str
    score: int = 0


@dataclass
class FileDecision:
    path: str
    reasons: list[str] = field(default_factory=list)


@dataclass
class SearchOutcome:
    hits: list[SearchHit] = field(default_factory=list)
    loaded: list[FileDecision] = field(default_factory=list)
    skipped: list[FileDecision] = field(default_factory=list)


@dataclass
class _Candidate:
    line: int
    text: str
    source_line: str
    score: int


def query_tokens(query: str) -> list[str]:
    """Distinct lowercase alphanumeric runs of at least three characters."""
    out: list[str] = []
    for token in _TOKEN_RE.findall(query.lower()):
        if len(token) >= MIN_TOKEN_CHARS and token not in out:
            out.append(token)
    return out


def normalize(text: str) -> str:
    return " ".join(text.lower().split())


def score_text(text: str, query: str, tokens: list[str]) -> int:
    low = text.lower()
    score = FULL_MATCH_SCORE if query in low else 0
    return score + TOKEN_SCORE * sum(1 for t in tokens if t in low)


def _body_lines(content: str) -> list[str]:
    """Lines of the file with any front-matter block blanked (numbering preserved)."""
    lines = content.splitlines()
    if frontmatter.checks(content):
        for end in range(1, len(lines)):
            if lines[end].strip() == "---":
                return [""] * (end + 1) + lines[end + 1 :]
    return lines


def _chunk(lines: list[str], i: int) -> str:
    """The matching line plus its non-heading, non-blank neighbours."""
    parts: list[str] = []
    for j in (i - 1, i, i + 1):
        if j < 0 or j >= len(lines):
            continue
        s = lines[j].strip()
        if not s or (j != i and _HEADING_RE.match(s)):
            continue
        parts.append(s)
    chunk = " ".join(parts)
    return chunk if len(chunk) <= CHUNK_MAX_CHARS else lines[i].strip()


class TieredSearch:
    def __init__(self, store: VaultStore) -> None:
        self.store = store

    def candidate_files(self) -> list[tuple[str, Path]]:
        """(tier, path) pairs in retrieval priority order, each path once."""
        ordered: list[tuple[str, Path]] = []
        for tier in TIERS:
            ordered.extend((tier, p) for p in self.store.tier_files(tier))

        paths = self.store.paths
        legacy = [
            paths.working_set,
            paths.vault_index,
            paths.memory_md,
            *self.store.recent_dailies(RECENT_DAILY_FILES),
            *self.store.anchor_files(),
        ]
        ordered.extend((LEGACY_TIER, p) for p in legacy)

        seen: set[Path] = set()
        unique: list[tuple[str, Path]] = []
        for tier, path in ordered:
            if path in seen:
                continue
            seen.add(path)
            unique.append((tier, path))
        return unique

    def _file_candidates(self, path: Path, query: str, tokens: list[str]) -> list[_Candidate]:
        content = self.store.safe_read(path, SEARCH_READ_BYTES)
        if not content:
            return []
        lines = [_COMMENT_RE.sub("", line).rstrip() for line in _body_lines(content)]

        found: list[_Candidate] = []
        for i, line in enumerate(lines):
            low = line.lower()
            if not low.strip() or _HEADING_RE.match(low.strip()):
                continue
            if query not in low and not any(t in low for t in tokens):
                continue
            text = _chunk(lines, i)
            score = score_text(text, query, tokens)
            if score <= 0:
                continue
            found.append(_Candidate(line=i + 1, text=text, source_line=line.strip(), score=score))

        found.sort(key=lambda c: (-c.score, c.line))
        return found

    def run(
        self,
        query: str,
        max_hits: int = DEFAULT_MAX_HITS,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> SearchOutcome:
        """Search and report which files contributed or were cut by the budget."""
        outcome = SearchOutcome()
        q = query.strip().lower()
        if len(q) < MIN_QUERY_CHARS or max_hits <= 0 or max_chars <= 0:
            return outcome

        tokens = query_tokens(q)
        seen: set[str] = set()
        used = 0

        for tier, path in self.candidate_files():
            if len(outcome.hits) >= max_hits or used >= max_chars:
                break

            accepted = 0
            over_budget = False
            for cand in self._file_candidates(path, q, tokens):
                if len(outcome.hits) >= max_hits:
                    break
                keys = {normalize(cand.text), normalize(cand.source_line)}
                if keys & seen:
                    continue
                if used + len(cand.text) > max_chars:
                    over_budget = True
                    continue
                seen |= keys
                used += len(cand.text)
                accepted += 1
                outcome.hits.append(
                    SearchHit(file=str(path), line=cand.line, text=cand.text, tier=tier, score=cand.score)
                )

            if accepted:
                reasons = ["relevance"]
                if path.parent == self.store.paths.daily_dir:
                    reasons.append("recency")
                outcome.loaded.append(FileDecision(str(path), reasons))
            if over_budget:
                outcome.skipped.append(FileDecision(str(path), ["token_budget"]))

        logger.debug("search %r: %d hits, %d chars", q, len(outcome.hits), used)
        return outcome

    def search(
        self,
        query: str,
        max_hits: int = DEFAULT_MAX_HITS,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> list[SearchHit]:
        return self.run(query, max_hits, max_chars).hits


def search(
    store: VaultStore,
    query: str,
    max_hits: int = DEFAULT_MAX_HITS,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> list[SearchHit]:
    return TieredSearch(store).search(query, max_hits, max_chars)
