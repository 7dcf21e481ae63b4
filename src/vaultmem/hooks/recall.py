"""Prompt hook — prepend locally recalled context when the prompt asks for it.

Quiet by default: nothing is injected unless the prompt carries a trigger
word or a configured keyword. Only trigger words run the tiered search.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from vaultmem.memory.manifest import emit_context_manifest
from vaultmem.memory.search import FileDecision, TieredSearch
from vaultmem.memory.store import VaultStore, heading_key, shared_store

if TYPE_CHECKING:
    from vaultmem.config import VaultConfig

logger = logging.getLogger(__name__)

TRIGGERS = ("remember", "recall", "last time", "why", "decision", "link", "community")

CONTEXT_TAG = "local-vault-context"
CONTEXT_HEADER = (
    "The following is locally recalled context from the user's filesystem vault. "
    "Use it only when relevant."
)
TRUNCATION_RESERVE = 25
RECALL_MAX_HITS = 7
WORKING_SET_SECTIONS = ("locked rules", "current focus")
WORKING_SET_READ_BYTES = 25_000
VAULT_INDEX_CHARS = 8_000

_BULLET_RE = re.compile(r"^[-*]\s+\S")
_HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$")


def matches_trigger(prompt: str) -> bool:
    p = prompt.lower()
    return any(t in p for t in TRIGGERS)


def matches_keyword(prompt: str, keywords: list[str]) -> bool:
    p = prompt.lower()
    return any(k.lower() in p for k in keywords if k.strip())


def build_working_set_summary(store: VaultStore, max_items: int = 5) -> str:
    """Bullets from the Locked Rules and Current Focus sections of WORKING_SET.md."""
    md = store.safe_read(store.paths.working_set, WORKING_SET_READ_BYTES)
    if not md:
        return ""

    sections: list[tuple[str, list[str]]] = []
    current: list[str] | None = None
    for line in md.splitlines():
        h = _HEADING_RE.match(line)
        if h:
            title = h.group(1).strip()
            if heading_key(title).startswith(WORKING_SET_SECTIONS):
                current = []
                sections.append((title, current))
            else:
                current = None
            continue
        if current is not None and len(current) < max_items and _BULLET_RE.match(line.strip()):
            current.append(line.strip())

    parts = [f"### {title}\n" + "\n".join(bullets) for title, bullets in sections if bullets]
    return "## Working Set\n" + "\n".join(parts) if parts else ""


def build_vault_index_snippet(store: VaultStore, max_chars: int = VAULT_INDEX_CHARS) -> str:
    return store.safe_read(store.paths.vault_index)[:max_chars].strip()


def clip_context(context: str, max_chars: int) -> str:
    if len(context) <= max_chars:
        return context
    return context[: max(0, max_chars - TRUNCATION_RESERVE)] + f"\n…\n</{CONTEXT_TAG}>"


class RecallHook:
    """Async handler for the host's prompt event."""

    def __init__(self, config: VaultConfig, store: VaultStore | None = None) -> None:
        self.config = config
        self.store = store or shared_store(config.vault_root)
        self.search = TieredSearch(self.store)

    async def __call__(self, event: dict[str, Any]) -> dict[str, str] | None:
        prompt = event.get("prompt")
        if not isinstance(prompt, str) or len(prompt.strip()) < 2:
            return None
        context = self.build_context(prompt, event.get("sessionKey"))
        return {"prepend_context": context} if context else None

    def build_context(self, prompt: str, session_key: str | None = None) -> str | None:
        deep = matches_trigger(prompt)
        if not deep and not matches_keyword(prompt, self.config.recall_keywords):
            return None

        loaded: list[FileDecision] = []
        skipped: list[FileDecision] = []
        sections: list[str] = []

        summary = build_working_set_summary(self.store)
        if summary:
            sections.append(summary)
            loaded.append(FileDecision(str(self.store.paths.working_set), ["recency"]))

        snippet = build_vault_index_snippet(self.store)
        if snippet:
            sections.append("## Vault Index (top)\n" + snippet)
            loaded.append(FileDecision(str(self.store.paths.vault_index), ["recency"]))

        if deep:
            outcome = self.search.run(prompt, RECALL_MAX_HITS, self.config.max_inject_chars)
            if outcome.hits:
                sections.append(
                    "## Recall Matches\n"
                    + "\n".join(f"- {h.text}\n  ({h.file}:{h.line})" for h in outcome.hits)
                )
            loaded.extend(outcome.loaded)
            skipped.extend(outcome.skipped)

        if self.config.emit_manifest:
            emit_context_manifest(
                self.store,
                session_key=session_key,
                loaded=loaded,
                skipped=skipped,
                deep_recall=deep,
                trigger_matched=True,
                max_inject_chars=self.config.max_inject_chars,
            )

        body = "\n\n".join(sections).strip()
        if not body:
            return None
        context = f"<{CONTEXT_TAG}>\n{CONTEXT_HEADER}\n\n{body}\n</{CONTEXT_TAG}>"
        if len(context) > self.config.max_inject_chars:
            logger.debug("Recall context clipped: %d → %d chars", len(context), self.config.max_inject_chars)
        return clip_context(context, self.config.max_inject_chars)


def build_recall_handler(config: VaultConfig, store: VaultStore | None = None) -> RecallHook:
    return RecallHook(config, store)
