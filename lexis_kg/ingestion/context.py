"""
Context Assembler

Gathers the evidence handed to the oracle alongside each work item:

- dictionary senses for every word of the raw text
- the parent headword (for dictionary examples)
- known idioms/highlights whose phrase occurs in the raw text
- a window of neighboring sentences under the same parent, by sequence

All lookups are read-only and batched: one dictionary query, one headword
query and one window query per batch of items, however many items it has.

Example:
    >>> assembler = ContextAssembler(storage, config)
    >>> contexts = await assembler.assemble(items)
    >>> contexts[0].senses["kumt"][0].label
    'komme'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lexis_kg.config import LexisConfig
from lexis_kg.storage.base import StorageBackend
from lexis_kg.types import Concept, Highlight, SenseInfo, WorkItem
from lexis_kg.utils.text import normalize_key, unique_words

logger = logging.getLogger(__name__)


def tokenize(text: str) -> list[str]:
    """Unique normalized words of ``text`` in first-seen order."""
    return unique_words(text)


@dataclass
class ItemContext:
    """Everything known about one work item before the oracle call."""

    item: WorkItem
    words: list[str] = field(default_factory=list)
    senses: dict[str, list[SenseInfo]] = field(default_factory=dict)
    headword: Concept | None = None
    idioms: list[Highlight] = field(default_factory=list)
    window: list[WorkItem] = field(default_factory=list)

    @property
    def unknown_words(self) -> list[str]:
        return [w for w in self.words if w not in self.senses]


class ContextAssembler:
    """
    Builds ItemContext objects for batches of work items.

    Known idioms are loaded once per assembler (i.e. once per run).
    """

    def __init__(self, storage: StorageBackend, config: LexisConfig) -> None:
        self._storage = storage
        self._config = config
        self._known_idioms: list[Highlight] | None = None

    async def known_idioms(self) -> list[Highlight]:
        if self._known_idioms is None:
            self._known_idioms = await self._storage.list_highlights(
                min_relevance=self._config.idiom_min_relevance
            )
            logger.debug(f"Loaded {len(self._known_idioms)} known idioms")
        return self._known_idioms

    def match_idioms(self, text: str, idioms: list[Highlight]) -> list[Highlight]:
        """Idioms whose normalized phrase is a substring of ``text``."""
        haystack = normalize_key(text)
        matches = [h for h in idioms if h.key and h.key in haystack]
        return matches[: self._config.idiom_prompt_limit]

    async def assemble(self, items: list[WorkItem]) -> list[ItemContext]:
        """Assemble context for a batch, in input order."""
        if not items:
            return []

        contexts = [ItemContext(item=item, words=tokenize(item.source_text)) for item in items]

        all_words = sorted({w for ctx in contexts for w in ctx.words})
        senses = await self._storage.lookup_senses(
            all_words,
            source_language=self._config.source_language,
            target_language=self._config.target_language,
        )

        parent_ids = sorted({item.parent_id for item in items})
        headwords = {c.id: c for c in await self._storage.get_concepts(parent_ids)}

        windows = await self._load_windows(items)
        idioms = await self.known_idioms()

        for ctx in contexts:
            ctx.senses = {w: senses[w] for w in ctx.words if w in senses}
            ctx.headword = headwords.get(ctx.item.parent_id)
            ctx.idioms = self.match_idioms(ctx.item.source_text, idioms)
            ctx.window = windows.get(ctx.item.id, [])

        return contexts

    async def _load_windows(self, items: list[WorkItem]) -> dict[str, list[WorkItem]]:
        """Neighbors of each item (same parent, nearby sequence), excluding the item."""
        before = self._config.context_window_before
        after = self._config.context_window_after
        if before <= 0 and after <= 0:
            return {}

        ranges = [
            (item.parent_id, item.sequence - max(before, 0), item.sequence + max(after, 0))
            for item in items
        ]
        neighbors = await self._storage.get_work_item_windows(ranges)

        by_parent: dict[str, list[WorkItem]] = {}
        for neighbor in neighbors:
            by_parent.setdefault(neighbor.parent_id, []).append(neighbor)

        windows: dict[str, list[WorkItem]] = {}
        for item, (_, first, last) in zip(items, ranges):
            windows[item.id] = [
                n
                for n in by_parent.get(item.parent_id, [])
                if first <= n.sequence <= last and n.id != item.id
            ]
        return windows
