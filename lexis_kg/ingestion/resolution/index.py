"""
Concept Lookup Index

Read-only, in-memory snapshot of canonical labels and cross-language terms
used by the resolution cascade. Loaded once per run with paginated reads so
that every strategy is a pure function of (term, lookup).
"""

from __future__ import annotations

import logging
from typing import Protocol

from lexis_kg.storage.base import StorageBackend
from lexis_kg.utils.text import normalize_key

logger = logging.getLogger(__name__)


class ConceptLookup(Protocol):
    """What the resolution strategies need from the lexicon."""

    def by_label(self, label: str) -> str | None:
        """Concept id whose canonical label equals ``label`` exactly."""
        ...

    def by_foreign_term(self, term: str) -> str | None:
        """Concept id linked to ``term`` in the other language."""
        ...


class ConceptIndex:
    """
    Dictionary-backed ConceptLookup.

    When several concepts share a label (homonyms), the first by
    (label, id) order wins, matching what a paginated store query returns.
    """

    def __init__(
        self,
        labels: dict[str, str] | None = None,
        foreign_terms: dict[str, str] | None = None,
    ) -> None:
        self._labels: dict[str, str] = dict(labels or {})
        self._foreign_exact: dict[str, str] = dict(foreign_terms or {})
        self._foreign_normalized: dict[str, str] = {}
        for text, concept_id in self._foreign_exact.items():
            self._foreign_normalized.setdefault(normalize_key(text), concept_id)

    def __len__(self) -> int:
        return len(self._labels)

    def by_label(self, label: str) -> str | None:
        if not label:
            return None
        return self._labels.get(label)

    def by_foreign_term(self, term: str) -> str | None:
        if not term:
            return None
        return self._foreign_exact.get(term) or self._foreign_normalized.get(normalize_key(term))

    @classmethod
    async def load(
        cls,
        storage: StorageBackend,
        *,
        foreign_language: str,
        page_size: int = 1000,
    ) -> "ConceptIndex":
        """
        Build an index from the store.

        Args:
            storage: Initialized storage backend
            foreign_language: Language whose terms back the cross-language fallback
            page_size: Rows per paginated read
        """
        page_size = min(page_size, storage.max_rows_per_request)

        labels: dict[str, str] = {}
        offset = 0
        while True:
            page = await storage.fetch_concept_labels(offset=offset, limit=page_size)
            for label, concept_id in page:
                labels.setdefault(label, concept_id)
            offset += len(page)
            if len(page) < page_size:
                break

        foreign: dict[str, str] = {}
        offset = 0
        while True:
            page = await storage.fetch_term_links(
                foreign_language, offset=offset, limit=page_size
            )
            for text, concept_id in page:
                foreign.setdefault(text, concept_id)
            offset += len(page)
            if len(page) < page_size:
                break

        logger.info(
            f"Loaded concept index: {len(labels)} labels, {len(foreign)} {foreign_language} terms"
        )
        return cls(labels, foreign)
