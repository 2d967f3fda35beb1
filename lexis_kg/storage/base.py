"""
Abstract Storage Backend Interface

Defines the contract for the relational store behind the pipeline.

The store offers range-paginated reads, upsert-by-natural-key and simple
equality filters. No transactions are assumed across statements: partial
writes are recovered through the job ledger, not through store atomicity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import pyarrow as pa

    from lexis_kg.types import (
        Concept,
        ConceptTerm,
        EnrichedResult,
        Highlight,
        LexicalRecord,
        Relation,
        SenseInfo,
        Term,
        WorkItem,
        WorkStatus,
    )


class StorageError(Exception):
    """The relational store failed to execute an operation."""


class StorageBackend(ABC):
    """
    Abstract interface for storage backends.

    Lifecycle:
        backend = DuckDBBackend("./lexis.duckdb")
        await backend.initialize()
        # ... operations ...
        await backend.close()

    Or using context manager:
        async with DuckDBBackend("./lexis.duckdb") as backend:
            await backend.add_work_items(items)

    Paginated reads never return more than ``max_rows_per_request`` rows,
    whatever ``limit`` the caller asks for. Callers page until a short page.
    """

    @property
    @abstractmethod
    def max_rows_per_request(self) -> int:
        """Hard cap on rows returned by one paginated read."""
        ...

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize storage (create tables)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close storage and release resources."""
        ...

    async def __aenter__(self) -> "StorageBackend":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Work Items (ledger)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_work_items(self, items: list["WorkItem"]) -> int:
        """
        Insert work items, updating text fields of existing ids.

        Existing items keep their ledger status.
        """
        ...

    @abstractmethod
    async def fetch_work_items(
        self,
        status: "WorkStatus",
        *,
        offset: int,
        limit: int,
    ) -> list["WorkItem"]:
        """Read one page of items with ``status``, ordered by (parent_id, sequence, id)."""
        ...

    @abstractmethod
    async def update_work_status(
        self,
        ids: list[str],
        status: "WorkStatus",
        *,
        expected: list["WorkStatus"],
        error_message: str | None = None,
    ) -> list[str]:
        """
        Move items currently in one of ``expected`` to ``status``.

        Returns:
            Ids that were actually updated
        """
        ...

    @abstractmethod
    async def reset_work_items(
        self,
        from_statuses: list["WorkStatus"],
        to_status: "WorkStatus",
    ) -> int:
        """Move every item in ``from_statuses`` to ``to_status``; returns the count."""
        ...

    @abstractmethod
    async def count_work_items(self) -> dict[str, int]:
        """Count items per status."""
        ...

    @abstractmethod
    async def get_work_items(self, ids: list[str]) -> list["WorkItem"]:
        ...

    @abstractmethod
    async def get_work_item_windows(
        self,
        ranges: list[tuple[str, int, int]],
    ) -> list["WorkItem"]:
        """
        Items whose (parent_id, sequence) falls in any inclusive range.

        Args:
            ranges: (parent_id, first_sequence, last_sequence) triples
        """
        ...

    # -------------------------------------------------------------------------
    # Lexicon
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_concept(self, concept: "Concept") -> str:
        """Insert or update a concept keyed by ``sense_id``; returns the stored id."""
        ...

    @abstractmethod
    async def upsert_term(self, term: "Term") -> str:
        """Insert a term keyed by (text, language) if missing; returns the stored id."""
        ...

    @abstractmethod
    async def link_concept_term(self, link: "ConceptTerm") -> None:
        ...

    @abstractmethod
    async def get_concepts(self, ids: list[str]) -> list["Concept"]:
        ...

    @abstractmethod
    async def fetch_concept_labels(self, *, offset: int, limit: int) -> list[tuple[str, str]]:
        """Page of (label, concept_id) ordered by label then id."""
        ...

    @abstractmethod
    async def fetch_term_links(
        self,
        language: str,
        *,
        offset: int,
        limit: int,
    ) -> list[tuple[str, str]]:
        """Page of (term_text, concept_id) for terms in ``language``."""
        ...

    @abstractmethod
    async def lookup_senses(
        self,
        words: list[str],
        *,
        source_language: str,
        target_language: str,
    ) -> dict[str, list["SenseInfo"]]:
        """
        Dictionary lookup for many lowercase words in one query.

        Returns:
            Mapping of word to the senses of concepts carrying that word
        """
        ...

    @abstractmethod
    async def add_relations(self, relations: list["Relation"]) -> int:
        """Insert relations, ignoring ones that already exist; returns new count."""
        ...

    @abstractmethod
    async def add_relation_refs(self, refs: list[dict[str, Any]]) -> int:
        """Store unresolved relation references from a dictionary import."""
        ...

    @abstractmethod
    async def fetch_relation_refs(
        self,
        status: str,
        *,
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def set_relation_ref_status(
        self,
        ref_id: str,
        status: str,
        target_concept_id: str | None = None,
    ) -> None:
        ...

    # -------------------------------------------------------------------------
    # Highlights and raw lexical records
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_highlight(self, highlight: "Highlight") -> bool:
        """
        Insert or replace a highlight keyed by its normalized term.

        An existing record is replaced only when the new relevance score is
        strictly higher.

        Returns:
            True if the row was written
        """
        ...

    @abstractmethod
    async def get_highlight(self, key: str) -> "Highlight | None":
        ...

    @abstractmethod
    async def highlight_keys(self) -> set[str]:
        ...

    @abstractmethod
    async def list_highlights(
        self,
        *,
        min_relevance: int = 0,
        limit: int | None = None,
    ) -> list["Highlight"]:
        """Highlights at or above ``min_relevance``, most relevant first."""
        ...

    @abstractmethod
    async def add_duplicate_mappings(self, rows: list[tuple[str, str, str]]) -> int:
        """Record (record_id, source_table, highlight_key) rows."""
        ...

    @abstractmethod
    async def mapped_record_ids(self) -> set[tuple[str, str]]:
        """(record_id, source_table) pairs already folded into a highlight."""
        ...

    @abstractmethod
    async def add_lexical_records(self, records: list["LexicalRecord"]) -> int:
        ...

    @abstractmethod
    async def fetch_lexical_records(
        self,
        *,
        offset: int,
        limit: int,
    ) -> list["LexicalRecord"]:
        ...

    # -------------------------------------------------------------------------
    # Enriched results
    # -------------------------------------------------------------------------

    @abstractmethod
    async def write_enriched_results(self, results: list["EnrichedResult"]) -> int:
        """Upsert results by id."""
        ...

    @abstractmethod
    async def get_enriched_results(self, work_item_id: str) -> list["EnrichedResult"]:
        ...

    # -------------------------------------------------------------------------
    # Export / stats
    # -------------------------------------------------------------------------

    @abstractmethod
    def table_names(self) -> list[str]:
        ...

    @abstractmethod
    async def count_rows(self, table: str) -> int:
        ...

    @abstractmethod
    async def fetch_arrow_page(
        self,
        table: str,
        *,
        offset: int,
        limit: int,
    ) -> "pa.Table":
        """One page of a table as an Arrow table, in a stable order."""
        ...
