"""
DuckDB Storage Backend

Relational store for the ledger, the lexicon and derived tables in a single
DuckDB database file (or ``":memory:"`` for tests).

Thread safety:
    Every operation runs in ``asyncio.to_thread``. DuckDB connections are not
    thread-safe, so each worker thread gets its own cursor (a child
    connection to the same database) via thread-local storage. Multi-statement
    writes such as the never-downgrade highlight upsert run under one
    process-wide write lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import duckdb
import pyarrow as pa

from lexis_kg.storage.base import StorageBackend, StorageError
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
from lexis_kg.utils.text import new_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS work_items (
        id VARCHAR PRIMARY KEY,
        parent_id VARCHAR NOT NULL,
        sequence INTEGER NOT NULL DEFAULT 0,
        source_text VARCHAR NOT NULL,
        target_hint VARCHAR,
        note VARCHAR,
        status VARCHAR NOT NULL DEFAULT 'pending',
        error_message VARCHAR,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS concepts (
        id VARCHAR PRIMARY KEY,
        label VARCHAR NOT NULL,
        part_of_speech VARCHAR,
        definition VARCHAR,
        sense_id VARCHAR NOT NULL UNIQUE,
        sense_number VARCHAR,
        notes VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS terms (
        id VARCHAR PRIMARY KEY,
        text VARCHAR NOT NULL,
        language VARCHAR NOT NULL,
        UNIQUE (text, language)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS concept_terms (
        concept_id VARCHAR NOT NULL,
        term_id VARCHAR NOT NULL,
        source_name VARCHAR NOT NULL,
        pronunciation VARCHAR,
        gender VARCHAR,
        plural_form VARCHAR,
        etymology VARCHAR,
        note VARCHAR,
        PRIMARY KEY (concept_id, term_id, source_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relations (
        source_concept_id VARCHAR NOT NULL,
        target_concept_id VARCHAR NOT NULL,
        relation_type VARCHAR NOT NULL,
        note VARCHAR,
        work_item_id VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp,
        PRIMARY KEY (source_concept_id, target_concept_id, relation_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relation_refs (
        id VARCHAR PRIMARY KEY,
        source_concept_id VARCHAR NOT NULL,
        target_text VARCHAR NOT NULL,
        relation_type VARCHAR NOT NULL,
        note VARCHAR,
        status VARCHAR NOT NULL DEFAULT 'pending',
        target_concept_id VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS highlights (
        term_key VARCHAR PRIMARY KEY,
        term VARCHAR NOT NULL,
        gloss VARCHAR,
        explanation VARCHAR,
        feature_type VARCHAR,
        relevance_score INTEGER NOT NULL,
        tags VARCHAR,
        source_work_item_id VARCHAR,
        source_ids VARCHAR,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS highlight_duplicates (
        record_id VARCHAR NOT NULL,
        source_table VARCHAR NOT NULL,
        highlight_key VARCHAR NOT NULL,
        created_at TIMESTAMP DEFAULT current_timestamp,
        PRIMARY KEY (record_id, source_table)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lexical_records (
        id VARCHAR NOT NULL,
        source_table VARCHAR NOT NULL,
        term VARCHAR NOT NULL,
        explanation VARCHAR,
        gloss VARCHAR,
        feature_type VARCHAR,
        PRIMARY KEY (id, source_table)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS enriched_results (
        id VARCHAR PRIMARY KEY,
        work_item_id VARCHAR NOT NULL,
        cleaned_text VARCHAR NOT NULL,
        translation VARCHAR NOT NULL,
        confidence DOUBLE NOT NULL,
        notes VARCHAR,
        variant VARCHAR NOT NULL,
        created_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
]

# Stable export/pagination order per table
_TABLE_ORDER: dict[str, str] = {
    "work_items": "parent_id, sequence, id",
    "concepts": "label, id",
    "terms": "language, text",
    "concept_terms": "concept_id, term_id, source_name",
    "relations": "source_concept_id, target_concept_id, relation_type",
    "relation_refs": "id",
    "highlights": "term_key",
    "highlight_duplicates": "highlight_key, record_id, source_table",
    "lexical_records": "source_table, id",
    "enriched_results": "work_item_id, id",
}

_WORK_COLUMNS = (
    "id, parent_id, sequence, source_text, target_hint, note, status, error_message, updated_at"
)
_HIGHLIGHT_COLUMNS = (
    "term, gloss, explanation, feature_type, relevance_score, tags, "
    "source_work_item_id, source_ids"
)


def _placeholders(values: list[Any]) -> str:
    return ",".join(["?" for _ in values])


class DuckDBBackend(StorageBackend):
    """
    DuckDB implementation of the storage contract.

    Args:
        db_path: Database file, or ":memory:"
        max_rows_per_request: Cap on rows returned by one paginated read
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        max_rows_per_request: int = 1000,
    ) -> None:
        self._db_path = str(db_path)
        self._max_rows = max_rows_per_request
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._local = threading.local()
        self._cursors: list[duckdb.DuckDBPyConnection] = []
        self._cursor_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @property
    def max_rows_per_request(self) -> int:
        return self._max_rows

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """Open the database and create tables."""
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self._db_path)

        def _create(conn: duckdb.DuckDBPyConnection) -> None:
            for statement in _SCHEMA:
                conn.execute(statement)

        await self._run(_create, write=True)
        logger.debug(f"DuckDB store ready at {self._db_path}")

    async def close(self) -> None:
        """Close every thread cursor and the root connection."""
        with self._cursor_lock:
            for cursor in self._cursors:
                cursor.close()
            self._cursors.clear()
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _get_conn(self) -> duckdb.DuckDBPyConnection:
        """Get this thread's cursor, creating it on first use."""
        if self._conn is None:
            raise RuntimeError("DuckDB not initialized. Call initialize() first.")

        cursor = getattr(self._local, "cursor", None)
        owner = getattr(self._local, "owner", None)
        if cursor is None or owner is not self._conn:
            cursor = self._conn.cursor()
            self._local.cursor = cursor
            self._local.owner = self._conn
            with self._cursor_lock:
                self._cursors.append(cursor)
        return cursor

    async def _run(
        self,
        fn: Callable[[duckdb.DuckDBPyConnection], T],
        *,
        write: bool = False,
    ) -> T:
        """Run ``fn`` on a worker thread, mapping DuckDB errors to StorageError."""

        def _call() -> T:
            conn = self._get_conn()
            try:
                if write:
                    with self._write_lock:
                        return fn(conn)
                return fn(conn)
            except duckdb.Error as e:
                raise StorageError(str(e)) from e

        return await asyncio.to_thread(_call)

    def _cap(self, limit: int) -> int:
        return max(0, min(limit, self._max_rows))

    # -------------------------------------------------------------------------
    # Work Items
    # -------------------------------------------------------------------------

    async def add_work_items(self, items: list[WorkItem]) -> int:
        if not items:
            return 0

        rows = [
            [
                item.id,
                item.parent_id,
                item.sequence,
                item.source_text,
                item.target_hint,
                item.note,
                item.status.value,
                item.error_message,
            ]
            for item in items
        ]

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            conn.executemany(
                """
                INSERT INTO work_items
                    (id, parent_id, sequence, source_text, target_hint, note, status, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    parent_id = excluded.parent_id,
                    sequence = excluded.sequence,
                    source_text = excluded.source_text,
                    target_hint = excluded.target_hint,
                    note = excluded.note
                """,
                rows,
            )
            return len(rows)

        return await self._run(_write, write=True)

    async def fetch_work_items(
        self,
        status: WorkStatus,
        *,
        offset: int,
        limit: int,
    ) -> list[WorkItem]:
        size = self._cap(limit)
        if size == 0:
            return []

        def _query(conn: duckdb.DuckDBPyConnection) -> list[WorkItem]:
            result = conn.execute(
                f"""
                SELECT {_WORK_COLUMNS} FROM work_items
                WHERE status = ?
                ORDER BY parent_id, sequence, id
                LIMIT ? OFFSET ?
                """,
                [status.value, size, offset],
            ).fetchall()
            return [self._row_to_work_item(row) for row in result]

        return await self._run(_query)

    async def update_work_status(
        self,
        ids: list[str],
        status: WorkStatus,
        *,
        expected: list[WorkStatus],
        error_message: str | None = None,
    ) -> list[str]:
        if not ids or not expected:
            return []

        expected_values = [s.value for s in expected]

        def _write(conn: duckdb.DuckDBPyConnection) -> list[str]:
            result = conn.execute(
                f"""
                UPDATE work_items
                SET status = ?, error_message = ?, updated_at = current_timestamp
                WHERE id IN ({_placeholders(ids)})
                  AND status IN ({_placeholders(expected_values)})
                RETURNING id
                """,
                [status.value, error_message, *ids, *expected_values],
            ).fetchall()
            return [row[0] for row in result]

        return await self._run(_write, write=True)

    async def reset_work_items(
        self,
        from_statuses: list[WorkStatus],
        to_status: WorkStatus,
    ) -> int:
        if not from_statuses:
            return 0
        values = [s.value for s in from_statuses]

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            result = conn.execute(
                f"""
                UPDATE work_items
                SET status = ?, updated_at = current_timestamp
                WHERE status IN ({_placeholders(values)})
                RETURNING id
                """,
                [to_status.value, *values],
            ).fetchall()
            return len(result)

        return await self._run(_write, write=True)

    async def count_work_items(self) -> dict[str, int]:
        def _query(conn: duckdb.DuckDBPyConnection) -> dict[str, int]:
            result = conn.execute(
                "SELECT status, count(*) FROM work_items GROUP BY status"
            ).fetchall()
            counts = {status.value: 0 for status in WorkStatus}
            counts.update({row[0]: int(row[1]) for row in result})
            return counts

        return await self._run(_query)

    async def get_work_items(self, ids: list[str]) -> list[WorkItem]:
        if not ids:
            return []

        def _query(conn: duckdb.DuckDBPyConnection) -> list[WorkItem]:
            result = conn.execute(
                f"""
                SELECT {_WORK_COLUMNS} FROM work_items
                WHERE id IN ({_placeholders(ids)})
                ORDER BY parent_id, sequence, id
                """,
                ids,
            ).fetchall()
            return [self._row_to_work_item(row) for row in result]

        return await self._run(_query)

    async def get_work_item_windows(
        self,
        ranges: list[tuple[str, int, int]],
    ) -> list[WorkItem]:
        if not ranges:
            return []

        clauses = " OR ".join(
            ["(parent_id = ? AND sequence BETWEEN ? AND ?)" for _ in ranges]
        )
        params: list[Any] = []
        for parent_id, first, last in ranges:
            params.extend([parent_id, first, last])

        def _query(conn: duckdb.DuckDBPyConnection) -> list[WorkItem]:
            result = conn.execute(
                f"""
                SELECT {_WORK_COLUMNS} FROM work_items
                WHERE {clauses}
                ORDER BY parent_id, sequence, id
                """,
                params,
            ).fetchall()
            return [self._row_to_work_item(row) for row in result]

        return await self._run(_query)

    @staticmethod
    def _row_to_work_item(row: tuple[Any, ...]) -> WorkItem:
        return WorkItem(
            id=row[0],
            parent_id=row[1],
            sequence=row[2],
            source_text=row[3],
            target_hint=row[4],
            note=row[5],
            status=WorkStatus(row[6]),
            error_message=row[7],
            updated_at=row[8],
        )

    # -------------------------------------------------------------------------
    # Lexicon
    # -------------------------------------------------------------------------

    async def upsert_concept(self, concept: Concept) -> str:
        def _write(conn: duckdb.DuckDBPyConnection) -> str:
            existing = conn.execute(
                "SELECT id FROM concepts WHERE sense_id = ?", [concept.sense_id]
            ).fetchone()
            if existing:
                conn.execute(
                    """
                    UPDATE concepts
                    SET label = ?, part_of_speech = ?, definition = ?,
                        sense_number = ?, notes = ?
                    WHERE id = ?
                    """,
                    [
                        concept.label,
                        concept.part_of_speech,
                        concept.definition,
                        concept.sense_number,
                        concept.notes,
                        existing[0],
                    ],
                )
                return str(existing[0])
            conn.execute(
                """
                INSERT INTO concepts
                    (id, label, part_of_speech, definition, sense_id, sense_number, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    concept.id,
                    concept.label,
                    concept.part_of_speech,
                    concept.definition,
                    concept.sense_id,
                    concept.sense_number,
                    concept.notes,
                ],
            )
            return concept.id

        return await self._run(_write, write=True)

    async def upsert_term(self, term: Term) -> str:
        def _write(conn: duckdb.DuckDBPyConnection) -> str:
            existing = conn.execute(
                "SELECT id FROM terms WHERE text = ? AND language = ?",
                [term.text, term.language],
            ).fetchone()
            if existing:
                return str(existing[0])
            conn.execute(
                "INSERT INTO terms (id, text, language) VALUES (?, ?, ?)",
                [term.id, term.text, term.language],
            )
            return term.id

        return await self._run(_write, write=True)

    async def link_concept_term(self, link: ConceptTerm) -> None:
        def _write(conn: duckdb.DuckDBPyConnection) -> None:
            conn.execute(
                """
                INSERT OR REPLACE INTO concept_terms
                    (concept_id, term_id, source_name, pronunciation, gender,
                     plural_form, etymology, note)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    link.concept_id,
                    link.term_id,
                    link.source_name,
                    link.pronunciation,
                    link.gender,
                    link.plural_form,
                    link.etymology,
                    link.note,
                ],
            )

        await self._run(_write, write=True)

    async def get_concepts(self, ids: list[str]) -> list[Concept]:
        if not ids:
            return []

        def _query(conn: duckdb.DuckDBPyConnection) -> list[Concept]:
            result = conn.execute(
                f"""
                SELECT id, label, part_of_speech, definition, sense_id, sense_number, notes
                FROM concepts WHERE id IN ({_placeholders(ids)})
                ORDER BY label, id
                """,
                ids,
            ).fetchall()
            return [
                Concept(
                    id=row[0],
                    label=row[1],
                    part_of_speech=row[2],
                    definition=row[3],
                    sense_id=row[4],
                    sense_number=row[5],
                    notes=row[6],
                )
                for row in result
            ]

        return await self._run(_query)

    async def fetch_concept_labels(self, *, offset: int, limit: int) -> list[tuple[str, str]]:
        size = self._cap(limit)

        def _query(conn: duckdb.DuckDBPyConnection) -> list[tuple[str, str]]:
            result = conn.execute(
                "SELECT label, id FROM concepts ORDER BY label, id LIMIT ? OFFSET ?",
                [size, offset],
            ).fetchall()
            return [(row[0], row[1]) for row in result]

        return await self._run(_query)

    async def fetch_term_links(
        self,
        language: str,
        *,
        offset: int,
        limit: int,
    ) -> list[tuple[str, str]]:
        size = self._cap(limit)

        def _query(conn: duckdb.DuckDBPyConnection) -> list[tuple[str, str]]:
            result = conn.execute(
                """
                SELECT t.text, ct.concept_id
                FROM terms t
                JOIN concept_terms ct ON ct.term_id = t.id
                WHERE t.language = ?
                ORDER BY t.text, ct.concept_id
                LIMIT ? OFFSET ?
                """,
                [language, size, offset],
            ).fetchall()
            return [(row[0], row[1]) for row in result]

        return await self._run(_query)

    async def lookup_senses(
        self,
        words: list[str],
        *,
        source_language: str,
        target_language: str,
    ) -> dict[str, list[SenseInfo]]:
        if not words:
            return {}

        def _query(conn: duckdb.DuckDBPyConnection) -> dict[str, list[SenseInfo]]:
            rows = conn.execute(
                f"""
                SELECT DISTINCT lower(t.text) AS word, c.id, c.label,
                       c.part_of_speech, c.definition
                FROM terms t
                JOIN concept_terms ct ON ct.term_id = t.id
                JOIN concepts c ON c.id = ct.concept_id
                WHERE t.language = ? AND lower(t.text) IN ({_placeholders(words)})
                ORDER BY word, c.label, c.id
                """,
                [source_language, *words],
            ).fetchall()
            if not rows:
                return {}

            concept_ids = sorted({row[1] for row in rows})
            translation_rows = conn.execute(
                f"""
                SELECT ct.concept_id, t.text
                FROM concept_terms ct
                JOIN terms t ON t.id = ct.term_id
                WHERE t.language = ? AND ct.concept_id IN ({_placeholders(concept_ids)})
                ORDER BY ct.concept_id, t.text
                """,
                [target_language, *concept_ids],
            ).fetchall()
            translations: dict[str, list[str]] = {}
            for concept_id, text in translation_rows:
                translations.setdefault(concept_id, []).append(text)

            senses: dict[str, list[SenseInfo]] = {}
            for word, concept_id, label, pos, definition in rows:
                senses.setdefault(word, []).append(
                    SenseInfo(
                        word=word,
                        concept_id=concept_id,
                        label=label,
                        part_of_speech=pos,
                        definition=definition,
                        translations=translations.get(concept_id, []),
                    )
                )
            return senses

        return await self._run(_query)

    async def add_relations(self, relations: list[Relation]) -> int:
        if not relations:
            return 0

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            added = 0
            for relation in relations:
                exists = conn.execute(
                    """
                    SELECT 1 FROM relations
                    WHERE source_concept_id = ? AND target_concept_id = ? AND relation_type = ?
                    """,
                    [
                        relation.source_concept_id,
                        relation.target_concept_id,
                        relation.relation_type,
                    ],
                ).fetchone()
                if exists:
                    continue
                conn.execute(
                    """
                    INSERT INTO relations
                        (source_concept_id, target_concept_id, relation_type, note, work_item_id)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        relation.source_concept_id,
                        relation.target_concept_id,
                        relation.relation_type,
                        relation.note,
                        relation.work_item_id,
                    ],
                )
                added += 1
            return added

        return await self._run(_write, write=True)

    async def add_relation_refs(self, refs: list[dict[str, Any]]) -> int:
        if not refs:
            return 0
        rows = [
            [
                ref.get("id") or new_id(),
                ref["source_concept_id"],
                ref["target_text"],
                ref.get("relation_type", "see_also"),
                ref.get("note"),
            ]
            for ref in refs
        ]

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            conn.executemany(
                """
                INSERT INTO relation_refs
                    (id, source_concept_id, target_text, relation_type, note)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (id) DO NOTHING
                """,
                rows,
            )
            return len(rows)

        return await self._run(_write, write=True)

    async def fetch_relation_refs(
        self,
        status: str,
        *,
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        size = self._cap(limit)

        def _query(conn: duckdb.DuckDBPyConnection) -> list[dict[str, Any]]:
            result = conn.execute(
                """
                SELECT id, source_concept_id, target_text, relation_type, note,
                       status, target_concept_id
                FROM relation_refs WHERE status = ?
                ORDER BY id
                LIMIT ? OFFSET ?
                """,
                [status, size, offset],
            ).fetchall()
            keys = (
                "id",
                "source_concept_id",
                "target_text",
                "relation_type",
                "note",
                "status",
                "target_concept_id",
            )
            return [dict(zip(keys, row)) for row in result]

        return await self._run(_query)

    async def set_relation_ref_status(
        self,
        ref_id: str,
        status: str,
        target_concept_id: str | None = None,
    ) -> None:
        def _write(conn: duckdb.DuckDBPyConnection) -> None:
            conn.execute(
                "UPDATE relation_refs SET status = ?, target_concept_id = ? WHERE id = ?",
                [status, target_concept_id, ref_id],
            )

        await self._run(_write, write=True)

    # -------------------------------------------------------------------------
    # Highlights and raw lexical records
    # -------------------------------------------------------------------------

    async def upsert_highlight(self, highlight: Highlight) -> bool:
        key = highlight.key
        if not key:
            raise ValueError("Highlight term must not be empty")

        values = [
            highlight.term,
            highlight.gloss,
            highlight.explanation,
            highlight.feature_type,
            highlight.relevance_score,
            json.dumps(highlight.tags),
            highlight.source_work_item_id,
            json.dumps(highlight.source_ids),
        ]

        def _write(conn: duckdb.DuckDBPyConnection) -> bool:
            existing = conn.execute(
                "SELECT relevance_score, gloss FROM highlights WHERE term_key = ?", [key]
            ).fetchone()
            if existing is None:
                conn.execute(
                    f"""
                    INSERT INTO highlights (term_key, {_HIGHLIGHT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [key, *values],
                )
                return True

            stored_score, stored_gloss = existing
            if highlight.relevance_score <= stored_score:
                return False

            if stored_gloss and highlight.gloss and stored_gloss != highlight.gloss:
                logger.debug(
                    f"Highlight '{key}' replaced with a different gloss "
                    f"({stored_gloss!r} -> {highlight.gloss!r})"
                )
            conn.execute(
                """
                UPDATE highlights
                SET term = ?, gloss = ?, explanation = ?, feature_type = ?,
                    relevance_score = ?, tags = ?, source_work_item_id = ?,
                    source_ids = ?, updated_at = current_timestamp
                WHERE term_key = ?
                """,
                [*values, key],
            )
            return True

        return await self._run(_write, write=True)

    async def get_highlight(self, key: str) -> Highlight | None:
        def _query(conn: duckdb.DuckDBPyConnection) -> Highlight | None:
            row = conn.execute(
                f"SELECT {_HIGHLIGHT_COLUMNS} FROM highlights WHERE term_key = ?", [key]
            ).fetchone()
            return self._row_to_highlight(row) if row else None

        return await self._run(_query)

    async def highlight_keys(self) -> set[str]:
        def _query(conn: duckdb.DuckDBPyConnection) -> set[str]:
            return {row[0] for row in conn.execute("SELECT term_key FROM highlights").fetchall()}

        return await self._run(_query)

    async def list_highlights(
        self,
        *,
        min_relevance: int = 0,
        limit: int | None = None,
    ) -> list[Highlight]:
        def _query(conn: duckdb.DuckDBPyConnection) -> list[Highlight]:
            sql = (
                f"SELECT {_HIGHLIGHT_COLUMNS} FROM highlights "
                "WHERE relevance_score >= ? ORDER BY relevance_score DESC, term_key"
            )
            params: list[Any] = [min_relevance]
            if limit is not None:
                sql += " LIMIT ?"
                params.append(limit)
            return [self._row_to_highlight(row) for row in conn.execute(sql, params).fetchall()]

        return await self._run(_query)

    @staticmethod
    def _row_to_highlight(row: tuple[Any, ...]) -> Highlight:
        return Highlight(
            term=row[0],
            gloss=row[1] or "",
            explanation=row[2] or "",
            feature_type=row[3] or "idiom",
            relevance_score=row[4],
            tags=json.loads(row[5]) if row[5] else [],
            source_work_item_id=row[6],
            source_ids=json.loads(row[7]) if row[7] else [],
        )

    async def add_duplicate_mappings(self, rows: list[tuple[str, str, str]]) -> int:
        if not rows:
            return 0

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            conn.executemany(
                """
                INSERT OR REPLACE INTO highlight_duplicates
                    (record_id, source_table, highlight_key)
                VALUES (?, ?, ?)
                """,
                [list(row) for row in rows],
            )
            return len(rows)

        return await self._run(_write, write=True)

    async def mapped_record_ids(self) -> set[tuple[str, str]]:
        def _query(conn: duckdb.DuckDBPyConnection) -> set[tuple[str, str]]:
            rows = conn.execute(
                "SELECT record_id, source_table FROM highlight_duplicates"
            ).fetchall()
            return {(row[0], row[1]) for row in rows}

        return await self._run(_query)

    async def add_lexical_records(self, records: list[LexicalRecord]) -> int:
        if not records:
            return 0
        rows = [
            [r.id, r.source_table, r.term, r.explanation, r.gloss, r.feature_type]
            for r in records
        ]

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            conn.executemany(
                """
                INSERT OR REPLACE INTO lexical_records
                    (id, source_table, term, explanation, gloss, feature_type)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            return len(rows)

        return await self._run(_write, write=True)

    async def fetch_lexical_records(self, *, offset: int, limit: int) -> list[LexicalRecord]:
        size = self._cap(limit)

        def _query(conn: duckdb.DuckDBPyConnection) -> list[LexicalRecord]:
            result = conn.execute(
                """
                SELECT id, source_table, term, explanation, gloss, feature_type
                FROM lexical_records
                ORDER BY source_table, id
                LIMIT ? OFFSET ?
                """,
                [size, offset],
            ).fetchall()
            return [
                LexicalRecord(
                    id=row[0],
                    source_table=row[1],
                    term=row[2],
                    explanation=row[3] or "",
                    gloss=row[4],
                    feature_type=row[5],
                )
                for row in result
            ]

        return await self._run(_query)

    # -------------------------------------------------------------------------
    # Enriched results
    # -------------------------------------------------------------------------

    async def write_enriched_results(self, results: list[EnrichedResult]) -> int:
        if not results:
            return 0
        rows = [
            [
                r.id,
                r.work_item_id,
                r.cleaned_text,
                r.translation,
                r.confidence,
                r.notes,
                r.variant,
            ]
            for r in results
        ]

        def _write(conn: duckdb.DuckDBPyConnection) -> int:
            conn.executemany(
                """
                INSERT OR REPLACE INTO enriched_results
                    (id, work_item_id, cleaned_text, translation, confidence, notes, variant)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            return len(rows)

        return await self._run(_write, write=True)

    async def get_enriched_results(self, work_item_id: str) -> list[EnrichedResult]:
        def _query(conn: duckdb.DuckDBPyConnection) -> list[EnrichedResult]:
            result = conn.execute(
                """
                SELECT id, work_item_id, cleaned_text, translation, confidence, notes, variant
                FROM enriched_results WHERE work_item_id = ?
                ORDER BY id
                """,
                [work_item_id],
            ).fetchall()
            return [
                EnrichedResult(
                    id=row[0],
                    work_item_id=row[1],
                    cleaned_text=row[2],
                    translation=row[3],
                    confidence=row[4],
                    notes=row[5],
                    variant=row[6],
                )
                for row in result
            ]

        return await self._run(_query)

    # -------------------------------------------------------------------------
    # Export / stats
    # -------------------------------------------------------------------------

    def table_names(self) -> list[str]:
        return list(_TABLE_ORDER)

    def _check_table(self, table: str) -> None:
        if table not in _TABLE_ORDER:
            raise ValueError(f"Unknown table: {table}")

    async def count_rows(self, table: str) -> int:
        self._check_table(table)

        def _query(conn: duckdb.DuckDBPyConnection) -> int:
            row = conn.execute(f"SELECT count(*) FROM {table}").fetchone()
            return int(row[0]) if row else 0

        return await self._run(_query)

    async def fetch_arrow_page(self, table: str, *, offset: int, limit: int) -> pa.Table:
        self._check_table(table)
        size = self._cap(limit)

        def _query(conn: duckdb.DuckDBPyConnection) -> pa.Table:
            return conn.execute(
                f"SELECT * FROM {table} ORDER BY {_TABLE_ORDER[table]} LIMIT ? OFFSET ?",
                [size, offset],
            ).fetch_arrow_table()

        return await self._run(_query)
