"""
Work Types

Work items are the raw units tracked by the job ledger; lexical records are
the raw linguistic notes that get clustered before cleaning.

Ledger Models:
    - WorkStatus: Lifecycle status of a work item
    - WorkItem: One sentence pair or dictionary example awaiting enrichment

Clustering Models:
    - LexicalRecord: Raw linguistic feature or translation aid
    - Cluster: Near-duplicate records enriched as one unit
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

DUPLICATE_SEPARATOR = " ++ "
"""Joins explanations of merged duplicates so they can be reconciled later."""


class WorkStatus(str, Enum):
    """
    Lifecycle status of a work item.

    Legal transitions: pending -> processing -> completed | error.
    A stale-job reset moves processing and error back to pending.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class WorkItem(BaseModel):
    """
    One raw unit awaiting enrichment.

    Attributes:
        id: Stable identifier
        parent_id: Parent concept (dictionary example) or text (segmented corpus)
        sequence: Ordering key within the parent, used for windowed context
        source_text: Raw source-language text
        target_hint: Raw target-language translation, if any
        note: Free-text note carried from ingestion
        status: Ledger status
        error_message: Failure reason when status is error
        updated_at: Time of the last ledger transition (heartbeat)
    """

    id: str
    parent_id: str
    sequence: int = 0
    source_text: str
    target_hint: str | None = None
    note: str | None = None
    status: WorkStatus = WorkStatus.PENDING
    error_message: str | None = None
    updated_at: datetime | None = None


class LexicalRecord(BaseModel):
    """
    A raw linguistic note attached to a term (feature or translation aid).

    Attributes:
        id: Identifier in the raw table
        term: The phrase the note is about (cluster key)
        explanation: Free-text explanation (compared fuzzily during clustering)
        gloss: Target-language meaning, if known
        feature_type: Category from the raw source (idiom, grammar, ...)
        source_table: Raw table the record came from
    """

    id: str
    term: str
    explanation: str = ""
    gloss: str | None = None
    feature_type: str | None = None
    source_table: str = "linguistic_features"


T = TypeVar("T")


class Cluster(BaseModel, Generic[T]):
    """
    A primary record plus the near-duplicates merged into it.

    Attributes:
        key: Normalized key of the primary record
        primary: First record of the cluster in input order
        duplicates: Records judged similar to the primary
        explanations: Explanation text of every member, in member order
    """

    key: str
    primary: T
    duplicates: list[T] = Field(default_factory=list)
    explanations: list[str] = Field(default_factory=list)

    @property
    def members(self) -> list[T]:
        return [self.primary, *self.duplicates]

    @property
    def member_ids(self) -> list[str]:
        return [str(getattr(m, "id")) for m in self.members]

    @property
    def merged_explanation(self) -> str:
        """Non-empty member explanations joined with the duplicate separator."""
        parts: list[str] = []
        for text in self.explanations:
            text = text.strip()
            if text and text not in parts:
                parts.append(text)
        return DUPLICATE_SEPARATOR.join(parts)

    def __len__(self) -> int:
        return 1 + len(self.duplicates)
