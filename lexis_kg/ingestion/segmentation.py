"""
Sentence Segmentation

Splits running text into sentences and turns them into work items.

A sentence is a run of non-terminator characters followed by one or more
of ".", "?" or "!"; a trailing run without a terminator is a sentence too.
Sentences are trimmed and empty ones dropped. Sequence numbers are the
position of the sentence in its text, so re-segmenting the same text
produces the same ids and re-ingesting upserts instead of duplicating.

Example:
    >>> split_sentences("Wat kumt diar? Ik wiit et nich")
    ['Wat kumt diar?', 'Ik wiit et nich']
"""

from __future__ import annotations

import re

from lexis_kg.types import WorkItem
from lexis_kg.utils.text import generate_sentence_id

_SENTENCE_RE = re.compile(r"[^.?!]+[.?!]+|[^.?!]+$")


def split_sentences(text: str) -> list[str]:
    if not text:
        return []
    return [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]


def segment_text(text_id: str, text: str) -> list[WorkItem]:
    """One pending work item per sentence, parented to ``text_id``."""
    return [
        WorkItem(
            id=generate_sentence_id(text_id, sequence),
            parent_id=text_id,
            sequence=sequence,
            source_text=sentence,
        )
        for sequence, sentence in enumerate(split_sentences(text))
    ]
