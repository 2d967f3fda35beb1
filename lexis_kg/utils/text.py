"""
Text Processing Utilities

Functions for key normalization, tokenization and identifier generation.
"""

from __future__ import annotations

import re
import uuid

# Letters (any script), digits and apostrophes; underscores are not word characters.
_WORD_RE = re.compile(r"(?:[^\W_]|')+")


def normalize_key(text: str | None) -> str:
    """Case-folded, trimmed key used for equality and upsert keys."""
    if not text:
        return ""
    return text.casefold().strip()


def unique_words(text: str) -> list[str]:
    """
    Split text into unique lowercase words, in first-seen order.

    Apostrophes stay inside words ("d'r") and are stripped from the edges.

    Example:
        >>> unique_words("Hi kumt, hi kumt 'not'!")
        ['hi', 'kumt', 'not']
    """
    seen: dict[str, None] = {}
    for match in _WORD_RE.findall(text.lower()):
        word = match.strip("'")
        if word and word not in seen:
            seen[word] = None
    return list(seen)


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return re.sub(r"\s+", " ", text).strip()


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


def generate_sentence_id(parent_id: str, sequence: int) -> str:
    """Generate work item ID for a segmented text: {parent_id}_s{sequence:04d}"""
    return f"{parent_id}_s{sequence:04d}"
