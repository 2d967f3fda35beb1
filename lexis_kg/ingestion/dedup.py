"""
Near-Duplicate Clustering

Groups raw records that would cost one oracle call each into clusters that
can be enriched together ("Hog" and "Hog/Pig" are one unit of work).

Similarity (any rule qualifies):
    1. Normalized keys are equal (case-folded, trimmed)
    2. One key occurs inside the other bounded by whitespace, "/", ",", ";",
       "(" or ")" ("Hog" in "Hog/Pig", but not in "Hogwash")
    3. Key similarity >= key_threshold AND explanation similarity
       >= explanation_threshold (normalized Levenshtein, rapidfuzz)

Clustering is a single greedy pass: each unconsumed record becomes a primary
and absorbs every later unconsumed record similar to it. The result is a
partition of the input. The pass is quadratic, so callers chunk large record
sets first (``cluster_in_chunks``).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Sequence
from typing import TypeVar

from rapidfuzz.distance import Levenshtein

from lexis_kg.types import Cluster
from lexis_kg.utils.text import normalize_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_THRESHOLD = 0.8
EXPLANATION_THRESHOLD = 0.7

_DELIMITERS = r"\s/,;()"


def contains_bounded(haystack: str, needle: str) -> bool:
    """True if ``needle`` occurs in ``haystack`` with a delimiter or edge on both sides."""
    if not needle or len(needle) >= len(haystack):
        return False
    pattern = rf"(?:^|[{_DELIMITERS}]){re.escape(needle)}(?:$|[{_DELIMITERS}])"
    return re.search(pattern, haystack) is not None


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity in [0, 1]."""
    return Levenshtein.normalized_similarity(a, b)


def is_similar(
    key_a: str,
    explanation_a: str,
    key_b: str,
    explanation_b: str,
    *,
    key_threshold: float = KEY_THRESHOLD,
    explanation_threshold: float = EXPLANATION_THRESHOLD,
    use_containment: bool = True,
    use_fuzzy: bool = True,
) -> bool:
    """
    Decide whether two records describe the same thing.

    Keys and explanations are compared after normalization. Symmetric in
    (a, b). Records with an empty key are never similar to anything.
    """
    a = normalize_key(key_a)
    b = normalize_key(key_b)
    if not a or not b:
        return False

    if a == b:
        return True

    if use_containment and (contains_bounded(a, b) or contains_bounded(b, a)):
        return True

    if use_fuzzy and similarity(a, b) >= key_threshold:
        return (
            similarity(normalize_key(explanation_a), normalize_key(explanation_b))
            >= explanation_threshold
        )

    return False


def cluster_records(
    records: Sequence[T],
    *,
    key: Callable[[T], str],
    explanation: Callable[[T], str] = lambda _: "",
    key_threshold: float = KEY_THRESHOLD,
    explanation_threshold: float = EXPLANATION_THRESHOLD,
    use_containment: bool = True,
    use_fuzzy: bool = True,
) -> list[Cluster[T]]:
    """
    Greedy single-pass clustering of records in input order.

    Args:
        records: Records to cluster (one batch; chunk large sets first)
        key: Extracts the cluster key (e.g. the term)
        explanation: Extracts the free-text explanation compared fuzzily
        key_threshold: Minimum key similarity for the fuzzy rule
        explanation_threshold: Minimum explanation similarity for the fuzzy rule
        use_containment: Enable the delimiter-bounded containment rule
        use_fuzzy: Enable the fuzzy rule

    Returns:
        Clusters in input order of their primaries; every record appears
        in exactly one cluster
    """
    keys = [key(r) or "" for r in records]
    explanations = [explanation(r) or "" for r in records]
    consumed = [False] * len(records)
    clusters: list[Cluster[T]] = []

    for i, record in enumerate(records):
        if consumed[i]:
            continue
        consumed[i] = True
        duplicates: list[T] = []
        member_explanations = [explanations[i]]

        for j in range(i + 1, len(records)):
            if consumed[j]:
                continue
            if is_similar(
                keys[i],
                explanations[i],
                keys[j],
                explanations[j],
                key_threshold=key_threshold,
                explanation_threshold=explanation_threshold,
                use_containment=use_containment,
                use_fuzzy=use_fuzzy,
            ):
                consumed[j] = True
                duplicates.append(records[j])
                member_explanations.append(explanations[j])

        clusters.append(
            Cluster(
                key=normalize_key(keys[i]),
                primary=record,
                duplicates=duplicates,
                explanations=member_explanations,
            )
        )

    merged = len(records) - len(clusters)
    if merged:
        logger.debug(f"Clustered {len(records)} records into {len(clusters)} ({merged} merged)")
    return clusters


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def cluster_in_chunks(
    records: Sequence[T],
    *,
    chunk_size: int,
    key: Callable[[T], str],
    explanation: Callable[[T], str] = lambda _: "",
    key_threshold: float = KEY_THRESHOLD,
    explanation_threshold: float = EXPLANATION_THRESHOLD,
) -> list[Cluster[T]]:
    """
    Cluster a large record set chunk by chunk.

    Duplicates that land in different chunks stay separate; sort the input
    by key beforehand to keep likely duplicates together.
    """
    clusters: list[Cluster[T]] = []
    for chunk in chunked(records, chunk_size):
        clusters.extend(
            cluster_records(
                chunk,
                key=key,
                explanation=explanation,
                key_threshold=key_threshold,
                explanation_threshold=explanation_threshold,
            )
        )
    return clusters
