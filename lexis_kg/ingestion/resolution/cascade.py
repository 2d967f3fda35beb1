"""
Entity Resolution Cascade

Resolves a dirty free-text reference ("Haus²", "Haupt-/Nebeneingang",
"Mann, Genitiv Mannes") to an existing concept id.

Strategies run in order and the first hit wins; earlier strategies are
higher precision:
    1. exact          raw term against canonical labels
    2. cleaned        after stripping footnote markers, trailing punctuation,
                      parenthetical asides and a reflexive-marker suffix
    3. alternation    each side of a slash alternation, expanding a shared
                      compound tail ("Haupt-/Nebeneingang" -> "Haupteingang")
    4. desuffixed     common inflectional endings removed
    5. first_word     first token of a multi-word phrase
    6. cross_language term looked up in the other language

Every strategy is a pure function of (term, lookup). The cascade never
writes; a miss returns None and is reported by the caller.

Example:
    >>> cascade = ResolutionCascade(ConceptIndex({"Haus": "c1"}))
    >>> cascade.resolve("Haus²")
    'c1'
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from typing import NamedTuple

from lexis_kg.ingestion.resolution.index import ConceptLookup

logger = logging.getLogger(__name__)

Strategy = Callable[[str, ConceptLookup], "str | None"]

_REFLEXIVE_RE = re.compile(r"\s*[,+]\s*sich\s*$", re.IGNORECASE)
_PARENTHETICAL_RE = re.compile(r"\s*\([^()]*\)")
_FOOTNOTE_RE = re.compile(r"[\d¹²³⁴⁵⁶⁷⁸⁹⁰]+$")
_TRAILING_PUNCT_RE = re.compile(r"[-!*.,;:?]+$")
_WORD_SPLIT_RE = re.compile(r"[\s,]+")

# (suffix, minimum term length) tried in order; "-en" also tries dropping only "n"
_SUFFIXES: tuple[tuple[str, int], ...] = (
    ("en", 4),
    ("er", 4),
    ("e", 3),
    ("n", 3),
    ("s", 3),
)

# Shortest shared tail accepted when expanding "Haupt-/Nebeneingang"
_MIN_TAIL = 3


class Resolution(NamedTuple):
    concept_id: str
    strategy: str


def clean_term(term: str) -> str:
    """
    Strip decorations that never belong to a headword.

    Example:
        >>> clean_term("waschen, sich²")
        'waschen'
        >>> clean_term("Haus (das)¹")
        'Haus'
    """
    previous = None
    cleaned = term.strip()
    while cleaned != previous:
        previous = cleaned
        cleaned = _PARENTHETICAL_RE.sub("", cleaned)
        cleaned = _REFLEXIVE_RE.sub("", cleaned)
        cleaned = _FOOTNOTE_RE.sub("", cleaned)
        cleaned = _TRAILING_PUNCT_RE.sub("", cleaned)
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned


def expand_alternation(term: str) -> list[str]:
    """
    Candidate terms for a slash alternation, in try order.

    Complete sides come first, in input order. A part ending in "-" shares
    the compound tail of the last part; since the split point is unknown,
    every tail of at least three characters is offered after the complete
    sides, longest first.

    Example:
        >>> candidates = expand_alternation("Haupt-/Nebeneingang")
        >>> candidates[0], "Haupteingang" in candidates
        ('Nebeneingang', True)
    """
    if "/" not in term:
        return []

    parts = [part.strip() for part in term.split("/") if part.strip()]
    sides: list[str] = []
    compounds: list[str] = []
    for i, part in enumerate(parts):
        if part.endswith("-") and i + 1 < len(parts):
            stem = part[:-1]
            tail_source = parts[-1]
            for k in range(1, len(tail_source) - _MIN_TAIL + 1):
                compounds.append(stem + tail_source[k:])
        else:
            sides.append(clean_term(part))
    return _unique(sides + compounds)


def desuffix_candidates(term: str) -> list[str]:
    """Crude singular/lemma candidates for ``term``."""
    candidates: list[str] = []
    for suffix, min_length in _SUFFIXES:
        if term.endswith(suffix) and len(term) >= min_length:
            if suffix == "en":
                candidates.append(term[:-1])
            candidates.append(term[: -len(suffix)])
    return [c for c in _unique(candidates) if c and c != term]


def _unique(values: Sequence[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def _first_hit(candidates: Sequence[str], find: Callable[[str], str | None]) -> str | None:
    for candidate in candidates:
        concept_id = find(candidate)
        if concept_id is not None:
            return concept_id
    return None


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------


def match_exact(term: str, lookup: ConceptLookup) -> str | None:
    return lookup.by_label(term.strip())


def match_cleaned(term: str, lookup: ConceptLookup) -> str | None:
    return lookup.by_label(clean_term(term))


def match_alternation(term: str, lookup: ConceptLookup) -> str | None:
    return _first_hit(expand_alternation(clean_term(term)), lookup.by_label)


def match_desuffixed(term: str, lookup: ConceptLookup) -> str | None:
    return _first_hit(desuffix_candidates(clean_term(term)), lookup.by_label)


def match_first_word(term: str, lookup: ConceptLookup) -> str | None:
    """Match the first token of a phrase such as "Mann, Genitiv Mannes"."""
    cleaned = clean_term(term)
    words = [w for w in _WORD_SPLIT_RE.split(cleaned) if w]
    if len(words) < 2:
        return None
    first = words[0]
    if len(first) <= 2 or first == cleaned:
        return None
    return lookup.by_label(first)


def match_cross_language(term: str, lookup: ConceptLookup) -> str | None:
    return _first_hit(_unique([term.strip(), clean_term(term)]), lookup.by_foreign_term)


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("exact", match_exact),
    ("cleaned", match_cleaned),
    ("alternation", match_alternation),
    ("desuffixed", match_desuffixed),
    ("first_word", match_first_word),
    ("cross_language", match_cross_language),
)


class ResolutionCascade:
    """
    First-match-wins combinator over resolution strategies.

    Args:
        lookup: Read-only concept lookup (usually a ConceptIndex)
        strategies: (name, strategy) pairs in priority order
    """

    def __init__(
        self,
        lookup: ConceptLookup,
        strategies: Sequence[tuple[str, Strategy]] = DEFAULT_STRATEGIES,
    ) -> None:
        self._lookup = lookup
        self._strategies = tuple(strategies)

    @property
    def strategy_names(self) -> list[str]:
        return [name for name, _ in self._strategies]

    def resolve_detailed(self, term: str) -> Resolution | None:
        """Resolve ``term`` and report which strategy matched."""
        if not term or not term.strip():
            return None
        for name, strategy in self._strategies:
            concept_id = strategy(term, self._lookup)
            if concept_id is not None:
                logger.debug(f"Resolved '{term}' via {name} -> {concept_id}")
                return Resolution(concept_id, name)
        logger.debug(f"Unresolved reference: '{term}'")
        return None

    def resolve(self, term: str) -> str | None:
        resolution = self.resolve_detailed(term)
        return resolution.concept_id if resolution else None
