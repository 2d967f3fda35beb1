"""
Lexicon Types

Canonical records of the knowledge base.

Storage Models:
    - Concept: Headword sense with a stable identifier
    - Term: Surface form in one language
    - ConceptTerm: Link between a concept and a term
    - Relation: Directed, typed edge between two concepts
    - Highlight: Discovered idiom / cultural note, keyed by normalized term
    - EnrichedResult: One cleaned (text, translation) tuple for a work item

Context Models:
    - SenseInfo: Dictionary metadata for one word sense

Import Models:
    - DictionarySense / DictionaryEntry: Structured dictionary input
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from lexis_kg.utils.text import normalize_key

HIGHLIGHT_TAGS = frozenset({
    "cultural",
    "idiom",
    "grammar",
    "false_friend",
    "misspelling",
    "etymology",
    "person",
    "place",
    "building",
    "date",
    "maritime",
    "food",
    "tradition",
    "archaic",
})


class Concept(BaseModel):
    """
    A headword sense.

    Attributes:
        id: Stable identifier
        label: Canonical label (matched by the resolution cascade)
        part_of_speech: Part of speech, if known
        definition: Short definition or gloss
        sense_id: Natural key from the source dictionary (upsert key)
        sense_number: Sense number within the headword
        notes: Editorial notes
    """

    id: str
    label: str
    part_of_speech: str | None = None
    definition: str | None = None
    sense_id: str
    sense_number: str | None = None
    notes: str | None = None


class Term(BaseModel):
    """A surface form in one language; natural key is (text, language)."""

    id: str
    text: str
    language: str


class ConceptTerm(BaseModel):
    """Link between a concept and one of its terms."""

    concept_id: str
    term_id: str
    source_name: str = "import"
    pronunciation: str | None = None
    gender: str | None = None
    plural_form: str | None = None
    etymology: str | None = None
    note: str | None = None


class Relation(BaseModel):
    """
    Directed typed edge between two concepts.

    Only created once the target concept has been resolved.
    """

    source_concept_id: str
    target_concept_id: str
    relation_type: str = "see_also"
    note: str | None = None
    work_item_id: str | None = Field(
        default=None, description="Work item that surfaced the relation, if any"
    )


class Highlight(BaseModel):
    """
    A discovered idiom, place name or cultural note.

    Upserts are keyed by ``key`` (the normalized term) and never lower the
    stored relevance score. Homonyms share one key, so unrelated senses of
    the same surface form overwrite each other by relevance.
    """

    term: str
    gloss: str = ""
    explanation: str = ""
    feature_type: str = "idiom"
    relevance_score: int = Field(default=5, ge=0, le=10)
    tags: list[str] = Field(default_factory=list)
    source_work_item_id: str | None = None
    source_ids: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return normalize_key(self.term)


class EnrichedResult(BaseModel):
    """
    One cleaned (text, translation, confidence, notes) tuple.

    Attributes:
        id: Deterministic "{work_item_id}:{expansion}:{variant}" so that a
            re-run of the same item overwrites instead of duplicating
        work_item_id: Source work item
        cleaned_text: Corrected source text
        translation: Target-language translation
        confidence: Oracle confidence in [0, 1]
        notes: Oracle notes
        variant: "best" or "alt_<n>"
    """

    id: str
    work_item_id: str
    cleaned_text: str
    translation: str
    confidence: float
    notes: str | None = None
    variant: str = "best"


class SenseInfo(BaseModel):
    """Dictionary metadata for one sense of a word found in a work item."""

    word: str
    concept_id: str
    label: str
    part_of_speech: str | None = None
    definition: str | None = None
    translations: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Import Models
# -----------------------------------------------------------------------------


class DictionaryExample(BaseModel):
    text: str
    translation: str | None = None
    note: str | None = None


class DictionaryRelation(BaseModel):
    target: str = Field(..., description="Free-text reference to another headword")
    relation_type: str = "see_also"
    note: str | None = None


class DictionarySense(BaseModel):
    """One sense of a dictionary entry."""

    sense_id: str | None = None
    sense_number: str | None = None
    definition: str | None = None
    translations: list[str] = Field(default_factory=list)
    examples: list[DictionaryExample] = Field(default_factory=list)
    relations: list[DictionaryRelation] = Field(default_factory=list)
    notes: str | None = None


class DictionaryEntry(BaseModel):
    """
    A structured dictionary entry as produced by an upstream scraper.

    Entries without a headword are skipped on import.
    """

    headword: str = ""
    part_of_speech: str | None = None
    pronunciation: str | None = None
    gender: str | None = None
    plural_form: str | None = None
    etymology: str | None = None
    source_name: str = "import"
    senses: list[DictionarySense] = Field(default_factory=list)
