"""
Oracle Prompts

Prompt builders for the enrichment and highlight-cleaning calls. Only the
input/output contract matters to the rest of the pipeline; the wording can
change freely as long as the JSON shapes below stay the same.

Enrichment response:
    {"results": [{"item_id": str, "expansions": [{
        "cleaned_text": str, "best_translation": str, "confidence_score": 0..1,
        "notes": str, "alternative_translations": [{"translation", "confidence_score", "notes"}],
        "discovered_highlights": [{"phrase", "gloss", "explanation", "type", "relevance_score"}],
        "related_terms": [{"term", "relation_type", "note"}]}]}]}

Highlight cleaning response:
    {"entries": [{"term", "gloss", "explanation", "feature_type",
                  "relevance_score": 0..10, "tags": [str]}]}
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from lexis_kg.types import HIGHLIGHT_TAGS, Cluster, LexicalRecord

if TYPE_CHECKING:
    from lexis_kg.config import LexisConfig
    from lexis_kg.ingestion.context import ItemContext


# -----------------------------------------------------------------------------
# Enrichment
# -----------------------------------------------------------------------------

_ENRICHMENT_SYSTEM_PROMPT = """\
You are an expert linguist for {source} and {target}. You clean and translate
raw {source} examples taken from dictionaries and texts.

## Your Task
For every input item:
1. Correct spelling and expand abbreviations ("~" stands for the headword,
   "jmd." / "etw." placeholders become natural words). An item may expand
   into several sentences; return each as its own expansion.
2. Translate each cleaned sentence into natural {target}.
3. Give a confidence score between 0.0 and 1.0 and optional alternatives.
4. Report idioms, place names, people, buildings, traditions and other
   cultural notes as discovered highlights with a relevance score 0-10.
5. If the item refers to another headword ("see X", "cf. X"), list it in
   related_terms exactly as written.

## Rules
- Use the dictionary senses, known idioms and neighboring sentences only as
  evidence; never copy them into the output.
- Return one result per input item, echoing its item_id.
- Respond with a single JSON object and nothing else.
"""

_ENRICHMENT_USER_TEMPLATE = """\
## Items
{items}

## Response format
{{"results": [{{"item_id": "...", "expansions": [{{"cleaned_text": "...",
"best_translation": "...", "confidence_score": 0.9, "notes": "...",
"alternative_translations": [{{"translation": "...", "confidence_score": 0.5, "notes": "..."}}],
"discovered_highlights": [{{"phrase": "...", "gloss": "...", "explanation": "...",
"type": "idiom", "relevance_score": 7}}],
"related_terms": [{{"term": "...", "relation_type": "see_also", "note": "..."}}]}}]}}]}}
"""


def _format_item(ctx: ItemContext) -> dict[str, Any]:
    item = ctx.item
    entry: dict[str, Any] = {"item_id": item.id, "source_text": item.source_text}
    if item.target_hint:
        entry["raw_translation"] = item.target_hint
    if item.note:
        entry["note"] = item.note
    if ctx.headword is not None:
        entry["headword"] = {
            "label": ctx.headword.label,
            "part_of_speech": ctx.headword.part_of_speech,
            "definition": ctx.headword.definition,
        }
    if ctx.senses:
        entry["dictionary"] = {
            word: [
                {
                    "label": s.label,
                    "part_of_speech": s.part_of_speech,
                    "translations": s.translations,
                }
                for s in senses
            ]
            for word, senses in ctx.senses.items()
        }
    if ctx.idioms:
        entry["known_idioms"] = [
            {"phrase": h.term, "gloss": h.gloss, "explanation": h.explanation}
            for h in ctx.idioms
        ]
    if ctx.window:
        entry["context"] = [
            {"sequence": n.sequence, "text": n.source_text} for n in ctx.window
        ]
    return entry


def build_enrichment_system_prompt(config: LexisConfig) -> str:
    return _ENRICHMENT_SYSTEM_PROMPT.format(
        source=config.source_language.capitalize(),
        target=config.target_language.capitalize(),
    )


def build_enrichment_prompt(contexts: list[ItemContext]) -> str:
    """User prompt for one sub-batch of items."""
    items = [_format_item(ctx) for ctx in contexts]
    return _ENRICHMENT_USER_TEMPLATE.format(
        items=json.dumps(items, ensure_ascii=False, indent=2)
    )


# -----------------------------------------------------------------------------
# Highlight cleaning
# -----------------------------------------------------------------------------

_HIGHLIGHT_SYSTEM_PROMPT = """\
You are a lexicographer for {source} and {target}. You receive raw notes
about {source} phrases, some of them merged from near-duplicates (their
explanations are joined with " ++ ").

For every entry return one cleaned record:
- index: the entry's index, copied unchanged
- term: the entry's term, copied unchanged (put spelling fixes in the explanation)
- gloss: its {target} meaning
- explanation: one reconciled explanation in {target}
- feature_type: the main category
- relevance_score: integer 0-10 (how useful for a learner)
- tags: any of {tags}

Respond with a single JSON object {{"entries": [...]}} and nothing else.
"""


def build_highlight_system_prompt(config: LexisConfig) -> str:
    return _HIGHLIGHT_SYSTEM_PROMPT.format(
        source=config.source_language.capitalize(),
        target=config.target_language.capitalize(),
        tags=", ".join(sorted(HIGHLIGHT_TAGS)),
    )


def build_highlight_prompt(clusters: list[Cluster[LexicalRecord]]) -> str:
    entries = [
        {
            "index": i,
            "term": cluster.primary.term,
            "gloss": cluster.primary.gloss or "",
            "explanation": cluster.merged_explanation,
            "feature_type": cluster.primary.feature_type or "",
            "duplicates": [d.term for d in cluster.duplicates],
        }
        for i, cluster in enumerate(clusters)
    ]
    return "## Entries\n" + json.dumps(entries, ensure_ascii=False, indent=2)
