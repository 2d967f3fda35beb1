"""
Enrichment Pipeline Components

Building blocks that the pipelines in ``lexis_kg.api`` compose.

Flow for one run:
    Ledger   - reset stale items, select pending work in (parent, sequence) order
    Dedup    - collapse duplicate records before paying for oracle calls
    Context  - dictionary senses, headword, known idioms, neighboring sentences
    Executor - budgeted, staggered, concurrency-bounded oracle calls with retry
    Persist  - validate per item, write results/highlights/relations, complete

Modules:
    ledger: Work item lifecycle (JobLedger)
    dedup: Near-duplicate clustering
    resolution/: Free-text reference resolution cascade
    context: Context assembly for oracle prompts
    retry: Retry policy for rate-limited calls
    executor: Rate-limited batch executor
    persister: Output validation and persistence
    prompts: Prompt builders
    segmentation: Sentence splitting for text ingestion
"""

from lexis_kg.ingestion.context import ContextAssembler, ItemContext
from lexis_kg.ingestion.dedup import cluster_in_chunks, cluster_records, is_similar
from lexis_kg.ingestion.executor import BatchExecutor, ExecutorSettings, OracleCaller
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.ingestion.persister import ResultPersister, validate_batch_output
from lexis_kg.ingestion.resolution import ConceptIndex, ResolutionCascade
from lexis_kg.ingestion.retry import RetryExhaustedError, RetryPolicy
from lexis_kg.ingestion.segmentation import segment_text, split_sentences

__all__ = [
    "BatchExecutor",
    "ConceptIndex",
    "ContextAssembler",
    "ExecutorSettings",
    "ItemContext",
    "JobLedger",
    "OracleCaller",
    "ResolutionCascade",
    "ResultPersister",
    "RetryExhaustedError",
    "RetryPolicy",
    "cluster_in_chunks",
    "cluster_records",
    "is_similar",
    "segment_text",
    "split_sentences",
    "validate_batch_output",
]
