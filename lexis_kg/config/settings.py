"""
LexisConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> config = LexisConfig()

    >>> # Explicit configuration
    >>> config = LexisConfig(
    ...     llm_model="gpt-4.1-mini",
    ...     concurrency=5,
    ...     run_budget=200,
    ... )

    >>> # From config file
    >>> config = LexisConfig.from_file("./lexis.toml")

Environment Variables:
    LEXIS_DB_PATH - DuckDB database file (":memory:" for an ephemeral store)
    LEXIS_LLM_PROVIDER - LLM provider name
    LEXIS_LLM_MODEL - Model used as the enrichment oracle
    LEXIS_LLM_TEMPERATURE - Sampling temperature for oracle calls
    LEXIS_PAGE_SIZE - Rows per paginated ledger read
    LEXIS_BATCH_SIZE - Work items per oracle call
    LEXIS_CONCURRENCY - Max concurrent oracle calls
    LEXIS_STAGGER_MS - Delay between call starts inside one concurrent group
    LEXIS_COOLDOWN_SECONDS - Pause between concurrent groups
    LEXIS_RUN_BUDGET - Max oracle dispatches per run
    LEXIS_CALL_TIMEOUT_SECONDS - Hard timeout per oracle call
    LEXIS_RETRY_MAX_ATTEMPTS / LEXIS_RETRY_BASE_DELAY / LEXIS_RETRY_MULTIPLIER /
    LEXIS_RETRY_JITTER / LEXIS_RETRY_MAX_DELAY - Rate-limit retry policy
    LEXIS_DEDUP_KEY_THRESHOLD / LEXIS_DEDUP_EXPLANATION_THRESHOLD /
    LEXIS_DEDUP_CHUNK_SIZE - Near-duplicate clustering
    LEXIS_CONTEXT_WINDOW_BEFORE / LEXIS_CONTEXT_WINDOW_AFTER - Neighbor window
    LEXIS_IDIOM_MIN_RELEVANCE / LEXIS_IDIOM_PROMPT_LIMIT - Known idiom context
    LEXIS_TRACE_PROMPTS - Prompts sampled per run by the trace hook
    LEXIS_SOURCE_LANGUAGE / LEXIS_TARGET_LANGUAGE - Corpus language pair
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, cast


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return cast(dict[str, Any], tomllib.load(f))


def _env_number(name: str, kind: type[int] | type[float]) -> int | float | None:
    """Read a numeric environment variable, naming it on parse errors."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


class LexisConfig:
    """Configuration for the lexis enrichment pipeline."""

    # === Storage ===

    db_path: str = "./lexis.duckdb"
    """DuckDB database file, or ":memory:" """

    page_size: int = 1000
    """Rows per paginated read (tolerates stores with per-request row caps)"""

    export_dir: str = "./exports"
    """Default directory for table dumps"""

    # === LLM Configuration ===

    llm_provider: str = "openai"
    """LLM provider: "openai" """

    llm_model: str = "gpt-4.1-mini"
    """Model used as the enrichment oracle"""

    llm_temperature: float = 0.2
    """Sampling temperature for oracle calls"""

    openai_api_key: str | None = None

    # === Batch Execution ===

    batch_size: int = 3
    """Work items per oracle call"""

    concurrency: int = 10
    """Max concurrent oracle calls (pool size)"""

    stagger_ms: int = 100
    """Delay between call starts inside one concurrent group"""

    cooldown_seconds: float = 1.0
    """Pause between concurrent groups"""

    run_budget: int = 1000
    """Max oracle dispatches per run; the rest stays pending"""

    call_timeout_seconds: float = 120.0
    """Hard timeout for a single oracle call"""

    # === Retry Policy ===

    retry_max_attempts: int = 4
    """Attempts per call when the oracle signals a rate limit"""

    retry_base_delay: float = 5.0
    """First backoff delay in seconds"""

    retry_multiplier: float = 2.0
    """Backoff growth factor per attempt"""

    retry_jitter: float = 1.0
    """Upper bound of the random jitter added to each backoff (seconds)"""

    retry_max_delay: float = 60.0
    """Cap for a single backoff delay"""

    # === Deduplication ===

    dedup_key_threshold: float = 0.8
    """Fuzzy similarity required between record keys"""

    dedup_explanation_threshold: float = 0.7
    """Fuzzy similarity required between record explanations"""

    dedup_chunk_size: int = 500
    """Records per clustering pass (clustering is quadratic per chunk)"""

    # === Context Assembly ===

    context_window_before: int = 3
    """Neighbor sentences before the item (same parent)"""

    context_window_after: int = 1
    """Neighbor sentences after the item (same parent)"""

    idiom_min_relevance: int = 6
    """Minimum relevance for a known highlight to be offered as idiom context"""

    idiom_prompt_limit: int = 100
    """Maximum known idioms listed in one prompt"""

    # === Highlights ===

    highlight_default_relevance: int = 5
    """Relevance assigned when the oracle returns an invalid score"""

    # === Run Reporting ===

    log_buffer_size: int = 1000
    """Entries kept in the rolling run log"""

    progress_log_tail: int = 100
    """Log entries returned by the progress endpoint"""

    trace_prompts: int = 1
    """Prompts sampled per run by the trace hook (0 disables tracing)"""

    cost_debug_warn_threshold_usd: float | None = None
    """Optional warning threshold for estimated run cost"""

    # === Language Pair ===

    source_language: str = "halunder"
    """Language of the raw corpus"""

    target_language: str = "german"
    """Language of translations and glosses"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        if db_path := os.getenv("LEXIS_DB_PATH"):
            self.db_path = db_path
        if provider := os.getenv("LEXIS_LLM_PROVIDER"):
            self.llm_provider = provider
        if model := os.getenv("LEXIS_LLM_MODEL"):
            self.llm_model = model
        if source := os.getenv("LEXIS_SOURCE_LANGUAGE"):
            self.source_language = source
        if target := os.getenv("LEXIS_TARGET_LANGUAGE"):
            self.target_language = target

        numeric: dict[str, tuple[str, type[int] | type[float]]] = {
            "LEXIS_LLM_TEMPERATURE": ("llm_temperature", float),
            "LEXIS_PAGE_SIZE": ("page_size", int),
            "LEXIS_BATCH_SIZE": ("batch_size", int),
            "LEXIS_CONCURRENCY": ("concurrency", int),
            "LEXIS_STAGGER_MS": ("stagger_ms", int),
            "LEXIS_COOLDOWN_SECONDS": ("cooldown_seconds", float),
            "LEXIS_RUN_BUDGET": ("run_budget", int),
            "LEXIS_CALL_TIMEOUT_SECONDS": ("call_timeout_seconds", float),
            "LEXIS_RETRY_MAX_ATTEMPTS": ("retry_max_attempts", int),
            "LEXIS_RETRY_BASE_DELAY": ("retry_base_delay", float),
            "LEXIS_RETRY_MULTIPLIER": ("retry_multiplier", float),
            "LEXIS_RETRY_JITTER": ("retry_jitter", float),
            "LEXIS_RETRY_MAX_DELAY": ("retry_max_delay", float),
            "LEXIS_DEDUP_KEY_THRESHOLD": ("dedup_key_threshold", float),
            "LEXIS_DEDUP_EXPLANATION_THRESHOLD": ("dedup_explanation_threshold", float),
            "LEXIS_DEDUP_CHUNK_SIZE": ("dedup_chunk_size", int),
            "LEXIS_CONTEXT_WINDOW_BEFORE": ("context_window_before", int),
            "LEXIS_CONTEXT_WINDOW_AFTER": ("context_window_after", int),
            "LEXIS_IDIOM_MIN_RELEVANCE": ("idiom_min_relevance", int),
            "LEXIS_IDIOM_PROMPT_LIMIT": ("idiom_prompt_limit", int),
            "LEXIS_TRACE_PROMPTS": ("trace_prompts", int),
            "LEXIS_COST_DEBUG_WARN_THRESHOLD_USD": ("cost_debug_warn_threshold_usd", float),
        }
        for env_name, (attr, kind) in numeric.items():
            value = _env_number(env_name, kind)
            if value is not None:
                setattr(self, attr, value)

    @classmethod
    def from_file(cls, path: str | Path) -> "LexisConfig":
        """
        Load configuration from TOML file.

        Nested sections are flattened with the section prefix where one
        applies, so ``[retry] max_attempts = 6`` sets ``retry_max_attempts``.

        Example TOML:
            db_path = "./corpus.duckdb"

            [llm]
            model = "gpt-4.1-mini"

            [batch]
            concurrency = 5
            run_budget = 300

            [retry]
            max_attempts = 6

        Args:
            path: Path to TOML configuration file

        Returns:
            LexisConfig instance with values from file

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)

        flat_config: dict[str, Any] = {}

        section_mapping = {
            "llm": "llm_",
            "api_keys": "",  # api_keys.openai -> openai_api_key
            "storage": "",
            "batch": "",
            "retry": "retry_",
            "dedup": "dedup_",
            "context": "",
            "reporting": "",
            "languages": "",
        }

        for section, prefix in section_mapping.items():
            if section in data:
                for key, value in data[section].items():
                    if section == "api_keys":
                        flat_config[f"{key}_api_key"] = value
                    else:
                        flat_config[f"{prefix}{key}"] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in section_mapping and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "LexisConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are never written.

        Args:
            path: Path to write TOML configuration file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {
            "storage": {
                "db_path": self.db_path,
                "page_size": self.page_size,
                "export_dir": self.export_dir,
            },
            "llm": {
                "provider": self.llm_provider,
                "model": self.llm_model,
                "temperature": self.llm_temperature,
            },
            "batch": {
                "batch_size": self.batch_size,
                "concurrency": self.concurrency,
                "stagger_ms": self.stagger_ms,
                "cooldown_seconds": self.cooldown_seconds,
                "run_budget": self.run_budget,
                "call_timeout_seconds": self.call_timeout_seconds,
            },
            "retry": {
                "max_attempts": self.retry_max_attempts,
                "base_delay": self.retry_base_delay,
                "multiplier": self.retry_multiplier,
                "jitter": self.retry_jitter,
                "max_delay": self.retry_max_delay,
            },
            "dedup": {
                "key_threshold": self.dedup_key_threshold,
                "explanation_threshold": self.dedup_explanation_threshold,
                "chunk_size": self.dedup_chunk_size,
            },
            "context": {
                "context_window_before": self.context_window_before,
                "context_window_after": self.context_window_after,
                "idiom_min_relevance": self.idiom_min_relevance,
                "idiom_prompt_limit": self.idiom_prompt_limit,
                "highlight_default_relevance": self.highlight_default_relevance,
            },
            "reporting": {
                "log_buffer_size": self.log_buffer_size,
                "progress_log_tail": self.progress_log_tail,
                "trace_prompts": self.trace_prompts,
                "cost_debug_warn_threshold_usd": self.cost_debug_warn_threshold_usd,
            },
            "languages": {
                "source_language": self.source_language,
                "target_language": self.target_language,
            },
        }

        lines = ["# lexis-kg configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "LexisConfig":
        """Return new config with specified overrides."""
        new_config = LexisConfig.__new__(LexisConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            if not hasattr(new_config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config
