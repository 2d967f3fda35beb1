"""
LLM Providers

Provider-agnostic interface for the enrichment oracle.

Modules:
    base: Abstract provider interface and oracle error taxonomy
    llm/: Provider implementations

Supported Providers:
    - OpenAI (JSON mode) via LangChain

Example:
    >>> from lexis_kg.providers import create_llm_provider
    >>> llm = create_llm_provider(LexisConfig())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from lexis_kg.providers.base import (
    LLMProvider,
    OracleAPIError,
    OracleError,
    OracleRateLimitError,
    OracleResponseError,
    OracleTimeoutError,
)

if TYPE_CHECKING:
    from lexis_kg.config import LexisConfig


def create_llm_provider(config: LexisConfig) -> LLMProvider:
    """Build the oracle provider named by ``config.llm_provider``."""
    if config.llm_provider == "openai":
        from lexis_kg.providers.llm.openai import OpenAILLMProvider

        return OpenAILLMProvider(
            api_key=config.openai_api_key,
            model=config.llm_model,
            temperature=config.llm_temperature,
        )
    raise ValueError(f"Unknown LLM provider: {config.llm_provider}")


__all__ = [
    "LLMProvider",
    "OracleAPIError",
    "OracleError",
    "OracleRateLimitError",
    "OracleResponseError",
    "OracleTimeoutError",
    "create_llm_provider",
]
