"""LLM provider implementations."""

from lexis_kg.providers.llm.openai import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
