"""
Abstract Provider Interfaces

Base class for the enrichment oracle and the errors it may raise.

Error taxonomy:
    OracleRateLimitError: The provider asked us to slow down (retryable)
    OracleResponseError: The payload could not be parsed as the expected JSON
    OracleTimeoutError: The call exceeded its hard timeout
    OracleAPIError: Any other API failure (server error, connection, auth)

Only OracleRateLimitError is retried. The others fail the affected work
items with the message preserved. Providers map their client errors onto
this taxonomy; an exception outside it is a run-level failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class OracleError(Exception):
    """Base class for oracle call failures."""


class OracleRateLimitError(OracleError):
    """The oracle signalled a rate limit; safe to retry after a delay."""


class OracleResponseError(OracleError):
    """The oracle returned a payload that is not valid JSON of the expected shape."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class OracleTimeoutError(OracleError):
    """The oracle call exceeded its hard timeout."""


class OracleAPIError(OracleError):
    """The oracle API failed for a reason other than rate limiting."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMProvider(ABC):
    """Abstract interface for LLM providers used as the enrichment oracle."""

    @abstractmethod
    async def complete_json(
        self,
        prompt: str,
        *,
        system: str | None = None,
    ) -> dict[str, Any]:
        """
        Run one completion and return its JSON object payload.

        Raises:
            OracleRateLimitError: On a rate-limit response
            OracleAPIError: On any other API failure
            OracleResponseError: If the response is not a JSON object
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Current model name."""
        ...
