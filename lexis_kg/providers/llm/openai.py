"""
OpenAI LLM Provider (LangChain-based)

Implements the oracle interface using LangChain's ChatOpenAI in JSON mode.

Client-side retries are disabled (max_retries=0): rate limits surface as
OracleRateLimitError and are retried by the pipeline's RetryPolicy, so the
backoff and attempt count stay in one place.

Example:
    >>> provider = OpenAILLMProvider(api_key="sk-...", model="gpt-4.1-mini")
    >>> payload = await provider.complete_json(
    ...     "Return {\"answer\": 4} for 2+2.",
    ...     system="Respond with JSON only.",
    ... )
    >>> payload["answer"]
    4
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

import openai

from lexis_kg.config.pricing import estimate_llm_cost_usd
from lexis_kg.providers.base import (
    LLMProvider,
    OracleAPIError,
    OracleRateLimitError,
    OracleResponseError,
    OracleTimeoutError,
)
from lexis_kg.types.results import CostUsageRecord
from lexis_kg.utils.cost_telemetry import current_stage, record_usage
from lexis_kg.utils.token_count import count_chat_tokens, count_text_tokens

if TYPE_CHECKING:
    from langchain_openai import ChatOpenAI

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _as_int(value: Any) -> int | None:
    """Best-effort int coercion."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _extract_token_usage(response: Any) -> tuple[int | None, int | None, int | None]:
    """
    Extract token usage from LangChain response metadata.

    Returns:
        (input_tokens, output_tokens, total_tokens)
    """
    usage = getattr(response, "usage_metadata", None)
    if isinstance(usage, dict):
        input_tokens = _as_int(usage.get("input_tokens"))
        output_tokens = _as_int(usage.get("output_tokens"))
        total_tokens = _as_int(usage.get("total_tokens"))
        if any(v is not None for v in (input_tokens, output_tokens, total_tokens)):
            return input_tokens, output_tokens, total_tokens

    response_metadata = getattr(response, "response_metadata", None)
    if isinstance(response_metadata, dict):
        token_usage = response_metadata.get("token_usage")
        if isinstance(token_usage, dict):
            return (
                _as_int(token_usage.get("prompt_tokens")),
                _as_int(token_usage.get("completion_tokens")),
                _as_int(token_usage.get("total_tokens")),
            )

    return None, None, None


def parse_json_payload(text: str) -> dict[str, Any]:
    """
    Parse an oracle response into a JSON object.

    Tolerates a surrounding markdown code fence.

    Raises:
        OracleResponseError: If the text is not a JSON object
    """
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Oracle returned non-JSON payload: {e}", raw=text) from e
    if not isinstance(payload, dict):
        raise OracleResponseError(
            f"Oracle returned {type(payload).__name__}, expected a JSON object", raw=text
        )
    return payload


def _get_chat_openai(
    api_key: str | None = None,
    model: str = "gpt-4.1-mini",
    temperature: float = 0.2,
) -> "ChatOpenAI":
    """
    Get a ChatOpenAI instance.

    Uses lazy import to avoid requiring langchain-openai unless actually used.

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import ChatOpenAI
    except ImportError:
        raise ImportError(
            "OpenAI provider requires the 'langchain-openai' package. "
            "Install with: pip install langchain-openai"
        )

    kwargs: dict[str, Any] = {
        "model": model,
        "temperature": temperature,
        "max_retries": 0,
    }
    if api_key:
        kwargs["api_key"] = api_key

    return ChatOpenAI(**kwargs)


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI oracle implementation using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use
        temperature: Sampling temperature
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4.1-mini",
        temperature: float = 0.2,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        # Lazy initialization - create client on first use
        self._client: ChatOpenAI | None = None

    def _get_client(self) -> "ChatOpenAI":
        if self._client is None:
            self._client = _get_chat_openai(
                api_key=self._api_key,
                model=self._model,
                temperature=self._temperature,
            )
        return self._client

    @property
    def model_name(self) -> str:
        return self._model

    async def complete_json(
        self,
        prompt: str,
        *,
        system: str | None = None,
    ) -> dict[str, Any]:
        """
        Run one JSON-mode completion.

        Args:
            prompt: User prompt
            system: Optional system message

        Returns:
            Parsed JSON object

        Raises:
            OracleRateLimitError: On HTTP 429 from the API
            OracleTimeoutError: On a client-side request timeout
            OracleAPIError: On any other API failure (5xx, 4xx, connection)
            OracleResponseError: If the response is not a JSON object
        """
        from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

        start = time.perf_counter_ns()
        client = self._get_client().bind(response_format={"type": "json_object"})

        messages: list[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        try:
            response = await client.ainvoke(messages)
        except openai.RateLimitError as e:
            raise OracleRateLimitError(str(e)) from e
        except openai.APITimeoutError as e:
            raise OracleTimeoutError(str(e)) from e
        except openai.APIError as e:
            status = getattr(e, "status_code", None)
            raise OracleAPIError(f"{type(e).__name__}: {e}", status_code=status) from e

        output_text = str(response.content)
        self._record(response, prompt, system, output_text, start)
        return parse_json_payload(output_text)

    def _record(
        self,
        response: Any,
        prompt: str,
        system: str | None,
        output_text: str,
        start_ns: int,
    ) -> None:
        """Emit a usage record for the active run collector."""
        input_tokens, output_tokens, total_tokens = _extract_token_usage(response)
        estimated = False

        if input_tokens is None:
            chat_messages = [prompt]
            if system:
                chat_messages.insert(0, system)
            input_tokens = count_chat_tokens(chat_messages, self._model)
            estimated = True

        if output_tokens is None:
            output_tokens = count_text_tokens(output_text, self._model)
            estimated = True

        if total_tokens is None:
            total_tokens = input_tokens + output_tokens

        estimated_cost, pricing_found = estimate_llm_cost_usd(
            self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        elapsed_ms = (time.perf_counter_ns() - start_ns) // 1_000_000

        record_usage(
            CostUsageRecord(
                provider="openai",
                model=self._model,
                operation="complete_json",
                stage=current_stage(),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=total_tokens,
                estimated_cost_usd=estimated_cost,
                latency_ms=int(elapsed_ms),
                estimated=estimated,
                metadata={
                    "temperature": self._temperature,
                    "pricing_found": pricing_found,
                },
            )
        )
        if not pricing_found:
            logger.debug(f"No pricing entry for model {self._model}")
