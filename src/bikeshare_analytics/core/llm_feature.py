"""
LLMFeature enum and unified call_llm() wrapper.

Single choke point for all LLM calls, giving every feature the same
logging, timeout handling, JSON extraction and latency tracking.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from bikeshare_analytics.core.llm_client import GroqClient
from bikeshare_analytics.core.llm_json import extract_first_json_object, parse_json_response

logger = structlog.get_logger()


class LLMFeature(Enum):
    """LLM use cases, used as the `feature` tag in logs."""

    SLOT_EXTRACTION = "slot_extraction"


@dataclass
class LLMCallResult:
    """
    Result of a unified LLM call.

    Attributes:
        raw_text: Raw text response from LLM (None if unavailable/timeout)
        payload: Parsed JSON payload (None if parsing failed)
        latency_ms: Time taken for LLM call in milliseconds
        timed_out: Whether the call produced no text (timeout or transport error)
        error: Error type if call failed (None on success)
    """

    raw_text: str | None
    payload: dict[str, Any] | list[Any] | None
    latency_ms: float
    timed_out: bool
    error: str | None


def call_llm(
    feature: LLMFeature,
    system: str,
    user: str,
    client: GroqClient,
) -> LLMCallResult:
    """
    Unified LLM call wrapper with consistent logging and error handling.

    The first balanced JSON object in the completion is parsed, so prose or
    code fences around the answer do not break extraction.

    Args:
        feature: LLMFeature indicating what this call is for
        system: System prompt
        user: User prompt
        client: Configured client (carries model and timeout)

    Returns:
        LLMCallResult with raw_text, parsed payload, latency, timeout/error flags
    """
    start_time = time.perf_counter()

    if not client.is_available():
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "llm_call_unavailable",
            feature=feature.value,
            model=client.model,
            latency_ms=latency_ms,
        )
        return LLMCallResult(raw_text=None, payload=None, latency_ms=latency_ms, timed_out=False, error="llm_unavailable")

    raw_text = client.complete(prompt=user, system_prompt=system)
    latency_ms = (time.perf_counter() - start_time) * 1000

    if raw_text is None:
        logger.warning(
            "llm_call_timeout",
            feature=feature.value,
            model=client.model,
            timeout_s=client.timeout,
            latency_ms=latency_ms,
        )
        return LLMCallResult(raw_text=None, payload=None, latency_ms=latency_ms, timed_out=True, error="timeout")

    payload = parse_json_response(extract_first_json_object(raw_text))

    if payload is None:
        logger.warning(
            "llm_call_json_parse_failed",
            feature=feature.value,
            model=client.model,
            latency_ms=latency_ms,
            raw_length=len(raw_text),
        )
        return LLMCallResult(
            raw_text=raw_text,
            payload=None,
            latency_ms=latency_ms,
            timed_out=False,
            error="json_parse_failed",
        )

    logger.info(
        "llm_call_success",
        feature=feature.value,
        model=client.model,
        latency_ms=latency_ms,
        payload_keys=list(payload.keys()) if isinstance(payload, dict) else f"array[{len(payload)}]",
    )
    return LLMCallResult(raw_text=raw_text, payload=payload, latency_ms=latency_ms, timed_out=False, error=None)
