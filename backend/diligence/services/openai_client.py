"""OpenAI JSON chat-completion client for the diligence pipeline.

The pipeline never talks to OpenAI directly; it receives an object that
satisfies ``LLMClient`` and calls ``complete_json``. ``OpenAIChatClient`` is
the production implementation, tests pass an in-memory fake.

This ensures:
  - Model, timeout, and token limits come from an explicit ScoringConfig.
  - JSON response format is enforced via response_format.
  - Capacity failures (token / rate limit) surface as TokenLimitError so
    the caller's RetryPolicy can classify them.
  - Consistent logging across all callers.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..config import ScoringConfig

logger = logging.getLogger(__name__)

_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

_TOKEN_LIMIT_MESSAGE_RE = re.compile(r"Request too large|tokens per min|TPM")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class LLMError(Exception):
    """Base class for reasoning-service failures."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class TokenLimitError(LLMError):
    """Token-per-minute or rate limit hit; retryable, triggers chunked mode."""


class LLMResponseError(LLMError):
    """Empty or unparsable completion content."""


def is_token_limit_error(exc: BaseException) -> bool:
    """Classify capacity failures by error code, HTTP status, or message."""
    if isinstance(exc, TokenLimitError):
        return True
    if getattr(exc, "code", None) == "rate_limit_exceeded":
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    return bool(_TOKEN_LIMIT_MESSAGE_RE.search(str(exc)))


# ---------------------------------------------------------------------------
# JSON sanitizer: extracts valid JSON from LLM output
# ---------------------------------------------------------------------------
def sanitize_json(raw: str) -> str:
    """Extract a JSON object from raw LLM output.

    Handles:
      - Markdown fences (```json ... ```)
      - Leading/trailing whitespace and BOM
      - Prose before/after JSON
      - Trailing commas before } or ]

    Raises ValueError if no JSON object is found.
    """
    text = raw.strip().lstrip("\ufeff")

    if text.startswith("```"):
        parts = text.split("```")
        text = parts[1] if len(parts) >= 3 else text[3:]

    text = text.strip()
    if text.lower().startswith("json"):
        text = text[4:].strip()

    brace_idx = text.find("{")
    if brace_idx == -1:
        raise ValueError("LLM did not return a JSON object, no '{' found")
    text = text[brace_idx:]

    rbrace_idx = text.rfind("}")
    if rbrace_idx == -1:
        raise ValueError("LLM did not return a JSON object, no '}' found")
    text = text[: rbrace_idx + 1]

    return re.sub(r",\s*([}\]])", r"\1", text)


def parse_json_content(raw: str) -> Dict[str, Any]:
    """sanitize_json + json.loads, mapped onto LLMResponseError."""
    if not raw or not raw.strip():
        raise LLMResponseError("No response from reasoning service")
    try:
        parsed = json.loads(sanitize_json(raw))
    except (ValueError, json.JSONDecodeError) as exc:
        raise LLMResponseError(f"Malformed JSON in completion: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LLMResponseError("Completion JSON is not an object")
    return parsed


def build_payload(
    *,
    model: str,
    messages: List[Dict[str, str]],
    max_completion_tokens: int,
    temperature: float,
) -> Dict[str, Any]:
    """Build an OpenAI chat completions payload with json_object response format."""
    return {
        "model": model,
        "messages": messages,
        "max_tokens": max_completion_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }


# ---------------------------------------------------------------------------
# Client protocol + implementation
# ---------------------------------------------------------------------------
class LLMClient(Protocol):
    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        temperature: float,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        ...


class OpenAIChatClient:
    """Stateless async client; one httpx request per completion."""

    def __init__(self, config: ScoringConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.openai_api_key:
            logger.warning("[OPENAI] API key missing (OPENAI_API_KEY)")
            raise EnvironmentError("OPENAI_API_KEY environment variable not set")
        self._config = config
        self._transport = transport

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        temperature: float,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        model = self._config.openai_model
        payload = build_payload(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_completion_tokens=max_tokens or self._config.max_completion_tokens,
            temperature=temperature,
        )
        headers = {
            "Authorization": f"Bearer {self._config.openai_api_key}",
            "Content-Type": "application/json",
        }

        logger.info("[OPENAI] Calling %s (prompt %d chars, temperature %.2f)", model, len(system) + len(user), temperature)
        t0 = time.time()
        try:
            async with httpx.AsyncClient(timeout=self._config.request_timeout, transport=self._transport) as client:
                response = await client.post(_OPENAI_API_URL, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise LLMError(f"OpenAI request timed out after {time.time() - t0:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"OpenAI transport error: {exc}") from exc

        logger.info("[OPENAI] HTTP %s (%.1fs)", response.status_code, time.time() - t0)
        if response.status_code != 200:
            raise _error_from_response(response)

        data = response.json()
        usage = data.get("usage")
        if usage:
            logger.info(
                "[OPENAI] Tokens used: prompt=%s, completion=%s, total=%s",
                usage.get("prompt_tokens", "?"),
                usage.get("completion_tokens", "?"),
                usage.get("total_tokens", "?"),
            )

        choices = data.get("choices") or []
        raw_content = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
        return parse_json_content(raw_content)


def _error_from_response(response: httpx.Response) -> LLMError:
    body = response.text[:400]
    code: Optional[str] = None
    message = body
    try:
        error = (response.json() or {}).get("error") or {}
        code = error.get("code") or error.get("type")
        message = error.get("message") or body
    except ValueError:
        pass
    logger.warning("[OPENAI] Error response %s: %s", response.status_code, body)
    error = LLMError(message, status_code=response.status_code, code=code)
    if is_token_limit_error(error):
        return TokenLimitError(message, status_code=response.status_code, code=code)
    return error
