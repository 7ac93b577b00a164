"""
Completion provider boundary.

``AIService.complete`` is the single place the service talks to a model
vendor. It routes ``gemini-*`` models through the Gemini adapter and
everything else through the OpenAI client, and translates vendor SDK
exceptions into the satcraft error taxonomy (``classify_provider_error``)
so that nothing downstream inspects vendor exception types or messages.

``request_json`` layers JSON extraction and local parse retries on top.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import openai
from google.genai import errors as genai_errors

from satcraft.core.config import Settings, get_settings
from satcraft.core.deps import get_gemini_client, get_openai_client, log_prompt
from satcraft.core.errors import (
    NON_RETRYABLE,
    ParseFailure,
    QuotaExceeded,
    RateLimited,
    SatcraftError,
    TransientProviderError,
)
from satcraft.utils.json_extract import extract_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    provider: str


class CompletionProvider(Protocol):
    def complete(
        self,
        model: str,
        messages: list[dict],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
    ) -> CompletionResult:
        ...


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def _openai_error_code(exc: Exception) -> Optional[str]:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        code = inner.get("code") or inner.get("type")
        return str(code) if code else None
    return None


def classify_provider_error(exc: Exception) -> SatcraftError:
    """Translate a vendor SDK exception into the satcraft error taxonomy."""
    if isinstance(exc, SatcraftError):
        return exc

    if isinstance(exc, openai.RateLimitError):
        if _openai_error_code(exc) == "insufficient_quota":
            return QuotaExceeded("OpenAI quota exceeded - check plan and billing details")
        return RateLimited("OpenAI rate limit reached")
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientProviderError(f"OpenAI connection failed: {exc.__class__.__name__}")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 402:
            return QuotaExceeded("OpenAI quota exceeded - check plan and billing details")
        return TransientProviderError(f"OpenAI returned status {exc.status_code}")

    if isinstance(exc, genai_errors.APIError):
        if exc.code == 429:
            return RateLimited("Gemini rate limit reached")
        return TransientProviderError(f"Gemini returned status {exc.code} {exc.status or ''}".strip())

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return TransientProviderError(f"Provider connection failed: {exc.__class__.__name__}")

    return TransientProviderError(f"Provider call failed: {exc.__class__.__name__}: {exc}")


# ---------------------------------------------------------------------------
# AIService
# ---------------------------------------------------------------------------

class AIService:
    def __init__(self, settings: Optional[Settings] = None, openai_client=None, gemini_client=None):
        self.settings = settings or get_settings()
        self._openai_client = openai_client
        self._gemini_client = gemini_client

    def _client_for(self, provider: str):
        if provider == "gemini":
            if self._gemini_client is None:
                self._gemini_client = get_gemini_client()
            return self._gemini_client
        if self._openai_client is None:
            self._openai_client = get_openai_client()
        return self._openai_client

    def _resolve_model(self, model: str) -> str:
        if self.settings.llm_provider == "gemini" and not model.startswith("gemini"):
            return self.settings.gemini_model
        return model

    def complete(
        self,
        model: str,
        messages: list[dict],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        json_mode: bool = False,
    ) -> CompletionResult:
        model = self._resolve_model(model)
        provider = "gemini" if model.startswith("gemini") else "openai"
        client = self._client_for(provider)
        log_prompt(model, messages, temperature, max_tokens)

        kwargs = dict(model=model, messages=messages, temperature=temperature, max_tokens=max_tokens)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = client.chat.completions.create(**kwargs)
        except Exception as exc:
            err = classify_provider_error(exc)
            if provider == "gemini" and not isinstance(err, NON_RETRYABLE) \
                    and self.settings.openai_api_key:
                logger.warning(
                    "[ai] gemini call failed (%s) - falling back to %s",
                    err.kind.value, self.settings.fallback_model,
                )
                return self._complete_openai_fallback(kwargs)
            logger.error("[ai] %s call failed: %s (%s)", provider, err.message, err.kind.value)
            raise err from exc

        content = response.choices[0].message.content or ""
        return CompletionResult(content=content, model=model, provider=provider)

    def _complete_openai_fallback(self, kwargs: dict) -> CompletionResult:
        kwargs = {**kwargs, "model": self.settings.fallback_model}
        try:
            response = self._client_for("openai").chat.completions.create(**kwargs)
        except Exception as exc:
            err = classify_provider_error(exc)
            logger.error("[ai] fallback call failed: %s (%s)", err.message, err.kind.value)
            raise err from exc
        content = response.choices[0].message.content or ""
        return CompletionResult(content=content, model=kwargs["model"], provider="openai")


def request_json(
    provider: CompletionProvider,
    model: str,
    messages: list[dict],
    *,
    temperature: float = 0.3,
    max_tokens: int = 2048,
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    component: str = "ai",
    parser: Optional[Callable[[dict], Any]] = None,
) -> Any:
    """Call the provider and parse a JSON object, retrying parse failures locally.

    ``parser`` converts the decoded object into a domain value; a
    ParseFailure raised by it is retried like malformed JSON.

    Quota, rate-limit and transient errors from the provider propagate
    immediately; only ParseFailure is retried here.
    """
    last_error: Optional[ParseFailure] = None
    attempts = max(1, attempts)
    for attempt in range(attempts):
        result = provider.complete(
            model, messages, temperature=temperature, max_tokens=max_tokens, json_mode=True,
        )
        try:
            data = extract_json(result.content)
            return parser(data) if parser else data
        except ParseFailure as exc:
            last_error = exc
            logger.warning(
                "[%s] attempt %d/%d returned unparseable output - retrying",
                component, attempt + 1, attempts,
            )
            if attempt + 1 < attempts and backoff_seconds > 0:
                time.sleep(backoff_seconds * (attempt + 1))
    raise last_error


_AI_SERVICE: Optional[AIService] = None


def get_ai_service() -> AIService:
    global _AI_SERVICE
    if _AI_SERVICE is None:
        _AI_SERVICE = AIService()
    return _AI_SERVICE
