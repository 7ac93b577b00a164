"""
Tests for provider error classification, the Gemini -> OpenAI fallback and
request_json parse retries.

All tests run fully offline: SDK clients are MagicMocks and the SDK
exception types are constructed directly.
"""
import sys
import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
from google.genai import errors as genai_errors

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.core.errors import (
    ErrorKind,
    ParseFailure,
    QuotaExceeded,
    RateLimited,
    TransientProviderError,
)
from satcraft.services.ai import AIService, classify_provider_error, request_json
from fakes import ScriptedProvider, offline_settings

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _openai_status_error(cls, status, body=None):
    return cls("upstream error", response=httpx.Response(status, request=_REQUEST), body=body)


def _openai_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


# ---------------------------------------------------------------------------
# classify_provider_error
# ---------------------------------------------------------------------------

class TestClassifyProviderError:
    def test_insufficient_quota_is_quota(self):
        exc = _openai_status_error(openai.RateLimitError, 429, {"code": "insufficient_quota"})
        err = classify_provider_error(exc)
        assert isinstance(err, QuotaExceeded)
        assert err.kind is ErrorKind.QUOTA

    def test_plain_429_is_rate_limit(self):
        exc = _openai_status_error(openai.RateLimitError, 429, {"code": "rate_limit_exceeded"})
        assert isinstance(classify_provider_error(exc), RateLimited)

    def test_timeout_is_transient(self):
        assert isinstance(classify_provider_error(openai.APITimeoutError(request=_REQUEST)),
                          TransientProviderError)

    def test_connection_error_is_transient(self):
        assert isinstance(classify_provider_error(openai.APIConnectionError(request=_REQUEST)),
                          TransientProviderError)

    def test_server_error_is_transient(self):
        exc = _openai_status_error(openai.InternalServerError, 500)
        assert isinstance(classify_provider_error(exc), TransientProviderError)

    def test_gemini_429_is_rate_limit(self):
        exc = genai_errors.ClientError(429, {"error": {"code": 429, "message": "Resource exhausted",
                                                       "status": "RESOURCE_EXHAUSTED"}})
        assert isinstance(classify_provider_error(exc), RateLimited)

    def test_gemini_503_is_transient(self):
        exc = genai_errors.ServerError(503, {"error": {"code": 503, "message": "Overloaded",
                                                       "status": "UNAVAILABLE"}})
        assert isinstance(classify_provider_error(exc), TransientProviderError)

    def test_satcraft_errors_pass_through(self):
        err = ParseFailure("bad json")
        assert classify_provider_error(err) is err

    def test_unknown_exception_is_transient(self):
        assert isinstance(classify_provider_error(RuntimeError("boom")), TransientProviderError)


# ---------------------------------------------------------------------------
# AIService.complete
# ---------------------------------------------------------------------------

class TestAIServiceComplete:
    def test_openai_model_routes_to_openai(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _openai_response('{"ok": true}')
        service = AIService(offline_settings(), openai_client=openai_client, gemini_client=MagicMock())

        result = service.complete("gpt-4o-mini", [{"role": "user", "content": "hi"}], json_mode=True)

        assert result.provider == "openai"
        assert result.content == '{"ok": true}'
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_gemini_provider_setting_remaps_models(self):
        gemini_client = MagicMock()
        gemini_client.chat.completions.create.return_value = _openai_response("hello")
        settings = offline_settings(llm_provider="gemini", gemini_model="gemini-2.5-flash")
        service = AIService(settings, openai_client=MagicMock(), gemini_client=gemini_client)

        result = service.complete("gpt-4o", [{"role": "user", "content": "hi"}])

        assert result.provider == "gemini"
        assert result.model == "gemini-2.5-flash"

    def test_gemini_failure_falls_back_to_openai(self):
        gemini_client = MagicMock()
        gemini_client.chat.completions.create.side_effect = genai_errors.ServerError(
            503, {"error": {"code": 503, "message": "Overloaded", "status": "UNAVAILABLE"}})
        openai_client = MagicMock()
        openai_client.chat.completions.create.return_value = _openai_response("from openai")
        settings = offline_settings(openai_api_key="sk-test", fallback_model="gpt-4o-mini")
        service = AIService(settings, openai_client=openai_client, gemini_client=gemini_client)

        result = service.complete("gemini-2.5-flash", [{"role": "user", "content": "hi"}])

        assert result.provider == "openai"
        assert result.model == "gpt-4o-mini"
        assert result.content == "from openai"

    def test_gemini_rate_limit_does_not_fall_back(self):
        gemini_client = MagicMock()
        gemini_client.chat.completions.create.side_effect = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}})
        openai_client = MagicMock()
        service = AIService(offline_settings(openai_api_key="sk-test"),
                            openai_client=openai_client, gemini_client=gemini_client)

        with pytest.raises(RateLimited):
            service.complete("gemini-2.5-flash", [{"role": "user", "content": "hi"}])
        openai_client.chat.completions.create.assert_not_called()

    def test_openai_quota_raises_quota(self):
        openai_client = MagicMock()
        openai_client.chat.completions.create.side_effect = _openai_status_error(
            openai.RateLimitError, 429, {"code": "insufficient_quota"})
        service = AIService(offline_settings(), openai_client=openai_client, gemini_client=MagicMock())

        with pytest.raises(QuotaExceeded):
            service.complete("gpt-4o", [{"role": "user", "content": "hi"}])


# ---------------------------------------------------------------------------
# request_json
# ---------------------------------------------------------------------------

class TestRequestJson:
    def test_retries_until_parseable(self):
        provider = ScriptedProvider(["not json at all", '```json\n{"score": 0.9}\n```'])
        data = request_json(provider, "gpt-4o-mini", [], backoff_seconds=0)
        assert data == {"score": 0.9}
        assert len(provider.calls) == 2
        assert all(call["json_mode"] for call in provider.calls)

    def test_gives_up_after_attempts(self):
        provider = ScriptedProvider(["nope", "still nope", "never"])
        with pytest.raises(ParseFailure):
            request_json(provider, "gpt-4o-mini", [], attempts=3, backoff_seconds=0)
        assert len(provider.calls) == 3

    def test_parser_failure_is_retried(self):
        def parser(data):
            if "question" not in data:
                raise ParseFailure("missing question")
            return data["question"]

        provider = ScriptedProvider([{"foo": 1}, {"question": "Q?"}])
        assert request_json(provider, "m", [], backoff_seconds=0, parser=parser) == "Q?"

    def test_quota_is_not_retried(self):
        provider = ScriptedProvider([QuotaExceeded("out of credits"), {"score": 1}])
        with pytest.raises(QuotaExceeded):
            request_json(provider, "m", [], backoff_seconds=0)
        assert len(provider.calls) == 1
