import logging
import os
from functools import lru_cache
from supabase import create_client, Client
from openai import OpenAI
from satcraft.core.config import get_settings

_prompt_logger = logging.getLogger("satcraft.llm_prompts")


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)


@lru_cache
def get_openai_client() -> OpenAI:
    settings = get_settings()
    return OpenAI(api_key=settings.openai_api_key)


def prompt_logging_enabled() -> bool:
    return os.environ.get("DEBUG_LLM_PROMPTS", "").lower() in ("1", "true")


def log_prompt(model: str, messages: list[dict], temperature: float, max_tokens: int) -> None:
    if not prompt_logging_enabled():
        return
    system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
    user = "\n\n".join(m["content"] for m in messages if m.get("role") != "system")
    _prompt_logger.warning(
        "\n\n%s\n"
        "── SYSTEM ──────────────────────────────────────────────\n%s\n"
        "── USER ────────────────────────────────────────────────\n%s\n"
        "── CONFIG ──────────────────────────────────────────────\n"
        "  model=%s  temp=%s  max_tokens=%s\n"
        "%s",
        "=" * 60,
        system or "(none)",
        user,
        model,
        temperature,
        max_tokens,
        "=" * 60,
    )


# ── Gemini adapter: mimics the OpenAI client interface ──────────────────────
# AIService calls client.chat.completions.create(...) for both vendors; this
# adapter intercepts those calls and routes them to google-genai.

class _GeminiMessage:
    def __init__(self, content: str):
        self.content = content


class _GeminiChoice:
    def __init__(self, content: str):
        self.message = _GeminiMessage(content)


class _GeminiResponse:
    def __init__(self, text: str, model: str):
        self.choices = [_GeminiChoice(text)]
        self.model = model


class _GeminiCompletions:
    def __init__(self, api_key: str):
        self._api_key = api_key

    def create(
        self,
        model=None,
        messages=None,
        temperature=0.7,
        max_tokens=None,
        response_format=None,
        **kwargs,
    ):
        from google import genai
        from google.genai import types

        system_parts = [
            m["content"] for m in (messages or []) if m.get("role") == "system"
        ]
        # Gemini takes a single user turn; prior turns are flattened with role tags.
        user_parts = []
        for m in messages or []:
            if m.get("role") == "system":
                continue
            if m.get("role") == "assistant":
                user_parts.append(f"Assistant: {m['content']}")
            else:
                user_parts.append(m["content"])

        system_instruction = "\n\n".join(system_parts) or None
        user_prompt = "\n\n".join(user_parts)
        model = model or "gemini-2.5-flash"

        client = genai.Client(api_key=self._api_key)

        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_tokens or 2048,
            response_mime_type="application/json" if response_format else "text/plain",
            # Disable thinking: prevents preamble text before JSON output
            thinking_config=types.ThinkingConfig(thinking_budget=0),
        )
        response = client.models.generate_content(
            model=model,
            contents=user_prompt,
            config=config,
        )
        return _GeminiResponse(response.text or "", model)


class _GeminiChat:
    def __init__(self, api_key: str):
        self.completions = _GeminiCompletions(api_key)


class GeminiClientAdapter:
    def __init__(self, api_key: str):
        self.chat = _GeminiChat(api_key)


@lru_cache
def get_gemini_client() -> GeminiClientAdapter:
    settings = get_settings()
    return GeminiClientAdapter(api_key=settings.gemini_api_key)
