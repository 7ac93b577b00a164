"""
Offline stand-ins shared by the satcraft tests.

ScriptedProvider replays canned completions (dicts are JSON-encoded,
exceptions are raised) and records every call. FakeStep does the same for
pipeline steps.
"""
import json

from satcraft.core.config import Settings
from satcraft.models.item import (
    CandidateItem,
    GeneratedResult,
    GenerationMetadata,
)
from satcraft.services.ai import CompletionResult


def offline_settings(**overrides) -> Settings:
    values = {"parse_backoff_seconds": 0.0, "openai_api_key": "", "gemini_api_key": ""}
    values.update(overrides)
    return Settings(**values)


class ScriptedProvider:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, model, messages, *, temperature=0.7, max_tokens=2048, json_mode=False):
        self.calls.append({"model": model, "messages": messages, "temperature": temperature,
                           "json_mode": json_mode})
        if not self.replies:
            raise AssertionError("ScriptedProvider ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return CompletionResult(content=reply, model=model, provider="fake")


class FakeStep:
    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.payloads = []

    def execute(self, payload):
        self.payloads.append(payload)
        if not self.outputs:
            raise AssertionError("FakeStep ran out of outputs")
        out = self.outputs.pop(0)
        if isinstance(out, BaseException):
            raise out
        return out


def make_candidate(**overrides) -> CandidateItem:
    fields = {
        "question": "A circle has a radius of 5 cm. What is the area of the circle?",
        "answer_choices": ["10π", "25π", "5π", "100π"],
        "correct_answer": "B",
        "explanation": "Area = πr^2, so the area is 5^2 π = 25π.",
    }
    fields.update(overrides)
    return CandidateItem(**fields)


def make_result(correct_answer="A", section="reading-and-writing", topic="craft-and-structure",
                difficulty="easy") -> GeneratedResult:
    item = make_candidate(correct_answer=correct_answer)
    return GeneratedResult(
        item=item,
        metadata=GenerationMetadata(
            section=section,
            topic=topic,
            difficulty=difficulty,
            generation_time_ms=5,
            text_iterations=1,
            total_iterations=1,
            final_score=0.9,
        ),
    )


class FakeGenerator:
    """Generation orchestrator stand-in: every item's correct answer is ``answer``."""

    def __init__(self, answer="A"):
        self.answer = answer
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        return make_result(
            correct_answer=self.answer,
            section=request.section,
            topic=request.topic,
            difficulty=request.difficulty,
        )
