"""
Context Retriever: first step of the generation pipeline.

Builds the RetrievedContext (rules, instructions, worked examples, visual
exemplars) for a GenerationRequest from a pluggable ContextProvider. The
default provider is the bundled sample library (data/sat_samples.json);
an embedding/vector-search backend can be dropped in by implementing
``ContextProvider.retrieve``.

Retrieval is fail-open: any provider failure (quota and rate-limit
included) substitutes a minimal generic context flagged ``degraded`` so
the user still gets a generation attempt.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import NON_RETRYABLE
from satcraft.models.item import GenerationRequest, RetrievedContext, VisualExemplar, WorkedExample
from satcraft.services.taxonomy import display_name, topic_key

logger = logging.getLogger(__name__)

DEFAULT_RULES = "Follow standard SAT question format and difficulty guidelines."
DEFAULT_GUIDANCE = "Ensure questions test the specified skills appropriately."

_SAMPLES_PATH = Path(__file__).resolve().parent.parent / "data" / "sat_samples.json"


@dataclass
class ProviderResult:
    rules: str = ""
    examples: list[WorkedExample] = field(default_factory=list)
    visual_exemplars: list[VisualExemplar] = field(default_factory=list)


class ContextProvider(Protocol):
    def retrieve(self, query: str, request: GenerationRequest, max_examples: int) -> ProviderResult:
        ...


# ---------------------------------------------------------------------------
# Bundled sample library (module-level cache, loaded once)
# ---------------------------------------------------------------------------

_SAMPLES_CACHE: Optional[dict] = None


def _load_samples() -> dict:
    global _SAMPLES_CACHE
    if _SAMPLES_CACHE is None:
        with open(_SAMPLES_PATH, encoding="utf-8") as f:
            _SAMPLES_CACHE = json.load(f)
        logger.info(
            "[context_retriever] loaded %d sample items from %s",
            len(_SAMPLES_CACHE.get("examples", [])), _SAMPLES_PATH.name,
        )
    return _SAMPLES_CACHE


class SampleLibraryContextProvider:
    """Ranks bundled sample items by how closely they match the request."""

    def __init__(self, samples: Optional[dict] = None):
        self._samples = samples

    @property
    def samples(self) -> dict:
        if self._samples is None:
            self._samples = _load_samples()
        return self._samples

    def _rank(self, item: dict, request: GenerationRequest) -> int:
        score = 0
        if item.get("section") == request.section:
            score += 1
        if item.get("topic") == topic_key(request.topic):
            score += 4
        if request.subtopic and (item.get("subtopic") or "").lower() == request.subtopic.lower():
            score += 2
        if item.get("difficulty") == request.difficulty:
            score += 1
        return score

    def retrieve(self, query: str, request: GenerationRequest, max_examples: int) -> ProviderResult:
        samples = self.samples
        rules_map = samples.get("rules", {})
        rules = "\n\n".join(
            r for r in (rules_map.get("general"), rules_map.get(request.section)) if r
        )

        ranked = sorted(
            (item for item in samples.get("examples", []) if item.get("section") == request.section),
            key=lambda item: self._rank(item, request),
            reverse=True,
        )
        ranked = [item for item in ranked if self._rank(item, request) >= 5] or ranked

        examples = [
            WorkedExample(prompt=item["prompt"], answer=item["answer"], explanation=item.get("explanation"))
            for item in ranked[:max_examples]
        ]
        visuals = [
            VisualExemplar(kind=item["visual"].get("kind", "diagram"), description=item["visual"]["description"])
            for item in ranked
            if item.get("visual")
        ][:max_examples]
        return ProviderResult(rules=rules, examples=examples, visual_exemplars=visuals)


# ---------------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------------

def build_query(request: GenerationRequest) -> str:
    if request.custom_context:
        return request.custom_context
    query = f"Generate a {request.difficulty} {request.section} question about {display_name(request.topic)}"
    if request.subtopic:
        query += f", specifically {request.subtopic}"
    return query


def build_instructions(request: GenerationRequest) -> str:
    lines = [
        f"Section: {request.section}",
        f"Topic: {display_name(request.topic)}",
    ]
    if request.subtopic:
        lines.append(f"Subtopic: {request.subtopic}")
    lines.append(f"Difficulty: {request.difficulty}")
    if request.custom_context:
        lines.append(f"Additional context: {request.custom_context}")
    lines.extend([
        "Generate a question that follows SAT format exactly.",
        "Include exactly 4 answer choices labeled A, B, C, D.",
        "Exactly one answer choice is correct; provide a clear explanation.",
    ])
    return "\n".join(lines)


def minimal_context(request: GenerationRequest) -> RetrievedContext:
    return RetrievedContext(
        rules=f"{DEFAULT_RULES}\n{DEFAULT_GUIDANCE}",
        instructions=build_instructions(request),
        degraded=True,
    )


class ContextRetriever:
    def __init__(
        self,
        provider: Optional[ContextProvider] = None,
        library: Optional[SampleLibraryContextProvider] = None,
        settings: Optional[Settings] = None,
    ):
        self.library = library or SampleLibraryContextProvider()
        self.provider = provider or self.library
        self.max_examples = (settings or get_settings()).max_examples

    def retrieve(self, request: GenerationRequest) -> RetrievedContext:
        query = build_query(request)
        try:
            result = self.provider.retrieve(query, request, self.max_examples)
        except NON_RETRYABLE as exc:
            logger.warning(
                "[context_retriever] retrieval failed due to %s - using minimal context",
                exc.kind.value,
            )
            return minimal_context(request)
        except Exception as exc:
            logger.warning("[context_retriever] retrieval failed (%s) - using minimal context", exc)
            return minimal_context(request)

        examples = list(result.examples[: self.max_examples])
        visuals = list(result.visual_exemplars[: self.max_examples])
        if self.provider is not self.library and len(examples) < self.max_examples:
            examples, visuals = self._top_up(request, query, examples, visuals)

        return RetrievedContext(
            rules=result.rules or f"{DEFAULT_RULES}\n{DEFAULT_GUIDANCE}",
            instructions=build_instructions(request),
            examples=tuple(examples),
            visual_exemplars=tuple(visuals),
        )

    def _top_up(self, request, query, examples, visuals):
        try:
            extra = self.library.retrieve(query, request, self.max_examples)
        except (OSError, ValueError) as exc:
            logger.warning("[context_retriever] sample library unavailable: %s", exc)
            return examples, visuals
        seen = {ex.prompt for ex in examples}
        for ex in extra.examples:
            if len(examples) >= self.max_examples:
                break
            if ex.prompt not in seen:
                examples.append(ex)
                seen.add(ex.prompt)
        if not visuals:
            visuals = list(extra.visual_exemplars[: self.max_examples])
        logger.info("[context_retriever] topped up to %d examples from sample library", len(examples))
        return examples, visuals

    def execute(self, request: GenerationRequest) -> RetrievedContext:
        return self.retrieve(request)
