"""Visual Generator: builds the figure/graph/table for an accepted item."""
from __future__ import annotations

import logging
from typing import Optional

from satcraft.core.config import Settings, get_settings
from satcraft.models.item import CandidateItem, RetrievedContext, VisualArtifact, VisualValidationResult
from satcraft.prompts.visuals import (
    VISUAL_EXEMPLARS_HEADER,
    VISUAL_FACTS_HEADER,
    VISUAL_FEEDBACK_TEMPLATE,
    VISUAL_GENERATION_PROMPT,
    VISUAL_GENERATOR_SYSTEM_PROMPT,
)
from satcraft.services.ai import CompletionProvider, get_ai_service, request_json
from satcraft.services.math_verifier import format_choices
from satcraft.services.steps import GenerateVisualInput
from satcraft.services.visual_validator import extract_question_facts

logger = logging.getLogger(__name__)

_VISUAL_KINDS = ("graph", "table", "diagram", "chart", "image")


def _normalise_kind(value) -> str:
    kind = str(value or "").strip().lower()
    if kind in _VISUAL_KINDS:
        return kind
    for k in _VISUAL_KINDS:
        if k in kind:
            return k
    return "diagram"


def parse_visual(data: dict, fallback_description: str = "") -> VisualArtifact:
    description = str(data.get("description") or "").strip() or fallback_description
    svg = data.get("svg")
    svg = svg.strip() if isinstance(svg, str) and svg.strip().startswith("<svg") else None
    payload = data.get("data")
    return VisualArtifact(
        kind=_normalise_kind(data.get("type") or data.get("kind")),
        description=description,
        data=payload if payload not in ({}, [], "") else None,
        svg=svg,
    )


def build_visual_prompt(
    candidate: CandidateItem,
    context: RetrievedContext,
    feedback: Optional[VisualValidationResult] = None,
) -> str:
    facts = extract_question_facts(candidate.question)
    facts_block = ""
    if facts:
        facts_block = VISUAL_FACTS_HEADER + "\n".join(f"- {f.label}" for f in facts) + "\n\n"

    exemplars_block = ""
    if context.visual_exemplars:
        exemplars_block = VISUAL_EXEMPLARS_HEADER + "\n".join(
            f"- ({v.kind}) {v.description}" for v in context.visual_exemplars
        ) + "\n\n"

    feedback_block = ""
    if feedback is not None and not feedback.is_valid:
        feedback_block = VISUAL_FEEDBACK_TEMPLATE.format(
            score=feedback.score,
            issues="\n".join(f"- {i}" for i in feedback.issues) or "- (none reported)",
            missing=", ".join(feedback.missing_information) or "none",
        )

    return VISUAL_GENERATION_PROMPT.format(
        question=candidate.question,
        passage_block=f"Passage: {candidate.passage}\n" if candidate.passage else "",
        choices=format_choices(candidate),
        visual_description=candidate.visual_description or "(none)",
        facts_block=facts_block,
        exemplars_block=exemplars_block,
        feedback_block=feedback_block,
    )


class VisualGenerator:
    def __init__(self, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()

    def generate(
        self,
        candidate: CandidateItem,
        context: RetrievedContext,
        feedback: Optional[VisualValidationResult] = None,
    ) -> VisualArtifact:
        prompt = build_visual_prompt(candidate, context, feedback)
        visual = request_json(
            self.provider,
            self.settings.generator_model,
            [
                {"role": "system", "content": VISUAL_GENERATOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.4,
            max_tokens=3000,
            attempts=self.settings.parse_retries,
            backoff_seconds=self.settings.parse_backoff_seconds,
            component="visual_generator",
            parser=lambda data: parse_visual(data, candidate.visual_description or ""),
        )
        logger.info("[visual_generator] %s visual, svg=%s", visual.kind, visual.svg is not None)
        return visual

    def execute(self, payload: GenerateVisualInput) -> VisualArtifact:
        return self.generate(payload.candidate, payload.context, payload.feedback)
