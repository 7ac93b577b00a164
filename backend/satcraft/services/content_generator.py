"""
Content Generator: produces one CandidateItem per call.

The prompt combines the retrieved context, the TopicPlan for the requested
leaf, section-specific requirements and, on regeneration, the previous
ValidationResult (issues + corrections) plus any escalation guidance from
the orchestrator. The model's JSON is normalised into a CandidateItem:
choice labels are stripped, the correct answer is accepted as a letter or
as the text of a choice, and a visual flag without a description is
dropped rather than failing the whole item.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import ValidationError

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import ParseFailure
from satcraft.models.item import (
    CHOICE_LABELS,
    CandidateItem,
    GenerationRequest,
    RetrievedContext,
    TopicPlan,
    ValidationResult,
)
from satcraft.prompts.question_generation import (
    EXAMPLES_HEADER,
    FEEDBACK_TEMPLATE,
    GENERATION_PROMPT,
    GENERATOR_SYSTEM_PROMPT,
    MATH_REQUIREMENTS,
    READING_WRITING_REQUIREMENTS,
)
from satcraft.services.ai import CompletionProvider, get_ai_service, request_json
from satcraft.services.steps import GenerateItemInput
from satcraft.services.taxonomy import display_name

logger = logging.getLogger(__name__)

_LABEL_PREFIX_RE = re.compile(r"^\s*\(?([A-Da-d])[\).:]\s+")
_ANSWER_LETTER_RE = re.compile(r"^\(?([A-Da-d])\)?[.):]?$")
_ANSWER_PREFIX_RE = re.compile(r"^(?:option|choice|answer)\s*:?\s*\(?([A-Da-d])\b|^\(?([A-D])[\).:]\s", re.I)


def _strip_label(choice: str) -> str:
    return _LABEL_PREFIX_RE.sub("", choice, count=1).strip()


def _normalise_choices(raw) -> list[str]:
    if isinstance(raw, dict):
        raw = [raw[k] for k in sorted(raw)]
    if not isinstance(raw, list):
        raise ParseFailure("answerChoices must be a list")
    return [_strip_label(str(c)) for c in raw]


def _normalise_answer(raw, choices: list[str]) -> str:
    text = str(raw or "").strip()
    if not text:
        raise ParseFailure("correctAnswer missing")
    m = _ANSWER_LETTER_RE.match(text)
    if m:
        return m.group(1).upper()
    lowered = text.lower()
    for i, choice in enumerate(choices[: len(CHOICE_LABELS)]):
        if choice.lower() == lowered:
            return CHOICE_LABELS[i]
    m = _ANSWER_PREFIX_RE.match(text)
    if m:
        return (m.group(1) or m.group(2)).upper()
    raise ParseFailure(f"correctAnswer {text!r} is neither a label nor a choice")


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def parse_candidate(data: dict) -> CandidateItem:
    question = _optional_text(data.get("question"))
    if not question:
        raise ParseFailure("question missing from model output")

    choices = _normalise_choices(data.get("answerChoices") or data.get("choices") or [])
    answer = _normalise_answer(data.get("correctAnswer"), choices)

    needs_visual = bool(data.get("needsVisual"))
    visual_description = _optional_text(data.get("visualDescription"))
    if needs_visual and not visual_description:
        logger.warning("[content_generator] needsVisual set without a description - dropping visual flag")
        needs_visual = False

    try:
        return CandidateItem(
            question=question,
            passage=_optional_text(data.get("passage")),
            answer_choices=choices,
            correct_answer=answer,
            explanation=_optional_text(data.get("explanation")),
            needs_visual=needs_visual,
            visual_description=visual_description,
        )
    except ValidationError as exc:
        raise ParseFailure(f"model output violates item invariants: {exc.errors()[0]['msg']}")


def build_generation_prompt(
    request: GenerationRequest,
    context: RetrievedContext,
    plan: TopicPlan,
    feedback: Optional[ValidationResult] = None,
    escalation: Optional[str] = None,
) -> str:
    examples_block = ""
    if context.examples:
        parts = []
        for i, ex in enumerate(context.examples, start=1):
            part = f"Example {i}:\n{ex.prompt}\nAnswer: {ex.answer}"
            if ex.explanation:
                part += f"\nExplanation: {ex.explanation}"
            parts.append(part)
        examples_block = EXAMPLES_HEADER + "\n\n".join(parts) + "\n\n"

    avoid_block = ""
    if plan.avoid_keywords:
        avoid_block = f"- Do NOT use: {', '.join(plan.avoid_keywords)}\n"

    feedback_block = ""
    if feedback is not None and not feedback.is_valid:
        feedback_block = FEEDBACK_TEMPLATE.format(
            score=feedback.score,
            issues="\n".join(f"- {i}" for i in feedback.issues) or "- (none reported)",
            corrections=feedback.corrections or "Please address the issues above.",
        )

    return GENERATION_PROMPT.format(
        section=request.section,
        topic=display_name(request.topic),
        subtopic=request.subtopic or "(any)",
        difficulty=request.difficulty,
        instructions=context.instructions,
        rules=context.rules,
        examples_block=examples_block,
        question_type=plan.question_type,
        question_phrase=plan.question_phrase,
        required_keywords=", ".join(plan.required_keywords) or "(none)",
        passage_requirements=plan.passage_requirements,
        answer_choice_style=plan.answer_choice_style,
        topic_alignment=plan.topic_alignment,
        avoid_block=avoid_block,
        section_requirements=MATH_REQUIREMENTS if request.section == "math" else READING_WRITING_REQUIREMENTS,
        feedback_block=feedback_block,
        escalation_block=escalation or "",
    )


class ContentGenerator:
    def __init__(self, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()

    def generate(
        self,
        request: GenerationRequest,
        context: RetrievedContext,
        plan: TopicPlan,
        feedback: Optional[ValidationResult] = None,
        escalation: Optional[str] = None,
    ) -> CandidateItem:
        prompt = build_generation_prompt(request, context, plan, feedback, escalation)
        candidate = request_json(
            self.provider,
            self.settings.generator_model,
            [
                {"role": "system", "content": GENERATOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            max_tokens=2000,
            attempts=self.settings.parse_retries,
            backoff_seconds=self.settings.parse_backoff_seconds,
            component="content_generator",
            parser=parse_candidate,
        )
        logger.info(
            "[content_generator] %s/%s candidate: %d choices, answer %s, visual=%s",
            request.section, request.topic, len(candidate.answer_choices),
            candidate.correct_answer, candidate.needs_visual,
        )
        return candidate

    def execute(self, payload: GenerateItemInput) -> CandidateItem:
        return self.generate(
            payload.request, payload.context, payload.plan, payload.feedback, payload.escalation,
        )
