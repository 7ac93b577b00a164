"""
Math Verifier: independent re-derivation of a math item's answer.

Two checks run on every math candidate:

  1. Local arithmetic audit of the explanation (safe AST evaluation).
     Catches hallucinated steps such as "14/13 simplifies to 4" without a
     model call, and cannot be talked out of it by the model.
  2. Independent model solve at low temperature. The model is asked to solve
     from scratch and report which choice holds the answer, whether the
     marked answer is right, and which explanation steps are wrong.

If the model's output cannot be parsed after local retries, the verifier
reports ``independent=False`` and relies on the local audit alone; provider
quota/rate-limit/transient errors propagate to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import ParseFailure
from satcraft.models.item import CHOICE_LABELS, CandidateItem
from satcraft.prompts.question_generation import (
    MATH_VERIFICATION_PROMPT,
    MATH_VERIFIER_SYSTEM_PROMPT,
)
from satcraft.services.ai import CompletionProvider, get_ai_service, request_json
from satcraft.utils.text_checks import audit_arithmetic

logger = logging.getLogger(__name__)


@dataclass
class MathVerification:
    is_marked_answer_correct: bool
    is_explanation_correct: bool
    correct_answer_letter: Optional[str] = None
    actual_answer: Optional[str] = None
    explanation_errors: list[str] = field(default_factory=list)
    calculation_steps: list[str] = field(default_factory=list)
    summary: str = ""
    independent: bool = True

    @property
    def is_correct(self) -> bool:
        return self.is_marked_answer_correct and self.is_explanation_correct


def _letter(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    v = value.strip().strip("().").upper()
    return v if v in CHOICE_LABELS else None


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def format_choices(candidate: CandidateItem) -> str:
    return "\n".join(
        f"{CHOICE_LABELS[i]}. {choice}" for i, choice in enumerate(candidate.answer_choices[:4])
    )


class MathVerifier:
    def __init__(self, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()

    def verify(self, candidate: CandidateItem) -> MathVerification:
        local_errors = audit_arithmetic(candidate.explanation or "")
        if local_errors:
            logger.info("[math_verifier] local audit flagged %d step(s): %s", len(local_errors), local_errors)

        prompt = MATH_VERIFICATION_PROMPT.format(
            question=candidate.question,
            choices=format_choices(candidate),
            correct_answer=candidate.correct_answer,
            explanation=candidate.explanation or "(none provided)",
        )
        try:
            data = request_json(
                self.provider,
                self.settings.validator_model,
                [
                    {"role": "system", "content": MATH_VERIFIER_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.1,
                max_tokens=1500,
                attempts=self.settings.parse_retries,
                backoff_seconds=self.settings.parse_backoff_seconds,
                component="math_verifier",
            )
        except ParseFailure as exc:
            logger.warning("[math_verifier] independent solve unavailable: %s", exc)
            return MathVerification(
                is_marked_answer_correct=True,
                is_explanation_correct=not local_errors,
                explanation_errors=local_errors,
                summary="Independent solve unavailable; local arithmetic audit only.",
                independent=False,
            )

        letter = _letter(data.get("correctAnswerLetter"))
        if letter is not None:
            marked_correct = letter == candidate.correct_answer
        else:
            marked_correct = data.get("isMarkedAnswerCorrect") is not False

        model_errors = _str_list(data.get("explanationErrors"))
        explanation_ok = data.get("isExplanationCorrect") is not False and not local_errors
        errors = [] if explanation_ok else local_errors + [e for e in model_errors if e not in local_errors]

        actual = data.get("actualAnswer")
        result = MathVerification(
            is_marked_answer_correct=marked_correct,
            is_explanation_correct=explanation_ok,
            correct_answer_letter=letter,
            actual_answer=str(actual) if actual is not None else None,
            explanation_errors=errors,
            calculation_steps=_str_list(data.get("calculationSteps")),
            summary=str(data.get("explanation") or ""),
        )
        logger.info(
            "[math_verifier] marked=%s computed=%s answer_ok=%s explanation_ok=%s",
            candidate.correct_answer, letter, result.is_marked_answer_correct,
            result.is_explanation_correct,
        )
        return result
