"""
Content Validator: scores a CandidateItem against its GenerationRequest.

Checks, in order:

  CHECK 1: Format (deterministic): exactly 4 non-empty, distinct choices.
    Violations are critical and cap the score at 0.5.

  CHECK 2: Passage (reading & writing only): a passage must be present
    (cap 0.6 when missing) and should be 25-150 words (advisory).

  CHECK 3: Topic alignment (deterministic classifier):
    confident topic mismatch  -> critical, cap 0.3
    subtopic mismatch         -> issue, cap 0.75
    low confidence / unknown  -> advisory issue only

  CHECK 4: Math independent solve (math only, see math_verifier):
    marked answer wrong       -> critical, cap 0.1, corrected_answer set
    explanation unsound       -> critical, cap 0.1, explanation_errors set
    Either failure returns immediately; the model rubric is skipped.

  CHECK 5: Model rubric: difficulty, clarity, distractors, answerability,
    and an answer-correctness block. A reported wrong answer is critical,
    caps at 0.3 and populates corrected_answer.

The ValidationResult type itself enforces is_valid => score >= 0.8 and no
critical issues. A rubric reply that still cannot be parsed after local
retries yields score 0 with "Validation error occurred".
"""
from __future__ import annotations

import logging
from typing import Optional

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import ParseFailure
from satcraft.models.item import CHOICE_LABELS, CandidateItem, GenerationRequest, TopicAlignment, ValidationResult
from satcraft.prompts.question_generation import (
    PASSAGE_CHECK,
    VALIDATION_PROMPT,
    VALIDATOR_SYSTEM_PROMPT,
)
from satcraft.services.ai import CompletionProvider, get_ai_service, request_json
from satcraft.services.math_verifier import MathVerification, MathVerifier, format_choices
from satcraft.services.steps import ValidateItemInput
from satcraft.services.taxonomy import display_name
from satcraft.services.topic_classifier import validate_topic_match
from satcraft.utils.text_checks import word_count

logger = logging.getLogger(__name__)

FORMAT_CAP = 0.5
MISSING_PASSAGE_CAP = 0.6
TOPIC_MISMATCH_CAP = 0.3
SUBTOPIC_MISMATCH_CAP = 0.75
WRONG_ANSWER_CAP = 0.3
MATH_ERROR_CAP = 0.1

PASSAGE_MIN_WORDS = 25
PASSAGE_MAX_WORDS = 150


def check_format(candidate: CandidateItem) -> list[str]:
    problems = []
    n = len(candidate.answer_choices)
    if n != len(CHOICE_LABELS):
        problems.append(f"Expected exactly 4 answer choices, found {n}")
    if any(not c.strip() for c in candidate.answer_choices):
        problems.append("One or more answer choices are empty")
    normalised = [c.strip().lower() for c in candidate.answer_choices if c.strip()]
    if len(set(normalised)) != len(normalised):
        problems.append("Answer choices contain duplicates")
    return problems


def check_passage(candidate: CandidateItem) -> tuple[list[str], Optional[float]]:
    if not candidate.passage:
        return ["Reading & Writing question is missing its passage"], MISSING_PASSAGE_CAP
    words = word_count(candidate.passage)
    if words < PASSAGE_MIN_WORDS or words > PASSAGE_MAX_WORDS:
        return [f"Passage length is {words} words (expected {PASSAGE_MIN_WORDS}-{PASSAGE_MAX_WORDS})"], None
    return [], None


class _Rubric:
    def __init__(self, data: dict):
        try:
            self.score = float(data.get("score", 0) or 0)
        except (TypeError, ValueError):
            raise ParseFailure("rubric score is not a number")
        self.is_valid = data.get("isValid") is not False
        issues = data.get("issues") or []
        self.issues = [str(i) for i in issues] if isinstance(issues, list) else [str(issues)]
        self.corrections = str(data.get("corrections") or "")
        ac = data.get("answerCorrectness")
        self.answer_correctness = ac if isinstance(ac, dict) else {}


class ContentValidator:
    def __init__(
        self,
        provider: Optional[CompletionProvider] = None,
        settings: Optional[Settings] = None,
        math_verifier: Optional[MathVerifier] = None,
    ):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()
        self.math_verifier = math_verifier or MathVerifier(self.provider, self.settings)

    # -- deterministic parts -------------------------------------------------

    def _alignment(self, candidate: CandidateItem, request: GenerationRequest) -> TopicAlignment:
        return validate_topic_match(
            candidate.question,
            request.topic,
            request.subtopic,
            passage=candidate.passage,
            section_hint=request.section,
        )

    def _math_failure(
        self,
        candidate: CandidateItem,
        verification: MathVerification,
        alignment: TopicAlignment,
        prior_issues: list[str],
    ) -> ValidationResult:
        letter = verification.correct_answer_letter
        if not verification.is_marked_answer_correct:
            critical = (
                f"CRITICAL MATH ERROR: marked answer ({candidate.correct_answer}) is incorrect. "
                f"Independently calculated answer: {verification.actual_answer or 'unknown'} "
                f"(choice {letter or 'unknown'})."
            )
            corrections = (
                f"The correct answer should be {letter or 'recomputed'}. The marked answer is wrong. "
                "Regenerate with the correct answer and a mathematically sound explanation."
            )
        else:
            critical = "CRITICAL MATH ERROR: the explanation contains mathematical errors."
            corrections = (
                f"The marked answer ({candidate.correct_answer}) is correct, but the explanation "
                "contains errors. Rewrite the explanation with correct calculation steps."
            )
        issues = list(prior_issues)
        issues.extend(f"Explanation error: {e}" for e in verification.explanation_errors)
        issues.extend(f"Calculation step: {s}" for s in verification.calculation_steps[:6])
        logger.info("[content_validator] math check failed: %s", critical)
        return ValidationResult(
            is_valid=False,
            score=MATH_ERROR_CAP,
            issues=issues,
            critical_issues=[critical],
            corrections=corrections,
            corrected_answer=letter,
            explanation_errors=list(verification.explanation_errors),
            topic_alignment=alignment,
        )

    # -- model rubric --------------------------------------------------------

    def _rubric(self, candidate: CandidateItem, request: GenerationRequest, rules: str) -> _Rubric:
        passage_block = f"Passage:\n{candidate.passage}\n\n" if candidate.passage else ""
        prompt = VALIDATION_PROMPT.format(
            passage_block=passage_block,
            question=candidate.question,
            choices=format_choices(candidate),
            correct_answer=candidate.correct_answer,
            section=request.section,
            topic=display_name(request.topic),
            subtopic=request.subtopic or "N/A",
            difficulty=request.difficulty,
            rules=rules or "Follow standard SAT question format and difficulty guidelines.",
            passage_check=PASSAGE_CHECK if request.section == "reading-and-writing" else "",
        )
        return request_json(
            self.provider,
            self.settings.validator_model,
            [
                {"role": "system", "content": VALIDATOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_tokens=1500,
            attempts=self.settings.parse_retries,
            backoff_seconds=self.settings.parse_backoff_seconds,
            component="content_validator",
            parser=_Rubric,
        )

    # -- entry points --------------------------------------------------------

    def validate(self, candidate: CandidateItem, request: GenerationRequest, rules: str = "") -> ValidationResult:
        issues: list[str] = []
        critical: list[str] = []
        caps: list[float] = []
        corrections: list[str] = []

        format_problems = check_format(candidate)
        if format_problems:
            critical.extend(format_problems)
            caps.append(FORMAT_CAP)

        if request.section == "reading-and-writing":
            passage_issues, cap = check_passage(candidate)
            issues.extend(passage_issues)
            if cap is not None:
                caps.append(cap)
                corrections.append("Include a 25-150 word passage the question refers to.")

        alignment = self._alignment(candidate, request)
        if alignment.status == "mismatch":
            critical.append(alignment.issue)
            caps.append(TOPIC_MISMATCH_CAP)
            corrections.append(
                f'Rewrite the item so it tests "{alignment.requested_topic}", '
                f'not "{alignment.actual_topic}".'
            )
        elif alignment.status == "subtopic_mismatch":
            issues.append(alignment.issue)
            caps.append(SUBTOPIC_MISMATCH_CAP)
            corrections.append(f'Target the requested subtopic "{request.subtopic}".')
        elif alignment.status == "unknown":
            issues.append(alignment.issue)

        if request.section == "math":
            verification = self.math_verifier.verify(candidate)
            if not verification.is_correct:
                return self._math_failure(candidate, verification, alignment, issues + critical)
            if not verification.independent:
                issues.append("Independent math verification was unavailable for this item")

        try:
            rubric = self._rubric(candidate, request, rules)
        except ParseFailure as exc:
            logger.error("[content_validator] rubric unparseable after retries: %s", exc)
            return ValidationResult(
                is_valid=False,
                score=0.0,
                issues=["Validation error occurred"],
                corrections="Validation could not be completed; regenerate the item.",
                topic_alignment=alignment,
            )

        issues.extend(rubric.issues)
        if rubric.corrections:
            corrections.insert(0, rubric.corrections)

        corrected_answer = None
        if rubric.answer_correctness.get("isCorrect") is False:
            actual = rubric.answer_correctness.get("actualCorrectAnswer")
            critical.append(
                f"CRITICAL: The marked correct answer ({candidate.correct_answer}) is incorrect. "
                f"{rubric.answer_correctness.get('explanation') or 'The actual correct answer may be different.'}"
            )
            caps.append(WRONG_ANSWER_CAP)
            if isinstance(actual, str) and actual.strip().upper() in CHOICE_LABELS:
                corrected_answer = actual.strip().upper()
                issues.append(f"The actual correct answer appears to be: {corrected_answer}")

        score = min([rubric.score] + caps)
        result = ValidationResult(
            is_valid=rubric.is_valid,
            score=score,
            issues=issues,
            critical_issues=critical,
            corrections=" ".join(corrections),
            corrected_answer=corrected_answer,
            topic_alignment=alignment,
        )
        logger.info(
            "[content_validator] %s/%s score=%.2f valid=%s critical=%d topic=%s",
            request.section, request.topic, result.score, result.is_valid,
            len(result.critical_issues), alignment.status,
        )
        return result

    def execute(self, payload: ValidateItemInput) -> ValidationResult:
        return self.validate(payload.candidate, payload.request, payload.rules)
