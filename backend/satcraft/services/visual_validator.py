"""
Visual Validator: checks a VisualArtifact against the question it serves.

  COMPLETENESS: every fact extractable from the question text (angles,
    measurements with units, labelled lengths, relationships such as
    "twice as long") must appear in the visual description. Any missing
    fact is critical and caps the score at 0.4.

  DUPLICATION: a description that restates the question (word overlap)
    or repeats its own sentences caps the score at 0.6.

  MODEL RUBRIC: accuracy and suitability, plus its own missingInformation
    and duplicateContent lists, merged with the deterministic findings.

is_valid requires no missing information, no duplication and score >= 0.8
(enforced by VisualValidationResult).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import ParseFailure
from satcraft.models.item import CandidateItem, VisualArtifact, VisualValidationResult
from satcraft.prompts.visuals import VISUAL_VALIDATION_PROMPT, VISUAL_VALIDATOR_SYSTEM_PROMPT
from satcraft.services.ai import CompletionProvider, get_ai_service, request_json
from satcraft.services.steps import ValidateVisualInput
from satcraft.utils.text_checks import jaccard, repeated_sentences

logger = logging.getLogger(__name__)

MISSING_INFO_CAP = 0.4
DUPLICATE_CAP = 0.6
QUESTION_OVERLAP_THRESHOLD = 0.6

_ANGLE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:°|degrees?\b)", re.I)
_UNITS = r"cm|centimeters?|mm|millimeters?|m|meters?|km|kilometers?|inch(?:es)?|ft|feet|foot|yards?|miles?|units?"
_MEASURE_RE = re.compile(rf"(\d+(?:\.\d+)?)\s*({_UNITS})\b", re.I)
_LABELLED_LENGTH_RE = re.compile(r"\b([A-Z]{1,2})\s*=\s*(\d+(?:\.\d+)?)\b")
_RIGHT_ANGLE_RE = re.compile(r"\bright (?:triangle|angle)\b", re.I)

# relationship word -> words that count as showing it
_RELATIONSHIPS: dict[str, tuple[str, ...]] = {
    "twice": ("twice", "double", "2 times", "two times", "2x"),
    "double": ("twice", "double", "2 times", "two times", "2x"),
    "half": ("half", "one-half", "1/2", "0.5"),
    "triple": ("triple", "three times", "3 times", "3x"),
    "three times": ("triple", "three times", "3 times", "3x"),
    "equal": ("equal", "same", "congruent", "="),
    "same": ("equal", "same", "congruent", "="),
    "parallel": ("parallel", "∥"),
    "perpendicular": ("perpendicular", "⊥", "90", "right angle"),
    "congruent": ("congruent", "equal", "same", "≅"),
}
_RELATIONSHIP_RE = re.compile(r"\b(" + "|".join(re.escape(k) for k in _RELATIONSHIPS) + r")\b", re.I)


@dataclass(frozen=True)
class QuestionFact:
    kind: str                    # angle | measurement | relationship
    label: str                   # human-readable, used in issue text
    evidence: tuple[str, ...]    # any of these in the description shows the fact

    def present_in(self, description: str) -> bool:
        text = description.lower()
        for token in self.evidence:
            if re.fullmatch(r"\d+(?:\.\d+)?", token):
                if re.search(rf"(?<![\d.]){re.escape(token)}(?![\d])", text):
                    return True
            elif token.lower() in text:
                return True
        return False


def _number(value: str) -> str:
    return value[:-2] if value.endswith(".0") else value


def extract_question_facts(question: str) -> list[QuestionFact]:
    facts: list[QuestionFact] = []
    seen: set[str] = set()

    def add(fact: QuestionFact):
        if fact.label not in seen:
            seen.add(fact.label)
            facts.append(fact)

    for m in _ANGLE_RE.finditer(question):
        n = _number(m.group(1))
        add(QuestionFact("angle", f"{n}° angle", (n,)))

    if _RIGHT_ANGLE_RE.search(question) and "90° angle" not in seen:
        add(QuestionFact("angle", "90° angle", ("90", "right angle", "∟")))

    for m in _MEASURE_RE.finditer(question):
        n = _number(m.group(1))
        add(QuestionFact("measurement", f"{n} {m.group(2)}", (n,)))

    for m in _LABELLED_LENGTH_RE.finditer(question):
        n = _number(m.group(2))
        add(QuestionFact("measurement", f"{m.group(1)} = {n}", (n,)))

    for m in _RELATIONSHIP_RE.finditer(question):
        word = m.group(1).lower()
        add(QuestionFact("relationship", f'relationship "{word}"', _RELATIONSHIPS[word]))

    return facts


def find_missing_facts(question: str, description: str) -> list[str]:
    return [f.label for f in extract_question_facts(question) if not f.present_in(description or "")]


def find_duplication(question: str, description: str) -> list[str]:
    found = []
    if jaccard(question, description) >= QUESTION_OVERLAP_THRESHOLD:
        found.append("Visual description repeats the question text instead of describing the figure")
    found.extend(f"Repeated content: {s}" for s in repeated_sentences(description))
    return found


def _merge(primary: list[str], extra: list[str]) -> list[str]:
    out = list(primary)
    lowered = {p.lower() for p in out}
    for item in extra:
        if item.lower() not in lowered:
            out.append(item)
            lowered.add(item.lower())
    return out


_NO_FINDINGS = {"", "none", "n/a", "null", "no", "nothing"}


def _findings(value) -> list[str]:
    """Rubric list fields; a lone string counts as one finding unless it says "none"."""
    if isinstance(value, str):
        value = [value]
    elif not isinstance(value, list):
        return []
    items = [str(v).strip() for v in value]
    return [v for v in items if v.lower().rstrip(".") not in _NO_FINDINGS]


class _VisualRubric:
    def __init__(self, data: dict):
        try:
            self.score = float(data.get("score", 0) or 0)
        except (TypeError, ValueError):
            raise ParseFailure("visual rubric score is not a number")
        self.issues = _findings(data.get("issues"))
        self.missing = _findings(data.get("missingInformation"))
        self.duplicates = _findings(data.get("duplicateContent"))
        self.corrections = str(data.get("corrections") or "")


class VisualValidator:
    def __init__(self, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()

    def _rubric(self, candidate: CandidateItem, visual: VisualArtifact) -> _VisualRubric:
        prompt = VISUAL_VALIDATION_PROMPT.format(
            question=candidate.question,
            kind=visual.kind,
            description=visual.description,
        )
        return request_json(
            self.provider,
            self.settings.validator_model,
            [
                {"role": "system", "content": VISUAL_VALIDATOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
            max_tokens=1000,
            attempts=self.settings.parse_retries,
            backoff_seconds=self.settings.parse_backoff_seconds,
            component="visual_validator",
            parser=_VisualRubric,
        )

    def validate(self, candidate: CandidateItem, visual: VisualArtifact) -> VisualValidationResult:
        description = (visual.description or "").strip()
        if not description:
            return VisualValidationResult(
                score=0.0,
                critical_issues=["Visual has no description"],
                missing_information=[f.label for f in extract_question_facts(candidate.question)],
            )

        missing = find_missing_facts(candidate.question, description)
        duplicates = find_duplication(candidate.question, description)

        try:
            rubric = self._rubric(candidate, visual)
        except ParseFailure as exc:
            logger.error("[visual_validator] rubric unparseable after retries: %s", exc)
            return VisualValidationResult(
                score=0.0,
                issues=["Visual validation error occurred"],
                missing_information=missing,
                duplicate_content=duplicates,
            )

        missing = _merge(missing, rubric.missing)
        duplicates = _merge(duplicates, rubric.duplicates)

        caps = [rubric.score]
        critical = []
        issues = list(rubric.issues)
        if missing:
            caps.append(MISSING_INFO_CAP)
            critical.extend(f"Missing information: {m}" for m in missing)
        if duplicates:
            caps.append(DUPLICATE_CAP)
            issues.extend(duplicates)

        corrections = rubric.corrections
        if missing:
            corrections = f"Add to the visual: {', '.join(missing)}. {corrections}".strip()

        result = VisualValidationResult(
            is_valid=True,
            score=min(caps),
            issues=issues,
            critical_issues=critical,
            missing_information=missing,
            duplicate_content=duplicates,
            corrections=corrections,
        )
        logger.info(
            "[visual_validator] score=%.2f valid=%s missing=%d duplicates=%d",
            result.score, result.is_valid, len(missing), len(duplicates),
        )
        return result

    def execute(self, payload: ValidateVisualInput) -> VisualValidationResult:
        return self.validate(payload.candidate, payload.visual)
