from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Literal

Section = Literal["math", "reading-and-writing"]
Difficulty = Literal["easy", "medium", "hard"]
VisualKind = Literal["graph", "table", "diagram", "chart", "image"]

CHOICE_LABELS = ("A", "B", "C", "D")
ACCEPTANCE_THRESHOLD = 0.8

_SECTION_ALIASES = {
    "reading-writing": "reading-and-writing",
    "reading and writing": "reading-and-writing",
    "reading & writing": "reading-and-writing",
    "rw": "reading-and-writing",
}


def normalise_section(value):
    if not isinstance(value, str):
        return value
    v = value.strip().lower()
    return _SECTION_ALIASES.get(v, v)


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    section: Section
    topic: str
    subtopic: str | None = None
    difficulty: Difficulty
    custom_context: str | None = None

    @field_validator("section", mode="before")
    @classmethod
    def _normalise_section(cls, v):
        return normalise_section(v)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lowercase_difficulty(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be empty")
        return v.strip()

    @field_validator("subtopic", "custom_context")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class WorkedExample(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    answer: str
    explanation: str | None = None


class VisualExemplar(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = "diagram"
    description: str


class RetrievedContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    rules: str
    instructions: str
    examples: tuple[WorkedExample, ...] = ()
    visual_exemplars: tuple[VisualExemplar, ...] = ()
    degraded: bool = False  # True when the generic fallback context was substituted


class TopicPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_type: str
    required_keywords: tuple[str, ...] = ()
    question_phrase: str
    passage_requirements: str
    answer_choice_style: str
    topic_alignment: str
    avoid_keywords: tuple[str, ...] = ()


class CandidateItem(BaseModel):
    question: str
    passage: str | None = None
    answer_choices: list[str]
    correct_answer: str
    explanation: str | None = None
    needs_visual: bool = False
    visual_description: str | None = None

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _upper_label(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_invariants(self):
        if self.correct_answer not in CHOICE_LABELS:
            raise ValueError(f"correct_answer must be one of {', '.join(CHOICE_LABELS)}")
        if CHOICE_LABELS.index(self.correct_answer) >= len(self.answer_choices):
            raise ValueError("correct_answer does not address an existing choice")
        if self.needs_visual and not (self.visual_description or "").strip():
            raise ValueError("visual_description is required when needs_visual is set")
        return self

    @property
    def correct_index(self) -> int:
        return CHOICE_LABELS.index(self.correct_answer)

    def with_answer(self, label: str) -> "CandidateItem":
        return CandidateItem(**{**self.model_dump(), "correct_answer": label})


class TopicAlignment(BaseModel):
    # match | subtopic_mismatch | mismatch (confident) | unknown (low confidence)
    status: Literal["match", "subtopic_mismatch", "mismatch", "unknown"]
    requested_topic: str
    actual_topic: str
    actual_subtopic: str | None = None
    confidence: float = 0.0
    issue: str | None = None

    @property
    def is_confident_mismatch(self) -> bool:
        return self.status == "mismatch"


class ValidationResult(BaseModel):
    is_valid: bool = False
    score: float = 0.0
    issues: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    corrections: str = ""
    corrected_answer: str | None = None
    explanation_errors: list[str] = Field(default_factory=list)
    topic_alignment: TopicAlignment | None = None

    @model_validator(mode="after")
    def _enforce_acceptance(self):
        self.score = max(0.0, min(1.0, float(self.score)))
        for issue in self.critical_issues:
            if issue not in self.issues:
                self.issues.append(issue)
        if self.score < ACCEPTANCE_THRESHOLD or self.critical_issues:
            self.is_valid = False
        if self.corrected_answer is not None:
            label = self.corrected_answer.strip().upper()
            self.corrected_answer = label if label in CHOICE_LABELS else None
        return self


class VisualArtifact(BaseModel):
    kind: VisualKind = "diagram"
    description: str
    data: Any | None = None
    svg: str | None = None
    needs_regeneration: bool = False


class VisualValidationResult(BaseModel):
    is_valid: bool = False
    score: float = 0.0
    issues: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    missing_information: list[str] = Field(default_factory=list)
    duplicate_content: list[str] = Field(default_factory=list)
    corrections: str = ""

    @model_validator(mode="after")
    def _enforce_acceptance(self):
        self.score = max(0.0, min(1.0, float(self.score)))
        for issue in self.critical_issues:
            if issue not in self.issues:
                self.issues.append(issue)
        if (
            self.score < ACCEPTANCE_THRESHOLD
            or self.missing_information
            or self.duplicate_content
            or self.critical_issues
        ):
            self.is_valid = False
        return self


class GenerationMetadata(BaseModel):
    section: Section
    topic: str
    subtopic: str | None = None
    difficulty: Difficulty
    generation_time_ms: int
    text_iterations: int
    visual_iterations: int = 0
    total_iterations: int
    final_score: float
    visual_score: float | None = None
    accepted_below_target: bool = False
    degraded_context: bool = False


class GeneratedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: CandidateItem
    visual: VisualArtifact | None = None
    metadata: GenerationMetadata
