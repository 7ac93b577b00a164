from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from satcraft.models.item import GeneratedResult


class TestPhase(str, Enum):
    __test__ = False  # not a pytest class

    NOT_STARTED = "not_started"
    RW_MODULE_1 = "reading_writing_module_1"
    RW_MODULE_2 = "reading_writing_module_2"
    BREAK = "break"
    MATH_MODULE_1 = "math_module_1"
    MATH_MODULE_2 = "math_module_2"
    COMPLETE = "complete"


# phase -> (section, module)
PHASE_SLOTS: dict[TestPhase, tuple[str, int]] = {
    TestPhase.RW_MODULE_1: ("reading-and-writing", 1),
    TestPhase.RW_MODULE_2: ("reading-and-writing", 2),
    TestPhase.MATH_MODULE_1: ("math", 1),
    TestPhase.MATH_MODULE_2: ("math", 2),
}


@dataclass(frozen=True)
class QuestionSelection:
    section: str
    topic: str
    difficulty: str
    question_number: int
    module: int
    subtopic: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "section": self.section,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "difficulty": self.difficulty,
            "questionNumber": self.question_number,
            "module": self.module,
        }


@dataclass
class SessionState:
    current_section: str = "none"   # none | reading-and-writing | math
    current_module: int = 1
    questions_answered: int = 0
    total_questions: int = 98
    correct: int = 0
    incorrect: int = 0
    phase: TestPhase = TestPhase.NOT_STARTED

    def to_dict(self) -> dict:
        return {
            "currentSection": self.current_section,
            "currentModule": self.current_module,
            "questionsAnswered": self.questions_answered,
            "totalQuestions": self.total_questions,
            "performance": {"correct": self.correct, "incorrect": self.incorrect},
            "phase": self.phase.value,
        }


@dataclass
class SessionQuestion:
    selection: QuestionSelection
    result: Optional[GeneratedResult] = None
    user_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    time_spent: Optional[float] = None

    @property
    def answered(self) -> bool:
        return self.user_answer is not None

    def to_dict(self) -> dict:
        return {
            "selection": self.selection.to_dict(),
            "question": self.result.model_dump(mode="json") if self.result else None,
            "userAnswer": self.user_answer,
            "isCorrect": self.is_correct,
            "timeSpent": self.time_spent,
        }


@dataclass
class TestSession:
    __test__ = False  # not a pytest class

    id: str
    owner: str
    state: SessionState
    start_time: float
    questions: list[SessionQuestion] = field(default_factory=list)
    module_start_time: Optional[float] = None
    break_start_time: Optional[float] = None
    # section -> module-2 difficulty mix chosen from module-1 accuracy
    adaptive_mix: dict[str, str] = field(default_factory=dict)

    def answered_in(self, section: str, module: int) -> list[SessionQuestion]:
        return [
            q for q in self.questions
            if q.answered and q.selection.section == section and q.selection.module == module
        ]

    def served_in(self, section: str, module: int) -> int:
        return sum(
            1 for q in self.questions
            if q.selection.section == section and q.selection.module == module
        )

    def pending_question(self) -> Optional[tuple[int, SessionQuestion]]:
        for index, q in enumerate(self.questions):
            if not q.answered:
                return index, q
        return None

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "state": self.state.to_dict(),
            "startTime": self.start_time,
            "moduleStartTime": self.module_start_time,
            "breakStartTime": self.break_start_time,
            "adaptiveMix": dict(self.adaptive_mix),
            "questions": [q.to_dict() for q in self.questions],
        }
