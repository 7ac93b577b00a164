"""
Tests for ContentGenerator output parsing and prompt assembly.

All tests run fully offline: the model is a ScriptedProvider.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.core.errors import ParseFailure
from satcraft.models.item import GenerationRequest, RetrievedContext, ValidationResult, WorkedExample
from satcraft.services.content_generator import ContentGenerator, build_generation_prompt, parse_candidate
from satcraft.services.topic_planner import TopicPlanner
from fakes import ScriptedProvider, offline_settings

_REQUEST = GenerationRequest(section="reading-and-writing", topic="expression-of-ideas",
                             subtopic="Rhetorical Synthesis", difficulty="hard")
_CONTEXT = RetrievedContext(
    rules="Exactly four choices.",
    instructions="Section: reading-and-writing",
    examples=(WorkedExample(prompt="Which choice most effectively uses the notes?", answer="C"),),
)


def _raw(**overrides):
    data = {
        "question": "A circle has a radius of 5 cm. What is the area of the circle?",
        "answerChoices": ["A) 10π", "B) 25π", "C. 5π", "D: 100π"],
        "correctAnswer": "B",
        "explanation": "Area = πr^2 = 25π.",
        "needsVisual": False,
        "visualDescription": None,
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# parse_candidate
# ---------------------------------------------------------------------------

class TestParseCandidate:
    def test_labels_stripped(self):
        item = parse_candidate(_raw())
        assert item.answer_choices == ["10π", "25π", "5π", "100π"]
        assert item.correct_answer == "B"

    def test_answer_given_as_choice_text(self):
        assert parse_candidate(_raw(correctAnswer="25π")).correct_answer == "B"

    def test_answer_in_parentheses(self):
        assert parse_candidate(_raw(correctAnswer="(c)")).correct_answer == "C"

    def test_answer_with_prefix(self):
        assert parse_candidate(_raw(correctAnswer="Option D")).correct_answer == "D"

    def test_unknown_answer_rejected(self):
        with pytest.raises(ParseFailure):
            parse_candidate(_raw(correctAnswer="E"))

    def test_answer_beyond_choices_rejected(self):
        with pytest.raises(ParseFailure):
            parse_candidate(_raw(answerChoices=["1", "2", "3"], correctAnswer="D"))

    def test_missing_question_rejected(self):
        with pytest.raises(ParseFailure):
            parse_candidate(_raw(question="  "))

    def test_visual_flag_without_description_dropped(self):
        item = parse_candidate(_raw(needsVisual=True, visualDescription="null"))
        assert item.needs_visual is False
        assert item.visual_description is None

    def test_visual_kept_with_description(self):
        item = parse_candidate(_raw(needsVisual=True, visualDescription="A circle with radius 5 cm."))
        assert item.needs_visual is True

    def test_choices_as_mapping(self):
        item = parse_candidate(_raw(answerChoices={"B": "25π", "A": "10π", "D": "100π", "C": "5π"}))
        assert item.answer_choices == ["10π", "25π", "5π", "100π"]


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------

class TestGenerationPrompt:
    def test_plan_and_examples_included(self):
        plan = TopicPlanner().plan(_REQUEST.topic, _REQUEST.subtopic)
        prompt = build_generation_prompt(_REQUEST, _CONTEXT, plan)

        assert "Expression of Ideas" in prompt
        assert "Which choice most effectively uses the notes?" in prompt
        assert "Do NOT use:" in prompt

    def test_feedback_and_escalation_included(self):
        plan = TopicPlanner().plan(_REQUEST.topic, _REQUEST.subtopic)
        feedback = ValidationResult(score=0.3, issues=["Stem asks for a summary"], corrections="Ask to combine notes.")
        prompt = build_generation_prompt(_REQUEST, _CONTEXT, plan, feedback, "REPEATED TOPIC MISMATCH")

        assert "Stem asks for a summary" in prompt
        assert "Ask to combine notes." in prompt
        assert "REPEATED TOPIC MISMATCH" in prompt

    def test_valid_feedback_not_repeated(self):
        plan = TopicPlanner().plan(_REQUEST.topic, _REQUEST.subtopic)
        feedback = ValidationResult(is_valid=True, score=0.9, issues=["minor wording"])
        assert "minor wording" not in build_generation_prompt(_REQUEST, _CONTEXT, plan, feedback)


class TestContentGenerator:
    def test_unusable_output_is_retried(self):
        provider = ScriptedProvider([{"answerChoices": ["1", "2", "3", "4"]}, _raw()])
        plan = TopicPlanner().plan(_REQUEST.topic, _REQUEST.subtopic)
        item = ContentGenerator(provider, offline_settings()).generate(_REQUEST, _CONTEXT, plan)

        assert item.correct_answer == "B"
        assert len(provider.calls) == 2
        assert provider.calls[0]["model"] == "gpt-4o"
