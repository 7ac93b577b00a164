"""
Tests for visual fact extraction, VisualValidator and parse_visual.

All tests run fully offline: the visual rubric reply is scripted.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.models.item import RetrievedContext, VisualArtifact, VisualExemplar
from satcraft.services.visual_generator import VisualGenerator, build_visual_prompt, parse_visual
from satcraft.services.visual_validator import (
    DUPLICATE_CAP,
    MISSING_INFO_CAP,
    VisualValidator,
    extract_question_facts,
    find_missing_facts,
)
from fakes import ScriptedProvider, make_candidate, offline_settings

_TRIANGLE = make_candidate(
    question="In right triangle ABC, AB = 6 cm and BC = 8 cm. What is the length of AC?",
    answer_choices=["10 cm", "12 cm", "14 cm", "48 cm"],
    correct_answer="A",
    explanation="By the Pythagorean theorem, 6^2 + 8^2 = 100, so AC = 10.",
    needs_visual=True,
    visual_description="Triangle ABC with legs AB and BC.",
)


def _rubric(score=0.9, missing=None, duplicates=None):
    return {"isValid": True, "score": score, "issues": [], "missingInformation": missing or [],
            "duplicateContent": duplicates or [], "corrections": ""}


# ---------------------------------------------------------------------------
# Fact extraction
# ---------------------------------------------------------------------------

class TestExtractQuestionFacts:
    def test_right_triangle_implies_ninety_degrees(self):
        labels = [f.label for f in extract_question_facts(_TRIANGLE.question)]
        assert "90° angle" in labels
        assert "6 cm" in labels
        assert "AB = 6" in labels

    def test_explicit_angle(self):
        labels = [f.label for f in extract_question_facts("Angle P measures 35 degrees.")]
        assert labels == ["35° angle"]

    def test_relationship(self):
        facts = extract_question_facts("Side AB is twice as long as side CD.")
        assert [f.kind for f in facts] == ["relationship"]
        assert facts[0].present_in("AB is labeled as double the length of CD")

    def test_number_match_is_whole(self):
        assert find_missing_facts("The side is 6 cm.", "A segment of length 16") == ["6 cm"]
        assert find_missing_facts("The side is 6 cm.", "A segment labelled 6") == []


# ---------------------------------------------------------------------------
# VisualValidator
# ---------------------------------------------------------------------------

class TestVisualValidator:
    def test_missing_right_angle_is_critical(self):
        visual = VisualArtifact(kind="diagram",
                                description="Triangle ABC with AB labelled 6 cm and BC labelled 8 cm.")
        validator = VisualValidator(ScriptedProvider([_rubric(score=0.9)]), offline_settings())
        result = validator.validate(_TRIANGLE, visual)

        assert result.is_valid is False
        assert result.score <= MISSING_INFO_CAP
        assert "90° angle" in result.missing_information
        assert "90° angle" in result.corrections

    def test_complete_visual_accepted(self):
        visual = VisualArtifact(
            kind="diagram",
            description="Diagram: a right angle at vertex B; side lengths 6 cm (AB) and 8 cm (BC); hypotenuse unlabeled.",
        )
        validator = VisualValidator(ScriptedProvider([_rubric(score=0.9)]), offline_settings())
        result = validator.validate(_TRIANGLE, visual)

        assert result.missing_information == []
        assert result.is_valid is True
        assert result.score == 0.9

    def test_description_restating_question_is_duplication(self):
        item = make_candidate(question="Which graph shows the function f?", correct_answer="A")
        visual = VisualArtifact(kind="graph", description="Which graph shows the function f?")
        validator = VisualValidator(ScriptedProvider([_rubric(score=0.95)]), offline_settings())
        result = validator.validate(item, visual)

        assert result.is_valid is False
        assert result.score <= DUPLICATE_CAP
        assert result.duplicate_content

    def test_rubric_missing_information_is_merged(self):
        visual = VisualArtifact(description="Diagram: a right angle at vertex B; sides 6 cm (AB) and 8 cm (BC).")
        provider = ScriptedProvider([_rubric(score=0.9, missing=["label for AC"])])
        result = VisualValidator(provider, offline_settings()).validate(_TRIANGLE, visual)
        assert result.missing_information == ["label for AC"]
        assert result.is_valid is False

    def test_rubric_none_string_is_no_findings(self):
        visual = VisualArtifact(
            kind="diagram",
            description="Diagram: a right angle at vertex B; side lengths 6 cm (AB) and 8 cm (BC); hypotenuse unlabeled.",
        )
        reply = {"score": 0.95, "missingInformation": "none", "duplicateContent": "", "issues": "N/A"}
        result = VisualValidator(ScriptedProvider([reply]), offline_settings()).validate(_TRIANGLE, visual)

        assert result.missing_information == []
        assert result.duplicate_content == []
        assert result.is_valid is True
        assert result.score == 0.95

    def test_rubric_single_string_finding_kept_whole(self):
        visual = VisualArtifact(description="Diagram: a right angle at vertex B; sides 6 cm (AB) and 8 cm (BC).")
        reply = {"score": 0.9, "missingInformation": "label for AC"}
        result = VisualValidator(ScriptedProvider([reply]), offline_settings()).validate(_TRIANGLE, visual)
        assert result.missing_information == ["label for AC"]

    def test_empty_description_scores_zero_without_model_call(self):
        provider = ScriptedProvider([])
        result = VisualValidator(provider, offline_settings()).validate(
            _TRIANGLE, VisualArtifact(description=" "))
        assert result.score == 0.0
        assert provider.calls == []

    def test_unparseable_rubric(self):
        visual = VisualArtifact(description="Diagram: a right angle at vertex B; sides 6 cm (AB) and 8 cm (BC).")
        provider = ScriptedProvider(["x", "y", "z"])
        result = VisualValidator(provider, offline_settings()).validate(_TRIANGLE, visual)
        assert result.score == 0.0
        assert result.is_valid is False


# ---------------------------------------------------------------------------
# Visual generation
# ---------------------------------------------------------------------------

class TestParseVisual:
    def test_kind_normalised(self):
        assert parse_visual({"type": "Bar chart", "description": "d"}).kind == "chart"

    def test_unknown_kind_defaults_to_diagram(self):
        assert parse_visual({"type": "sketch", "description": "d"}).kind == "diagram"

    def test_non_svg_markup_dropped(self):
        visual = parse_visual({"description": "d", "svg": "<div>nope</div>"})
        assert visual.svg is None

    def test_svg_kept(self):
        assert parse_visual({"description": "d", "svg": " <svg></svg>"}).svg == "<svg></svg>"

    def test_fallback_description(self):
        assert parse_visual({}, "from the item").description == "from the item"


class TestVisualGenerator:
    def test_prompt_lists_required_facts_and_exemplars(self):
        context = RetrievedContext(
            rules="r", instructions="i",
            visual_exemplars=(VisualExemplar(kind="diagram", description="A labelled right triangle."),),
        )
        prompt = build_visual_prompt(_TRIANGLE, context)
        assert "90° angle" in prompt
        assert "A labelled right triangle." in prompt

    def test_generate_parses_reply(self):
        provider = ScriptedProvider([{"type": "diagram",
                                      "description": "Right triangle ABC with AB = 6 cm, BC = 8 cm."}])
        visual = VisualGenerator(provider, offline_settings()).generate(
            _TRIANGLE, RetrievedContext(rules="r", instructions="i"))
        assert visual.kind == "diagram"
        assert "AB = 6 cm" in visual.description
        assert provider.calls[0]["json_mode"] is True
