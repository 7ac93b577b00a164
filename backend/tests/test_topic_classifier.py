"""
Tests for the rule-based topic classifier and the topic planner.

All tests run fully offline: keyword scoring only, no model calls.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.services.topic_classifier import (
    MATCH_THRESHOLD,
    UNKNOWN_TOPIC,
    classify_question_topic,
    topic_vocabulary,
    validate_topic_match,
)
from satcraft.services.topic_planner import TopicPlanner, get_topic_planner

_PUNCTUATION_PASSAGE = (
    "The botanist Lena Ortiz spent a decade cataloguing mosses in the high Andes ______ "
    "her records now fill twelve binders at the university herbarium in Lima."
)
_PUNCTUATION_QUESTION = (
    "Which choice completes the text so that it conforms to the conventions of Standard English? "
    "Pay attention to the punctuation and the comma."
)


# ---------------------------------------------------------------------------
# classify_question_topic
# ---------------------------------------------------------------------------

class TestClassifyMath:
    def test_circle_question_is_geometry(self):
        result = classify_question_topic(
            "A circle has a radius of 5 cm. What is the area of the circle?", section_hint="math",
        )
        assert result.topic == "Geometry and Trigonometry"
        assert result.confidence > MATCH_THRESHOLD
        assert result.subtopic == "Circles"

    def test_single_keyword_is_not_enough(self):
        result = classify_question_topic("What is the slope?", section_hint="math")
        assert result.topic == UNKNOWN_TOPIC

    def test_math_hint_never_scores_reading_topics(self):
        result = classify_question_topic(
            "Which transition best combines the notes? Find the area of the triangle with angle 30.",
            section_hint="math",
        )
        assert result.topic in ("Geometry and Trigonometry", UNKNOWN_TOPIC)


class TestClassifyReadingWriting:
    def test_punctuation_item(self):
        result = classify_question_topic(_PUNCTUATION_QUESTION, _PUNCTUATION_PASSAGE, "reading-and-writing")
        assert result.topic == "Standard English Conventions"
        assert result.subtopic == "Punctuation"
        assert result.is_confident

    def test_two_labelled_passages_imply_cross_text(self):
        passage = "Text 1: Some ecologists argue wolves reshape rivers. Text 2: Others say beavers matter more."
        question = "Based on the texts, how would the author of Text 2 most likely respond to Text 1?"
        result = classify_question_topic(question, passage, "reading-and-writing")
        assert result.topic == "Craft and Structure"
        assert result.subtopic == "Cross-Text Connections"

    def test_synthesis_beats_summary_leaf(self):
        question = (
            "While researching a topic, a student has taken the following notes. The student wants to "
            "emphasize a similarity. Which choice most effectively combines the information from the notes?"
        )
        result = classify_question_topic(question, "- Note one\n- Note two", "reading-and-writing")
        assert result.topic == "Expression of Ideas"
        assert result.subtopic == "Rhetorical Synthesis"

    def test_summary_phrase_prefers_information_and_ideas(self):
        question = "Which choice best summarizes the text?"
        result = classify_question_topic(question, "A passage about glaciers.", "reading-and-writing")
        assert result.topic == "Information and Ideas"

    def test_math_notation_penalises_reading_topics(self):
        question = "Which choice best summarizes the equation 2 + 2 = 4?"
        result = classify_question_topic(question, None, "reading-and-writing")
        assert result.confidence < 0.7

    def test_nothing_recognisable_is_unknown(self):
        result = classify_question_topic("Pick one.", None, "reading-and-writing")
        assert result.topic == UNKNOWN_TOPIC
        assert not result.is_confident


# ---------------------------------------------------------------------------
# validate_topic_match
# ---------------------------------------------------------------------------

class TestValidateTopicMatch:
    def test_match(self):
        alignment = validate_topic_match(
            "A circle has a radius of 5 cm. What is the area of the circle?",
            "geometry-and-trigonometry", "Circles", section_hint="math",
        )
        assert alignment.status == "match"
        assert alignment.requested_topic == "Geometry and Trigonometry"

    def test_confident_mismatch(self):
        alignment = validate_topic_match(
            _PUNCTUATION_QUESTION, "craft-and-structure", "Words in Context",
            passage=_PUNCTUATION_PASSAGE, section_hint="reading-and-writing",
        )
        assert alignment.status == "mismatch"
        assert alignment.is_confident_mismatch
        assert alignment.actual_topic == "Standard English Conventions"
        assert "CRITICAL" in alignment.issue

    def test_subtopic_mismatch(self):
        alignment = validate_topic_match(
            _PUNCTUATION_QUESTION, "standard-english-conventions", "Sentence Boundaries",
            passage=_PUNCTUATION_PASSAGE, section_hint="reading-and-writing",
        )
        assert alignment.status == "subtopic_mismatch"
        assert not alignment.is_confident_mismatch

    def test_low_confidence_is_unknown_not_mismatch(self):
        alignment = validate_topic_match("Pick one.", "craft-and-structure", section_hint="reading-and-writing")
        assert alignment.status == "unknown"
        assert not alignment.is_confident_mismatch
        assert "Low confidence" in alignment.issue

    def test_display_name_accepted_as_request(self):
        alignment = validate_topic_match(
            "A circle has a radius of 5 cm. What is the area of the circle?",
            "Geometry and Trigonometry", section_hint="math",
        )
        assert alignment.status == "match"


class TestTopicVocabulary:
    def test_includes_subtopic_words(self):
        words = topic_vocabulary("Geometry and Trigonometry", "Circles")
        assert "triangle" in words
        assert "circumference" in words

    def test_unknown_topic(self):
        assert topic_vocabulary("Unknown") == []


# ---------------------------------------------------------------------------
# TopicPlanner
# ---------------------------------------------------------------------------

class TestTopicPlanner:
    def test_synthesis_and_summary_vocabularies_are_disjoint(self):
        planner = TopicPlanner()
        synthesis = planner.plan("expression-of-ideas", "Rhetorical Synthesis")
        summary = planner.plan("information-and-ideas", "Central Ideas and Details")
        assert not set(synthesis.required_keywords) & set(summary.required_keywords)
        assert "best summarizes" in synthesis.avoid_keywords or "summarizes" in synthesis.avoid_keywords
        assert "best combines" in summary.avoid_keywords

    def test_plan_is_deterministic(self):
        planner = TopicPlanner()
        assert planner.plan("craft-and-structure", "Words in Context") == \
            planner.plan("craft-and-structure", "Words in Context")

    def test_subtopic_lookup_is_case_insensitive(self):
        plan = TopicPlanner().plan("standard-english-conventions", "punctuation")
        assert plan.question_type == "Punctuation"

    def test_math_plan_has_no_passage(self):
        plan = TopicPlanner().plan("geometry-and-trigonometry", "Circles")
        assert plan.question_type == "Circles"
        assert "No passage" in plan.passage_requirements
        assert "circle" in plan.required_keywords

    def test_unknown_topic_gets_default_plan(self):
        plan = TopicPlanner().plan("underwater-basket-weaving")
        assert plan.required_keywords == ()
        assert "underwater-basket-weaving" in plan.topic_alignment

    def test_singleton(self):
        assert get_topic_planner() is get_topic_planner()
