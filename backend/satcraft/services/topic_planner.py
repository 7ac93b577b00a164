"""
Topic Planner: deterministic plan for a (topic, subtopic) leaf.

The plan names the question type, the vocabulary the item must use, the
canonical phrasing, passage constraints and answer-choice style. Sibling
leaves that are easy to confuse (Rhetorical Synthesis vs. summarising
questions, Transitions vs. Synthesis, Textual vs. Quantitative evidence)
carry explicit ``avoid_keywords`` so the generator does not drift into the
neighbouring bucket. No model call is made here.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from satcraft.models.item import TopicPlan
from satcraft.services.taxonomy import display_name, section_for, topic_key

logger = logging.getLogger(__name__)

# (topic key, subtopic) -> plan fields
_LEAF_PLANS: dict[tuple[str, str], dict] = {
    ("standard-english-conventions", "Punctuation"): {
        "question_type": "Punctuation",
        "required_keywords": ("punctuation", "comma", "semicolon", "apostrophe", "colon"),
        "question_phrase": "Which choice completes the text so that it conforms to the conventions of Standard English?",
        "passage_requirements": "Passage must contain a blank where the only difference between choices is punctuation",
        "answer_choice_style": "Choices differ only in punctuation (commas, semicolons, colons, dashes, apostrophes)",
        "topic_alignment": "This question MUST be about punctuation marks, NOT grammar rules, sentence structure, or word meanings",
        "avoid_keywords": ("subject-verb", "verb tense", "transition", "best combines"),
    },
    ("standard-english-conventions", "Sentence Boundaries"): {
        "question_type": "Sentence Boundaries",
        "required_keywords": ("sentence", "fragment", "run-on", "completes the sentence"),
        "question_phrase": "Which choice completes the text so that it conforms to the conventions of Standard English?",
        "passage_requirements": "Passage must contain an incomplete sentence, fragment, or run-on at the blank",
        "answer_choice_style": "Choices join or separate clauses differently (period, semicolon, comma splice, conjunction)",
        "topic_alignment": "This question MUST be about sentence completeness and boundaries, NOT grammar agreement or word choice",
        "avoid_keywords": ("subject-verb", "pronoun", "transition", "best combines"),
    },
    ("standard-english-conventions", "Form, Structure, and Sense"): {
        "question_type": "Form, Structure, and Sense",
        "required_keywords": ("grammatical", "subject-verb", "verb tense", "pronoun", "conventions of Standard English"),
        "question_phrase": "Which choice completes the text so that it conforms to the conventions of Standard English?",
        "passage_requirements": "Passage must contain a grammatical decision (agreement, tense, pronoun, modifier) at the blank",
        "answer_choice_style": "Choices are different grammatical forms of the same word or phrase",
        "topic_alignment": "This question MUST be about GRAMMAR, NOT style, rhetoric, word choice, or transitions",
        "avoid_keywords": ("transition", "best combines", "most nearly means"),
    },
    ("expression-of-ideas", "Rhetorical Synthesis"): {
        "question_type": "Rhetorical Synthesis",
        "required_keywords": ("student wants to", "notes", "most effectively", "combines the information"),
        "question_phrase": "Which choice most effectively uses relevant information from the notes to accomplish this goal?",
        "passage_requirements": "Passage is a bulleted list of notes a student has taken; the question states the student's goal",
        "answer_choice_style": "Choices are different ways of COMBINING information from the notes, NOT summaries of the notes",
        "topic_alignment": "CRITICAL: This is about COMBINING/SYNTHESIZING information, NOT summarizing. Do not use \"summarizes\", \"describes\", or \"indicates\"",
        "avoid_keywords": ("summarizes", "best summarizes", "describes", "indicates", "main idea"),
    },
    ("expression-of-ideas", "Transitions"): {
        "question_type": "Transitions",
        "required_keywords": ("transition", "most logical transition"),
        "question_phrase": "Which choice completes the text with the most logical transition?",
        "passage_requirements": "Passage must have a blank where a transition word/phrase connects two ideas",
        "answer_choice_style": "Choices are transition words/phrases (however, therefore, furthermore, moreover, etc.)",
        "topic_alignment": "This question MUST be about TRANSITIONS connecting ideas, NOT combining information or summarizing",
        "avoid_keywords": ("best combines", "notes", "summarizes", "punctuation"),
    },
    ("information-and-ideas", "Central Ideas and Details"): {
        "question_type": "Central Ideas and Details",
        "required_keywords": ("main idea", "central idea", "best summarizes"),
        "question_phrase": "Which choice best states the main idea of the text?",
        "passage_requirements": "Passage must develop one clear central idea with supporting details",
        "answer_choice_style": "Choices are statements of the text's main idea; distractors are too narrow or too broad",
        "topic_alignment": "This question MUST ask about the CENTRAL IDEA or a key detail, NOT about combining notes or word meanings",
        "avoid_keywords": ("best combines", "synthesizes", "transition", "most nearly means"),
    },
    ("information-and-ideas", "Inferences"): {
        "question_type": "Inferences",
        "required_keywords": ("most logically completes", "infer", "suggests that"),
        "question_phrase": "Which choice most logically completes the text?",
        "passage_requirements": "Passage must build a line of reasoning that ends in a blank the reader completes by inference",
        "answer_choice_style": "Choices are possible conclusions; only one follows logically from the text",
        "topic_alignment": "This question MUST require an INFERENCE from the text, NOT a direct quotation or a grammar decision",
        "avoid_keywords": ("best combines", "transition", "punctuation"),
    },
    ("information-and-ideas", "Command of Evidence (Textual)"): {
        "question_type": "Command of Evidence (Textual)",
        "required_keywords": ("quotation", "best supports", "most clearly supports", "illustrates the claim"),
        "question_phrase": "Which quotation from the text most effectively illustrates the claim?",
        "passage_requirements": "Passage must state a claim that a quotation can support",
        "answer_choice_style": "Choices are direct quotations from the text or the work it describes",
        "topic_alignment": "This question MUST ask about TEXT/QUOTATIONS, NOT data/statistics or word meanings",
        "avoid_keywords": ("table", "graph", "chart", "percent"),
    },
    ("information-and-ideas", "Command of Evidence (Quantitative)"): {
        "question_type": "Command of Evidence (Quantitative)",
        "required_keywords": ("data from the table", "according to the data", "table", "graph"),
        "question_phrase": "Which choice most effectively uses data from the table to complete the statement?",
        "passage_requirements": "Passage MUST reference quantitative information (a table or graph described in words with numbers)",
        "answer_choice_style": "Choices reference specific data points or comparisons from the table/graph",
        "topic_alignment": "This question MUST ask about QUANTITATIVE evidence (data/statistics), NOT text quotes or word meanings",
        "avoid_keywords": ("quotation", "most nearly means", "best combines"),
    },
    ("craft-and-structure", "Words in Context"): {
        "question_type": "Words in Context",
        "required_keywords": ("as used in the text", "most nearly means", "most logical and precise word"),
        "question_phrase": "As used in the text, what does the word \"___\" most nearly mean?",
        "passage_requirements": "Passage must use the target word in a context that determines its meaning",
        "answer_choice_style": "Choices are single words or short phrases; distractors are other meanings of the word",
        "topic_alignment": "This question MUST be about the MEANING of a word or phrase in context, NOT grammar or data",
        "avoid_keywords": ("best combines", "transition", "table"),
    },
    ("craft-and-structure", "Text Structure and Purpose"): {
        "question_type": "Text Structure and Purpose",
        "required_keywords": ("main purpose", "overall structure", "function of"),
        "question_phrase": "Which choice best describes the overall structure of the text?",
        "passage_requirements": "Passage must have a clear rhetorical structure or purpose",
        "answer_choice_style": "Choices describe how the text is organised or what a part of it does",
        "topic_alignment": "This question MUST be about STRUCTURE or PURPOSE of the text, NOT its central idea or data",
        "avoid_keywords": ("best combines", "table", "punctuation"),
    },
    ("craft-and-structure", "Cross-Text Connections"): {
        "question_type": "Cross-Text Connections",
        "required_keywords": ("Text 1", "Text 2", "both texts", "would most likely respond"),
        "question_phrase": "Based on the texts, how would the author of Text 2 most likely respond to Text 1?",
        "passage_requirements": "MUST have EXACTLY TWO passages, clearly labeled \"Text 1:\" and \"Text 2:\"",
        "answer_choice_style": "Choices MUST describe the relationship between the two texts, not one text alone",
        "topic_alignment": "CRITICAL: This is about the CONNECTION between two texts. The question MUST reference BOTH texts explicitly",
        "avoid_keywords": ("best combines", "summarizes", "table"),
    },
}

# Math domains share one plan shape; the subtopic sharpens the phrasing.
_MATH_PLANS: dict[str, dict] = {
    "algebra": {
        "required_keywords": ("linear equation", "slope", "system of equations", "inequality"),
        "answer_choice_style": "Choices are numeric values or linear expressions; distractors reflect sign and distribution errors",
        "avoid_keywords": ("quadratic", "exponential", "percent increase", "radius"),
    },
    "advanced-math": {
        "required_keywords": ("quadratic", "polynomial", "exponential", "equivalent expression"),
        "answer_choice_style": "Choices are values or equivalent expressions; distractors reflect factoring and exponent errors",
        "avoid_keywords": ("slope", "percent increase", "radius", "probability that"),
    },
    "problem-solving-and-data-analysis": {
        "required_keywords": ("ratio of", "percent increase", "probability that", "data set", "mean of"),
        "answer_choice_style": "Choices are quantities with units or percentages; distractors reflect base and unit errors",
        "avoid_keywords": ("quadratic", "radius", "triangle", "slope"),
    },
    "geometry-and-trigonometry": {
        "required_keywords": ("triangle", "angle", "circle", "radius", "area"),
        "answer_choice_style": "Choices are exact values (with pi or radicals where natural); distractors reflect formula errors",
        "avoid_keywords": ("percent increase", "probability that", "quadratic"),
    },
}


def _math_plan(key: str, subtopic: Optional[str]) -> TopicPlan:
    base = _MATH_PLANS[key]
    name = display_name(key)
    leaf = subtopic or name
    return TopicPlan(
        question_type=leaf,
        required_keywords=base["required_keywords"],
        question_phrase=f"Pose a single, self-contained {leaf.lower()} problem with one numeric or algebraic answer",
        passage_requirements="No passage. All information needed to solve the problem appears in the question (and its figure, if any)",
        answer_choice_style=base["answer_choice_style"],
        topic_alignment=f'This question MUST clearly belong to "{name}" > "{leaf}" and use its standard vocabulary',
        avoid_keywords=base["avoid_keywords"],
    )


def _default_plan(topic: str, subtopic: Optional[str]) -> TopicPlan:
    leaf = subtopic or display_name(topic)
    return TopicPlan(
        question_type=leaf,
        question_phrase="Which choice",
        passage_requirements="Passage should be appropriate for the topic and subtopic",
        answer_choice_style="Answer choices should be clear and appropriate",
        topic_alignment=f'This question MUST clearly belong to "{display_name(topic)}" > "{leaf}"',
    )


class TopicPlanner:
    """Maps a (topic, subtopic) leaf to its TopicPlan."""

    @lru_cache(maxsize=128)
    def plan(self, topic: str, subtopic: Optional[str] = None) -> TopicPlan:
        key = topic_key(topic)
        if key is None:
            logger.warning("[topic_planner] unknown topic %r - using default plan", topic)
            return _default_plan(topic, subtopic)

        if section_for(key) == "math":
            return _math_plan(key, subtopic)

        if subtopic:
            for (plan_topic, plan_subtopic), fields in _LEAF_PLANS.items():
                if plan_topic == key and plan_subtopic.lower() == subtopic.strip().lower():
                    return TopicPlan(**fields)

        # Topic-level request: plan for the first leaf of the domain
        if not subtopic:
            for (plan_topic, _), fields in _LEAF_PLANS.items():
                if plan_topic == key:
                    return TopicPlan(**fields)

        logger.info("[topic_planner] no leaf plan for %s > %s - using default plan", key, subtopic)
        return _default_plan(key, subtopic)


_PLANNER: Optional[TopicPlanner] = None


def get_topic_planner() -> TopicPlanner:
    global _PLANNER
    if _PLANNER is None:
        _PLANNER = TopicPlanner()
    return _PLANNER
