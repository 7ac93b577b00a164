"""
Rule-based topic/subtopic classifier for generated SAT items.

Scores every candidate topic by keyword overlap with the question (and
passage), applies domain boosts and penalties, and returns the best match
with a confidence in [0, 1]:

  - Math topics need at least MATH_MIN_MATCHES keyword hits to score at all.
  - A supporting passage boosts Reading & Writing topics.
  - Two labelled passages / relationship wording force Cross-Text Connections.
  - "combines / synthesizes" wording favours Expression of Ideas, while
    "summarizes / describes" wording favours Information and Ideas.
  - Mathematical notation penalises every Reading & Writing topic.

The classification is a best-effort heuristic. A result at or below
MATCH_THRESHOLD is reported as "Unknown" so validation can treat it as a
low-confidence signal rather than a confident mismatch. All weights below
are hand-tuned and meant to be adjusted, not relied on as exact values.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from satcraft.models.item import TopicAlignment
from satcraft.services.taxonomy import TOPIC_MAPPINGS, display_name, topic_key

MATCH_THRESHOLD = 0.3
MATH_MIN_MATCHES = 2
MATH_SATURATION = 4          # keyword hits for full confidence (math)
RW_SATURATION = 4            # keyword hits for full confidence (reading & writing)
PASSAGE_BOOST = 1.5
CROSS_TEXT_FLOOR = 0.7
CROSS_TEXT_BOOST = 1.3
SYNTHESIS_FLOOR = 0.8
SUMMARY_PENALTY = 0.4
SUMMARY_FLOOR = 0.7
SYNTHESIS_PENALTY = 0.3
MATH_NOTATION_PENALTY = 0.3

UNKNOWN_TOPIC = "Unknown"

MATH_TOPICS: dict[str, dict] = {
    "algebra": {
        "keywords": ["slope", "linear equation", "linear function", "system of equations",
                     "inequality", "y = mx + b", "coordinate", "graph of line",
                     "x-intercept", "y-intercept"],
        "subtopics": {
            "Linear equations in 1 variable": ["solve for x", "linear equation", "one variable"],
            "Linear equations in 2 variables": ["two variables", "x and y", "coordinate"],
            "Linear functions": ["linear function", "f(x)", "function"],
            "Systems of 2 linear equations in 2 variables": ["system", "two equations", "two variables"],
            "Linear inequalities in 1 or 2 variables": ["inequality", "greater than", "less than", "<", ">"],
        },
    },
    "geometry-and-trigonometry": {
        "keywords": ["triangle", "angle", "circle", "area", "volume", "perimeter", "radius",
                     "diameter", "sine", "cosine", "tangent", "trigonometry", "geometry",
                     "degrees", "right triangle", "pythagorean"],
        "subtopics": {
            "Area and volume formulas": ["area", "volume", "surface area", "formula"],
            "Lines, angles, and triangles": ["line", "angle", "triangle", "parallel",
                                             "perpendicular", "degrees"],
            "Right triangles and trigonometry": ["right triangle", "trigonometry", "sine",
                                                 "cosine", "tangent", "pythagorean"],
            "Circles": ["circle", "radius", "diameter", "circumference", "arc"],
        },
    },
    "advanced-math": {
        "keywords": ["quadratic", "polynomial", "exponential", "logarithm", "radical",
                     "rational", "complex number", "imaginary"],
        "subtopics": {
            "Equivalent expressions": ["equivalent", "simplify", "expression"],
            "Nonlinear equations in 1 variable": ["quadratic", "polynomial", "nonlinear"],
            "Systems of equations in 2 variables": ["system", "nonlinear"],
            "Nonlinear functions": ["quadratic function", "exponential", "logarithm"],
        },
    },
    "problem-solving-and-data-analysis": {
        # Specific phrases so "data" in a reading passage does not match
        "keywords": ["ratio of", "percentage of", "percent increase", "percent decrease",
                     "probability that", "statistical", "data set", "data point",
                     "scatterplot", "mean of", "median of", "mode of", "standard deviation",
                     "sample size", "margin of error"],
        "subtopics": {
            "Ratios, rates, proportional relationships, and units": ["ratio", "rate",
                                                                     "proportional", "unit"],
            "Percentages": ["percent", "percentage"],
            "One-variable data: distributions and measures of center and spread": [
                "mean", "median", "mode", "distribution", "spread"],
            "Two-variable data: models and scatterplots": ["scatterplot", "correlation",
                                                           "two variable"],
            "Probability and conditional probability": ["probability", "chance", "likely"],
            "Inference from sample statistics and margin of error": ["sample", "inference",
                                                                      "margin of error"],
            "Evaluating statistical claims: observational studies and experiments": [
                "study", "experiment", "claim"],
        },
    },
}

READING_WRITING_TOPICS: dict[str, dict] = {
    "information-and-ideas": {
        "keywords": [
            "main idea", "central idea", "primary purpose", "infer", "imply", "suggest",
            "evidence", "support", "summarize", "summarizes", "best summarizes",
            "most accurately summarizes", "describes", "indicates", "suggests that",
            "implies that", "concludes that", "according to the passage",
            "the passage indicates", "the passage suggests", "what does the passage",
            "what is the main", "what is the primary",
        ],
        "subtopics": {
            "Central Ideas and Details": ["main idea", "central idea", "primary purpose",
                                          "key point", "main point", "central point",
                                          "primary focus", "main focus"],
            "Inferences": ["infer", "imply", "can be inferred", "most likely",
                           "probably means", "suggests that", "implies that",
                           "logically completes"],
            "Command of Evidence (Textual)": [
                "quotation from the passage", "quotation", "statement from the passage",
                "text from the passage", "which quote", "passage states", "author states",
                "best supports", "most clearly supports", "illustrates the claim"],
            "Command of Evidence (Quantitative)": [
                "data from", "statistic", "chart", "graph", "table", "data in", "which data",
                "numerical", "percentage", "percent", "according to the data",
                "according to the table", "according to the graph", "according to the chart"],
        },
    },
    "craft-and-structure": {
        "keywords": ["word in context", "meaning", "tone", "purpose", "structure",
                     "organization", "compare", "contrast", "as used in the text",
                     "most logical and precise word", "both passages", "overall structure"],
        "subtopics": {
            "Words in Context": ["as used in the text", "most nearly means", "nearly means",
                                 "most closely", "precise word", "word or phrase"],
            "Text Structure and Purpose": ["structure", "organization", "main purpose",
                                           "function of", "tone"],
            "Cross-Text Connections": [
                "passage 1", "passage 2", "text 1", "text 2", "both passages", "both texts",
                "two passages", "first passage", "second passage", "relate", "relationship",
                "differ", "similar", "agree", "disagree", "perspective", "viewpoint",
                "how do the passages", "between the passages", "would most likely respond"],
        },
    },
    "expression-of-ideas": {
        "keywords": [
            "transition", "synthesis", "combine", "revise", "improve", "rhetorical synthesis",
            "synthesize", "synthesizes", "synthesizing", "best combines",
            "most effectively combines", "which choice most effectively",
            "writer wants to", "student wants to", "most effectively", "best introduces",
            "most logical transition", "notes",
        ],
        "subtopics": {
            "Rhetorical Synthesis": [
                "synthesis", "combine", "integrate", "synthesize", "synthesizing",
                "best combines", "most effectively combines", "combines the information",
                "synthesizes the information", "integrates the information",
                "relevant information from the notes", "student wants to", "notes"],
            "Transitions": [
                "transition", "however", "therefore", "furthermore", "moreover",
                "nevertheless", "most appropriate transition", "which transition",
                "most logical transition", "logical transition"],
        },
    },
    "standard-english-conventions": {
        "keywords": [
            "grammar", "punctuation", "comma", "semicolon", "apostrophe", "grammatical",
            "grammatically", "conventions of standard english", "run-on", "fragment",
            "subject-verb", "verb tense", "pronoun", "colon",
        ],
        "subtopics": {
            "Sentence Boundaries": ["fragment", "run-on", "complete sentence", "incomplete",
                                    "completes the sentence", "sentence boundary"],
            "Form, Structure, and Sense": [
                "grammar", "grammatical", "grammatically", "subject-verb", "agreement",
                "verb tense", "verb form", "parallel structure", "pronoun", "plural",
                "possessive", "conventions of standard english"],
            "Punctuation": ["punctuation", "comma", "semicolon", "apostrophe", "colon",
                            "dash", "hyphen", "parentheses"],
        },
    },
}

_TWO_PASSAGES_RE = re.compile(r"passage\s*1|passage\s*2|text\s*1|text\s*2|first passage|second passage", re.I)
_RELATIONSHIP_RE = re.compile(
    r"both passages|both texts|two passages|\brelate|relationship|\bdiffer|compare|contrast|between the passages",
    re.I,
)
_SYNTHESIS_RE = re.compile(
    r"best combines|most effectively combines|synthesizes|synthesizing|integrates|combines the information",
    re.I,
)
_SUMMARY_RE = re.compile(
    r"best summarizes|most accurately summarizes|summarizes|describes|indicates that|according to the passage",
    re.I,
)
_MATH_NOTATION_RE = re.compile(
    r"\$|\\frac|\bequation|solve for|calculate|graph of|\bslope|\bangle|triangle|\bcircle"
    r"|\barea\b|\bvolume|perimeter|radius|diameter|\d\s*[+*/×÷=^]\s*\d"
)
_LIKELY_MATH_RE = re.compile(
    r"\$|\\frac|equation|solve|calculate|graph|slope|angle|triangle|circle|area|volume", re.I
)


@dataclass(frozen=True)
class TopicClassification:
    topic: str                       # display name, or "Unknown"
    confidence: float
    subtopic: Optional[str] = None
    topic_key: Optional[str] = None

    @property
    def is_confident(self) -> bool:
        return self.topic != UNKNOWN_TOPIC and self.confidence > MATCH_THRESHOLD


@lru_cache(maxsize=512)
def _keyword_re(keyword: str) -> re.Pattern:
    # whole-word match, tolerating plural suffixes ("circles", "passages")
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?:s|es)?(?![a-z0-9])")


def _count_hits(text: str, keywords: list[str]) -> int:
    return sum(1 for kw in keywords if _keyword_re(kw).search(text))


def _best_subtopic(text: str, subtopics: dict[str, list[str]]) -> Optional[str]:
    best, best_hits = None, 0
    for name, keywords in subtopics.items():
        hits = _count_hits(text, keywords)
        if hits > best_hits:
            best, best_hits = name, hits
    return best


def _score_math(text: str) -> list[TopicClassification]:
    out = []
    for key, data in MATH_TOPICS.items():
        hits = _count_hits(text, data["keywords"])
        if hits < MATH_MIN_MATCHES:
            continue
        confidence = min(1.0, hits / MATH_SATURATION)
        out.append(TopicClassification(
            topic=TOPIC_MAPPINGS[key]["display_name"],
            confidence=confidence,
            subtopic=_best_subtopic(text, data["subtopics"]),
            topic_key=key,
        ))
    return out


def _score_reading_writing(text: str, has_passage: bool) -> list[TopicClassification]:
    out = []
    has_math_notation = bool(_MATH_NOTATION_RE.search(text))
    for key, data in READING_WRITING_TOPICS.items():
        hits = _count_hits(text, data["keywords"])
        subtopic = _best_subtopic(text, data["subtopics"])
        confidence = min(1.0, hits / RW_SATURATION)

        if has_passage and confidence > 0:
            confidence = min(1.0, confidence * PASSAGE_BOOST)

        if key == "craft-and-structure":
            two_passages = len(_TWO_PASSAGES_RE.findall(text)) >= 2
            relationship = bool(_RELATIONSHIP_RE.search(text))
            if two_passages:
                subtopic = "Cross-Text Connections"
            if two_passages or (relationship and subtopic == "Cross-Text Connections"):
                confidence = max(confidence, CROSS_TEXT_FLOOR)
                if two_passages and relationship:
                    confidence = min(1.0, confidence * CROSS_TEXT_BOOST)

        if key == "expression-of-ideas":
            if _SYNTHESIS_RE.search(text):
                confidence = max(confidence, SYNTHESIS_FLOOR)
                subtopic = "Rhetorical Synthesis"
            if _SUMMARY_RE.search(text):
                confidence *= SUMMARY_PENALTY

        if key == "information-and-ideas":
            if _SYNTHESIS_RE.search(text):
                confidence *= SYNTHESIS_PENALTY
            elif _SUMMARY_RE.search(text):
                confidence = max(confidence, SUMMARY_FLOOR)

        if has_math_notation:
            confidence *= MATH_NOTATION_PENALTY

        out.append(TopicClassification(
            topic=TOPIC_MAPPINGS[key]["display_name"],
            confidence=round(confidence, 4),
            subtopic=subtopic,
            topic_key=key,
        ))
    return out


def classify_question_topic(
    question: str,
    passage: Optional[str] = None,
    section_hint: Optional[str] = None,
) -> TopicClassification:
    """Return the best-matching topic for an item; "Unknown" when nothing clears the threshold."""
    text = f"{passage or ''} {question or ''}".lower()
    has_passage = bool(passage and passage.strip())
    hint = (section_hint or "").lower()
    rw_hint = hint in ("reading-writing", "reading-and-writing")

    candidates: list[TopicClassification] = []
    if not has_passage and not rw_hint:
        if hint == "math" or _LIKELY_MATH_RE.search(question or ""):
            candidates.extend(_score_math(text))
    if has_passage or rw_hint or hint != "math":
        candidates.extend(_score_reading_writing(text, has_passage))

    best: Optional[TopicClassification] = None
    for c in candidates:
        if best is None or c.confidence > best.confidence:
            best = c

    if best is None or best.confidence <= MATCH_THRESHOLD:
        return TopicClassification(
            topic=UNKNOWN_TOPIC,
            confidence=best.confidence if best else 0.0,
            subtopic=None,
            topic_key=None,
        )
    return best


def validate_topic_match(
    question: str,
    requested_topic: str,
    requested_subtopic: Optional[str] = None,
    passage: Optional[str] = None,
    section_hint: Optional[str] = None,
) -> TopicAlignment:
    """Compare the classified topic of an item against the requested one."""
    result = classify_question_topic(question, passage, section_hint)
    requested = display_name(requested_topic)

    if not result.is_confident:
        return TopicAlignment(
            status="unknown",
            requested_topic=requested,
            actual_topic=UNKNOWN_TOPIC,
            confidence=result.confidence,
            issue=(
                f"Low confidence ({result.confidence:.2f}) in topic classification. "
                f'Question may not clearly belong to "{requested}".'
            ),
        )

    if result.topic.lower() != requested.lower():
        return TopicAlignment(
            status="mismatch",
            requested_topic=requested,
            actual_topic=result.topic,
            actual_subtopic=result.subtopic,
            confidence=result.confidence,
            issue=(
                f'Question is classified as "{result.topic}" but requested topic is '
                f'"{requested}". This is a CRITICAL mismatch.'
            ),
        )

    if requested_subtopic and result.subtopic and \
            result.subtopic.lower() != requested_subtopic.lower():
        return TopicAlignment(
            status="subtopic_mismatch",
            requested_topic=requested,
            actual_topic=result.topic,
            actual_subtopic=result.subtopic,
            confidence=result.confidence,
            issue=(
                f'Question subtopic "{result.subtopic}" does not match requested '
                f'subtopic "{requested_subtopic}".'
            ),
        )

    return TopicAlignment(
        status="match",
        requested_topic=requested,
        actual_topic=result.topic,
        actual_subtopic=result.subtopic,
        confidence=result.confidence,
    )


def topic_vocabulary(topic: str, subtopic: Optional[str] = None) -> list[str]:
    """Characteristic keywords of a topic (and one of its subtopics, when given)."""
    key = topic_key(topic)
    data = MATH_TOPICS.get(key) or READING_WRITING_TOPICS.get(key)
    if not data:
        return []
    words = list(data["keywords"])
    if subtopic and subtopic in data["subtopics"]:
        words.extend(w for w in data["subtopics"][subtopic] if w not in words)
    return words
