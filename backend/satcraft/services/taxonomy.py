"""SAT content taxonomy: sections -> topics (domains) -> subtopics (skills)."""
from __future__ import annotations

from typing import Optional

TOPIC_MAPPINGS: dict[str, dict] = {
    # Math
    "algebra": {
        "display_name": "Algebra",
        "section": "math",
        "subtopics": [
            "Linear equations in 1 variable",
            "Linear equations in 2 variables",
            "Linear functions",
            "Systems of 2 linear equations in 2 variables",
            "Linear inequalities in 1 or 2 variables",
        ],
    },
    "advanced-math": {
        "display_name": "Advanced Math",
        "section": "math",
        "subtopics": [
            "Equivalent expressions",
            "Nonlinear equations in 1 variable",
            "Systems of equations in 2 variables",
            "Nonlinear functions",
        ],
    },
    "problem-solving-and-data-analysis": {
        "display_name": "Problem-Solving and Data Analysis",
        "section": "math",
        "subtopics": [
            "Ratios, rates, proportional relationships, and units",
            "Percentages",
            "One-variable data: distributions and measures of center and spread",
            "Two-variable data: models and scatterplots",
            "Probability and conditional probability",
            "Inference from sample statistics and margin of error",
            "Evaluating statistical claims: observational studies and experiments",
        ],
    },
    "geometry-and-trigonometry": {
        "display_name": "Geometry and Trigonometry",
        "section": "math",
        "subtopics": [
            "Area and volume formulas",
            "Lines, angles, and triangles",
            "Right triangles and trigonometry",
            "Circles",
        ],
    },
    # Reading & Writing
    "information-and-ideas": {
        "display_name": "Information and Ideas",
        "section": "reading-and-writing",
        "subtopics": [
            "Central Ideas and Details",
            "Inferences",
            "Command of Evidence (Textual)",
            "Command of Evidence (Quantitative)",
        ],
    },
    "craft-and-structure": {
        "display_name": "Craft and Structure",
        "section": "reading-and-writing",
        "subtopics": [
            "Words in Context",
            "Text Structure and Purpose",
            "Cross-Text Connections",
        ],
    },
    "expression-of-ideas": {
        "display_name": "Expression of Ideas",
        "section": "reading-and-writing",
        "subtopics": [
            "Rhetorical Synthesis",
            "Transitions",
        ],
    },
    "standard-english-conventions": {
        "display_name": "Standard English Conventions",
        "section": "reading-and-writing",
        "subtopics": [
            "Sentence Boundaries",
            "Form, Structure, and Sense",
            "Punctuation",
        ],
    },
}


def topic_key(topic: str) -> Optional[str]:
    """Resolve a folder key ("geometry-and-trigonometry") or display name to its key."""
    if not topic:
        return None
    normalized = topic.strip().lower().replace(" ", "-")
    if normalized in TOPIC_MAPPINGS:
        return normalized
    for key, mapping in TOPIC_MAPPINGS.items():
        if mapping["display_name"].lower() == topic.strip().lower():
            return key
    return None


def display_name(topic: str) -> str:
    key = topic_key(topic)
    return TOPIC_MAPPINGS[key]["display_name"] if key else topic


def subtopics_for(topic: str) -> list[str]:
    key = topic_key(topic)
    return list(TOPIC_MAPPINGS[key]["subtopics"]) if key else []


def topics_for_section(section: str) -> list[str]:
    return [k for k, v in TOPIC_MAPPINGS.items() if v["section"] == section]


def section_for(topic: str) -> Optional[str]:
    key = topic_key(topic)
    return TOPIC_MAPPINGS[key]["section"] if key else None
