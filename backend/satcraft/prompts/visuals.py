"""Prompt templates for the visual (figure/graph/table) sub-pipeline."""

VISUAL_GENERATOR_SYSTEM_PROMPT = """You design figures, graphs and tables for SAT math questions. You output a
precise structured description and a self-contained SVG. Always respond
with valid JSON."""

VISUAL_GENERATION_PROMPT = """Create the visual for this SAT question.

Question: {question}
{passage_block}Answer choices:
{choices}

Visual description from the question writer:
{visual_description}

{facts_block}{exemplars_block}Rules:
1. COMPLETENESS: every angle, measurement, label and relationship stated in
   the question must appear in the visual and in your description.
2. NO DUPLICATES: describe each element once; do not restate the question text.
3. Do not reveal the answer in the visual.
4. SVG must use a viewBox, fit within 400x300, and use labelled elements.
{feedback_block}
Respond in JSON format:
{{
  "type": "graph" | "table" | "diagram" | "chart" | "image",
  "description": "complete description of every element in the visual",
  "data": {{}},
  "svg": "<svg ...>...</svg>"
}}"""

VISUAL_FACTS_HEADER = "The visual MUST show each of these facts from the question:\n"

VISUAL_EXEMPLARS_HEADER = "Reference visuals from similar questions (style only):\n"

VISUAL_FEEDBACK_TEMPLATE = """
PREVIOUS VISUAL WAS REJECTED (score {score:.2f}). Issues:
{issues}
Missing information: {missing}
Fix every issue above.
"""

VISUAL_VALIDATOR_SYSTEM_PROMPT = "You are an expert reviewer of SAT figures. Always respond with valid JSON."

VISUAL_VALIDATION_PROMPT = """Review this visual for an SAT question.

Question: {question}

Visual type: {kind}
Visual description:
{description}

Check:
1. Every fact in the question (angles, measurements, relationships, labels) is shown
2. Nothing is duplicated or redundant
3. The visual is accurate and does not give away the answer
4. The visual type suits the question

Respond in JSON format:
{{
  "score": 0.0,
  "issues": ["list of issues"],
  "missingInformation": ["facts from the question missing in the visual"],
  "duplicateContent": ["elements described more than once"],
  "corrections": "how to fix the visual"
}}"""
