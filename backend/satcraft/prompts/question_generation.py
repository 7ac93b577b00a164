"""Prompt templates for SAT item generation and validation."""

GENERATOR_SYSTEM_PROMPT = """You are an expert SAT question writer. You write original questions that
match the official Digital SAT in format, difficulty and tone. Every
question has exactly four answer choices (A-D) and exactly one correct
answer. Always respond with a single valid JSON object and nothing else."""

GENERATION_PROMPT = """Generate a SAT-style question with the following requirements:

Section: {section}
Topic: {topic}
Subtopic: {subtopic}
Difficulty: {difficulty}

Instructions:
{instructions}

SAT rules and guidelines:
{rules}

{examples_block}TOPIC PLAN (follow exactly):
- Question type: {question_type}
- Use this phrasing for the question stem: {question_phrase}
- Required vocabulary (use at least two): {required_keywords}
- Passage requirements: {passage_requirements}
- Answer choice style: {answer_choice_style}
- Alignment: {topic_alignment}
{avoid_block}
{section_requirements}
{feedback_block}{escalation_block}
Respond in this JSON format:
{{
  "question": "question stem",
  "passage": "passage text, or null for math",
  "answerChoices": ["choice A", "choice B", "choice C", "choice D"],
  "correctAnswer": "A",
  "explanation": "why the correct answer is right and the others are wrong",
  "needsVisual": false,
  "visualDescription": "complete description of the figure/graph/table, or null"
}}"""

READING_WRITING_REQUIREMENTS = """READING & WRITING REQUIREMENTS:
- Include a passage of 25-150 words in the "passage" field.
- The question must refer to the passage and be answerable from it alone.
- Do not include the passage text inside the question stem."""

MATH_REQUIREMENTS = """MATH REQUIREMENTS:
- Solve the problem yourself before choosing the correct answer.
- The explanation must show the real calculation steps with correct arithmetic.
  Never write a simplification or equation that is not true.
- Set "needsVisual" to true when the problem depends on a figure, graph or table
  (geometry figures, coordinate graphs, data tables), and describe it completely
  in "visualDescription": every angle, length, label and relationship mentioned
  in the question must appear in that description."""

EXAMPLES_HEADER = "Reference examples (for style only - do NOT copy):\n"

FEEDBACK_TEMPLATE = """
PREVIOUS ATTEMPT WAS REJECTED (score {score:.2f}). Issues:
{issues}

Corrections needed:
{corrections}

Generate an improved version that fixes every issue above.
"""

ESCALATION_TEMPLATE = """
IMPORTANT - REPEATED TOPIC MISMATCH:
The last {count} attempts were classified as "{wrong_topic}" instead of "{requested_topic}".
Remove all vocabulary characteristic of "{wrong_topic}", including: {wrong_keywords}.
Rewrite the item so it unmistakably tests "{requested_topic}"{requested_subtopic}.
"""

VALIDATOR_SYSTEM_PROMPT = "You are an expert SAT question validator. Always respond with valid JSON."

VALIDATION_PROMPT = """You are an expert SAT question validator. Validate the following question:

{passage_block}Question: {question}

Answer Choices:
{choices}

Correct Answer: {correct_answer}

Requirements:
- Section: {section}
- Topic: {topic}
- Subtopic: {subtopic}
- Difficulty: {difficulty}

Rules:
{rules}

Evaluate this question on:
1. Format compliance (4 answer choices, clear question structure)
2. Difficulty alignment with the specified level
3. Clarity and unambiguous wording
4. Alignment with SAT standards for the specified topic/subtopic
5. ANSWER CORRECTNESS CHECK (CRITICAL): verify that the marked answer ({correct_answer})
   is the one clearly correct answer and is supported by the question content
6. Distractors are plausible but clearly incorrect
7. Content originality (not copied from examples)
{passage_check}
Respond in JSON format:
{{
  "isValid": true,
  "issues": ["list of issues if any"],
  "corrections": "specific instructions for corrections if needed",
  "score": 0.0,
  "answerCorrectness": {{
    "isCorrect": true,
    "explanation": "why the marked answer is correct or incorrect",
    "actualCorrectAnswer": "A" | "B" | "C" | "D" | null
  }}
}}"""

PASSAGE_CHECK = "8. The question must be answerable purely from the passage content\n"

MATH_VERIFIER_SYSTEM_PROMPT = """You are a meticulous mathematics checker. Solve every problem from scratch
and verify each arithmetic step. Always respond with valid JSON."""

MATH_VERIFICATION_PROMPT = """Solve this SAT math problem independently. Do NOT trust the marked answer
or the explanation; derive the answer yourself, then check both.

Question: {question}

Answer Choices:
{choices}

Marked correct answer: {correct_answer}

Explanation provided:
{explanation}

Check every calculation in the explanation. For example, if it says
"14/13 simplifies to 4", that is WRONG because 14/13 is about 1.077.

Respond in JSON format:
{{
  "actualAnswer": "the value you calculated",
  "correctAnswerLetter": "A" | "B" | "C" | "D",
  "isMarkedAnswerCorrect": true,
  "isExplanationCorrect": true,
  "explanationErrors": ["each incorrect step in the explanation"],
  "calculationSteps": ["your own solution steps"],
  "explanation": "short summary of the verification"
}}"""
