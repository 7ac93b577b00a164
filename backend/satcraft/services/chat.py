"""
Question tutor chat: explains a generated item or gives a hint for it.

Hint mode never sends the correct answer or the stored explanation to the
model, and any reply that still names a choice as the answer has that
sentence removed before it reaches the student.
"""
from __future__ import annotations

import logging
import re
from typing import Literal, Optional

from satcraft.core.config import Settings, get_settings
from satcraft.models.item import GeneratedResult
from satcraft.prompts.chat import EXPLAIN_SYSTEM_PROMPT, HINT_SYSTEM_PROMPT, QUESTION_BLOCK
from satcraft.services.ai import CompletionProvider, CompletionResult, get_ai_service
from satcraft.services.math_verifier import format_choices

logger = logging.getLogger(__name__)

ChatMode = Literal["explain", "hint"]

HISTORY_TURNS = 10

_ANSWER_REVEAL_RE = re.compile(
    r"\b(?:answer|choice|option)\s+(?:is|would be|should be|=|:)\s*\(?((?-i:[A-D]))\)?(?![\w])"
    r"|\(?\b((?-i:[A-D]))\)?\s+is\s+(?:the\s+)?(?:correct|right)\b",
    re.I,
)
_SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?]?\s*")


def build_question_block(question: GeneratedResult, mode: ChatMode) -> str:
    item = question.item
    meta = question.metadata
    answer_block = ""
    if mode == "explain":
        answer_block = f"Correct answer: {item.correct_answer}\n"
        if item.explanation:
            answer_block += f"Original explanation: {item.explanation}\n"
    context = f"Section: {meta.section}\nTopic: {meta.topic}\n"
    if meta.subtopic:
        context += f"Subtopic: {meta.subtopic}\n"
    context += f"Difficulty: {meta.difficulty}\n\n"
    return context + QUESTION_BLOCK.format(
        question=item.question,
        passage_block=f"Passage:\n{item.passage}\n" if item.passage else "",
        choices=format_choices(item),
        answer_block=answer_block,
    )


def redact_answer(text: str, correct_answer: str) -> str:
    """Drop sentences that name the correct choice as the answer."""
    kept = []
    removed = 0
    for sentence in _SENTENCE_RE.findall(text):
        reveal = any(
            (m.group(1) or m.group(2) or "").upper() == correct_answer
            for m in _ANSWER_REVEAL_RE.finditer(sentence)
        )
        if reveal:
            removed += 1
        else:
            kept.append(sentence)
    if removed:
        logger.warning("[chat] removed %d sentence(s) revealing the answer from a hint", removed)
    return "".join(kept).strip()


class TutorChat:
    def __init__(self, provider: Optional[CompletionProvider] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider = provider or get_ai_service()

    def respond(
        self,
        question: GeneratedResult,
        user_message: str,
        mode: ChatMode,
        history: Optional[list[dict]] = None,
    ) -> CompletionResult:
        template = HINT_SYSTEM_PROMPT if mode == "hint" else EXPLAIN_SYSTEM_PROMPT
        messages = [{"role": "system", "content": template.format(
            question_block=build_question_block(question, mode),
        )}]
        for turn in (history or [])[-HISTORY_TURNS:]:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": str(turn["content"])})
        messages.append({"role": "user", "content": user_message})

        result = self.provider.complete(
            self.settings.chat_model, messages, temperature=0.7, max_tokens=1000,
        )
        logger.info("[chat] %s reply from %s/%s", mode, result.provider, result.model)
        if mode != "hint":
            return result
        content = redact_answer(result.content, question.item.correct_answer)
        if not content:
            content = "Try working through the problem one step at a time and check each choice against it."
        return CompletionResult(content=content, model=result.model, provider=result.provider)


_TUTOR: Optional[TutorChat] = None


def get_tutor_chat() -> TutorChat:
    global _TUTOR
    if _TUTOR is None:
        _TUTOR = TutorChat()
    return _TUTOR
