"""
Generation Orchestrator: drives the generate -> validate -> regenerate loop.

Flow for one GenerationRequest:

  1. Retrieve context (fail-open: quota/rate-limit/transient failures fall
     back to the minimal generic context, flagged degraded).
  2. Plan the topic leaf (deterministic TopicPlan).
  3. Text loop, at most ``policy.max_iterations`` iterations:
       generate -> validate
       -> corrected answer differs? apply it and re-validate once
       -> >= 2 consecutive confident topic mismatches? escalate guidance
       -> accept when valid at the target score
     Provider quota/rate-limit errors propagate; transient and parse
     failures consume an iteration. When the budget is spent, the best
     candidate that cleared the floor score is accepted; otherwise
     GenerationExhausted is raised with the aggregated issue list.
  4. Visual loop (only when the accepted item needs a visual), with its own
     budget and the same acceptance policy. A visual that never clears the
     floor is returned flagged ``needs_regeneration``; visual failures never
     fail the textual item.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from satcraft.core.config import Settings, get_settings
from satcraft.core.errors import (
    NON_RETRYABLE,
    GenerationExhausted,
    ParseFailure,
    TransientProviderError,
)
from satcraft.models.item import (
    CHOICE_LABELS,
    CandidateItem,
    GeneratedResult,
    GenerationMetadata,
    GenerationRequest,
    RetrievedContext,
    TopicPlan,
    ValidationResult,
    VisualArtifact,
    VisualValidationResult,
)
from satcraft.prompts.question_generation import ESCALATION_TEMPLATE
from satcraft.services.ai import CompletionProvider
from satcraft.services.content_generator import ContentGenerator
from satcraft.services.content_validator import ContentValidator
from satcraft.services.context_retriever import ContextProvider, ContextRetriever, minimal_context
from satcraft.services.steps import (
    GenerateItemInput,
    GenerateVisualInput,
    PipelineStep,
    StepKind,
    ValidateItemInput,
    ValidateVisualInput,
    run_step,
)
from satcraft.services.taxonomy import display_name
from satcraft.services.topic_classifier import topic_vocabulary
from satcraft.services.topic_planner import TopicPlanner, get_topic_planner
from satcraft.services.visual_generator import VisualGenerator
from satcraft.services.visual_validator import VisualValidator

logger = logging.getLogger(__name__)

ESCALATION_STREAK = 2
ESCALATION_KEYWORDS = 12


@dataclass(frozen=True)
class RetryPolicy:
    target_score: float = 0.8
    floor_score: float = 0.7
    max_iterations: int = 3

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        s = settings or get_settings()
        return cls(
            target_score=s.target_score,
            floor_score=s.floor_score,
            max_iterations=max(1, s.max_iterations),
        )

    def accepts(self, result) -> bool:
        return result.is_valid and result.score >= self.target_score

    def clears_floor(self, result) -> bool:
        if result.score < self.floor_score or result.critical_issues:
            return False
        return not getattr(result, "missing_information", None)


def build_default_steps(
    provider: Optional[CompletionProvider] = None,
    settings: Optional[Settings] = None,
    context_provider: Optional[ContextProvider] = None,
) -> dict[StepKind, PipelineStep]:
    settings = settings or get_settings()
    return {
        StepKind.RETRIEVE_CONTEXT: ContextRetriever(provider=context_provider, settings=settings),
        StepKind.GENERATE_ITEM: ContentGenerator(provider, settings),
        StepKind.VALIDATE_ITEM: ContentValidator(provider, settings),
        StepKind.GENERATE_VISUAL: VisualGenerator(provider, settings),
        StepKind.VALIDATE_VISUAL: VisualValidator(provider, settings),
    }


@dataclass
class _TextOutcome:
    candidate: CandidateItem
    result: ValidationResult
    iterations: int
    below_target: bool


@dataclass
class _VisualOutcome:
    visual: Optional[VisualArtifact]
    score: Optional[float]
    iterations: int


def _add_issues(seen: list[str], new: list[str]) -> None:
    for issue in new:
        if issue not in seen:
            seen.append(issue)


def _can_apply(label: str, candidate: CandidateItem) -> bool:
    return CHOICE_LABELS.index(label) < len(candidate.answer_choices)


class GenerationOrchestrator:
    def __init__(
        self,
        steps: Optional[dict[StepKind, PipelineStep]] = None,
        policy: Optional[RetryPolicy] = None,
        planner: Optional[TopicPlanner] = None,
    ):
        self.steps = steps if steps is not None else build_default_steps()
        self.policy = policy or RetryPolicy.from_settings()
        self.planner = planner or get_topic_planner()

    # -- context -------------------------------------------------------------

    def _retrieve_context(self, request: GenerationRequest) -> RetrievedContext:
        try:
            return run_step(self.steps, StepKind.RETRIEVE_CONTEXT, request)
        except NON_RETRYABLE + (TransientProviderError,) as exc:
            logger.warning(
                "[orchestrator] context retrieval failed (%s) - continuing with minimal context",
                exc.kind.value,
            )
            return minimal_context(request)

    # -- text loop -----------------------------------------------------------

    def _escalation(self, request: GenerationRequest, wrong_topic: str, streak: int) -> str:
        keywords = topic_vocabulary(wrong_topic)[:ESCALATION_KEYWORDS]
        return ESCALATION_TEMPLATE.format(
            count=streak,
            wrong_topic=wrong_topic,
            requested_topic=display_name(request.topic),
            wrong_keywords=", ".join(keywords) or "its characteristic terms",
            requested_subtopic=f' > "{request.subtopic}"' if request.subtopic else "",
        )

    def _validate(self, candidate: CandidateItem, request: GenerationRequest, rules: str) -> ValidationResult:
        return run_step(self.steps, StepKind.VALIDATE_ITEM, ValidateItemInput(candidate, request, rules))

    def _generate_text(
        self, request: GenerationRequest, context: RetrievedContext, plan: TopicPlan,
    ) -> _TextOutcome:
        policy = self.policy
        feedback: Optional[ValidationResult] = None
        escalation: Optional[str] = None
        mismatch_streak = 0
        best: Optional[tuple[CandidateItem, ValidationResult]] = None
        best_score: Optional[float] = None
        all_issues: list[str] = []

        for iteration in range(1, policy.max_iterations + 1):
            logger.info(
                "[orchestrator] text iteration %d/%d for %s/%s",
                iteration, policy.max_iterations, request.section, request.topic,
            )
            try:
                candidate = run_step(
                    self.steps, StepKind.GENERATE_ITEM,
                    GenerateItemInput(request, context, plan, feedback, escalation),
                )
                result = self._validate(candidate, request, context.rules)

                corrected = result.corrected_answer
                if corrected and corrected != candidate.correct_answer and _can_apply(corrected, candidate):
                    logger.info(
                        "[orchestrator] applying corrected answer %s -> %s and re-validating",
                        candidate.correct_answer, corrected,
                    )
                    candidate = candidate.with_answer(corrected)
                    result = self._validate(candidate, request, context.rules)
            except NON_RETRYABLE:
                raise
            except (TransientProviderError, ParseFailure) as exc:
                logger.warning(
                    "[orchestrator] iteration %d failed (%s): %s", iteration, exc.kind.value, exc.message,
                )
                _add_issues(all_issues, [f"Iteration {iteration}: {exc.message}"])
                continue

            logger.info(
                "[orchestrator] iteration %d score=%.2f valid=%s issues=%d",
                iteration, result.score, result.is_valid, len(result.issues),
            )
            _add_issues(all_issues, result.issues)
            if best_score is None or result.score > best_score:
                best_score = result.score

            if policy.accepts(result):
                return _TextOutcome(candidate, result, iteration, below_target=False)

            if policy.clears_floor(result) and (best is None or result.score > best[1].score):
                best = (candidate, result)

            alignment = result.topic_alignment
            if alignment is not None and alignment.is_confident_mismatch:
                mismatch_streak += 1
                if mismatch_streak >= ESCALATION_STREAK:
                    logger.warning(
                        "[orchestrator] %d consecutive topic mismatches (%s) - escalating guidance",
                        mismatch_streak, alignment.actual_topic,
                    )
                    escalation = self._escalation(request, alignment.actual_topic, mismatch_streak)
            elif alignment is None or alignment.status != "unknown":
                # an unknown classification leaves the streak as it was
                mismatch_streak = 0
                escalation = None

            if iteration < policy.max_iterations:
                logger.warning("[orchestrator] regenerating (score %.2f below target)", result.score)
            feedback = result

        if best is not None:
            candidate, result = best
            logger.warning(
                "[orchestrator] accepting best candidate below target (score %.2f >= floor %.2f)",
                result.score, policy.floor_score,
            )
            return _TextOutcome(candidate, result, policy.max_iterations, below_target=True)

        logger.error(
            "[orchestrator] no candidate cleared the floor after %d iterations (best score %s)",
            policy.max_iterations, best_score,
        )
        raise GenerationExhausted(
            f"Could not generate a valid question after {policy.max_iterations} attempts",
            issues=all_issues,
            iterations=policy.max_iterations,
            best_score=best_score,
        )

    # -- visual loop ---------------------------------------------------------

    def _generate_visual(self, candidate: CandidateItem, context: RetrievedContext) -> _VisualOutcome:
        policy = self.policy
        feedback: Optional[VisualValidationResult] = None
        scored: list[tuple[VisualArtifact, VisualValidationResult]] = []
        iterations = 0

        for iteration in range(1, policy.max_iterations + 1):
            iterations = iteration
            try:
                visual = run_step(
                    self.steps, StepKind.GENERATE_VISUAL, GenerateVisualInput(candidate, context, feedback),
                )
                result = run_step(
                    self.steps, StepKind.VALIDATE_VISUAL, ValidateVisualInput(candidate, visual),
                )
            except NON_RETRYABLE as exc:
                logger.warning("[orchestrator] visual loop stopped: %s", exc.kind.value)
                break
            except Exception as exc:
                logger.warning("[orchestrator] visual iteration %d failed: %s", iteration, exc, exc_info=True)
                continue

            logger.info(
                "[orchestrator] visual iteration %d score=%.2f valid=%s missing=%s",
                iteration, result.score, result.is_valid, result.missing_information,
            )
            if policy.accepts(result):
                return _VisualOutcome(visual, result.score, iteration)
            scored.append((visual, result))
            feedback = result

        floor_ok = [pair for pair in scored if policy.clears_floor(pair[1])]
        if floor_ok:
            visual, result = max(floor_ok, key=lambda pair: pair[1].score)
            logger.warning("[orchestrator] accepting visual below target (score %.2f)", result.score)
            return _VisualOutcome(visual, result.score, iterations)

        if scored:
            visual, result = max(scored, key=lambda pair: pair[1].score)
            score: Optional[float] = result.score
        else:
            visual = VisualArtifact(description=candidate.visual_description or "")
            score = None
        logger.warning("[orchestrator] visual did not clear the floor - flagged for regeneration")
        return _VisualOutcome(visual.model_copy(update={"needs_regeneration": True}), score, iterations)

    # -- entry point ---------------------------------------------------------

    def generate(self, request: GenerationRequest) -> GeneratedResult:
        started = time.time()
        context = self._retrieve_context(request)
        if context.degraded:
            logger.warning("[orchestrator] using degraded context for %s/%s", request.section, request.topic)
        plan = self.planner.plan(request.topic, request.subtopic)

        text = self._generate_text(request, context, plan)

        visual = _VisualOutcome(None, None, 0)
        if text.candidate.needs_visual:
            visual = self._generate_visual(text.candidate, context)

        elapsed_ms = int((time.time() - started) * 1000)
        metadata = GenerationMetadata(
            section=request.section,
            topic=request.topic,
            subtopic=request.subtopic,
            difficulty=request.difficulty,
            generation_time_ms=elapsed_ms,
            text_iterations=text.iterations,
            visual_iterations=visual.iterations,
            total_iterations=text.iterations + visual.iterations,
            final_score=text.result.score,
            visual_score=visual.score,
            accepted_below_target=text.below_target,
            degraded_context=context.degraded,
        )
        logger.info(
            "[orchestrator] done in %dms: score=%.2f iterations=%d (text %d, visual %d)",
            elapsed_ms, text.result.score, metadata.total_iterations, text.iterations, visual.iterations,
        )
        return GeneratedResult(item=text.candidate, visual=visual.visual, metadata=metadata)


_ORCHESTRATOR: Optional[GenerationOrchestrator] = None


def get_generation_orchestrator() -> GenerationOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = GenerationOrchestrator()
    return _ORCHESTRATOR
