"""
Pipeline step contract.

Every stage of the generation pipeline implements ``execute(payload)`` and
is registered under a ``StepKind``. The orchestrator resolves steps by
kind from a static mapping, so swapping one stage (say, a vector-search
context retriever) means registering a different object for that kind.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from satcraft.models.item import (
    CandidateItem,
    GenerationRequest,
    RetrievedContext,
    TopicPlan,
    ValidationResult,
    VisualArtifact,
    VisualValidationResult,
)


class StepKind(str, Enum):
    RETRIEVE_CONTEXT = "retrieve_context"
    GENERATE_ITEM = "generate_item"
    VALIDATE_ITEM = "validate_item"
    GENERATE_VISUAL = "generate_visual"
    VALIDATE_VISUAL = "validate_visual"


class PipelineStep(Protocol):
    def execute(self, payload: Any) -> Any:
        ...


@dataclass(frozen=True)
class GenerateItemInput:
    request: GenerationRequest
    context: RetrievedContext
    plan: TopicPlan
    feedback: Optional[ValidationResult] = None
    escalation: Optional[str] = None


@dataclass(frozen=True)
class ValidateItemInput:
    candidate: CandidateItem
    request: GenerationRequest
    rules: str = ""


@dataclass(frozen=True)
class GenerateVisualInput:
    candidate: CandidateItem
    context: RetrievedContext
    feedback: Optional[VisualValidationResult] = None


@dataclass(frozen=True)
class ValidateVisualInput:
    candidate: CandidateItem
    visual: VisualArtifact


# Which payload type each kind accepts and what it returns
STEP_CONTRACTS: dict[StepKind, tuple[type, type]] = {
    StepKind.RETRIEVE_CONTEXT: (GenerationRequest, RetrievedContext),
    StepKind.GENERATE_ITEM: (GenerateItemInput, CandidateItem),
    StepKind.VALIDATE_ITEM: (ValidateItemInput, ValidationResult),
    StepKind.GENERATE_VISUAL: (GenerateVisualInput, VisualArtifact),
    StepKind.VALIDATE_VISUAL: (ValidateVisualInput, VisualValidationResult),
}


def run_step(steps: dict[StepKind, PipelineStep], kind: StepKind, payload: Any) -> Any:
    expected_in, expected_out = STEP_CONTRACTS[kind]
    if not isinstance(payload, expected_in):
        raise TypeError(f"{kind.value} expects {expected_in.__name__}, got {type(payload).__name__}")
    result = steps[kind].execute(payload)
    if not isinstance(result, expected_out):
        raise TypeError(f"{kind.value} returned {type(result).__name__}, expected {expected_out.__name__}")
    return result
