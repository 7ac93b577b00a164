import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from satcraft.core.auth import get_current_user_id
from satcraft.core.errors import InvalidRequest
from satcraft.models.item import Difficulty, GenerationRequest
from satcraft.services.orchestrator import GenerationOrchestrator, get_generation_orchestrator
from satcraft.services.telemetry import emit_event, instrument

logger = logging.getLogger("satcraft.questions")
router = APIRouter(prefix="/api/questions", tags=["questions"])


class GenerateQuestionBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    section: str
    topic: str
    subtopic: Optional[str] = None
    difficulty: Difficulty
    custom_context: Optional[str] = None


def get_orchestrator() -> GenerationOrchestrator:
    return get_generation_orchestrator()


@router.post("/generate")
@instrument(route="/api/questions/generate", version="v1")
async def generate_question(
    body: GenerateQuestionBody,
    user_id: str = Depends(get_current_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    try:
        request = GenerationRequest(**body.model_dump())
    except ValidationError as e:
        raise InvalidRequest(
            "Invalid generation request",
            details=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        )

    logger.info("Generating %s/%s (%s) for user %s", request.section, request.topic, request.difficulty, user_id)
    result = await asyncio.to_thread(orchestrator.generate, request)
    emit_event(
        "question_generated", route="/api/questions/generate", version="v1", user_id=user_id,
        section=request.section, topic=request.topic, ok=True,
        score=result.metadata.final_score, iterations=result.metadata.total_iterations,
    )
    return {"success": True, "data": result.model_dump(mode="json")}
