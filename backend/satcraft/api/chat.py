import asyncio
import logging
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from satcraft.core.auth import get_current_user_id
from satcraft.models.item import GeneratedResult
from satcraft.services.chat import TutorChat, get_tutor_chat
from satcraft.services.telemetry import instrument

logger = logging.getLogger("satcraft.chat")
router = APIRouter(prefix="/api", tags=["chat"])


class ChatTurn(BaseModel):
    role: str
    content: str = ""


class ChatBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question_data: GeneratedResult
    user_message: str
    type: Literal["explain", "hint"]
    conversation_history: list[ChatTurn] = Field(default_factory=list)

    @field_validator("user_message")
    @classmethod
    def _message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("userMessage must not be empty")
        return v


def get_tutor() -> TutorChat:
    return get_tutor_chat()


@router.post("/chat")
@instrument(route="/api/chat", version="v1")
async def chat(
    body: ChatBody,
    user_id: str = Depends(get_current_user_id),
    tutor: TutorChat = Depends(get_tutor),
):
    logger.info("Chat %s request from user %s", body.type, user_id)
    result = await asyncio.to_thread(
        tutor.respond,
        body.question_data,
        body.user_message,
        body.type,
        [turn.model_dump() for turn in body.conversation_history],
    )
    return {
        "success": True,
        "response": result.content,
        "model": result.model,
        "provider": result.provider,
    }
