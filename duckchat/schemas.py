from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .models import ModelInfo


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="User message for this turn")
    model: Optional[str] = Field(
        default=None, description="Model id or alias; keeps the session's model when omitted"
    )
    session_id: Optional[str] = Field(
        default=None, description="Conversation id; a new session is created when omitted"
    )


class ChatResponse(BaseModel):
    message: str
    model: str
    session_id: str
    success: bool = True


class StreamChunk(BaseModel):
    chunk: Optional[str] = None
    done: bool = False
    session_id: Optional[str] = None
    error: Optional[str] = None


class ModelsResponse(BaseModel):
    models: list[ModelInfo] = Field(default_factory=list)
    success: bool = True
    count: int = 0


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    timestamp: str


class ClearResponse(BaseModel):
    success: bool = True
    message: str = "session cleared"
    session_id: str


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "StreamChunk",
    "ModelsResponse",
    "HealthResponse",
    "ClearResponse",
]
