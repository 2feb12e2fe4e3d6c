from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import UnsupportedModel


class Model(str, Enum):
    """Upstream model identifiers accepted by the chat endpoint."""

    GPT4_MINI = "gpt-4o-mini"
    CLAUDE3_HAIKU = "claude-3-haiku-20240307"
    LLAMA = "meta-llama/Llama-3.3-70B-Instruct-Turbo"
    MISTRAL_SMALL = "mistralai/Mistral-Small-24B-Instruct-2501"
    O4_MINI = "o4-mini"


class ModelInfo(BaseModel):
    id: str
    name: str
    description: str
    alias: str


MODEL_CATALOG: list[ModelInfo] = [
    ModelInfo(
        id=Model.GPT4_MINI.value,
        name="GPT-4o Mini",
        description="Fast, balanced general-purpose model",
        alias="gpt-4o-mini",
    ),
    ModelInfo(
        id=Model.CLAUDE3_HAIKU.value,
        name="Claude 3 Haiku",
        description="Good at creative writing and explanations",
        alias="claude-3-haiku",
    ),
    ModelInfo(
        id=Model.LLAMA.value,
        name="Llama 3.3 70B",
        description="Geared towards programming and technical tasks",
        alias="llama",
    ),
    ModelInfo(
        id=Model.MISTRAL_SMALL.value,
        name="Mistral Small",
        description="Strong at analysis and reasoning",
        alias="mixtral",
    ),
    ModelInfo(
        id=Model.O4_MINI.value,
        name="o4-mini",
        description="Very fast for short answers",
        alias="o4mini",
    ),
]

_MODEL_ALIASES: dict[str, Model] = {
    "": Model.GPT4_MINI,
    "gpt4mini": Model.GPT4_MINI,
    "claude": Model.CLAUDE3_HAIKU,
    "claude3": Model.CLAUDE3_HAIKU,
    "claude-3-haiku": Model.CLAUDE3_HAIKU,
    "llama": Model.LLAMA,
    "llama3": Model.LLAMA,
    "mixtral": Model.MISTRAL_SMALL,
    "mistral": Model.MISTRAL_SMALL,
    "o4mini": Model.O4_MINI,
}
_MODEL_ALIASES.update({m.value.lower(): m for m in Model})


def resolve_model(name: str | None) -> Model:
    """
    Map a caller-supplied model name or alias (case-insensitive) to a Model.
    An empty name selects the default model.
    """
    key = (name or "").strip().lower()
    try:
        return _MODEL_ALIASES[key]
    except KeyError:
        raise UnsupportedModel(name or "") from None


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ToolChoice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    news_search: bool = Field(False, alias="NewsSearch")
    videos_search: bool = Field(False, alias="VideosSearch")
    local_search: bool = Field(False, alias="LocalSearch")
    weather_forecast: bool = Field(False, alias="WeatherForecast")


class ChatMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_choice: ToolChoice = Field(default_factory=ToolChoice, alias="toolChoice")


class ChatPayload(BaseModel):
    """Body of one POST to the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    model: Model
    metadata: ChatMetadata = Field(default_factory=ChatMetadata)
    messages: list[Message]
    # Always on: the upstream front-end sends it even with every tool disabled.
    can_use_tools: bool = Field(True, alias="canUseTools")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


__all__ = [
    "Model",
    "ModelInfo",
    "MODEL_CATALOG",
    "resolve_model",
    "Message",
    "ToolChoice",
    "ChatMetadata",
    "ChatPayload",
]
