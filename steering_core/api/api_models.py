"""
HTTP request/response models for the steering relay API.

Request bodies use the camelCase field names the console client sends
(sessionId, modelType, apiKey ...); responses are built from the domain
records with the helpers at the bottom of this module.
"""

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from steering_core.domain.models import ChatMessage
from steering_core.domain.session import Configuration, Message, Session
from steering_core.providers.registry import ProviderDescriptor


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatMessageIn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

    def to_domain(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class StartSessionRequest(_CamelModel):
    provider: str
    api_key: str = Field(alias="apiKey")
    model_a: str = Field(alias="modelA")
    model_b: str = Field(alias="modelB")


class AiChatRequest(_CamelModel):
    session_id: str = Field(alias="sessionId")
    messages: List[ChatMessageIn] = Field(default_factory=list)
    model_type: Literal["A", "B"] = Field(alias="modelType")


class ExchangeRequest(_CamelModel):
    session_id: str = Field(alias="sessionId")
    message: str
    history_a: List[ChatMessageIn] = Field(default_factory=list, alias="historyA")
    history_b: List[ChatMessageIn] = Field(default_factory=list, alias="historyB")


class NoteRequest(BaseModel):
    note: str


class TurnCountRequest(_CamelModel):
    turn_count: int = Field(alias="turnCount")


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def mask_key(api_key: str) -> str:
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:3]}...{api_key[-4:]}"


def config_to_dict(config: Configuration) -> Dict[str, Any]:
    return {
        "id": config.id,
        "ownerId": config.owner_id,
        "provider": config.provider,
        "apiKey": mask_key(config.api_key),
        "modelA": config.model_a,
        "modelB": config.model_b,
        "isActive": config.is_active,
        "createdAt": config.created_at.isoformat(),
    }


def session_to_dict(session: Session) -> Dict[str, Any]:
    return {
        "id": session.id,
        "ownerId": session.owner_id,
        "configurationId": session.configuration_id,
        "title": session.title,
        "turnCount": session.turn_count,
        "isPaused": session.is_paused,
        "createdAt": session.created_at.isoformat(),
    }


def message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "sessionId": message.session_id,
        "modelType": message.model_type,
        "content": message.content,
        "createdAt": message.created_at.isoformat(),
    }


def provider_to_dict(provider: ProviderDescriptor) -> Dict[str, Any]:
    return {
        "id": provider.id,
        "displayName": provider.display_name,
        "models": [{"id": m.id, "displayName": m.display_name} for m in provider.models],
    }
