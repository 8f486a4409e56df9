from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatwootSender(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = None  # user, agent_bot, contact

    model_config = ConfigDict(extra="allow")


class ChatwootAccountRef(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None


class ChatwootConversation(BaseModel):
    id: int
    inbox_id: Optional[int] = None
    additional_attributes: dict[str, Any] = Field(default_factory=dict)
    custom_attributes: dict[str, Any] = Field(default_factory=dict)
    messages: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class ChatwootMessage(BaseModel):
    id: Optional[int] = None
    content: Optional[str] = None
    message_type: Any = None  # "incoming"/"outgoing" in webhooks, 0/1 inside conversation payloads
    private: bool = False
    content_attributes: dict[str, Any] = Field(default_factory=dict)
    sender: Optional[ChatwootSender] = None
    conversation_id: Optional[int] = None

    model_config = ConfigDict(extra="allow")


class ChatwootWebhookEvent(BaseModel):
    event: Optional[str] = None
    id: Optional[int] = None
    content: Optional[str] = None
    message_type: Any = None
    private: bool = False
    content_attributes: Optional[dict[str, Any]] = None
    sender: Optional[ChatwootSender] = None
    conversation: Optional[ChatwootConversation] = None
    account: Optional[ChatwootAccountRef] = None
    messages: Optional[list[dict[str, Any]]] = None

    model_config = ConfigDict(extra="allow")
