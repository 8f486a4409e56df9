from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DifyCallback(BaseModel):
    """Answer pushed by a Dify workflow HTTP node."""

    conversation_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
    )
    answer: Any = None
    message_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("message_id", "messageId", "id"))
    user: Optional[str] = None
    query: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")
