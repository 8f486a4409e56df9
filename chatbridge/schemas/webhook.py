from typing import Any, Optional

from pydantic import BaseModel


class TargetResultSchema(BaseModel):
    platform: str
    instance_id: int
    success: bool
    mapping_id: Optional[int] = None
    direction: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    reply: Optional[str] = None
    error: Optional[str] = None


class WebhookResponse(BaseModel):
    success: bool
    forwarded: bool = False
    message: Optional[str] = None
    results: list[TargetResultSchema] = []

    @classmethod
    def from_outcome(cls, outcome: Any) -> "WebhookResponse":
        data = outcome.to_dict()
        return cls(
            success=data["success"],
            forwarded=data["forwarded"],
            message=data.get("reason"),
            results=data["results"],
        )
