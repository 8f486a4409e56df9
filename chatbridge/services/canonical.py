"""Platform-agnostic message envelope and routing outcome types."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class Platform(str, Enum):
    TELEGRAM = "telegram"
    CHATWOOT = "chatwoot"
    DIFY = "dify"


# metadata flags that mark a message as an echo of our own forwarding
LOOP_GUARD_FLAGS = ("forwarded", "isBot", "testMode")


@dataclass
class CanonicalMessage:
    platform: Platform
    instance_id: Optional[int]
    conversation_id: str
    sender_id: str
    sender_name: str
    content: str
    message_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_group_chat(self) -> bool:
        return bool(self.metadata.get("isGroupChat"))

    @property
    def chat_id(self) -> Optional[str]:
        chat_id = self.metadata.get("chatId")
        return str(chat_id) if chat_id is not None else None


@dataclass
class TargetResult:
    platform: Platform
    instance_id: int
    success: bool
    mapping_id: Optional[int] = None
    direction: Optional[str] = None  # source_to_target, target_to_source
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    reply: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["platform"] = self.platform.value
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class RoutingOutcome:
    success: bool
    forwarded: bool
    results: list[TargetResult] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def no_op(cls, reason: str) -> "RoutingOutcome":
        return cls(success=True, forwarded=False, results=[], reason=reason)

    @classmethod
    def from_results(cls, results: list[TargetResult]) -> "RoutingOutcome":
        if not results:
            return cls.no_op("no_route")
        succeeded = any(result.success for result in results)
        return cls(success=succeeded, forwarded=succeeded, results=results)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "forwarded": self.forwarded,
            "results": [result.to_dict() for result in self.results],
        }
        if self.reason:
            data["reason"] = self.reason
        return data
