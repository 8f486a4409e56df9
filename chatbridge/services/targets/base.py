from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from chatbridge.models import PlatformMapping
from chatbridge.services.canonical import CanonicalMessage, Platform, TargetResult
from chatbridge.services.configuration_service import ConfigurationService
from chatbridge.services.errors import NotConfiguredError, UpstreamError
from chatbridge.services.instance_directory import PlatformInstance
from chatbridge.services.result import Result


@dataclass
class Delivery:
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    reply: Optional[str] = None


class PlatformTarget(ABC):
    """Delivery capability for one platform instance."""

    platform: Platform

    def __init__(self, instance: PlatformInstance, db: Session, config_service: ConfigurationService):
        self.instance = instance
        self.db = db
        self.config_service = config_service

    @abstractmethod
    def resolve_conversation(self, message: CanonicalMessage, mapping: PlatformMapping) -> Optional[str]:
        """Find or create the conversation this message belongs to on the target."""

    @abstractmethod
    def send_message(
        self, conversation_id: Optional[str], message: CanonicalMessage, mapping: PlatformMapping
    ) -> Delivery:
        """Deliver the message content into the resolved conversation."""

    @abstractmethod
    def probe(self) -> dict:
        """Cheapest authenticated call proving the credentials work."""

    def test_connection(self) -> Result[dict]:
        try:
            return Result.success(self.probe())
        except NotConfiguredError as e:
            return Result.failure(str(e), "not_configured")
        except UpstreamError as e:
            return Result.failure(str(e), "upstream_error")

    def forward(self, message: CanonicalMessage, mapping: PlatformMapping, direction: str) -> TargetResult:
        conversation_id = self.resolve_conversation(message, mapping)
        delivery = self.send_message(conversation_id, message, mapping)
        return TargetResult(
            platform=self.platform,
            instance_id=self.instance.id,
            success=True,
            mapping_id=mapping.id,
            direction=direction,
            conversation_id=delivery.conversation_id or conversation_id,
            message_id=delivery.message_id,
            reply=delivery.reply,
        )
