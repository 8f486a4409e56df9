from typing import Optional

from chatbridge.logging_config import get_logger
from chatbridge.services import conversation_link_repository as links
from chatbridge.services.canonical import Platform
from chatbridge.services.clients import DifyClient
from chatbridge.services.errors import ValidationError
from chatbridge.services.response_shaping import shape_ai_reply
from chatbridge.services.targets.base import Delivery, PlatformTarget

logger = get_logger("targets.dify")


class DifyTarget(PlatformTarget):
    """Sends Telegram messages to a Dify app and returns the shaped answer.

    With ``dify.enableConversationHistory`` off every message is a fresh turn.
    The token Dify returns is stored either way so history can be switched on
    without losing the current conversations.
    """

    platform = Platform.DIFY

    def __init__(self, instance, db, config_service, client: Optional[DifyClient] = None):
        super().__init__(instance, db, config_service)
        self.client = client or DifyClient.from_instance(instance)

    def _link(self, message):
        if message.platform != Platform.TELEGRAM:
            raise ValidationError(f"Dify only receives Telegram messages, got {message.platform.value}")
        return links.get_or_create_link(
            self.db,
            message.instance_id,
            message.conversation_id,
            Platform.DIFY,
            self.instance.id,
            message.metadata.get("chatType"),
        )

    def resolve_conversation(self, message, mapping) -> Optional[str]:
        if not self.config_service.get_ai_settings().enable_conversation_history:
            return None
        return self._link(message).remote_conversation_id

    def send_message(self, conversation_id, message, mapping) -> Delivery:
        user = f"telegram_{message.instance_id}_{message.conversation_id}"
        reply = self.client.chat(message.content, user=user, conversation_id=conversation_id)

        if reply.conversation_id:
            links.set_remote_conversation(self.db, self._link(message), reply.conversation_id)

        shaped = shape_ai_reply(reply.answer, message.content, self.config_service.get_ai_settings())
        logger.info(
            "Dify reply received",
            extra={
                "context": {
                    "app": self.instance.id,
                    "conversation": reply.conversation_id,
                    "length": len(shaped),
                    "continuous": conversation_id is not None,
                }
            },
        )
        return Delivery(conversation_id=reply.conversation_id, message_id=reply.message_id, reply=shaped)

    def probe(self) -> dict:
        reply = self.client.test_completion()
        return {"conversation_id": reply.conversation_id, "message_id": reply.message_id}
