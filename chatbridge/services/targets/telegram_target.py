from typing import Optional

from chatbridge.services import conversation_link_repository as links
from chatbridge.services.canonical import CanonicalMessage, Platform
from chatbridge.services.clients import TelegramClient
from chatbridge.services.errors import NotFoundError
from chatbridge.services.response_shaping import format_for_telegram
from chatbridge.services.targets.base import Delivery, PlatformTarget


class TelegramTarget(PlatformTarget):
    platform = Platform.TELEGRAM

    def __init__(self, instance, db, config_service, client: Optional[TelegramClient] = None):
        super().__init__(instance, db, config_service)
        self.client = client or TelegramClient.from_instance(instance)

    def _origin_link(self, message: CanonicalMessage):
        """Link of the Chatwoot or Dify conversation the message came from, if it belongs to this bot."""
        if message.platform not in (Platform.CHATWOOT, Platform.DIFY) or not message.conversation_id:
            return None
        link = links.find_by_remote_conversation(
            self.db, message.platform, message.instance_id, message.conversation_id
        )
        if link and link.telegram_bot_id == self.instance.id:
            return link
        return None

    def resolve_conversation(self, message, mapping) -> str:
        if message.platform == Platform.TELEGRAM:
            return message.conversation_id

        link = self._origin_link(message)
        if link:
            return link.external_chat_id

        # conversations created by us carry the chat in their attributes
        hinted_bot = message.metadata.get("telegramBotId")
        if message.chat_id and (hinted_bot is None or str(hinted_bot) == str(self.instance.id)):
            return message.chat_id

        raise NotFoundError(
            f"No Telegram chat linked to {message.platform.value} conversation {message.conversation_id}"
        )

    def send_message(self, conversation_id, message, mapping) -> Delivery:
        max_length = self.config_service.get_int("telegram.maxMessageLength")
        parse_mode = self.config_service.get("telegram.parseMode")
        text = format_for_telegram(
            message.content,
            message.sender_name,
            max_length,
            from_agent=message.platform == Platform.CHATWOOT,
            parse_mode=parse_mode,
        )
        result = self.client.send_message(conversation_id, text, parse_mode=parse_mode) or {}

        if message.platform == Platform.CHATWOOT and message.message_id:
            link = self._origin_link(message)
            if link:
                links.mark_forwarded(self.db, link, message.message_id)

        message_id = result.get("message_id")
        return Delivery(
            conversation_id=str(conversation_id),
            message_id=str(message_id) if message_id is not None else None,
        )

    def probe(self) -> dict:
        return self.client.get_me()
