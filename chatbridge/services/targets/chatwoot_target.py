from typing import Optional

from chatbridge.logging_config import get_logger
from chatbridge.services import conversation_link_repository as links
from chatbridge.services.cache import TTLCache
from chatbridge.services.canonical import CanonicalMessage, Platform
from chatbridge.services.clients import ChatwootClient
from chatbridge.services.errors import UpstreamError, ValidationError
from chatbridge.services.response_shaping import format_for_chatwoot
from chatbridge.services.targets.base import Delivery, PlatformTarget

logger = get_logger("targets.chatwoot")

INBOX_NAMES = {Platform.TELEGRAM: "Telegram"}


def build_source_id(telegram_bot_id: int, external_chat_id: str) -> str:
    return f"telegram_{telegram_bot_id}_{external_chat_id}"


class ChatwootTarget(PlatformTarget):
    """Forwards into Chatwoot, finding or creating the conversation first.

    Resolution order: the id already stored on the conversation link, then a
    search by source id inside the platform inbox, then creation of a contact
    and conversation. Two racing first messages can still both reach the
    create step; see DESIGN.md.
    """

    platform = Platform.CHATWOOT

    def __init__(
        self,
        instance,
        db,
        config_service,
        client: Optional[ChatwootClient] = None,
        inbox_cache: Optional[TTLCache] = None,
    ):
        super().__init__(instance, db, config_service)
        self.client = client or ChatwootClient.from_instance(instance)
        self.inbox_cache = inbox_cache

    def _inbox_id(self, source_platform: Platform) -> int:
        name = INBOX_NAMES.get(source_platform, source_platform.value.capitalize())
        key = (self.instance.id, name)
        if self.inbox_cache is None:
            return self.client.get_or_create_api_inbox(name)
        return self.inbox_cache.get_or_load(key, lambda: self.client.get_or_create_api_inbox(name))

    def _chat_context(self, message: CanonicalMessage, mapping) -> dict:
        if message.platform == Platform.TELEGRAM:
            return {
                "telegram_bot_id": message.instance_id,
                "chat_id": message.conversation_id,
                "chat_type": message.metadata.get("chatType"),
                "chat_title": message.metadata.get("chatTitle"),
                "sender_id": message.sender_id,
                "sender_name": message.sender_name,
                "username": message.metadata.get("username"),
            }

        # AI replies: the chat comes from the originating message or the link
        chat_id = message.chat_id
        bot_id = message.metadata.get("telegramBotId") or mapping.source_id
        if chat_id is None:
            link = links.find_by_remote_conversation(
                self.db, Platform.DIFY, message.instance_id, message.conversation_id
            )
            if link is None:
                raise ValidationError(f"Cannot locate chat for {message.platform.value} message")
            chat_id, bot_id = link.external_chat_id, link.telegram_bot_id
        return {
            "telegram_bot_id": int(bot_id),
            "chat_id": str(chat_id),
            "chat_type": message.metadata.get("chatType"),
            "chat_title": message.metadata.get("chatTitle"),
            "sender_id": message.metadata.get("originalSenderId"),
            "sender_name": message.metadata.get("originalSenderName"),
            "username": message.metadata.get("username"),
        }

    def _create_conversation(self, inbox_id: int, source_id: str, chat: dict) -> dict:
        is_group = chat["chat_type"] in ("group", "supergroup")
        contact_name = (chat["chat_title"] if is_group else None) or chat["sender_name"] or "Telegram User"
        attributes = {
            "platform": Platform.TELEGRAM.value,
            "chat_type": chat["chat_type"] or "private",
            "chat_id": chat["chat_id"],
            "telegram_bot_id": chat["telegram_bot_id"],
            "sender_id": chat["sender_id"],
            "sender_name": chat["sender_name"],
            "telegram_username": chat["username"],
        }
        attributes = {key: value for key, value in attributes.items() if value is not None}

        contact = self.client.create_contact(
            inbox_id,
            name=contact_name,
            identifier=source_id,
            custom_attributes=attributes,
        )
        contact_id = contact.get("id")
        if contact_id is None:
            raise UpstreamError(Platform.CHATWOOT.value, "contact creation returned no id")
        self.client.create_contact_inbox(contact_id, inbox_id, source_id)
        conversation = self.client.create_conversation(
            inbox_id,
            source_id,
            contact_id,
            additional_attributes=attributes,
            custom_attributes=attributes,
        )
        logger.info(
            "Created Chatwoot conversation",
            extra={"context": {"account": self.instance.id, "source_id": source_id, "conversation": conversation.get("id")}},
        )
        return conversation

    def resolve_conversation(self, message, mapping) -> str:
        chat = self._chat_context(message, mapping)
        link = links.get_or_create_link(
            self.db, chat["telegram_bot_id"], chat["chat_id"], Platform.CHATWOOT, self.instance.id, chat["chat_type"]
        )
        if link.remote_conversation_id:
            return link.remote_conversation_id

        source_id = build_source_id(chat["telegram_bot_id"], chat["chat_id"])
        inbox_id = self._inbox_id(Platform.TELEGRAM)
        conversation = self.client.find_conversation_by_source_id(inbox_id, source_id)
        if conversation is None:
            conversation = self._create_conversation(inbox_id, source_id, chat)
        else:
            logger.info(f"Reusing Chatwoot conversation {conversation.get('id')} for {source_id}")

        conversation_id = conversation.get("id")
        if conversation_id is None:
            raise UpstreamError(Platform.CHATWOOT.value, "conversation response carried no id")

        links.set_remote_conversation(self.db, link, conversation_id, source_id)
        return str(conversation_id)

    def send_message(self, conversation_id, message, mapping) -> Delivery:
        max_length = self.config_service.get_int("chatwoot.maxMessageLength")
        if message.platform == Platform.DIFY:
            # outgoing + forwarded keeps the reply from coming back through our webhook
            content = format_for_chatwoot(message.content, None, max_length, is_group_chat=False)
            result = self.client.send_message(
                int(conversation_id),
                content,
                message_type="outgoing",
                content_attributes={"forwarded": True, "source": Platform.DIFY.value},
            )
        else:
            content = format_for_chatwoot(message.content, message.sender_name, max_length, message.is_group_chat)
            result = self.client.send_message(int(conversation_id), content, message_type="incoming")

        message_id = (result or {}).get("id")
        return Delivery(
            conversation_id=str(conversation_id),
            message_id=str(message_id) if message_id is not None else None,
        )

    def probe(self) -> dict:
        return self.client.get_account()
