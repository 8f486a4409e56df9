"""Turn raw webhook payloads into CanonicalMessage envelopes.

Each normalizer returns ``Result.success(message)`` for actionable messages
and ``Result.failure(reason, code)`` for events that carry nothing to route.
Structurally broken payloads raise ``ValidationError``.
"""

import re
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from chatbridge.schemas.chatwoot import ChatwootMessage, ChatwootWebhookEvent
from chatbridge.schemas.dify import DifyCallback
from chatbridge.schemas.telegram import TelegramMessage, TelegramUpdate
from chatbridge.services.canonical import CanonicalMessage, Platform
from chatbridge.services.errors import ValidationError
from chatbridge.services.response_shaping import first_answer
from chatbridge.services.result import Result

GROUP_CHAT_TYPES = ("group", "supergroup")
CHATWOOT_OUTGOING = ("outgoing", 1)


def _require_dict(payload: Any, platform: Platform) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"{platform.value} webhook payload must be a JSON object")
    return payload


def telegram_sender_name(message: TelegramMessage) -> str:
    user = message.from_user
    if user is None:
        return message.chat.title or f"Chat {message.chat.id}"
    full_name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    if full_name:
        return full_name
    if user.username:
        return f"@{user.username}"
    return f"User {user.id}"


def mentions_bot(message: TelegramMessage, bot_username: Optional[str]) -> bool:
    if not bot_username:
        return False
    handle = f"@{bot_username.lstrip('@')}".casefold()
    text = message.text or ""
    for entity in message.entities or []:
        if entity.type == "mention" and text[entity.offset : entity.offset + entity.length].casefold() == handle:
            return True
    # plain-text handle, but not a longer username that starts with it
    if re.search(rf"(?<![\w@]){re.escape(handle)}(?!\w)", text, re.IGNORECASE):
        return True

    reply = message.reply_to_message
    if isinstance(reply, dict):
        author = reply.get("from") or {}
        return bool(author.get("is_bot")) and str(author.get("username", "")).casefold() == handle[1:]
    return False


def normalize_telegram(
    payload: Any, bot_id: Optional[int], bot_username: Optional[str] = None
) -> Result[CanonicalMessage]:
    payload = _require_dict(payload, Platform.TELEGRAM)
    try:
        update = TelegramUpdate(**payload)
    except (PydanticValidationError, TypeError) as e:
        raise ValidationError(f"Invalid Telegram update: {e}") from e

    message = update.message
    if message is None:
        code = "edited_message" if update.edited_message else "no_message"
        return Result.failure("Update carries no new message", code)
    if message.is_service_event:
        return Result.failure("Telegram service event", "service_event")
    if not message.text:
        return Result.failure("Only text messages are forwarded", "unsupported_content")

    user = message.from_user
    is_group = message.chat.type in GROUP_CHAT_TYPES
    if is_group or user is None:
        conversation_id = str(message.chat.id)
    else:
        conversation_id = str(user.id)

    mentioned = mentions_bot(message, bot_username)
    metadata = {
        "isGroupChat": is_group,
        "chatType": message.chat.type,
        "chatId": str(message.chat.id),
        "chatTitle": message.chat.title,
        "messageId": message.message_id,
        "username": user.username if user else None,
        "firstName": user.first_name if user else None,
        "lastName": user.last_name if user else None,
        "languageCode": user.language_code if user else None,
        "isBot": bool(user and user.is_bot),
        "mentionsBot": mentioned,
        # groups only reach the AI when the bot is addressed
        "shouldRespondWithAI": (not is_group) or mentioned,
    }

    return Result.success(
        CanonicalMessage(
            platform=Platform.TELEGRAM,
            instance_id=bot_id,
            conversation_id=conversation_id,
            sender_id=str(user.id) if user else str(message.chat.id),
            sender_name=telegram_sender_name(message),
            content=message.text,
            message_id=str(message.message_id),
            metadata=metadata,
        )
    )


def _chatwoot_message(event: ChatwootWebhookEvent) -> Optional[ChatwootMessage]:
    if event.event == "message_created":
        return ChatwootMessage(
            id=event.id,
            content=event.content,
            message_type=event.message_type,
            private=event.private,
            content_attributes=event.content_attributes or {},
            sender=event.sender,
            conversation_id=event.conversation.id if event.conversation else None,
        )

    # conversation_updated: the newest message of the attached list
    messages = event.messages
    if messages is None and event.conversation is not None:
        messages = event.conversation.messages
    if not messages:
        return None
    last = dict(messages[-1])
    last.setdefault("content_attributes", {})
    if last.get("content_attributes") is None:
        last["content_attributes"] = {}
    return ChatwootMessage(**last)


def normalize_chatwoot(payload: Any, account_id: Optional[int]) -> Result[CanonicalMessage]:
    payload = _require_dict(payload, Platform.CHATWOOT)
    try:
        event = ChatwootWebhookEvent(**payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid Chatwoot webhook: {e}") from e

    if event.event == "contact_updated":
        return Result.failure("Contact update is informational", "informational_event")
    if event.event not in ("message_created", "conversation_updated"):
        return Result.failure(f"Unsupported Chatwoot event {event.event!r}", "unsupported_event")

    try:
        message = _chatwoot_message(event)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid Chatwoot message: {e}") from e
    if message is None:
        return Result.failure("Conversation update without messages", "empty_conversation")
    if message.private:
        return Result.failure("Private notes stay in Chatwoot", "private_note")
    if message.message_type not in CHATWOOT_OUTGOING:
        # incoming messages are the ones we created from Telegram
        return Result.failure(f"Ignoring {message.message_type!r} message", "not_outgoing")
    if not (message.content or "").strip():
        return Result.failure("Empty message", "empty_content")

    # conversation_updated delivers the conversation itself at the top level
    conversation_id = message.conversation_id or (event.conversation.id if event.conversation else None)
    if conversation_id is None and event.event == "conversation_updated":
        conversation_id = event.id
    if conversation_id is None:
        raise ValidationError("Chatwoot message without conversation id")

    if event.conversation:
        attributes = {**event.conversation.custom_attributes, **event.conversation.additional_attributes}
    else:
        attributes = {**(payload.get("custom_attributes") or {}), **(payload.get("additional_attributes") or {})}

    sender = message.sender or event.sender
    content_attributes = message.content_attributes or {}
    metadata = {
        "chatId": attributes.get("chat_id"),
        "telegramBotId": attributes.get("telegram_bot_id"),
        "chatType": attributes.get("chat_type"),
        "inboxId": event.conversation.inbox_id if event.conversation else payload.get("inbox_id"),
        "senderType": sender.type if sender else None,
        "forwarded": bool(content_attributes.get("forwarded")),
        "isBot": bool(sender and sender.type == "agent_bot"),
        "externalAccountId": event.account.id if event.account else None,
    }

    return Result.success(
        CanonicalMessage(
            platform=Platform.CHATWOOT,
            instance_id=account_id,
            conversation_id=str(conversation_id),
            sender_id=str(sender.id) if sender and sender.id is not None else "",
            sender_name=(sender.name if sender and sender.name else "Agent"),
            content=message.content,
            message_id=str(message.id) if message.id is not None else None,
            metadata=metadata,
        )
    )


def normalize_dify(payload: Any, app_id: Optional[int]) -> Result[CanonicalMessage]:
    payload = _require_dict(payload, Platform.DIFY)
    try:
        callback = DifyCallback(**payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid Dify callback: {e}") from e

    answer = first_answer(callback.answer).strip()
    if not answer:
        return Result.failure("Dify callback without answer", "empty_content")
    if not callback.conversation_id:
        raise ValidationError("Dify callback without conversation_id")

    metadata = dict(callback.metadata)
    metadata.setdefault("chatId", metadata.pop("chat_id", None))
    metadata.setdefault("telegramBotId", metadata.pop("telegram_bot_id", None))

    return Result.success(
        CanonicalMessage(
            platform=Platform.DIFY,
            instance_id=app_id,
            conversation_id=callback.conversation_id,
            sender_id=callback.user or "dify",
            sender_name="AI",
            content=answer,
            message_id=callback.message_id,
            metadata=metadata,
        )
    )
