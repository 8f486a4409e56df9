from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatbridge.logging_config import get_logger
from chatbridge.models import ConversationLink
from chatbridge.services.canonical import Platform

logger = get_logger("conversation_links")


def find_link(
    db: Session, telegram_bot_id: int, external_chat_id: str, platform: Platform, instance_id: int
) -> Optional[ConversationLink]:
    return (
        db.query(ConversationLink)
        .filter(
            ConversationLink.telegram_bot_id == telegram_bot_id,
            ConversationLink.external_chat_id == str(external_chat_id),
            ConversationLink.target_platform == platform.value,
            ConversationLink.target_instance_id == instance_id,
        )
        .first()
    )


def get_or_create_link(
    db: Session,
    telegram_bot_id: int,
    external_chat_id: str,
    platform: Platform,
    instance_id: int,
    chat_type: Optional[str] = None,
) -> ConversationLink:
    """Find the link between a Telegram chat and a target instance or create it.

    A concurrent webhook may insert the same link first; the unique constraint
    turns that into an IntegrityError and the existing row is returned instead.
    """
    link = find_link(db, telegram_bot_id, external_chat_id, platform, instance_id)
    if link:
        if chat_type and link.chat_type != chat_type:
            link.chat_type = chat_type
            db.commit()
        return link

    link = ConversationLink(
        telegram_bot_id=telegram_bot_id,
        external_chat_id=str(external_chat_id),
        chat_type=chat_type,
        target_platform=platform.value,
        target_instance_id=instance_id,
    )
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Conversation link created concurrently, reusing",
            extra={
                "context": {
                    "telegram_bot_id": telegram_bot_id,
                    "chat_id": str(external_chat_id),
                    "platform": platform.value,
                    "instance_id": instance_id,
                }
            },
        )
        link = find_link(db, telegram_bot_id, external_chat_id, platform, instance_id)
        if link is None:
            raise
    return link


def find_by_remote_conversation(
    db: Session, platform: Platform, instance_id: int, remote_conversation_id: str
) -> Optional[ConversationLink]:
    return (
        db.query(ConversationLink)
        .filter(
            ConversationLink.target_platform == platform.value,
            ConversationLink.target_instance_id == instance_id,
            ConversationLink.remote_conversation_id == str(remote_conversation_id),
        )
        .order_by(ConversationLink.id)
        .first()
    )


def set_remote_conversation(
    db: Session, link: ConversationLink, remote_conversation_id: str, source_id: Optional[str] = None
) -> ConversationLink:
    link.remote_conversation_id = str(remote_conversation_id)
    if source_id:
        link.source_id = source_id
    link.updated_at = datetime.now(timezone.utc)
    db.commit()
    return link


def mark_forwarded(db: Session, link: ConversationLink, message_id: str) -> ConversationLink:
    link.last_forwarded_message_id = str(message_id)
    link.updated_at = datetime.now(timezone.utc)
    db.commit()
    return link
