from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, func

from chatbridge.database import Base


class ConversationLink(Base):
    """One Telegram chat's conversation on one target instance.

    A chat mapped to several Chatwoot accounts or Dify apps has one row per
    target, so each target keeps its own conversation id.
    """

    __tablename__ = "conversation_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    telegram_bot_id = Column(Integer, ForeignKey("telegram_bots.id"), nullable=False)
    external_chat_id = Column(Text, nullable=False)
    chat_type = Column(Text)  # private, group, supergroup
    target_platform = Column(Text, nullable=False)  # chatwoot, dify
    target_instance_id = Column(Integer, nullable=False)
    remote_conversation_id = Column(Text)  # Chatwoot conversation id or Dify conversation token
    source_id = Column(Text)  # Chatwoot contact_inbox source id
    last_forwarded_message_id = Column(Text)  # last Chatwoot message delivered to Telegram
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "telegram_bot_id",
            "external_chat_id",
            "target_platform",
            "target_instance_id",
            name="uq_conversation_links_chat_target",
        ),
    )
