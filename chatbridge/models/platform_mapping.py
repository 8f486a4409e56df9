from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, func, text

from chatbridge.database import Base


class PlatformMapping(Base):
    __tablename__ = "platform_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text)
    source_platform = Column(Text, nullable=False, default="telegram")
    source_id = Column(Integer, nullable=False)
    chatwoot_account_id = Column(Integer, ForeignKey("chatwoot_accounts.id"))
    dify_app_id = Column(Integer, ForeignKey("dify_apps.id"))

    enable_telegram_to_chatwoot = Column(Boolean, nullable=False, default=True)
    enable_telegram_to_dify = Column(Boolean, nullable=False, default=True)
    enable_chatwoot_to_telegram = Column(Boolean, nullable=False, default=True)
    enable_dify_to_chatwoot = Column(Boolean, nullable=False, default=False)
    enable_dify_to_telegram = Column(Boolean, nullable=False, default=True)
    auto_connect_telegram_chatwoot = Column(Boolean, nullable=False, default=False)
    auto_connect_telegram_dify = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Text)
    updated_by = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # one active mapping per (source, desk, ai) triple; NULL targets compare equal via COALESCE
    __table_args__ = (
        Index(
            "uq_platform_mappings_active_triple",
            "source_platform",
            "source_id",
            func.coalesce(chatwoot_account_id, 0),
            func.coalesce(dify_app_id, 0),
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    ROUTING_FLAGS = (
        "enable_telegram_to_chatwoot",
        "enable_telegram_to_dify",
        "enable_chatwoot_to_telegram",
        "enable_dify_to_chatwoot",
        "enable_dify_to_telegram",
    )
    AUTO_CONNECT_FLAGS = (
        "auto_connect_telegram_chatwoot",
        "auto_connect_telegram_dify",
    )
