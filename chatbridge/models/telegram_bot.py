from sqlalchemy import Boolean, Column, DateTime, Integer, Text, func

from chatbridge.database import Base


class TelegramBot(Base):
    __tablename__ = "telegram_bots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    bot_token = Column(Text)
    api_url = Column(Text)  # None -> settings.telegram_api_url
    username = Column(Text)  # without leading "@", used for group mentions
    secret_token = Column(Text)  # X-Telegram-Bot-Api-Secret-Token
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
