from sqlalchemy import Boolean, Column, DateTime, Integer, Text, func

from chatbridge.database import Base


class ChatwootAccount(Base):
    __tablename__ = "chatwoot_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    base_url = Column(Text)
    access_token = Column(Text)
    account_id = Column(Text)  # account id on the Chatwoot side
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
