from sqlalchemy import Boolean, Column, DateTime, Float, Integer, Text, func

from chatbridge.database import Base


class DifyApp(Base):
    __tablename__ = "dify_apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    api_url = Column(Text)
    api_key = Column(Text)
    app_id = Column(Text)
    timeout_seconds = Column(Float)  # None -> settings.dify_timeout_seconds
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
