from sqlalchemy import JSON, Column, DateTime, Text, func

from chatbridge.database import Base


class Configuration(Base):
    __tablename__ = "configurations"

    key = Column(Text, primary_key=True)
    value = Column(JSON)
    description = Column(Text)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
