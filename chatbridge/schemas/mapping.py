from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class MappingCreate(BaseModel):
    name: Optional[str] = None
    source_platform: str = "telegram"
    source_id: int
    chatwoot_account_id: Optional[int] = None
    dify_app_id: Optional[int] = None
    enable_telegram_to_chatwoot: bool = True
    enable_telegram_to_dify: bool = True
    enable_chatwoot_to_telegram: bool = True
    enable_dify_to_chatwoot: bool = False
    enable_dify_to_telegram: bool = True
    auto_connect_telegram_chatwoot: bool = False
    auto_connect_telegram_dify: bool = False

    @field_validator("source_platform", mode="before")
    @classmethod
    def normalize_platform(cls, value: object) -> str:
        return str(value or "").strip().lower()


class MappingUpdate(BaseModel):
    name: Optional[str] = None
    chatwoot_account_id: Optional[int] = None
    dify_app_id: Optional[int] = None
    enable_telegram_to_chatwoot: Optional[bool] = None
    enable_telegram_to_dify: Optional[bool] = None
    enable_chatwoot_to_telegram: Optional[bool] = None
    enable_dify_to_chatwoot: Optional[bool] = None
    enable_dify_to_telegram: Optional[bool] = None
    auto_connect_telegram_chatwoot: Optional[bool] = None
    auto_connect_telegram_dify: Optional[bool] = None
    is_active: Optional[bool] = None


class MappingResponse(BaseModel):
    id: int
    name: Optional[str] = None
    source_platform: str
    source_id: int
    chatwoot_account_id: Optional[int] = None
    dify_app_id: Optional[int] = None
    enable_telegram_to_chatwoot: bool
    enable_telegram_to_dify: bool
    enable_chatwoot_to_telegram: bool
    enable_dify_to_chatwoot: bool
    enable_dify_to_telegram: bool
    auto_connect_telegram_chatwoot: bool
    auto_connect_telegram_dify: bool
    is_active: bool
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    telegram_bot_name: Optional[str] = None
    chatwoot_account_name: Optional[str] = None
    dify_app_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MappingListResponse(BaseModel):
    items: list[MappingResponse]
    total: int
    limit: int
    offset: int


class ConfigurationUpdate(BaseModel):
    value: Any = None
    description: Optional[str] = None
