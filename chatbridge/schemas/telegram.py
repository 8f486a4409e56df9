from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramMessageEntity(BaseModel):
    type: str  # mention, bot_command, ...
    offset: int
    length: int


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")  # "from" is reserved in Python
    text: Optional[str] = None
    caption: Optional[str] = None
    entities: Optional[list[TelegramMessageEntity]] = None
    reply_to_message: Optional[Any] = None
    new_chat_members: Optional[list[TelegramUser]] = None
    left_chat_member: Optional[TelegramUser] = None
    group_chat_created: Optional[bool] = None
    supergroup_chat_created: Optional[bool] = None
    migrate_to_chat_id: Optional[int] = None
    migrate_from_chat_id: Optional[int] = None

    # nested validation skips __init__, so "from" is mapped by alias
    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_service_event(self) -> bool:
        return bool(
            self.new_chat_members
            or self.left_chat_member
            or self.group_chat_created
            or self.supergroup_chat_created
            or self.migrate_to_chat_id
            or self.migrate_from_chat_id
        )


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None
