"""Administrator-tunable values stored in the configurations table."""

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from chatbridge.config import Settings, settings
from chatbridge.logging_config import get_logger
from chatbridge.models import Configuration
from chatbridge.services.cache import TTLCache

logger = get_logger("configuration")

# configuration key -> Settings attribute providing the default
DEFAULT_KEYS = {
    "dify.maxResponseLength": "dify_max_response_length",
    "dify.simpleGreetingMaxLength": "dify_simple_greeting_max_length",
    "dify.enableConversationHistory": "dify_enable_conversation_history",
    "telegram.maxMessageLength": "telegram_max_message_length",
    "telegram.parseMode": "telegram_parse_mode",
    "chatwoot.maxMessageLength": "chatwoot_max_message_length",
    "webhook.baseUrl": "webhook_base_url",
}


@dataclass(frozen=True)
class AiSettings:
    max_response_length: int
    simple_greeting_max_length: int
    enable_conversation_history: bool


class ConfigurationService:
    def __init__(self, db: Session, cache: TTLCache, defaults: Optional[Settings] = None):
        self.db = db
        self.cache = cache
        self.defaults = defaults or settings

    def default_for(self, key: str) -> Any:
        attr = DEFAULT_KEYS.get(key)
        return getattr(self.defaults, attr) if attr else None

    def get(self, key: str, default: Any = None) -> Any:
        value, found = self.cache.get(key)
        if not found:
            row = self.db.query(Configuration).filter(Configuration.key == key).first()
            value = row.value if row else None
            self.cache.set(key, value)

        if value is None:
            return default if default is not None else self.default_for(key)
        return value

    def set(self, key: str, value: Any, description: Optional[str] = None) -> Configuration:
        row = self.db.query(Configuration).filter(Configuration.key == key).first()
        if row is None:
            row = Configuration(key=key)
            self.db.add(row)
        row.value = value
        if description is not None:
            row.description = description
        self.db.commit()
        self.cache.invalidate(key)
        logger.info(f"Configuration updated: {key}", extra={"context": {"key": key, "value": value}})
        return row

    def get_int(self, key: str) -> int:
        value = self.get(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer configuration {key}={value!r}, using default")
            return int(self.default_for(key))

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    def get_ai_settings(self) -> AiSettings:
        return AiSettings(
            max_response_length=self.get_int("dify.maxResponseLength"),
            simple_greeting_max_length=self.get_int("dify.simpleGreetingMaxLength"),
            enable_conversation_history=self.get_bool("dify.enableConversationHistory"),
        )

    @property
    def webhook_base_url(self) -> Optional[str]:
        value = self.get("webhook.baseUrl")
        return str(value).rstrip("/") if value else None
