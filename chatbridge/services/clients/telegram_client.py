from typing import Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.services.errors import NotConfiguredError, UpstreamError

logger = get_logger("clients.telegram")


class TelegramClient:
    """Client for the Telegram Bot API of one bot."""

    PLATFORM = "telegram"

    def __init__(self, bot_token: Optional[str], api_url: Optional[str] = None, timeout: Optional[float] = None):
        self.bot_token = bot_token
        self.api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.telegram_timeout_seconds
        self.base_url = f"{self.api_url}/bot{bot_token}"
        self.missing = [] if bot_token else ["bot_token"]
        if self.missing:
            logger.warning("Telegram client created without bot token, client disabled")

    @classmethod
    def from_instance(cls, instance) -> "TelegramClient":
        return cls(bot_token=instance.token, api_url=instance.api_url)

    @property
    def is_configured(self) -> bool:
        return not self.missing

    def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        if self.missing:
            raise NotConfiguredError(self.PLATFORM, self.missing)

        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=data or {})
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram API error on {method}: {e}")
            raise UpstreamError(self.PLATFORM, f"{method} failed: {e}") from e

        if not payload.get("ok"):
            description = payload.get("description", "unknown error")
            logger.error(
                f"Telegram API rejected {method}: {description}",
                extra={"context": {"method": method, "status": response.status_code}},
            )
            raise UpstreamError(self.PLATFORM, f"{method}: {description}", payload.get("error_code"))

        return payload.get("result")

    def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = "HTML",
        reply_to_message_id: Optional[int] = None,
    ) -> dict:
        """Send message to Telegram chat."""
        data = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_to_message_id:
            data["reply_to_message_id"] = reply_to_message_id
        return self._make_request("sendMessage", data)

    def set_webhook(self, url: str, secret_token: Optional[str] = None, allowed_updates: Optional[list] = None) -> bool:
        data = {"url": url}
        if secret_token:
            data["secret_token"] = secret_token
        if allowed_updates is not None:
            data["allowed_updates"] = allowed_updates
        return self._make_request("setWebhook", data)

    def get_webhook_info(self) -> dict:
        return self._make_request("getWebhookInfo")

    def delete_webhook(self) -> bool:
        return self._make_request("deleteWebhook")

    def get_me(self) -> dict:
        """Bot identity; doubles as the connection probe."""
        return self._make_request("getMe")
