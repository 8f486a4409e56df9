from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.services.errors import NotConfiguredError, UpstreamError

logger = get_logger("clients.dify")

DEFAULT_API_URL = "https://api.dify.ai/v1"


@dataclass
class DifyReply:
    answer: Any  # usually str; some app versions return a list
    conversation_id: Optional[str]
    message_id: Optional[str] = None


def normalize_api_url(api_url: Optional[str]) -> str:
    base = (api_url or DEFAULT_API_URL).rstrip("/")
    if not base.endswith("/v1"):
        base = f"{base}/v1"
    return base


class DifyClient:
    """Client for the Dify chat-messages API of one app."""

    PLATFORM = "dify"

    def __init__(
        self,
        api_key: Optional[str],
        api_url: Optional[str] = None,
        app_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.api_url = normalize_api_url(api_url)
        self.app_id = app_id
        self.timeout = timeout if timeout is not None else settings.dify_timeout_seconds
        self.missing = [] if api_key else ["api_key"]
        if self.missing:
            logger.warning("Dify client created without API key, client disabled")

    @classmethod
    def from_instance(cls, instance) -> "DifyClient":
        return cls(
            api_key=instance.token,
            api_url=instance.api_url,
            app_id=instance.app_ref,
            timeout=instance.timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return not self.missing

    def chat(
        self,
        query: str,
        user: str,
        conversation_id: Optional[str] = None,
        inputs: Optional[dict] = None,
    ) -> DifyReply:
        """Send one blocking chat turn."""
        if self.missing:
            raise NotConfiguredError(self.PLATFORM, self.missing)

        payload = {
            "inputs": inputs or {},
            "query": query,
            "user": user,
            "response_mode": "blocking",
        }
        if conversation_id:
            payload["conversation_id"] = conversation_id

        logger.debug(
            f"Dify request: user={user}, mode={'continuous' if conversation_id else 'new'}",
            extra={"context": {"app_id": self.app_id}},
        )

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.api_url}/chat-messages",
                    headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Dify request failed: {e}")
            raise UpstreamError(self.PLATFORM, f"chat-messages failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Dify error: {response.status_code} {response.text[:500]}")
            raise UpstreamError(self.PLATFORM, f"chat-messages: {response.text[:200]}", response.status_code)

        data = response.json()
        return DifyReply(
            answer=data.get("answer"),
            conversation_id=data.get("conversation_id"),
            message_id=data.get("message_id") or data.get("id"),
        )

    def test_completion(self) -> DifyReply:
        """Lightweight completion used by connection tests."""
        return self.chat("ping", user="chatbridge-connection-test")
