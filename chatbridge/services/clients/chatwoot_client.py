from typing import Any, Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger
from chatbridge.services.errors import NotConfiguredError, UpstreamError

logger = get_logger("clients.chatwoot")

API_CHANNEL_TYPE = "Channel::Api"


def _unwrap_list(data: Any) -> list:
    """Chatwoot wraps collections differently per endpoint and version."""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    for key in ("payload", "data"):
        inner = data.get(key)
        if isinstance(inner, list):
            return inner
        if isinstance(inner, dict):
            nested = _unwrap_list(inner)
            if nested:
                return nested
    return []


def _unwrap_object(data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    for key in ("payload", "data"):
        inner = data.get(key)
        if isinstance(inner, dict) and inner:
            return inner
    return data


class ChatwootClient:
    """Client for the Chatwoot application API of one account."""

    PLATFORM = "chatwoot"

    def __init__(
        self,
        base_url: Optional[str],
        access_token: Optional[str],
        account_id: Optional[str],
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.access_token = access_token
        self.account_id = account_id
        self.timeout = timeout if timeout is not None else settings.chatwoot_timeout_seconds
        self.missing = [
            name
            for name, value in (("base_url", base_url), ("access_token", access_token), ("account_id", account_id))
            if not value
        ]
        if self.missing:
            logger.warning(f"Chatwoot client disabled, missing {', '.join(self.missing)}")

    @classmethod
    def from_instance(cls, instance) -> "ChatwootClient":
        return cls(base_url=instance.api_url, access_token=instance.token, account_id=instance.account_ref)

    @property
    def is_configured(self) -> bool:
        return not self.missing

    @property
    def account_url(self) -> str:
        return f"{self.base_url}/api/v1/accounts/{self.account_id}"

    def _request(self, method: str, path: str = "", params: Optional[dict] = None, json: Optional[dict] = None) -> Any:
        if self.missing:
            raise NotConfiguredError(self.PLATFORM, self.missing)

        url = f"{self.account_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(
                    method,
                    url,
                    headers={"api_access_token": self.access_token, "Content-Type": "application/json"},
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as e:
            logger.error(f"Chatwoot request failed: {method} {path}: {e}")
            raise UpstreamError(self.PLATFORM, f"{method} {path or '/'} failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                f"Chatwoot API error: {response.status_code}",
                extra={"context": {"method": method, "path": path, "body": response.text[:500]}},
            )
            raise UpstreamError(self.PLATFORM, f"{method} {path or '/'}: {response.text[:200]}", response.status_code)

        if not response.content:
            return {}
        return response.json()

    def get_account(self) -> dict:
        return self._request("GET")

    def list_inboxes(self) -> list[dict]:
        return _unwrap_list(self._request("GET", "/inboxes"))

    def create_inbox(self, name: str, webhook_url: Optional[str] = None) -> dict:
        channel = {"type": "api"}
        if webhook_url:
            channel["webhook_url"] = webhook_url
        return _unwrap_object(self._request("POST", "/inboxes", json={"name": name, "channel": channel}))

    def get_or_create_api_inbox(self, name: str) -> int:
        """Id of the API-channel inbox with the given name, created if absent."""
        for inbox in self.list_inboxes():
            if inbox.get("name") == name and inbox.get("channel_type") == API_CHANNEL_TYPE:
                return int(inbox["id"])

        logger.info(f"Chatwoot inbox {name!r} not found, creating")
        inbox = self.create_inbox(name)
        return int(inbox["id"])

    def find_conversation_by_source_id(self, inbox_id: int, source_id: str) -> Optional[dict]:
        conversations = _unwrap_list(
            self._request("GET", "/conversations", params={"inbox_id": inbox_id, "source_id": source_id})
        )
        for conversation in conversations:
            contact_inbox = conversation.get("contact_inbox") or {}
            if contact_inbox.get("source_id") == source_id:
                return conversation
            if (conversation.get("additional_attributes") or {}).get("source_id") == source_id:
                return conversation
        return None

    def create_contact(
        self,
        inbox_id: int,
        name: str,
        identifier: Optional[str] = None,
        custom_attributes: Optional[dict] = None,
    ) -> dict:
        payload = {"inbox_id": inbox_id, "name": name}
        if identifier:
            payload["identifier"] = identifier
        if custom_attributes:
            payload["custom_attributes"] = custom_attributes
        data = _unwrap_object(self._request("POST", "/contacts", json=payload))
        return data.get("contact", data)

    def create_contact_inbox(self, contact_id: int, inbox_id: int, source_id: str) -> dict:
        return self._request(
            "POST",
            f"/contacts/{contact_id}/contact_inboxes",
            json={"inbox_id": inbox_id, "source_id": source_id},
        )

    def create_conversation(
        self,
        inbox_id: int,
        source_id: str,
        contact_id: int,
        additional_attributes: Optional[dict] = None,
        custom_attributes: Optional[dict] = None,
    ) -> dict:
        payload = {
            "source_id": source_id,
            "inbox_id": inbox_id,
            "contact_id": contact_id,
            "additional_attributes": {**(additional_attributes or {}), "source_id": source_id},
        }
        if custom_attributes:
            payload["custom_attributes"] = custom_attributes
        return _unwrap_object(self._request("POST", "/conversations", json=payload))

    def get_conversation(self, conversation_id: int) -> dict:
        return self._request("GET", f"/conversations/{conversation_id}")

    def send_message(
        self,
        conversation_id: int,
        content: str,
        message_type: str = "incoming",
        content_attributes: Optional[dict] = None,
        private: bool = False,
    ) -> dict:
        payload = {
            "content": content,
            "message_type": message_type,
            "private": private,
            "content_type": "text",
        }
        if content_attributes:
            payload["content_attributes"] = content_attributes
        return self._request("POST", f"/conversations/{conversation_id}/messages", json=payload)

    def register_webhook(self, url: str, subscriptions: Optional[list[str]] = None) -> dict:
        payload = {"url": url, "subscriptions": subscriptions or ["message_created", "conversation_updated"]}
        return self._request("POST", "/webhooks", json=payload)
