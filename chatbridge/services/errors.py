"""Exceptions raised by the mapping and routing services."""

from typing import Optional


class ChatbridgeError(Exception):
    """Base class for errors surfaced to the HTTP layer."""


class ValidationError(ChatbridgeError):
    """Malformed payload or invalid routing data."""


class ConflictError(ChatbridgeError):
    """An active mapping with the same instance triple already exists."""


class NotFoundError(ChatbridgeError):
    """Referenced mapping or platform instance does not exist."""


class UpstreamError(ChatbridgeError):
    """A call to Telegram, Chatwoot or Dify failed."""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        detail = f"{platform}: {message}"
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        super().__init__(detail)


class NotConfiguredError(UpstreamError):
    """Client was built from an instance with incomplete credentials."""

    def __init__(self, platform: str, missing: list[str]):
        self.missing = missing
        super().__init__(platform, f"not configured, missing {', '.join(missing)}")
