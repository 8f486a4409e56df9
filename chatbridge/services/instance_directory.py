"""Cached, read-only snapshots of Telegram bots, Chatwoot accounts and Dify apps."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from chatbridge.services.cache import TTLCache
from chatbridge.services.canonical import Platform
from chatbridge.services.instance_repository import get_instance


@dataclass(frozen=True)
class PlatformInstance:
    platform: Platform
    id: int
    name: str
    is_active: bool
    api_url: Optional[str] = None
    token: Optional[str] = None
    account_ref: Optional[str] = None  # Chatwoot account id
    app_ref: Optional[str] = None  # Dify app id
    username: Optional[str] = None
    secret_token: Optional[str] = None
    timeout_seconds: Optional[float] = None


def snapshot(platform: Platform, row) -> PlatformInstance:
    if platform == Platform.TELEGRAM:
        return PlatformInstance(
            platform=platform,
            id=row.id,
            name=row.name,
            is_active=bool(row.is_active),
            api_url=row.api_url,
            token=row.bot_token,
            username=row.username,
            secret_token=row.secret_token,
        )
    if platform == Platform.CHATWOOT:
        return PlatformInstance(
            platform=platform,
            id=row.id,
            name=row.name,
            is_active=bool(row.is_active),
            api_url=row.base_url,
            token=row.access_token,
            account_ref=str(row.account_id) if row.account_id is not None else None,
        )
    return PlatformInstance(
        platform=platform,
        id=row.id,
        name=row.name,
        is_active=bool(row.is_active),
        api_url=row.api_url,
        token=row.api_key,
        app_ref=row.app_id,
        timeout_seconds=row.timeout_seconds,
    )


class InstanceDirectory:
    """Looks up platform instances, caching snapshots for the cache TTL.

    Entries expire, so an instance deactivated by an administrator stops
    receiving traffic after at most one TTL.
    """

    def __init__(self, db: Session, cache: TTLCache):
        self.db = db
        self.cache = cache

    def get(self, platform: Platform, instance_id: int) -> Optional[PlatformInstance]:
        key = (platform.value, instance_id)
        instance, found = self.cache.get(key)
        if found:
            return instance

        row = get_instance(self.db, platform, instance_id)
        instance = snapshot(platform, row) if row else None
        self.cache.set(key, instance)
        return instance

    def get_active(self, platform: Platform, instance_id: Optional[int]) -> Optional[PlatformInstance]:
        if instance_id is None:
            return None
        instance = self.get(platform, instance_id)
        if instance is None or not instance.is_active:
            return None
        return instance

    def invalidate(self, platform: Platform, instance_id: int) -> None:
        self.cache.invalidate((platform.value, instance_id))
