from typing import Callable, Optional

from sqlalchemy.orm import Session

from chatbridge.config import settings
from chatbridge.services.cache import TTLCache
from chatbridge.services.canonical import Platform
from chatbridge.services.configuration_service import ConfigurationService
from chatbridge.services.instance_directory import PlatformInstance
from chatbridge.services.targets.base import PlatformTarget
from chatbridge.services.targets.chatwoot_target import ChatwootTarget
from chatbridge.services.targets.dify_target import DifyTarget
from chatbridge.services.targets.telegram_target import TelegramTarget

TargetFactory = Callable[[PlatformInstance, Session, ConfigurationService], PlatformTarget]


class TargetRegistry:
    """Builds the delivery target for a platform instance.

    Adding a platform means registering a factory here.
    """

    def __init__(self, factories: Optional[dict[Platform, TargetFactory]] = None, inbox_cache: Optional[TTLCache] = None):
        self.inbox_cache = inbox_cache or TTLCache(settings.cache_ttl_seconds)
        self._factories: dict[Platform, TargetFactory] = {
            Platform.TELEGRAM: TelegramTarget,
            Platform.CHATWOOT: lambda instance, db, config: ChatwootTarget(
                instance, db, config, inbox_cache=self.inbox_cache
            ),
            Platform.DIFY: DifyTarget,
        }
        if factories:
            self._factories.update(factories)

    def register(self, platform: Platform, factory: TargetFactory) -> None:
        self._factories[platform] = factory

    def build(
        self, platform: Platform, instance: PlatformInstance, db: Session, config_service: ConfigurationService
    ) -> PlatformTarget:
        factory = self._factories.get(platform)
        if factory is None:
            raise KeyError(f"No delivery target registered for {platform.value}")
        return factory(instance, db, config_service)
