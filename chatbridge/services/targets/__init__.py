from chatbridge.services.targets.base import Delivery, PlatformTarget
from chatbridge.services.targets.chatwoot_target import ChatwootTarget, build_source_id
from chatbridge.services.targets.dify_target import DifyTarget
from chatbridge.services.targets.registry import TargetRegistry
from chatbridge.services.targets.telegram_target import TelegramTarget

__all__ = [
    "Delivery",
    "PlatformTarget",
    "ChatwootTarget",
    "DifyTarget",
    "TargetRegistry",
    "TelegramTarget",
    "build_source_id",
]
