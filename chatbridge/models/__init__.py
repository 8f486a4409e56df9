from chatbridge.models.chatwoot_account import ChatwootAccount
from chatbridge.models.configuration import Configuration
from chatbridge.models.conversation_link import ConversationLink
from chatbridge.models.dify_app import DifyApp
from chatbridge.models.platform_mapping import PlatformMapping
from chatbridge.models.telegram_bot import TelegramBot

__all__ = [
    "TelegramBot",
    "ChatwootAccount",
    "DifyApp",
    "PlatformMapping",
    "ConversationLink",
    "Configuration",
]
