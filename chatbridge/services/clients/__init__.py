from chatbridge.services.clients.chatwoot_client import ChatwootClient
from chatbridge.services.clients.dify_client import DifyClient, DifyReply
from chatbridge.services.clients.telegram_client import TelegramClient

__all__ = ["ChatwootClient", "DifyClient", "DifyReply", "TelegramClient"]
