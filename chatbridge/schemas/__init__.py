from chatbridge.schemas.mapping import MappingCreate, MappingResponse, MappingUpdate
from chatbridge.schemas.webhook import WebhookResponse

__all__ = ["MappingCreate", "MappingUpdate", "MappingResponse", "WebhookResponse"]
