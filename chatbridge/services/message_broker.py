from typing import Any, Callable, Optional

from chatbridge.logging_config import get_logger
from chatbridge.services.canonical import Platform, RoutingOutcome
from chatbridge.services.errors import ValidationError
from chatbridge.services.instance_directory import InstanceDirectory
from chatbridge.services.normalizers import normalize_chatwoot, normalize_dify, normalize_telegram
from chatbridge.services.routing_engine import RoutingEngine

logger = get_logger("message_broker")


class MessageBroker:
    """Entry point for every inbound webhook."""

    def __init__(self, engine: RoutingEngine, directory: InstanceDirectory):
        self.engine = engine
        self.directory = directory
        self._normalizers: dict[Platform, Callable] = {
            Platform.TELEGRAM: self._normalize_telegram,
            Platform.CHATWOOT: normalize_chatwoot,
            Platform.DIFY: normalize_dify,
        }

    def _normalize_telegram(self, payload: Any, instance_id: int):
        bot = self.directory.get(Platform.TELEGRAM, instance_id)
        return normalize_telegram(payload, instance_id, bot.username if bot else None)

    def handle(self, platform: Platform, payload: Any, instance_id: Optional[int]) -> RoutingOutcome:
        if instance_id is None:
            raise ValidationError(f"{platform.value} webhook is missing the receiving instance id")

        result = self._normalizers[platform](payload, instance_id)
        if not result.ok:
            logger.info(
                f"No-op {platform.value} webhook: {result.error}",
                extra={"context": {"instance_id": instance_id, "reason": result.error_code}},
            )
            return RoutingOutcome.no_op(result.error_code)

        message = result.value
        if not self.engine.should_process_message(message):
            logger.info(
                f"Loop guard dropped {platform.value} message",
                extra={"context": {"instance_id": instance_id, "message_id": message.message_id}},
            )
            return RoutingOutcome.no_op("loop_guard")

        return self.engine.route(message)
