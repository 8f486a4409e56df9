"""Decides which platforms receive a message and forwards it to each of them."""

from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatbridge.logging_config import LoggerAdapter, get_logger
from chatbridge.models import PlatformMapping
from chatbridge.services import conversation_link_repository as links
from chatbridge.services import mapping_repository
from chatbridge.services.canonical import (
    LOOP_GUARD_FLAGS,
    CanonicalMessage,
    Platform,
    RoutingOutcome,
    TargetResult,
)
from chatbridge.services.configuration_service import ConfigurationService
from chatbridge.services.errors import ValidationError
from chatbridge.services.instance_directory import InstanceDirectory, PlatformInstance
from chatbridge.services.targets import TargetRegistry

logger = get_logger("routing_engine")

SOURCE_TO_TARGET = "source_to_target"
TARGET_TO_SOURCE = "target_to_source"


@dataclass(frozen=True)
class RouteLeg:
    platform: Platform
    instance_id: int
    direction: str


def should_process_message(message: CanonicalMessage) -> bool:
    """False for echoes of our own forwards, bot authors and test traffic."""
    return not any(message.metadata.get(flag) for flag in LOOP_GUARD_FLAGS)


def plan_legs(message: CanonicalMessage, mapping: PlatformMapping) -> list[RouteLeg]:
    """Apply the direction matrix of one mapping to one message."""
    origin = message.platform
    instance_id = message.instance_id

    if origin.value == mapping.source_platform and instance_id == mapping.source_id:
        desk_enabled = mapping.chatwoot_account_id is not None and (
            mapping.enable_telegram_to_chatwoot or mapping.auto_connect_telegram_chatwoot
        )
        ai_enabled = (
            mapping.dify_app_id is not None
            and (mapping.enable_telegram_to_dify or mapping.auto_connect_telegram_dify)
            and message.metadata.get("shouldRespondWithAI", True)
        )
        candidates = []
        if desk_enabled:
            candidates.append(RouteLeg(Platform.CHATWOOT, mapping.chatwoot_account_id, SOURCE_TO_TARGET))
        if ai_enabled:
            candidates.append(RouteLeg(Platform.DIFY, mapping.dify_app_id, SOURCE_TO_TARGET))
        # both targets only when both are enabled; otherwise Chatwoot wins
        return candidates if desk_enabled and ai_enabled else candidates[:1]

    source = Platform(mapping.source_platform)
    if origin == Platform.CHATWOOT and instance_id == mapping.chatwoot_account_id:
        if mapping.enable_chatwoot_to_telegram:
            return [RouteLeg(source, mapping.source_id, TARGET_TO_SOURCE)]
        return []

    if origin == Platform.DIFY and instance_id == mapping.dify_app_id:
        legs = []
        if mapping.enable_dify_to_telegram:
            legs.append(RouteLeg(source, mapping.source_id, TARGET_TO_SOURCE))
        if mapping.enable_dify_to_chatwoot and mapping.chatwoot_account_id is not None:
            legs.append(RouteLeg(Platform.CHATWOOT, mapping.chatwoot_account_id, TARGET_TO_SOURCE))
        return legs

    return []


class RoutingEngine:
    def __init__(
        self,
        db: Session,
        directory: InstanceDirectory,
        registry: TargetRegistry,
        config_service: ConfigurationService,
    ):
        self.db = db
        self.directory = directory
        self.registry = registry
        self.config_service = config_service

    should_process_message = staticmethod(should_process_message)

    def route(self, message: CanonicalMessage) -> RoutingOutcome:
        if message.instance_id is None:
            raise ValidationError(f"{message.platform.value} message has no receiving instance id")

        log = LoggerAdapter(
            logger,
            {"platform": message.platform.value, "instance_id": message.instance_id, "message_id": message.message_id},
        )

        if self.directory.get_active(message.platform, message.instance_id) is None:
            log.info("Receiving instance is missing or inactive")
            return RoutingOutcome.no_op("inactive_instance")
        if self._already_forwarded(message):
            log.info("Chatwoot message already delivered to Telegram")
            return RoutingOutcome.no_op("already_forwarded")

        mappings = mapping_repository.find_routes_for(self.db, message.platform, message.instance_id)
        if not mappings:
            log.info("No platform mapping for message")
            return RoutingOutcome.no_op("no_mapping")

        results: list[TargetResult] = []
        seen: set[tuple[Platform, int]] = set()
        for mapping in mappings:
            results.extend(self._route_mapping(message, mapping, seen, log))

        outcome = RoutingOutcome.from_results(results)
        log.info(
            "Routing completed",
            context={
                "mappings": len(mappings),
                "targets": len(results),
                "succeeded": sum(1 for result in results if result.success),
            },
        )
        return outcome

    def _already_forwarded(self, message: CanonicalMessage) -> bool:
        """conversation_updated events repeat the last agent message on every status change."""
        if message.platform != Platform.CHATWOOT or not message.message_id:
            return False
        link = links.find_by_remote_conversation(
            self.db, Platform.CHATWOOT, message.instance_id, message.conversation_id
        )
        return link is not None and link.last_forwarded_message_id == str(message.message_id)

    def _route_mapping(
        self,
        message: CanonicalMessage,
        mapping: PlatformMapping,
        seen: set[tuple[Platform, int]],
        log: LoggerAdapter,
    ) -> list[TargetResult]:
        results = []
        for leg in plan_legs(message, mapping):
            key = (leg.platform, leg.instance_id)
            if key in seen:
                continue
            seen.add(key)

            instance = self.directory.get_active(leg.platform, leg.instance_id)
            if instance is None:
                log.info(
                    f"Skipping inactive {leg.platform.value} instance {leg.instance_id}",
                    context={"mapping_id": mapping.id},
                )
                continue

            result = self._forward(leg, instance, message, mapping, log)
            results.append(result)

            if result.success and leg.platform == Platform.DIFY and result.reply:
                results.extend(self._route_ai_reply(message, mapping, instance, result, log))
        return results

    def _route_ai_reply(
        self,
        message: CanonicalMessage,
        mapping: PlatformMapping,
        ai_instance: PlatformInstance,
        ai_result: TargetResult,
        log: LoggerAdapter,
    ) -> list[TargetResult]:
        reply = CanonicalMessage(
            platform=Platform.DIFY,
            instance_id=ai_instance.id,
            conversation_id=ai_result.conversation_id or "",
            sender_id="dify",
            sender_name=ai_instance.name,
            content=ai_result.reply,
            message_id=ai_result.message_id,
            metadata={
                "chatId": message.conversation_id,
                "telegramBotId": message.instance_id,
                "chatType": message.metadata.get("chatType"),
                "chatTitle": message.metadata.get("chatTitle"),
                "username": message.metadata.get("username"),
                "originalSenderId": message.sender_id,
                "originalSenderName": message.sender_name,
                "replyToMessageId": message.message_id,
            },
        )
        results = []
        for leg in plan_legs(reply, mapping):
            instance = self.directory.get_active(leg.platform, leg.instance_id)
            if instance is None:
                continue
            results.append(self._forward(leg, instance, reply, mapping, log))
        return results

    def _forward(
        self,
        leg: RouteLeg,
        instance: PlatformInstance,
        message: CanonicalMessage,
        mapping: PlatformMapping,
        log: LoggerAdapter,
    ) -> TargetResult:
        try:
            target = self.registry.build(leg.platform, instance, self.db, self.config_service)
            result = target.forward(message, mapping, leg.direction)
            log.info(
                f"Forwarded {message.platform.value} message to {leg.platform.value}",
                context={"mapping_id": mapping.id, "target": instance.id, "conversation": result.conversation_id},
            )
            return result
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                self.db.rollback()
            log.error(
                f"Forward to {leg.platform.value} failed: {e}",
                context={"mapping_id": mapping.id, "target": instance.id, "error_type": type(e).__name__},
            )
            return TargetResult(
                platform=leg.platform,
                instance_id=instance.id,
                success=False,
                mapping_id=mapping.id,
                direction=leg.direction,
                error=str(e),
            )
