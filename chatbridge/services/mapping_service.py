"""Administration of platform mappings."""

from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatbridge.logging_config import get_logger
from chatbridge.models import PlatformMapping
from chatbridge.services import instance_repository, mapping_repository
from chatbridge.services.canonical import Platform
from chatbridge.services.clients import ChatwootClient, TelegramClient
from chatbridge.services.configuration_service import ConfigurationService
from chatbridge.services.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from chatbridge.services.instance_directory import InstanceDirectory, snapshot
from chatbridge.services.targets import TargetRegistry

logger = get_logger("mapping_service")

SUPPORTED_SOURCE_PLATFORMS = (Platform.TELEGRAM.value,)

MAPPING_FIELDS = (
    "name",
    "chatwoot_account_id",
    "dify_app_id",
    *PlatformMapping.ROUTING_FLAGS,
    *PlatformMapping.AUTO_CONNECT_FLAGS,
    "is_active",
)

NON_NULLABLE_FIELDS = (*PlatformMapping.ROUTING_FLAGS, *PlatformMapping.AUTO_CONNECT_FLAGS, "is_active")


def routing_matrix(mapping: PlatformMapping) -> dict:
    return {
        "telegramToChatwoot": bool(mapping.enable_telegram_to_chatwoot),
        "telegramToDify": bool(mapping.enable_telegram_to_dify),
        "chatwootToTelegram": bool(mapping.enable_chatwoot_to_telegram),
        "difyToChatwoot": bool(mapping.enable_dify_to_chatwoot),
        "difyToTelegram": bool(mapping.enable_dify_to_telegram),
    }


def auto_connect_flags(mapping: PlatformMapping) -> dict:
    return {
        "telegramChatwoot": bool(mapping.auto_connect_telegram_chatwoot),
        "telegramDify": bool(mapping.auto_connect_telegram_dify),
    }


class MappingService:
    def __init__(
        self,
        db: Session,
        config_service: ConfigurationService,
        directory: InstanceDirectory,
        registry: Optional[TargetRegistry] = None,
    ):
        self.db = db
        self.config_service = config_service
        self.directory = directory
        self.registry = registry or TargetRegistry()

    # === VALIDATION ===

    def _require_active_instance(self, platform: Platform, instance_id: int):
        row = instance_repository.get_instance(self.db, platform, instance_id)
        if row is None:
            raise ValidationError(f"{platform.value} instance {instance_id} does not exist")
        if not row.is_active:
            raise ValidationError(f"{platform.value} instance {instance_id} is not active")
        return row

    def _validate_targets(self, source_platform: str, source_id: int, chatwoot_account_id, dify_app_id) -> None:
        if source_platform not in SUPPORTED_SOURCE_PLATFORMS:
            raise ValidationError(f"Unsupported source platform {source_platform!r}")
        if chatwoot_account_id is None and dify_app_id is None:
            raise ValidationError("A mapping needs a Chatwoot account or a Dify app")

        self._require_active_instance(Platform(source_platform), source_id)
        if chatwoot_account_id is not None:
            self._require_active_instance(Platform.CHATWOOT, chatwoot_account_id)
        if dify_app_id is not None:
            self._require_active_instance(Platform.DIFY, dify_app_id)

    def _conflict(self, source_platform, source_id, chatwoot_account_id, dify_app_id) -> ConflictError:
        return ConflictError(
            f"An active mapping already links {source_platform} {source_id} "
            f"to chatwoot={chatwoot_account_id} dify={dify_app_id}"
        )

    def _ensure_unique(self, source_platform, source_id, chatwoot_account_id, dify_app_id, exclude_id=None) -> None:
        existing = mapping_repository.find_active_mapping(
            self.db, source_platform, source_id, chatwoot_account_id, dify_app_id
        )
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(
                f"Active mapping {existing.id} already links {source_platform} {source_id} "
                f"to chatwoot={chatwoot_account_id} dify={dify_app_id}"
            )

    # === COMMANDS ===

    def create_mapping(self, data: dict, actor: Optional[str] = None) -> PlatformMapping:
        fields = {key: value for key, value in data.items() if value is not None}
        source_platform = str(fields.pop("source_platform", Platform.TELEGRAM.value)).lower()
        source_id = fields.pop("source_id", None)
        if source_id is None:
            raise ValidationError("source_id is required")

        chatwoot_account_id = fields.get("chatwoot_account_id")
        dify_app_id = fields.get("dify_app_id")
        self._validate_targets(source_platform, source_id, chatwoot_account_id, dify_app_id)
        self._ensure_unique(source_platform, source_id, chatwoot_account_id, dify_app_id)

        unknown = set(fields) - set(MAPPING_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown mapping fields: {', '.join(sorted(unknown))}")

        try:
            mapping = mapping_repository.create_mapping(
                self.db,
                source_platform=source_platform,
                source_id=source_id,
                created_by=actor,
                updated_by=actor,
                **fields,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._conflict(source_platform, source_id, chatwoot_account_id, dify_app_id) from e
        self.db.refresh(mapping)

        logger.info(
            f"Platform mapping {mapping.id} created",
            extra={
                "context": {
                    "source": f"{source_platform}:{source_id}",
                    "chatwoot_account_id": chatwoot_account_id,
                    "dify_app_id": dify_app_id,
                    "actor": actor,
                }
            },
        )
        self.register_webhooks(mapping)
        return mapping

    def update_mapping(self, mapping_id: int, changes: dict, actor: Optional[str] = None) -> PlatformMapping:
        mapping = self.get_mapping(mapping_id)
        unknown = set(changes) - set(MAPPING_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown mapping fields: {', '.join(sorted(unknown))}")
        cleared = sorted(key for key in NON_NULLABLE_FIELDS if key in changes and changes[key] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")

        chatwoot_account_id = changes.get("chatwoot_account_id", mapping.chatwoot_account_id)
        dify_app_id = changes.get("dify_app_id", mapping.dify_app_id)
        is_active = changes.get("is_active", mapping.is_active)

        triple_changed = (
            chatwoot_account_id != mapping.chatwoot_account_id or dify_app_id != mapping.dify_app_id
        )
        reactivated = is_active and not mapping.is_active
        if triple_changed or reactivated:
            self._validate_targets(mapping.source_platform, mapping.source_id, chatwoot_account_id, dify_app_id)
        if is_active and (triple_changed or reactivated):
            self._ensure_unique(
                mapping.source_platform, mapping.source_id, chatwoot_account_id, dify_app_id, exclude_id=mapping.id
            )

        try:
            mapping_repository.update_mapping(self.db, mapping, changes, actor)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._conflict(mapping.source_platform, mapping.source_id, chatwoot_account_id, dify_app_id) from e
        self.db.refresh(mapping)
        logger.info(f"Platform mapping {mapping.id} updated", extra={"context": {"changes": changes, "actor": actor}})
        return mapping

    def deactivate_mapping(self, mapping_id: int, actor: Optional[str] = None) -> PlatformMapping:
        mapping = self.get_mapping(mapping_id)
        mapping_repository.deactivate_mapping(self.db, mapping, actor)
        self.db.commit()
        logger.info(f"Platform mapping {mapping.id} deactivated", extra={"context": {"actor": actor}})
        return mapping

    def register_webhooks(self, mapping: PlatformMapping) -> dict:
        """Point the bot and the Chatwoot account at our webhook endpoints.

        Failures are logged and reported, never raised: the mapping exists
        either way and webhooks can be registered by hand.
        """
        base_url = self.config_service.webhook_base_url
        if not base_url:
            logger.info("webhook.baseUrl not configured, skipping webhook registration")
            return {}

        report = {}
        bot = instance_repository.get_instance(self.db, Platform.TELEGRAM, mapping.source_id)
        if bot is not None:
            try:
                TelegramClient.from_instance(snapshot(Platform.TELEGRAM, bot)).set_webhook(
                    f"{base_url}/webhooks/telegram/{bot.id}", secret_token=bot.secret_token
                )
                report["telegram"] = {"success": True}
            except UpstreamError as e:
                logger.warning(f"Telegram webhook registration failed for bot {bot.id}: {e}")
                report["telegram"] = {"success": False, "error": str(e)}

        if mapping.chatwoot_account_id is not None:
            account = instance_repository.get_instance(self.db, Platform.CHATWOOT, mapping.chatwoot_account_id)
            try:
                ChatwootClient.from_instance(snapshot(Platform.CHATWOOT, account)).register_webhook(
                    f"{base_url}/webhooks/chatwoot/{account.id}"
                )
                report["chatwoot"] = {"success": True}
            except UpstreamError as e:
                logger.warning(f"Chatwoot webhook registration failed for account {account.id}: {e}")
                report["chatwoot"] = {"success": False, "error": str(e)}

        return report

    # === QUERIES ===

    def get_mapping(self, mapping_id: int) -> PlatformMapping:
        mapping = mapping_repository.get_mapping(self.db, mapping_id)
        if mapping is None:
            raise NotFoundError(f"Mapping {mapping_id} not found")
        return mapping

    def describe(self, mapping: PlatformMapping) -> dict:
        data = {column.name: getattr(mapping, column.name) for column in PlatformMapping.__table__.columns}
        data.update(mapping_repository.get_instance_names(self.db, mapping))
        return data

    def list_mappings(self, limit: int = 50, offset: int = 0, **filters: Any) -> tuple[list[dict], int]:
        rows, total = mapping_repository.list_mappings(self.db, limit=limit, offset=offset, **filters)
        return [self.describe(row) for row in rows], total

    def get_active_mapping(
        self, telegram_bot_id: int, chatwoot_account_id: Optional[int], dify_app_id: Optional[int]
    ) -> Optional[PlatformMapping]:
        return mapping_repository.find_active_mapping(
            self.db, Platform.TELEGRAM.value, telegram_bot_id, chatwoot_account_id, dify_app_id
        )

    def _routing_entry(self, mapping: PlatformMapping) -> dict:
        names = mapping_repository.get_instance_names(self.db, mapping)
        return {
            "id": mapping.id,
            "name": mapping.name,
            "telegramBotId": mapping.source_id,
            "telegramBotName": names["telegram_bot_name"],
            "chatwootAccountId": mapping.chatwoot_account_id,
            "chatwootAccountName": names["chatwoot_account_name"],
            "difyAppId": mapping.dify_app_id,
            "difyAppName": names["dify_app_name"],
            "routing": routing_matrix(mapping),
            "autoConnect": auto_connect_flags(mapping),
        }

    def get_routing_configuration(self, telegram_bot_id: int) -> dict:
        mappings = mapping_repository.find_by_source(self.db, Platform.TELEGRAM.value, telegram_bot_id)
        return {
            "hasMapping": bool(mappings),
            "mappings": [self._routing_entry(mapping) for mapping in mappings],
        }

    def get_routing_configuration_by_chatwoot_account(self, external_account_id: str) -> dict:
        account = instance_repository.get_chatwoot_account_by_external_id(self.db, external_account_id)
        if account is None:
            return {"hasMapping": False, "mappings": []}
        mappings = mapping_repository.find_by_chatwoot_account(self.db, account.id)
        return {
            "hasMapping": bool(mappings),
            "chatwootAccountId": account.id,
            "mappings": [self._routing_entry(mapping) for mapping in mappings],
        }

    def get_available_platforms(self) -> dict:
        def entries(platform: Platform) -> list[dict]:
            return [
                {"id": row.id, "name": row.name}
                for row in instance_repository.list_active_instances(self.db, platform)
            ]

        return {
            "telegramBots": entries(Platform.TELEGRAM),
            "chatwootAccounts": entries(Platform.CHATWOOT),
            "difyApps": entries(Platform.DIFY),
        }

    # === CONNECTION TESTS ===

    def _probe(self, platform: Platform, instance_id: Optional[int]) -> dict:
        if instance_id is None:
            return {"success": False, "configured": False, "error": f"No {platform.value} target configured"}

        instance = self.directory.get(platform, instance_id)
        if instance is None:
            return {"success": False, "configured": True, "error": f"{platform.value} instance {instance_id} not found"}
        if not instance.is_active:
            return {"success": False, "configured": True, "error": f"{platform.value} instance {instance_id} is inactive"}

        target = self.registry.build(platform, instance, self.db, self.config_service)
        outcome = target.test_connection()
        report = {"configured": True, **outcome.to_dict()}
        if not outcome.ok:
            report["errorCode"] = outcome.error_code
        return report

    def test_connection(self, mapping_id: int) -> dict:
        mapping = self.get_mapping(mapping_id)
        results = {
            "telegram": self._probe(Platform(mapping.source_platform), mapping.source_id),
            "chatwoot": self._probe(Platform.CHATWOOT, mapping.chatwoot_account_id),
            "dify": self._probe(Platform.DIFY, mapping.dify_app_id),
        }
        configured = [result for result in results.values() if result["configured"]]
        overall = bool(configured) and all(result["success"] for result in configured)

        logger.info(
            f"Connection test for mapping {mapping.id}: {'ok' if overall else 'failed'}",
            extra={"context": {name: result["success"] for name, result in results.items()}},
        )
        return {"mappingId": mapping.id, "overallSuccess": overall, "results": results}
