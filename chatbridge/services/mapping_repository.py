from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from chatbridge.models import ChatwootAccount, DifyApp, PlatformMapping, TelegramBot
from chatbridge.services.canonical import Platform


def create_mapping(db: Session, **fields) -> PlatformMapping:
    mapping = PlatformMapping(**fields)
    db.add(mapping)
    db.flush()
    return mapping


def get_mapping(db: Session, mapping_id: int) -> Optional[PlatformMapping]:
    return db.query(PlatformMapping).filter(PlatformMapping.id == mapping_id).first()


def _optional_eq(column, value):
    return column.is_(None) if value is None else column == value


def find_active_mapping(
    db: Session,
    source_platform: str,
    source_id: int,
    chatwoot_account_id: Optional[int],
    dify_app_id: Optional[int],
) -> Optional[PlatformMapping]:
    """Exact match on the (source, desk, ai) triple among active mappings."""
    return (
        db.query(PlatformMapping)
        .filter(
            PlatformMapping.is_active.is_(True),
            PlatformMapping.source_platform == source_platform,
            PlatformMapping.source_id == source_id,
            _optional_eq(PlatformMapping.chatwoot_account_id, chatwoot_account_id),
            _optional_eq(PlatformMapping.dify_app_id, dify_app_id),
        )
        .first()
    )


def find_routes_for(db: Session, platform: Platform, instance_id: int) -> list[PlatformMapping]:
    """Active mappings referencing the instance as source or as a configured target."""
    conditions = [
        (PlatformMapping.source_platform == platform.value) & (PlatformMapping.source_id == instance_id),
    ]
    if platform == Platform.CHATWOOT:
        conditions.append(PlatformMapping.chatwoot_account_id == instance_id)
    elif platform == Platform.DIFY:
        conditions.append(PlatformMapping.dify_app_id == instance_id)

    return (
        db.query(PlatformMapping)
        .filter(PlatformMapping.is_active.is_(True), or_(*conditions))
        .order_by(PlatformMapping.id)
        .all()
    )


def find_by_source(
    db: Session, source_platform: str, source_id: int, active_only: bool = True
) -> list[PlatformMapping]:
    query = db.query(PlatformMapping).filter(
        PlatformMapping.source_platform == source_platform,
        PlatformMapping.source_id == source_id,
    )
    if active_only:
        query = query.filter(PlatformMapping.is_active.is_(True))
    return query.order_by(PlatformMapping.id).all()


def find_by_chatwoot_account(db: Session, chatwoot_account_id: int, active_only: bool = True) -> list[PlatformMapping]:
    query = db.query(PlatformMapping).filter(PlatformMapping.chatwoot_account_id == chatwoot_account_id)
    if active_only:
        query = query.filter(PlatformMapping.is_active.is_(True))
    return query.order_by(PlatformMapping.id).all()


def list_mappings(
    db: Session,
    is_active: Optional[bool] = None,
    source_platform: Optional[str] = None,
    source_id: Optional[int] = None,
    chatwoot_account_id: Optional[int] = None,
    dify_app_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PlatformMapping], int]:
    query = db.query(PlatformMapping)
    if is_active is not None:
        query = query.filter(PlatformMapping.is_active.is_(is_active))
    if source_platform is not None:
        query = query.filter(PlatformMapping.source_platform == source_platform)
    if source_id is not None:
        query = query.filter(PlatformMapping.source_id == source_id)
    if chatwoot_account_id is not None:
        query = query.filter(PlatformMapping.chatwoot_account_id == chatwoot_account_id)
    if dify_app_id is not None:
        query = query.filter(PlatformMapping.dify_app_id == dify_app_id)

    total = query.count()
    rows = query.order_by(PlatformMapping.created_at.desc(), PlatformMapping.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_instance_names(db: Session, mapping: PlatformMapping) -> dict:
    """Display names of the instances a mapping references."""
    names = {"telegram_bot_name": None, "chatwoot_account_name": None, "dify_app_name": None}

    if mapping.source_platform == Platform.TELEGRAM.value:
        bot = db.query(TelegramBot.name).filter(TelegramBot.id == mapping.source_id).first()
        names["telegram_bot_name"] = bot.name if bot else None
    if mapping.chatwoot_account_id is not None:
        account = db.query(ChatwootAccount.name).filter(ChatwootAccount.id == mapping.chatwoot_account_id).first()
        names["chatwoot_account_name"] = account.name if account else None
    if mapping.dify_app_id is not None:
        app = db.query(DifyApp.name).filter(DifyApp.id == mapping.dify_app_id).first()
        names["dify_app_name"] = app.name if app else None

    return names


def update_mapping(db: Session, mapping: PlatformMapping, changes: dict, actor: Optional[str] = None) -> PlatformMapping:
    for key, value in changes.items():
        setattr(mapping, key, value)
    mapping.updated_by = actor
    mapping.updated_at = datetime.now(timezone.utc)
    db.flush()
    return mapping


def deactivate_mapping(db: Session, mapping: PlatformMapping, actor: Optional[str] = None) -> PlatformMapping:
    """Soft delete; rows are kept for the routing audit trail."""
    return update_mapping(db, mapping, {"is_active": False}, actor)
