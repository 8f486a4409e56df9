from typing import Optional, Type

from sqlalchemy.orm import Session

from chatbridge.models import ChatwootAccount, DifyApp, TelegramBot
from chatbridge.services.canonical import Platform

INSTANCE_MODELS: dict[Platform, Type] = {
    Platform.TELEGRAM: TelegramBot,
    Platform.CHATWOOT: ChatwootAccount,
    Platform.DIFY: DifyApp,
}


def get_instance(db: Session, platform: Platform, instance_id: int):
    model = INSTANCE_MODELS[platform]
    return db.query(model).filter(model.id == instance_id).first()


def get_chatwoot_account_by_external_id(db: Session, external_account_id: str) -> Optional[ChatwootAccount]:
    return (
        db.query(ChatwootAccount)
        .filter(ChatwootAccount.account_id == str(external_account_id), ChatwootAccount.is_active.is_(True))
        .order_by(ChatwootAccount.id)
        .first()
    )


def list_active_instances(db: Session, platform: Platform) -> list:
    model = INSTANCE_MODELS[platform]
    return db.query(model).filter(model.is_active.is_(True)).order_by(model.name).all()
