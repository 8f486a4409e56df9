import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from chatbridge.dependencies import get_instance_directory, get_message_broker
from chatbridge.logging_config import get_logger
from chatbridge.schemas.webhook import WebhookResponse
from chatbridge.services.canonical import Platform
from chatbridge.services.errors import ValidationError
from chatbridge.services.instance_directory import InstanceDirectory
from chatbridge.services.instance_repository import get_chatwoot_account_by_external_id
from chatbridge.services.message_broker import MessageBroker

logger = get_logger("webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def parse_webhook_payload(request: Request) -> Optional[Any]:
    """
    Parse webhook JSON with tolerant decoding to avoid utf-8 crashes.
    Returns the decoded value or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error("Failed to decode webhook payload after fallbacks")
    return None


async def _require_instance(directory: InstanceDirectory, platform: Platform, instance_id: int):
    instance = await run_in_threadpool(directory.get, platform, instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail=f"Unknown {platform.value} instance {instance_id}")
    return instance


async def _dispatch(broker: MessageBroker, platform: Platform, payload: Any, instance_id: int) -> WebhookResponse:
    if payload is None:
        raise HTTPException(status_code=400, detail=f"Invalid {platform.value} payload")

    try:
        outcome = await run_in_threadpool(broker.handle, platform, payload, instance_id)
    except ValidationError as e:
        logger.warning(f"Rejected {platform.value} webhook: {e}", extra={"context": {"instance_id": instance_id}})
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        # the origin platform disables webhooks that keep failing
        logger.error(f"{platform.value} webhook error: {e}", exc_info=True)
        return WebhookResponse(success=False, message=str(e))

    return WebhookResponse.from_outcome(outcome)


@router.post("/telegram/{bot_id}", response_model=WebhookResponse)
async def telegram_webhook(
    bot_id: int,
    request: Request,
    broker: MessageBroker = Depends(get_message_broker),
    directory: InstanceDirectory = Depends(get_instance_directory),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    bot = await _require_instance(directory, Platform.TELEGRAM, bot_id)
    if bot.secret_token and x_telegram_bot_api_secret_token != bot.secret_token:
        raise HTTPException(status_code=401, detail="Invalid secret token")

    payload = await parse_webhook_payload(request)
    return await _dispatch(broker, Platform.TELEGRAM, payload, bot_id)


@router.post("/chatwoot/{account_id}", response_model=WebhookResponse)
async def chatwoot_webhook(
    account_id: int,
    request: Request,
    broker: MessageBroker = Depends(get_message_broker),
    directory: InstanceDirectory = Depends(get_instance_directory),
):
    await _require_instance(directory, Platform.CHATWOOT, account_id)
    payload = await parse_webhook_payload(request)
    return await _dispatch(broker, Platform.CHATWOOT, payload, account_id)


@router.post("/chatwoot", response_model=WebhookResponse)
async def chatwoot_webhook_by_external_account(
    request: Request,
    broker: MessageBroker = Depends(get_message_broker),
    directory: InstanceDirectory = Depends(get_instance_directory),
):
    """Webhook registered without our account id; resolved from the payload."""
    payload = await parse_webhook_payload(request)
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid chatwoot payload")

    external_id = (payload.get("account") or {}).get("id")
    if external_id is None:
        raise HTTPException(status_code=400, detail="Chatwoot payload carries no account id")

    account = await run_in_threadpool(get_chatwoot_account_by_external_id, directory.db, str(external_id))
    if account is None:
        raise HTTPException(status_code=404, detail=f"Unknown Chatwoot account {external_id}")
    return await _dispatch(broker, Platform.CHATWOOT, payload, account.id)


@router.post("/dify/{app_id}", response_model=WebhookResponse)
async def dify_webhook(
    app_id: int,
    request: Request,
    broker: MessageBroker = Depends(get_message_broker),
    directory: InstanceDirectory = Depends(get_instance_directory),
):
    await _require_instance(directory, Platform.DIFY, app_id)
    payload = await parse_webhook_payload(request)
    return await _dispatch(broker, Platform.DIFY, payload, app_id)
