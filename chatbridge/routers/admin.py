"""Admin API endpoints for managing platform mappings."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from chatbridge.config import settings
from chatbridge.dependencies import get_configuration_service, get_mapping_service
from chatbridge.schemas.mapping import (
    ConfigurationUpdate,
    MappingCreate,
    MappingListResponse,
    MappingResponse,
    MappingUpdate,
)
from chatbridge.services.configuration_service import DEFAULT_KEYS, ConfigurationService
from chatbridge.services.errors import ConflictError, NotFoundError, ValidationError
from chatbridge.services.mapping_service import MappingService

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


# === MAPPING ENDPOINTS ===


@router.post("/mappings", response_model=MappingResponse, status_code=201)
def create_mapping(
    body: MappingCreate,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    x_admin_user: Optional[str] = Header(default=None, alias="X-Admin-User"),
):
    _require_admin_token(x_admin_token)
    try:
        mapping = service.create_mapping(body.model_dump(), actor=x_admin_user or "admin")
    except (ValidationError, ConflictError) as e:
        raise _http_error(e)
    return service.describe(mapping)


@router.get("/mappings", response_model=MappingListResponse)
def list_mappings(
    is_active: Optional[bool] = None,
    source_id: Optional[int] = None,
    chatwoot_account_id: Optional[int] = None,
    dify_app_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    limit = max(1, min(limit, 200))
    items, total = service.list_mappings(
        limit=limit,
        offset=max(offset, 0),
        is_active=is_active,
        source_id=source_id,
        chatwoot_account_id=chatwoot_account_id,
        dify_app_id=dify_app_id,
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/mappings/{mapping_id}", response_model=MappingResponse)
def get_mapping(
    mapping_id: int,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    try:
        return service.describe(service.get_mapping(mapping_id))
    except NotFoundError as e:
        raise _http_error(e)


@router.patch("/mappings/{mapping_id}", response_model=MappingResponse)
def update_mapping(
    mapping_id: int,
    body: MappingUpdate,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    x_admin_user: Optional[str] = Header(default=None, alias="X-Admin-User"),
):
    _require_admin_token(x_admin_token)
    try:
        mapping = service.update_mapping(mapping_id, body.model_dump(exclude_unset=True), actor=x_admin_user or "admin")
    except (ValidationError, ConflictError, NotFoundError) as e:
        raise _http_error(e)
    return service.describe(mapping)


@router.delete("/mappings/{mapping_id}", response_model=MappingResponse)
def deactivate_mapping(
    mapping_id: int,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    x_admin_user: Optional[str] = Header(default=None, alias="X-Admin-User"),
):
    _require_admin_token(x_admin_token)
    try:
        mapping = service.deactivate_mapping(mapping_id, actor=x_admin_user or "admin")
    except NotFoundError as e:
        raise _http_error(e)
    return service.describe(mapping)


@router.post("/mappings/{mapping_id}/test")
def test_mapping_connection(
    mapping_id: int,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    try:
        return service.test_connection(mapping_id)
    except NotFoundError as e:
        raise _http_error(e)


# === ROUTING QUERIES ===


@router.get("/routing/telegram/{bot_id}")
def routing_for_telegram_bot(
    bot_id: int,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    return service.get_routing_configuration(bot_id)


@router.get("/routing/chatwoot/{external_account_id}")
def routing_for_chatwoot_account(
    external_account_id: str,
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    return service.get_routing_configuration_by_chatwoot_account(external_account_id)


@router.get("/platforms")
def available_platforms(
    service: MappingService = Depends(get_mapping_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    return service.get_available_platforms()


# === CONFIGURATION ENDPOINTS ===


def _require_known_key(key: str) -> None:
    if key not in DEFAULT_KEYS:
        raise HTTPException(status_code=404, detail=f"Unknown configuration key {key}")


@router.get("/configurations/{key}")
def get_configuration(
    key: str,
    config_service: ConfigurationService = Depends(get_configuration_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    _require_known_key(key)
    return {"key": key, "value": config_service.get(key), "default": config_service.default_for(key)}


@router.put("/configurations/{key}")
def put_configuration(
    key: str,
    body: ConfigurationUpdate,
    config_service: ConfigurationService = Depends(get_configuration_service),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    _require_known_key(key)
    config_service.set(key, body.value, body.description)
    return {"key": key, "value": config_service.get(key)}
