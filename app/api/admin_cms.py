"""
app/api/admin_cms.py

Content management endpoints over a fixed set of resources.
Pricing plans, appearance and SEO settings are publicly readable.
"""

from fastapi import APIRouter, Body, Depends, Header, Query
from typing import Optional, Dict, Any

from app.api.deps import get_current_user_id, require_admin
from app.core.config import settings
from app.core.exceptions import ForbiddenError
from app.services import cms_service
from app.services.admin_service import is_admin
from utils.constants import MSG_ADMIN_REQUIRED

router = APIRouter(prefix=f"{settings.API_PREFIX}/admin/cms", tags=["CMS"])


async def _require_read_access(resource: str, authorization: Optional[str]):
    cms_service.validate_resource(resource)
    if cms_service.is_public(resource):
        return
    user_id = await get_current_user_id(authorization)
    if not await is_admin(user_id):
        raise ForbiddenError(MSG_ADMIN_REQUIRED)


@router.get("/{resource}")
async def list_items(
    resource: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = None,
    authorization: Optional[str] = Header(None),
):
    await _require_read_access(resource, authorization)
    return await cms_service.list_items(resource, page=page, limit=limit, search=search)


@router.get("/{resource}/{item_id}")
async def get_item(resource: str, item_id: str, authorization: Optional[str] = Header(None)):
    await _require_read_access(resource, authorization)
    return {"data": await cms_service.get_item(resource, item_id)}


@router.post("/{resource}", status_code=201)
async def create_item(resource: str, body: Dict[str, Any] = Body(...), admin_id: str = Depends(require_admin)):
    return {"data": await cms_service.create_item(resource, body)}


@router.api_route("/{resource}", methods=["PUT", "PATCH"])
async def upsert_singleton(resource: str, body: Dict[str, Any] = Body(...), admin_id: str = Depends(require_admin)):
    return {"data": await cms_service.update_item(resource, body, body.get("id"))}


@router.api_route("/{resource}/{item_id}", methods=["PUT", "PATCH"])
async def update_item(resource: str, item_id: str, body: Dict[str, Any] = Body(...), admin_id: str = Depends(require_admin)):
    return {"data": await cms_service.update_item(resource, body, item_id)}


@router.delete("/{resource}")
async def delete_without_id(resource: str, admin_id: str = Depends(require_admin)):
    return await cms_service.delete_item(resource, None)


@router.delete("/{resource}/{item_id}")
async def delete_item(resource: str, item_id: str, admin_id: str = Depends(require_admin)):
    return await cms_service.delete_item(resource, item_id)
