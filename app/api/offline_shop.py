"""
app/api/offline_shop.py

Offline Shop API Endpoints
==========================

- Shops
- CRUD for products, categories, customers, suppliers, expenses
- Sales and dashboard
- Manual sync and sync settings

The active shop comes from the X-Shop-Id header or the shop_id query parameter.
"""

from fastapi import APIRouter, Body, Depends
from typing import Optional, Dict, Any

from app.api.deps import get_current_user_id, get_shop_id
from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.schemas.sync import SyncRequest, SyncSettingsUpdate
from app.services import shop_service, sync_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/offline-shop", tags=["Offline Shop"])


def _crud_resource(resource: str) -> str:
    if resource not in shop_service.CRUD_RESOURCES:
        raise ResourceNotFoundError(f"Unknown resource: {resource}")
    return resource


# ============================================================================
# SHOPS
# ============================================================================

@router.get("/shops")
async def list_shops(user_id: str = Depends(get_current_user_id)):
    return await shop_service.list_shops(user_id)


@router.post("/shops", status_code=201)
async def create_shop(body: Dict[str, Any] = Body(...), user_id: str = Depends(get_current_user_id)):
    return {"shop": await shop_service.create_shop(user_id, body)}


# ============================================================================
# SALES / DASHBOARD
# ============================================================================

@router.get("/sales")
async def list_sales(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    customer_id: Optional[str] = None,
    payment_status: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    sales = await shop_service.list_sales(
        user_id,
        shop_id,
        start_date=start_date,
        end_date=end_date,
        customer_id=customer_id,
        payment_status=payment_status,
    )
    return {"sales": sales}


@router.post("/sales", status_code=201)
async def create_sale(
    body: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    return {"sale": await shop_service.create_sale(user_id, shop_id, body)}


@router.get("/dashboard")
async def dashboard(user_id: str = Depends(get_current_user_id), shop_id: Optional[str] = Depends(get_shop_id)):
    return await shop_service.get_dashboard(user_id, shop_id)


# ============================================================================
# SYNC
# ============================================================================

@router.post("/sync")
async def sync(
    body: SyncRequest,
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    return await sync_service.run_sync(user_id, shop_id, body.operations, body.last_sync_at)


@router.get("/sync/status")
async def sync_status(user_id: str = Depends(get_current_user_id)):
    return {"status": sync_service.get_status(user_id)}


@router.get("/sync-settings")
async def get_sync_settings(user_id: str = Depends(get_current_user_id)):
    return {"settings": await sync_service.get_sync_settings(user_id)}


@router.put("/sync-settings")
async def update_sync_settings(body: SyncSettingsUpdate, user_id: str = Depends(get_current_user_id)):
    settings_doc = await sync_service.update_sync_settings(user_id, body.model_dump(exclude_none=True))
    return {"success": True, "settings": settings_doc}


# ============================================================================
# GENERIC CRUD (registered last so fixed paths win)
# ============================================================================

@router.get("/{resource}")
async def list_items(
    resource: str,
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    items = await shop_service.list_items(user_id, _crud_resource(resource), shop_id)
    return {resource: items}


@router.post("/{resource}", status_code=201)
async def create_item(
    resource: str,
    body: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    item = await shop_service.create_item(user_id, _crud_resource(resource), shop_id, body)
    return {"item": item}


@router.put("/{resource}")
async def update_item(
    resource: str,
    body: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    item = await shop_service.update_item(user_id, _crud_resource(resource), shop_id, body)
    return {"item": item}


@router.delete("/{resource}")
async def delete_items(
    resource: str,
    body: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    shop_id: Optional[str] = Depends(get_shop_id),
):
    return await shop_service.delete_items(user_id, _crud_resource(resource), shop_id, body)
