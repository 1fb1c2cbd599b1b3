"""
app/api/admin.py

Admin API Endpoints
===================

All routes require the admin role.
"""

from fastapi import APIRouter, Body, Depends, Query
from typing import Optional, Dict, Any

from app.api.deps import require_admin
from app.core.config import settings
from app.schemas.admin import AdminPasswordRequest, RoleRequest, StatusRequest
from app.services import admin_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/admin", tags=["Admin"])


@router.get("/overview")
async def overview(admin_id: str = Depends(require_admin)):
    return await admin_service.get_overview()


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    admin_id: str = Depends(require_admin),
):
    return await admin_service.list_users(page=page, limit=limit, search=search)


@router.get("/users/{user_id}")
async def get_user(user_id: str, admin_id: str = Depends(require_admin)):
    return {"user": await admin_service.get_user_detail(user_id)}


@router.put("/users/{user_id}")
async def update_user(user_id: str, body: Dict[str, Any] = Body(...), admin_id: str = Depends(require_admin)):
    return {"success": True, "user": await admin_service.update_user(user_id, body, admin_id)}


@router.post("/users/{user_id}/password")
async def set_password(user_id: str, body: AdminPasswordRequest, admin_id: str = Depends(require_admin)):
    return await admin_service.set_user_password(user_id, body.new_password, admin_id)


@router.post("/users/{user_id}/role")
async def set_role(user_id: str, body: RoleRequest, admin_id: str = Depends(require_admin)):
    return await admin_service.set_user_role(user_id, body.role, admin_id)


@router.post("/users/{user_id}/status")
async def set_status(user_id: str, body: StatusRequest, admin_id: str = Depends(require_admin)):
    return await admin_service.set_user_status(user_id, body.status, admin_id)


@router.get("/subscriptions")
async def subscriptions(admin_id: str = Depends(require_admin)):
    return await admin_service.get_subscription_stats()
