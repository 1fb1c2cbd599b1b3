"""
app/api/me.py

Profile API Endpoints
=====================

- Read / update the current user
- Change password
- Delete the account and all owned data
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.schemas.auth import ProfileUpdate, ChangePasswordRequest
from app.schemas.response import MessageResponse
from app.services import user_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/me", tags=["Profile"])


@router.get("")
async def get_me(user_id: str = Depends(get_current_user_id)):
    user = await user_service.require_user(user_id)
    return {"user": user_service.to_session_user(user)}


@router.put("")
async def update_me(body: ProfileUpdate, user_id: str = Depends(get_current_user_id)):
    user = await user_service.update_profile(user_id, body.model_dump(exclude_unset=True))
    return {"success": True, "user": user}


@router.delete("")
async def delete_me(user_id: str = Depends(get_current_user_id)):
    counts = await user_service.delete_user_data(user_id)
    return {"success": True, "deleted": counts}


@router.post("/change-password", response_model=MessageResponse)
async def change_password(body: ChangePasswordRequest, user_id: str = Depends(get_current_user_id)):
    await user_service.change_password(user_id, body.current_password, body.new_password)
    return {"success": True, "message": "Password changed successfully"}
