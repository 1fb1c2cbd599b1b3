"""
app/api/connected_accounts.py

Facebook page and WhatsApp account connections for the current user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.schemas.admin import ConnectedAccountCreate
from app.services import account_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/connected-accounts", tags=["Connected Accounts"])


@router.get("")
async def list_accounts(platform: Optional[str] = Query(None), user_id: str = Depends(get_current_user_id)):
    return await account_service.list_accounts(user_id, platform)


@router.post("", status_code=201)
async def connect_account(body: ConnectedAccountCreate, user_id: str = Depends(get_current_user_id)):
    account = await account_service.connect_account(user_id, body.model_dump())
    return {"account": account}


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    action: Optional[str] = Query(None, description="'remove' deletes the account and its automations"),
    user_id: str = Depends(get_current_user_id),
):
    return await account_service.delete_account(user_id, account_id, action)
