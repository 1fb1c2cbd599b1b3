"""
app/api/automations.py

Automation and execution log endpoints for the current user.
"""

from fastapi import APIRouter, Body, Depends, Query
from typing import Dict, Any

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.schemas.admin import AutomationCreate
from app.services import automation_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["Automations"])


@router.get("/automations")
async def list_automations(user_id: str = Depends(get_current_user_id)):
    return await automation_service.list_automations(user_id)


@router.post("/automations", status_code=201)
async def create_automation(body: AutomationCreate, user_id: str = Depends(get_current_user_id)):
    automation = await automation_service.create_automation(user_id, body.model_dump())
    return {"automation": automation}


@router.put("/automations/{automation_id}")
async def update_automation(automation_id: str, body: Dict[str, Any] = Body(...), user_id: str = Depends(get_current_user_id)):
    automation = await automation_service.update_automation(user_id, automation_id, body)
    return {"automation": automation}


@router.delete("/automations/{automation_id}")
async def delete_automation(automation_id: str, user_id: str = Depends(get_current_user_id)):
    return await automation_service.delete_automation(user_id, automation_id)


@router.get("/execution-logs")
async def execution_logs(limit: int = Query(5, ge=1), user_id: str = Depends(get_current_user_id)):
    return {"logs": await automation_service.list_execution_logs(user_id, limit)}
