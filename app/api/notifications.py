"""
app/api/notifications.py

In-app notification endpoints for the current user.
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.schemas.admin import NotificationAction
from app.services import notification_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(user_id: str = Depends(get_current_user_id)):
    notifications = await notification_service.list_notifications(user_id)
    return {
        "notifications": notifications,
        "unread_count": sum(1 for n in notifications if not n.get("is_read")),
    }


@router.post("")
async def mark_read(body: NotificationAction, user_id: str = Depends(get_current_user_id)):
    return await notification_service.mark_read(user_id, body.notification_id, body.mark_all)


@router.delete("")
async def delete_notification(body: NotificationAction, user_id: str = Depends(get_current_user_id)):
    return await notification_service.delete_notification(user_id, body.notification_id)
