"""
app/services/notification_service.py

Purpose: In-app notifications

- Create notifications for other services (payments, subscriptions)
- List, mark read, delete for the owner
"""

import asyncio
from typing import Dict, Any, List, Optional

from pymongo.errors import PyMongoError

from app.core.exceptions import BadRequestError, ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import get_notifications_collection
from utils.doc_utils import new_id, serialize_docs
from utils.time_utils import utcnow

logger = get_logger(__name__)

LIST_LIMIT = 50
READ_ATTEMPTS = 3

PUBLIC_FIELDS = {
    "_id": 1,
    "title": 1,
    "body": 1,
    "is_read": 1,
    "created_at": 1,
    "notification_type": 1,
    "metadata": 1,
}


async def create_notification(
    user_id: str,
    title: str,
    body: str,
    notification_type: str = "info",
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    notification_id = new_id()
    await get_notifications_collection().insert_one({
        "_id": notification_id,
        "user_id": user_id,
        "title": title,
        "body": body,
        "notification_type": notification_type,
        "metadata": metadata or {},
        "is_read": False,
        "created_at": utcnow(),
    })
    logger.info(f"🔔 Notification created: {title}", extra={"user_id": user_id})
    return notification_id


async def list_notifications(user_id: str) -> List[Dict[str, Any]]:
    """
    Latest notifications, newest first.

    Transient database errors are retried with a short linear backoff.
    After the last attempt an empty list is returned.
    """
    for attempt in range(READ_ATTEMPTS):
        try:
            docs = await (
                get_notifications_collection()
                .find({"user_id": user_id}, PUBLIC_FIELDS)
                .sort("created_at", -1)
                .to_list(length=LIST_LIMIT)
            )
            return serialize_docs(docs)
        except PyMongoError as e:
            logger.warning(f"Notification read failed (attempt {attempt + 1}/{READ_ATTEMPTS}): {e}")
            if attempt < READ_ATTEMPTS - 1:
                await asyncio.sleep(0.2 * (attempt + 1))

    logger.error("Giving up on notifications read", extra={"user_id": user_id})
    return []


async def mark_read(user_id: str, notification_id: Optional[str] = None, mark_all: bool = False) -> Dict[str, Any]:
    notifications = get_notifications_collection()

    if mark_all:
        result = await notifications.update_many(
            {"user_id": user_id, "is_read": False},
            {"$set": {"is_read": True}}
        )
        return {"success": True, "updated": result.modified_count}

    if notification_id:
        result = await notifications.update_one(
            {"_id": notification_id, "user_id": user_id},
            {"$set": {"is_read": True}}
        )
        if result.matched_count == 0:
            raise ResourceNotFoundError("Notification not found")
        return {"success": True, "updated": result.modified_count}

    raise BadRequestError("notification_id or mark_all is required")


async def delete_notification(user_id: str, notification_id: Optional[str]) -> Dict[str, Any]:
    if not notification_id:
        raise BadRequestError("notification_id is required")

    result = await get_notifications_collection().delete_one({"_id": notification_id, "user_id": user_id})
    if result.deleted_count == 0:
        raise ResourceNotFoundError("Notification not found")
    return {"success": True}
