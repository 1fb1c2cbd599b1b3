"""
app/services/account_service.py

Purpose: Connected Facebook pages and WhatsApp numbers

- Listing with the plan's connection limits
- Connecting (or reconnecting) an account within those limits
- Disconnecting, or removing an account with everything attached to it
"""

from typing import Dict, Any, Optional

from pymongo import ReturnDocument

from app.core.exceptions import BadRequestError, ForbiddenError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_automations_collection,
    get_connected_accounts_collection,
    get_execution_logs_collection,
    get_outgoing_events_collection,
)
from app.services import user_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.plan_service import get_effective_plan, get_plan_limits
from utils.doc_utils import new_id, serialize_doc, serialize_docs
from utils.time_utils import utcnow
from utils.validation_utils import sanitize_input

logger = get_logger(__name__)

PLATFORM_FACEBOOK = "facebook"
PLATFORM_WHATSAPP = "whatsapp"

# platform -> (plan limit key, label)
PLATFORM_LIMITS = {
    PLATFORM_FACEBOOK: ("max_facebook_pages", "Facebook pages"),
    PLATFORM_WHATSAPP: ("max_whatsapp_accounts", "WhatsApp accounts"),
}

CONNECT_EVENTS = {
    PLATFORM_FACEBOOK: EVENT_TYPES["FACEBOOK_PAGE_CONNECTED"],
    PLATFORM_WHATSAPP: EVENT_TYPES["WHATSAPP_CONNECTED"],
}

DISCONNECT_EVENTS = {
    PLATFORM_FACEBOOK: EVENT_TYPES["FACEBOOK_PAGE_DISCONNECTED"],
    PLATFORM_WHATSAPP: EVENT_TYPES["WHATSAPP_DISCONNECTED"],
}

PUBLIC_FIELDS = {
    "external_id": 1,
    "name": 1,
    "platform": 1,
    "category": 1,
    "picture_url": 1,
    "is_connected": 1,
    "created_at": 1,
    "updated_at": 1,
}


async def _plan_for(user_id: str) -> Dict[str, Any]:
    user = await user_service.get_user_by_id(user_id)
    effective = get_effective_plan(user)
    return {"effective": effective, "limits": get_plan_limits(effective["plan"])}


async def list_accounts(user_id: str, platform: Optional[str] = None) -> Dict[str, Any]:
    """
    Returns:
        {"accounts": [...], "plan_limits": {...}}
    """
    query: Dict[str, Any] = {"user_id": user_id}
    if platform:
        query["platform"] = platform

    docs = await (
        get_connected_accounts_collection()
        .find(query, PUBLIC_FIELDS)
        .sort("created_at", -1)
        .to_list(length=None)
    )
    plan = await _plan_for(user_id)
    limits = plan["limits"]
    connected_pages = sum(1 for d in docs if d.get("platform") == PLATFORM_FACEBOOK and d.get("is_connected"))

    return {
        "accounts": serialize_docs(docs),
        "plan_limits": {
            "plan": plan["effective"]["plan"],
            "is_active": plan["effective"]["is_active"],
            "max_facebook_pages": limits["max_facebook_pages"],
            "max_whatsapp_accounts": limits["max_whatsapp_accounts"],
            "connected_facebook_pages": connected_pages,
            "can_connect_more_facebook": connected_pages < limits["max_facebook_pages"],
        },
    }


async def connect_account(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Connects a page or number, or reconnects one the user already owns.

    Raises:
        BadRequestError: unknown platform or missing external_id
        ForbiddenError: no active plan, or the plan's connection limit is reached
    """
    platform = str(data.get("platform") or "").strip().lower()
    if platform not in PLATFORM_LIMITS:
        raise BadRequestError("Platform must be 'facebook' or 'whatsapp'")
    external_id = str(data.get("external_id") or "").strip()
    if not external_id:
        raise BadRequestError("external_id is required")

    accounts = get_connected_accounts_collection()
    owner_query = {"user_id": user_id, "platform": platform, "external_id": external_id}
    existing = await accounts.find_one(owner_query, {"is_connected": 1})

    if not existing or not existing.get("is_connected"):
        plan = await _plan_for(user_id)
        if not plan["effective"]["is_active"]:
            raise ForbiddenError(
                plan["effective"]["reason"] or "No active subscription or trial.",
                details={"subscription_required": True, "plan": plan["effective"]["plan"]},
            )
        limit_key, label = PLATFORM_LIMITS[platform]
        max_allowed = plan["limits"][limit_key]
        connected = await accounts.count_documents({"user_id": user_id, "platform": platform, "is_connected": True})
        if connected >= max_allowed:
            raise ForbiddenError(
                f"Your {plan['effective']['plan']} plan allows {max_allowed} {label}.",
                details={"limit_reached": True, limit_key: max_allowed, "connected": connected},
            )

    now = utcnow()
    updates = {
        "name": sanitize_input(str(data.get("name") or ""), max_length=200) or None,
        "is_connected": True,
        "updated_at": now,
    }
    for field in ("category", "picture_url"):
        if data.get(field) is not None:
            updates[field] = data[field]

    doc = await accounts.find_one_and_update(
        owner_query,
        {"$set": updates, "$setOnInsert": {"_id": new_id(), "created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    with LogContext(user_id=user_id, resource=doc["_id"]):
        logger.info(f"🔗 {platform} account {external_id} connected")
        await emit_event(
            CONNECT_EVENTS[platform],
            user_id,
            {"external_id": external_id, "name": doc.get("name"), "reconnected": bool(existing)},
            account_id=doc["_id"],
        )

    return serialize_doc(doc, exclude=("access_token_encrypted",))


async def delete_account(user_id: str, account_id: str, action: Optional[str] = None) -> Dict[str, Any]:
    """
    Disconnects an account, or with action="remove" deletes it together with
    its automations, their execution logs and its queued outgoing events.

    Raises:
        ResourceNotFoundError: the account does not exist or belongs to someone else
    """
    accounts = get_connected_accounts_collection()
    account = await accounts.find_one({"_id": account_id, "user_id": user_id}, {"name": 1, "platform": 1, "external_id": 1})
    if not account:
        raise ResourceNotFoundError("Account not found")

    label = account.get("name") or "Account"
    with LogContext(user_id=user_id, resource=account_id):
        if action == "remove":
            automations = get_automations_collection()
            automation_ids = [
                a["_id"] for a in await automations.find(
                    {"user_id": user_id, "account_id": account_id}, {"_id": 1}
                ).to_list(length=None)
            ]
            logs = get_execution_logs_collection()
            await logs.delete_many({"user_id": user_id, "account_id": account_id})
            if automation_ids:
                await logs.delete_many({"automation_id": {"$in": automation_ids}})
            await get_outgoing_events_collection().delete_many({"user_id": user_id, "account_id": account_id})
            await automations.delete_many({"user_id": user_id, "account_id": account_id})
            await accounts.delete_one({"_id": account_id, "user_id": user_id})
            logger.info(f"🗑️ Account {account.get('external_id')} removed with {len(automation_ids)} automations")
            return {"success": True, "message": f"{label} removed"}

        await accounts.update_one(
            {"_id": account_id, "user_id": user_id},
            {"$set": {"is_connected": False, "updated_at": utcnow()}},
        )
        logger.info(f"🔌 Account {account.get('external_id')} disconnected")
        event_type = DISCONNECT_EVENTS.get(account.get("platform"))
        if event_type:
            await emit_event(event_type, user_id, {"external_id": account.get("external_id")}, account_id=account_id)

    return {"success": True, "message": f"{label} disconnected"}
