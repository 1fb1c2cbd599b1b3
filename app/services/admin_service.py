"""
app/services/admin_service.py

Purpose: Back-office user and subscription management

- Dashboard overview counts
- User listing, detail and edits (incl. plan changes)
- Password reset, role and status changes by an admin
- Subscription statistics
"""

import math
from datetime import timedelta
from typing import Dict, Any, Optional

from app.core.config import settings
from app.core.exceptions import BadRequestError, ConflictError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_users_collection,
    get_user_roles_collection,
    get_subscriptions_collection,
    get_payment_requests_collection,
    get_automations_collection,
)
from app.services import user_service
from app.services.email_service import email_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.plan_service import apply_plan_change
from app.services.subscription_service import upsert_subscription
from utils import email_templates
from utils.constants import (
    ALL_PLANS,
    PAID_PLANS,
    PLAN_FREE,
    PLAN_LIFETIME,
    PLAN_TRIAL,
    MSG_NO_FIELDS,
    MSG_INVALID_PHONE,
    MSG_PHONE_TAKEN,
    MSG_PASSWORD_TOO_SHORT,
    ROLE_ADMIN,
    ROLE_USER,
    USER_STATUS_ACTIVE,
    USER_STATUS_SUSPENDED,
)
from utils.doc_utils import new_id, serialize_doc
from utils.time_utils import utcnow
from utils.validation_utils import (
    escape_search,
    normalize_phone,
    validate_phone_number,
    validate_password,
    sanitize_input,
)

logger = get_logger(__name__)

EDITABLE_USER_FIELDS = (
    "display_name",
    "phone",
    "subscription_plan",
    "email_verified",
    "phone_verified",
    "can_sync_business",
)


async def get_role(user_id: str) -> str:
    doc = await get_user_roles_collection().find_one({"user_id": user_id, "role": ROLE_ADMIN}, {"_id": 1})
    return ROLE_ADMIN if doc else ROLE_USER


async def is_admin(user_id: str) -> bool:
    return await get_role(user_id) == ROLE_ADMIN


async def get_overview() -> Dict[str, Any]:
    users = get_users_collection()
    now = utcnow()
    return {
        "total_users": await users.count_documents({}),
        "active_subscriptions": await users.count_documents({
            "$or": [
                {"subscription_plan": {"$in": list(PAID_PLANS)}, "subscription_ends_at": {"$gt": now}},
                {"subscription_plan": PLAN_LIFETIME},
            ]
        }),
        "active_trials": await users.count_documents({"is_trial_active": True, "trial_end_date": {"$gt": now}}),
        "pending_payments": await get_payment_requests_collection().count_documents({"status": "pending"}),
        "total_automations": await get_automations_collection().count_documents({}),
        "suspended_users": await users.count_documents({"status": USER_STATUS_SUSPENDED}),
    }


async def list_users(page: int = 1, limit: int = 20, search: Optional[str] = None) -> Dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query: Dict[str, Any] = {}
    pattern = escape_search(search)
    if pattern:
        query["$or"] = [
            {"email": {"$regex": pattern, "$options": "i"}},
            {"display_name": {"$regex": pattern, "$options": "i"}},
            {"phone": {"$regex": pattern, "$options": "i"}},
        ]

    users = get_users_collection()
    total = await users.count_documents(query)
    docs = await (
        users.find(query, {"password_hash": 0})
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(length=limit)
    )

    admin_ids = set()
    if docs:
        rows = await get_user_roles_collection().find(
            {"user_id": {"$in": [d["_id"] for d in docs]}, "role": ROLE_ADMIN},
            {"user_id": 1},
        ).to_list(length=None)
        admin_ids = {r["user_id"] for r in rows}

    results = []
    for doc in docs:
        row = serialize_doc(doc)
        row["role"] = ROLE_ADMIN if doc["_id"] in admin_ids else ROLE_USER
        results.append(row)

    return {
        "users": results,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


async def get_user_detail(user_id: str) -> Dict[str, Any]:
    user = await get_users_collection().find_one({"_id": user_id}, {"password_hash": 0})
    if not user:
        raise ResourceNotFoundError("User not found")

    subscription = await get_subscriptions_collection().find_one({"user_id": user_id})
    data = serialize_doc(user)
    data["role"] = await get_role(user_id)
    data["subscription"] = serialize_doc(subscription)
    return data


async def update_user(user_id: str, data: Dict[str, Any], admin_id: str) -> Dict[str, Any]:
    """
    Applies admin edits limited to EDITABLE_USER_FIELDS.
    A plan change sets the plan dates and emits plan.changed.
    """
    user = await get_users_collection().find_one({"_id": user_id})
    if not user:
        raise ResourceNotFoundError("User not found")

    updates: Dict[str, Any] = {k: data[k] for k in EDITABLE_USER_FIELDS if k in data}
    if not updates:
        raise BadRequestError(MSG_NO_FIELDS)

    if "display_name" in updates and updates["display_name"] is not None:
        updates["display_name"] = sanitize_input(str(updates["display_name"]), max_length=100)

    if "phone" in updates:
        phone = normalize_phone(updates["phone"])
        if phone:
            if not validate_phone_number(phone):
                raise BadRequestError(MSG_INVALID_PHONE)
            if await user_service.phone_in_use(phone, exclude_user_id=user_id):
                raise ConflictError(MSG_PHONE_TAKEN)
        updates["phone"] = phone or None

    for flag in ("email_verified", "phone_verified", "can_sync_business"):
        if flag in updates:
            updates[flag] = bool(updates[flag])

    now = utcnow()
    old_plan = user.get("subscription_plan")
    new_plan = None
    if "subscription_plan" in updates:
        new_plan = str(updates.pop("subscription_plan") or "").lower()
        if new_plan not in ALL_PLANS:
            raise BadRequestError(f"Invalid plan: {new_plan}")
        if new_plan != old_plan:
            plan_updates = apply_plan_change(new_plan, now)
            if new_plan in (PLAN_TRIAL, PLAN_FREE):
                # free access lasts as long as the trial window
                plan_updates["is_trial_active"] = new_plan == PLAN_TRIAL
                plan_updates["trial_end_date"] = now + timedelta(hours=settings.TRIAL_HOURS)
            updates.update(plan_updates)
        else:
            new_plan = None

    updates["updated_at"] = now

    with LogContext(user_id=user_id):
        await get_users_collection().update_one({"_id": user_id}, {"$set": updates})

        if new_plan:
            await upsert_subscription(user_id, new_plan, updates)
            await emit_event(
                EVENT_TYPES["PLAN_CHANGED"],
                user_id,
                {"old_plan": old_plan, "new_plan": new_plan, "changed_by": admin_id},
            )
        logger.info(f"🛠️ Admin {admin_id} updated user fields {sorted(updates)}")

    return await get_user_detail(user_id)


async def set_user_password(user_id: str, new_password: Optional[str], admin_id: str) -> Dict[str, Any]:
    if not validate_password(new_password or ""):
        raise BadRequestError(MSG_PASSWORD_TOO_SHORT)

    user = await user_service.require_user(user_id)
    await user_service.set_password(user_id, new_password)

    subject, html = email_templates.admin_password_changed_email()
    result = await email_service.send_email(user["email"], subject, html)
    if not result.get("success"):
        logger.warning(f"Password change email not sent: {result.get('error')}", extra={"user_id": user_id})

    logger.info(f"🔐 Admin {admin_id} reset password", extra={"user_id": user_id})
    return {"success": True, "message": "Password updated successfully"}


async def set_user_role(user_id: str, role: Optional[str], admin_id: str) -> Dict[str, Any]:
    if role not in (ROLE_ADMIN, ROLE_USER):
        raise BadRequestError("Role must be 'admin' or 'user'")
    await user_service.require_user(user_id)

    roles = get_user_roles_collection()
    if role == ROLE_ADMIN:
        await roles.update_one(
            {"user_id": user_id, "role": ROLE_ADMIN},
            {"$setOnInsert": {"_id": new_id(), "created_at": utcnow()}},
            upsert=True,
        )
    else:
        await roles.delete_many({"user_id": user_id, "role": ROLE_ADMIN})

    logger.info(f"👮 Admin {admin_id} set role={role}", extra={"user_id": user_id})
    return {"success": True, "role": role}


async def set_user_status(user_id: str, status: Optional[str], admin_id: str) -> Dict[str, Any]:
    if status not in (USER_STATUS_ACTIVE, USER_STATUS_SUSPENDED):
        raise BadRequestError("Status must be 'active' or 'suspended'")
    if status == USER_STATUS_SUSPENDED and user_id == admin_id:
        raise BadRequestError("You cannot suspend your own account")

    user = await user_service.require_user(user_id)
    await get_users_collection().update_one(
        {"_id": user_id},
        {"$set": {"status": status, "updated_at": utcnow()}}
    )

    subject, html = email_templates.account_status_email(status)
    result = await email_service.send_email(user["email"], subject, html)
    if not result.get("success"):
        logger.warning(f"Status email not sent: {result.get('error')}", extra={"user_id": user_id})

    await emit_event(EVENT_TYPES["USER_UPDATED"], user_id, {"status": status, "changed_by": admin_id})
    logger.info(f"🚦 Admin {admin_id} set status={status}", extra={"user_id": user_id})
    return {"success": True, "status": status}


async def get_subscription_stats() -> Dict[str, Any]:
    users = get_users_collection()
    now = utcnow()

    plan_rows = await users.aggregate([
        {"$group": {"_id": "$subscription_plan", "count": {"$sum": 1}}},
    ]).to_list(length=None)
    plan_stats = {(row["_id"] or "none"): row["count"] for row in plan_rows}

    expiring = await (
        users.find(
            {"is_trial_active": True, "trial_end_date": {"$gt": now, "$lte": now + timedelta(hours=24)}},
            {"email": 1, "display_name": 1, "trial_end_date": 1},
        )
        .sort("trial_end_date", 1)
        .to_list(length=None)
    )

    upgrades = await (
        users.find(
            {
                "subscription_plan": {"$in": list(PAID_PLANS) + [PLAN_LIFETIME]},
                "subscription_started_at": {"$gte": now - timedelta(days=30)},
            },
            {"email": 1, "display_name": 1, "subscription_plan": 1, "subscription_started_at": 1},
        )
        .sort("subscription_started_at", -1)
        .to_list(length=None)
    )

    return {
        "plan_stats": plan_stats,
        "expiring_trials": [serialize_doc(u) for u in expiring],
        "recent_upgrades": [serialize_doc(u) for u in upgrades],
    }
