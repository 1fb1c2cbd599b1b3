"""
app/services/user_service.py

Purpose: User data management

- User retrieval and public view
- Profile updates and password changes
- Full account data removal
"""

from typing import Optional, Dict, Any

from app.core.exceptions import BadRequestError, ConflictError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.core.security import hash_password, verify_password
from app.db.mongo import get_collection, get_users_collection
from app.services.plan_service import trial_status
from utils.constants import (
    MSG_NO_FIELDS,
    MSG_INVALID_PHONE,
    MSG_PHONE_TAKEN,
    MSG_CURRENT_PASSWORD_WRONG,
    MSG_PASSWORD_TOO_SHORT,
)
from utils.time_utils import utcnow, isoformat
from utils.validation_utils import (
    normalize_email,
    normalize_phone,
    validate_phone_number,
    validate_password,
    sanitize_input,
)

logger = get_logger(__name__)

# Collections holding rows owned by a user (user_id field)
USER_OWNED_COLLECTIONS = (
    "execution_logs",
    "automations",
    "connected_accounts",
    "notifications",
    "orders",
    "products",
    "subscriptions",
    "subscription_reminders",
    "verification_otps",
    "account_deletion_otps",
    "user_roles",
    "payment_requests",
    "sync_settings",
    "shops",
    "shop_settings",
    "shop_products",
    "shop_categories",
    "shop_customers",
    "shop_suppliers",
    "shop_expenses",
    "shop_sales",
    "shop_trash",
)


def to_public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """
    The user as returned by auth and profile endpoints.
    Never includes the password hash.
    """
    return {
        "id": user["_id"],
        "email": user.get("email"),
        "phone": user.get("phone"),
        "display_name": user.get("display_name"),
        "avatar_url": user.get("avatar_url"),
        "subscription_plan": user.get("subscription_plan"),
        "subscription_type": user.get("subscription_type") or "online",
        "trial_end_date": isoformat(user.get("trial_end_date")),
        "is_trial_active": bool(user.get("is_trial_active")),
        "subscription_started_at": isoformat(user.get("subscription_started_at")),
        "subscription_ends_at": isoformat(user.get("subscription_ends_at")),
        "email_verified": bool(user.get("email_verified")),
        "phone_verified": bool(user.get("phone_verified")),
        "status": user.get("status") or "active",
        "can_sync_business": bool(user.get("can_sync_business")),
    }


def to_session_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Public user plus the trial countdown fields."""
    data = to_public_user(user)
    data.update(trial_status(user))
    return data


async def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    return await get_users_collection().find_one({"_id": user_id})


async def require_user(user_id: str) -> Dict[str, Any]:
    user = await get_user_by_id(user_id)
    if not user:
        raise ResourceNotFoundError("User not found")
    return user


async def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return await get_users_collection().find_one({"email": normalize_email(email)})


async def phone_in_use(phone: str, exclude_user_id: Optional[str] = None) -> bool:
    query: Dict[str, Any] = {"phone": phone}
    if exclude_user_id:
        query["_id"] = {"$ne": exclude_user_id}
    return await get_users_collection().find_one(query, {"_id": 1}) is not None


async def update_profile(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Updates display_name and/or phone.

    Raises:
        BadRequestError: nothing to update or invalid phone
        ConflictError: phone belongs to another account
    """
    updates: Dict[str, Any] = {}

    if data.get("display_name") is not None:
        updates["display_name"] = sanitize_input(data["display_name"], max_length=100)

    if data.get("phone") is not None:
        phone = normalize_phone(data["phone"])
        if phone:
            if not validate_phone_number(phone):
                raise BadRequestError(MSG_INVALID_PHONE)
            if await phone_in_use(phone, exclude_user_id=user_id):
                raise ConflictError(MSG_PHONE_TAKEN)
        updates["phone"] = phone or None
        # A new number must be verified again
        updates["phone_verified"] = False

    if not updates:
        raise BadRequestError(MSG_NO_FIELDS)

    updates["updated_at"] = utcnow()
    users = get_users_collection()
    result = await users.update_one({"_id": user_id}, {"$set": updates})
    if result.matched_count == 0:
        raise ResourceNotFoundError("User not found")

    logger.info(f"Profile updated: {sorted(updates)}", extra={"user_id": user_id})
    return to_public_user(await require_user(user_id))


async def change_password(user_id: str, current_password: Optional[str], new_password: Optional[str]):
    if not current_password or not new_password:
        raise BadRequestError("Current password and new password are required")
    if not validate_password(new_password):
        raise BadRequestError(MSG_PASSWORD_TOO_SHORT)

    user = await require_user(user_id)
    if not verify_password(current_password, user.get("password_hash", "")):
        raise BadRequestError(MSG_CURRENT_PASSWORD_WRONG)

    await get_users_collection().update_one(
        {"_id": user_id},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": utcnow()}}
    )
    logger.info("🔐 Password changed", extra={"user_id": user_id})


async def set_password(user_id: str, new_password: str):
    await get_users_collection().update_one(
        {"_id": user_id},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": utcnow()}}
    )


async def delete_user_data(user_id: str) -> Dict[str, int]:
    """
    Removes everything a user owns, then the user row.
    email_usage_history is kept so the email cannot earn a second trial.

    Returns:
        Deleted row counts per collection
    """
    with LogContext(user_id=user_id):
        counts: Dict[str, int] = {}
        for name in USER_OWNED_COLLECTIONS:
            result = await get_collection(name).delete_many({"user_id": user_id})
            if result.deleted_count:
                counts[name] = result.deleted_count

        result = await get_users_collection().delete_one({"_id": user_id})
        counts["users"] = result.deleted_count

        logger.info(f"🗑️ Account deleted: {counts}")
        return counts
