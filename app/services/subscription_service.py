"""
app/services/subscription_service.py

Purpose: Trial and subscription lifecycle jobs

- Trial reminders (12h / 6h / 2h) and trial deactivation
- Subscription reminders (3 days / 1 day) and expiry
- Reminder de-duplication through subscription_reminders
"""

from typing import Dict, Any, Optional, List, Tuple

from pymongo.errors import DuplicateKeyError

from app.core.logging import get_logger, LogContext
from app.db.mongo import get_users_collection, get_subscription_reminders_collection, get_subscriptions_collection
from app.services.email_service import email_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.notification_service import create_notification
from utils import email_templates
from utils.constants import PAID_PLANS, PLAN_NONE
from utils.doc_utils import new_id
from utils.time_utils import utcnow, hours_until, isoformat

logger = get_logger(__name__)

# (label, hours before trial end)
TRIAL_REMINDERS: List[Tuple[str, int]] = [("12h", 12), ("6h", 6), ("2h", 2)]
# (label, days before subscription end)
SUBSCRIPTION_REMINDERS: List[Tuple[str, int]] = [("3d", 3), ("1d", 1)]
REMINDER_TOLERANCE_HOURS = 0.5


def due_trial_reminder(hours_left: float) -> Optional[Tuple[str, int]]:
    """
    The trial reminder whose window (target +/- 30 min) contains hours_left.
    """
    for label, target in TRIAL_REMINDERS:
        if abs(hours_left - target) <= REMINDER_TOLERANCE_HOURS:
            return label, target
    return None


def due_subscription_reminder(hours_left: float) -> Optional[Tuple[str, int]]:
    """
    The subscription reminder for the day that hours_left falls in.
    """
    for label, days in SUBSCRIPTION_REMINDERS:
        if (days - 1) * 24 < hours_left <= days * 24:
            return label, days
    return None


async def _claim_reminder(user_id: str, reminder_type: str) -> bool:
    """
    Records that a reminder went out. False when it already had.
    """
    reminders = get_subscription_reminders_collection()
    if await reminders.find_one({"user_id": user_id, "reminder_type": reminder_type}, {"_id": 1}):
        return False
    try:
        await reminders.insert_one({
            "_id": new_id(),
            "user_id": user_id,
            "reminder_type": reminder_type,
            "sent_at": utcnow(),
        })
    except DuplicateKeyError:
        return False
    return True


# ============================================================
# TRIAL EXPIRY
# ============================================================

async def run_trial_expiry_check() -> Dict[str, Any]:
    """
    Sends due trial reminders and switches off trials that ended.

    Returns:
        {"success", "emails_sent", "expired_trials_deactivated", "errors", "timestamp"}
    """
    now = utcnow()
    users = get_users_collection()
    emails_sent = 0
    deactivated = 0
    errors: List[str] = []

    active = await users.find(
        {"is_trial_active": True, "trial_end_date": {"$ne": None}},
        {"email": 1, "trial_end_date": 1, "subscription_plan": 1},
    ).to_list(length=None)

    logger.info(f"⏰ Trial expiry check: {len(active)} active trials")

    for user in active:
        user_id = user["_id"]
        with LogContext(user_id=user_id):
            try:
                hours_left = hours_until(user["trial_end_date"], now)

                if hours_left <= 0:
                    await users.update_one(
                        {"_id": user_id},
                        {"$set": {"is_trial_active": False, "subscription_plan": PLAN_NONE, "updated_at": now}}
                    )
                    deactivated += 1

                    subject, html = email_templates.trial_expired_email()
                    result = await email_service.send_email(user["email"], subject, html)
                    if result.get("success"):
                        emails_sent += 1

                    await create_notification(
                        user_id,
                        "Trial Ended",
                        "Your free trial has ended. Upgrade to keep your automations running.",
                        notification_type="warning",
                    )
                    await emit_event(EVENT_TYPES["TRIAL_ENDED"], user_id, {"trial_end_date": isoformat(user["trial_end_date"])})
                    continue

                due = due_trial_reminder(hours_left)
                if not due:
                    continue
                label, hours = due
                if not await _claim_reminder(user_id, f"trial_expiry_{label}"):
                    continue

                subject, html = email_templates.trial_reminder_email(hours)
                result = await email_service.send_email(user["email"], subject, html)
                if result.get("success"):
                    emails_sent += 1
                else:
                    errors.append(f"{user_id}: {result.get('error')}")

            except Exception as e:
                logger.error(f"Trial check failed: {e}", exc_info=True)
                errors.append(f"{user_id}: {e}")

    logger.info(f"✅ Trial expiry check done: {emails_sent} emails, {deactivated} deactivated")
    return {
        "success": True,
        "emails_sent": emails_sent,
        "expired_trials_deactivated": deactivated,
        "errors": errors,
        "timestamp": isoformat(now),
    }


# ============================================================
# SUBSCRIPTION EXPIRY
# ============================================================

async def run_subscription_expiry_check() -> Dict[str, Any]:
    """
    Expires ended paid subscriptions and sends end-of-term reminders.

    Returns:
        {"success", "expired", "reminders_sent", "errors", "timestamp"}
    """
    now = utcnow()
    users = get_users_collection()
    expired = 0
    reminders_sent = 0
    errors: List[str] = []

    paid = await users.find(
        {"subscription_plan": {"$in": list(PAID_PLANS)}, "subscription_ends_at": {"$ne": None}},
        {"email": 1, "subscription_plan": 1, "subscription_ends_at": 1},
    ).to_list(length=None)

    logger.info(f"⏰ Subscription expiry check: {len(paid)} paid subscriptions")

    for user in paid:
        user_id = user["_id"]
        plan = user["subscription_plan"]
        with LogContext(user_id=user_id):
            try:
                hours_left = hours_until(user["subscription_ends_at"], now)

                if hours_left <= 0:
                    await users.update_one(
                        {"_id": user_id},
                        {"$set": {"subscription_plan": PLAN_NONE, "updated_at": now}}
                    )
                    await get_subscriptions_collection().update_one(
                        {"user_id": user_id},
                        {"$set": {"status": "expired", "updated_at": now}}
                    )
                    expired += 1

                    await create_notification(
                        user_id,
                        "Subscription Expired",
                        f"Your {plan.capitalize()} subscription has expired. Renew to continue.",
                        notification_type="warning",
                    )
                    subject, html = email_templates.subscription_expired_email(plan)
                    await email_service.send_email(user["email"], subject, html)
                    await emit_event(EVENT_TYPES["SUBSCRIPTION_EXPIRED"], user_id, {"plan": plan})
                    continue

                due = due_subscription_reminder(hours_left)
                if not due:
                    continue
                label, days = due
                # One reminder per label per subscription term
                ends_on = user["subscription_ends_at"].strftime("%Y%m%d")
                if not await _claim_reminder(user_id, f"subscription_expiry_{label}_{ends_on}"):
                    continue

                subject, html = email_templates.subscription_reminder_email(plan, days)
                result = await email_service.send_email(user["email"], subject, html)
                if result.get("success"):
                    reminders_sent += 1
                else:
                    errors.append(f"{user_id}: {result.get('error')}")

            except Exception as e:
                logger.error(f"Subscription check failed: {e}", exc_info=True)
                errors.append(f"{user_id}: {e}")

    logger.info(f"✅ Subscription expiry check done: {expired} expired, {reminders_sent} reminders")
    return {
        "success": True,
        "expired": expired,
        "reminders_sent": reminders_sent,
        "errors": errors,
        "timestamp": isoformat(now),
    }


async def upsert_subscription(user_id: str, plan: str, updates: Dict[str, Any]) -> None:
    """Mirrors the user's current plan into the subscriptions collection."""
    now = utcnow()
    await get_subscriptions_collection().update_one(
        {"user_id": user_id},
        {
            "$set": {
                "plan": plan,
                "status": "active" if plan != PLAN_NONE else "inactive",
                "started_at": updates.get("subscription_started_at"),
                "ends_at": updates.get("subscription_ends_at"),
                "updated_at": now,
            },
            "$setOnInsert": {"_id": new_id(), "created_at": now},
        },
        upsert=True,
    )
