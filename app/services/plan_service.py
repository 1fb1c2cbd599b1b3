"""
app/services/plan_service.py

Purpose: Plan capabilities and access rules

- Static per-plan limits and feature flags
- Resolves a user's effective plan (expired trials/subscriptions -> none)
- Trial countdown and plan-change date rules
"""

from copy import deepcopy
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

from utils.constants import (
    PLAN_NONE,
    PLAN_TRIAL,
    PLAN_FREE,
    PLAN_LIFETIME,
    PAID_PLANS,
)
from utils.time_utils import utcnow, remaining_days

PAID_PLAN_DAYS = 30

FEATURE_NAMES = (
    "messageAutoReply",
    "commentAutoReply",
    "imageAutoReply",
    "voiceAutoReply",
    "deleteNegativeComments",
    "whatsappEnabled",
    "instagramAutomation",
    "tiktokAutomation",
    "orderManagementSystem",
    "invoiceSystem",
)


def _features(*enabled: str) -> Dict[str, bool]:
    return {name: name in enabled for name in FEATURE_NAMES}


_ALL_FEATURES = _features(*FEATURE_NAMES)

PLAN_LIMITS: Dict[str, Dict[str, Any]] = {
    PLAN_NONE: {
        "max_facebook_pages": 0,
        "max_whatsapp_accounts": 0,
        "max_automations_per_month": 0,
        "features": _features(),
    },
    PLAN_FREE: {
        "max_facebook_pages": 10,
        "max_whatsapp_accounts": 5,
        "max_automations_per_month": None,
        "features": _ALL_FEATURES,
    },
    PLAN_TRIAL: {
        "max_facebook_pages": 10,
        "max_whatsapp_accounts": 5,
        "max_automations_per_month": None,
        "features": _ALL_FEATURES,
    },
    "starter": {
        "max_facebook_pages": 1,
        "max_whatsapp_accounts": 0,
        "max_automations_per_month": None,
        "features": _features("messageAutoReply", "commentAutoReply", "deleteNegativeComments"),
    },
    "professional": {
        "max_facebook_pages": 2,
        "max_whatsapp_accounts": 1,
        "max_automations_per_month": None,
        "features": _features(
            "messageAutoReply", "commentAutoReply", "imageAutoReply",
            "voiceAutoReply", "deleteNegativeComments", "whatsappEnabled",
        ),
    },
    "business": {
        "max_facebook_pages": 2,
        "max_whatsapp_accounts": 1,
        "max_automations_per_month": None,
        "features": _ALL_FEATURES,
    },
    PLAN_LIFETIME: {
        "max_facebook_pages": 10,
        "max_whatsapp_accounts": 5,
        "max_automations_per_month": None,
        "features": _ALL_FEATURES,
    },
}

# automation type -> feature flag that gates it
AUTOMATION_TYPE_FEATURES = {
    "message": "messageAutoReply",
    "comment": "commentAutoReply",
    "image": "imageAutoReply",
    "voice": "voiceAutoReply",
}


def get_plan_limits(plan: Optional[str]) -> Dict[str, Any]:
    """
    Limits for a plan name. Unknown plans get the "none" limits.
    """
    return deepcopy(PLAN_LIMITS.get((plan or PLAN_NONE).lower(), PLAN_LIMITS[PLAN_NONE]))


def get_effective_plan(user: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Works out which plan a user can actually use right now.

    Returns:
        {"plan": str, "is_active": bool, "reason": Optional[str]}
    """
    now = now or utcnow()
    if not user:
        return {"plan": PLAN_NONE, "is_active": False, "reason": "User not found"}

    plan = (user.get("subscription_plan") or PLAN_FREE).lower()
    trial_end = user.get("trial_end_date")

    if plan in (PLAN_TRIAL, PLAN_FREE):
        if user.get("is_trial_active") and trial_end and trial_end > now:
            return {"plan": PLAN_TRIAL, "is_active": True, "reason": None}
        if trial_end and trial_end > now:
            return {"plan": PLAN_FREE, "is_active": True, "reason": None}
        return {"plan": PLAN_NONE, "is_active": False, "reason": "Your free trial has ended."}

    if plan == PLAN_LIFETIME:
        return {"plan": PLAN_LIFETIME, "is_active": True, "reason": None}

    if plan in PAID_PLANS:
        ends_at = user.get("subscription_ends_at")
        if ends_at and ends_at > now:
            return {"plan": plan, "is_active": True, "reason": None}
        return {"plan": PLAN_NONE, "is_active": False, "reason": "Your subscription has expired."}

    return {"plan": PLAN_NONE, "is_active": False, "reason": "No active subscription."}


def is_trial_expired(user: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    trial_end = user.get("trial_end_date")
    return bool(user.get("is_trial_active") and trial_end and trial_end <= (now or utcnow()))


def trial_status(user: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    {"is_active": bool, "remaining_trial_days": Optional[int]}

    A user is active when they hold any plan other than "none", or when a
    trial is running and not yet past its end.
    """
    now = now or utcnow()
    plan = (user.get("subscription_plan") or PLAN_NONE).lower()
    trial_end = user.get("trial_end_date")
    trial_running = bool(user.get("is_trial_active") and trial_end and trial_end > now)

    return {
        "is_active": plan != PLAN_NONE or trial_running,
        "remaining_trial_days": remaining_days(trial_end, now) if user.get("is_trial_active") else None,
    }


def apply_plan_change(plan: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Field updates that accompany a plan change.

    Paid plans run for 30 days and lifetime has no end.
    "none" and "free" clear the subscription dates.
    """
    now = now or utcnow()
    plan = plan.lower()
    updates: Dict[str, Any] = {"subscription_plan": plan}

    if plan in PAID_PLANS:
        updates.update({
            "subscription_started_at": now,
            "subscription_ends_at": now + timedelta(days=PAID_PLAN_DAYS),
            "is_trial_active": False,
        })
    elif plan == PLAN_LIFETIME:
        updates.update({
            "subscription_started_at": now,
            "subscription_ends_at": None,
            "is_trial_active": False,
        })
    elif plan in (PLAN_NONE, PLAN_FREE):
        updates.update({
            "subscription_started_at": None,
            "subscription_ends_at": None,
            "is_trial_active": False,
        })
    return updates


def feature_for_automation_type(automation_type: str) -> Optional[str]:
    return AUTOMATION_TYPE_FEATURES.get(automation_type)
