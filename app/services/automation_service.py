"""
app/services/automation_service.py

Purpose: Keyword automations and their execution trail

- CRUD with plan access and feature gating
- Keyword matching against inbound text
- Execution logs (listing, retention cleanup and Facebook event processing)
"""

from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List

from app.core.exceptions import BadRequestError, ForbiddenError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_automations_collection,
    get_connected_accounts_collection,
    get_execution_logs_collection,
)
from app.schemas.webhook import FacebookEvent
from app.services import user_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.plan_service import get_effective_plan, get_plan_limits, feature_for_automation_type
from utils.doc_utils import new_id, serialize_doc, serialize_docs, strip_protected
from utils.time_utils import utcnow
from utils.validation_utils import sanitize_input

logger = get_logger(__name__)

MAX_LOG_LIMIT = 100
LOG_RETENTION_DAYS = 30
MAX_LOGS_PER_USER = 500
UPDATABLE_FIELDS = ("name", "trigger_keywords", "response_template", "config", "is_enabled", "type")

# FacebookEvent.kind -> execution log event type
LOG_EVENT_TYPES = {
    "message": "message_received",
    "postback": "postback_received",
    "comment": "comment_received",
}

# FacebookEvent.kind -> outgoing event type
EMIT_EVENT_TYPES = {
    "message": EVENT_TYPES["FACEBOOK_MESSAGE"],
    "postback": EVENT_TYPES["FACEBOOK_POSTBACK"],
    "comment": EVENT_TYPES["FACEBOOK_COMMENT"],
}


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _normalize_keywords(keywords: Any) -> List[str]:
    if not keywords:
        return []
    if isinstance(keywords, str):
        keywords = keywords.split(",")
    return [str(k).strip() for k in keywords if str(k).strip()]


def match_automation(automations: List[Dict[str, Any]], text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    First enabled automation whose keyword occurs in the text (case-insensitive).
    An automation without keywords matches any text.
    """
    lowered = (text or "").lower()
    for automation in automations:
        if not automation.get("is_enabled", True):
            continue
        keywords = _normalize_keywords(automation.get("trigger_keywords"))
        if not keywords:
            return automation
        if any(k.lower() in lowered for k in keywords):
            return automation
    return None


async def check_user_access(user_id: str) -> Dict[str, Any]:
    """
    Returns:
        {"has_access", "reason", "plan", "limits", "runs_this_month"}
    """
    user = await user_service.get_user_by_id(user_id)
    effective = get_effective_plan(user)
    limits = get_plan_limits(effective["plan"])

    runs = await get_execution_logs_collection().count_documents({
        "user_id": user_id,
        "created_at": {"$gte": _month_start(utcnow())},
    })

    result = {
        "has_access": effective["is_active"],
        "reason": effective["reason"],
        "plan": effective["plan"],
        "limits": limits,
        "runs_this_month": runs,
    }

    max_runs = limits.get("max_automations_per_month")
    if effective["is_active"] and max_runs is not None and runs >= max_runs:
        result["has_access"] = False
        result["reason"] = f"You have used all {max_runs} automations for this month on your {effective['plan']} plan."
    return result


async def _require_access(user_id: str) -> Dict[str, Any]:
    access = await check_user_access(user_id)
    if not access["has_access"]:
        raise ForbiddenError(
            access["reason"] or "No active subscription or trial.",
            details={"subscription_required": True, "plan": access["plan"]},
        )
    return access


def _check_feature(automation_type: str, access: Dict[str, Any]):
    feature = feature_for_automation_type(automation_type)
    if feature and not access["limits"]["features"].get(feature):
        raise ForbiddenError(
            f"{automation_type} automation is not available on your {access['plan'].capitalize()} plan. "
            "Please upgrade to use this feature.",
            details={"feature_blocked": True, "feature": feature},
        )


# ============================================================
# CRUD
# ============================================================

async def list_automations(user_id: str) -> Dict[str, Any]:
    access = await check_user_access(user_id)
    docs = await (
        get_automations_collection()
        .find({"user_id": user_id})
        .sort("created_at", -1)
        .to_list(length=None)
    )

    runs_today: Dict[str, int] = {}
    logs = await get_execution_logs_collection().find(
        {"user_id": user_id, "created_at": {"$gte": _day_start(utcnow())}},
        {"automation_id": 1},
    ).to_list(length=None)
    for log in logs:
        automation_id = log.get("automation_id")
        if automation_id:
            runs_today[automation_id] = runs_today.get(automation_id, 0) + 1

    automations = []
    for doc in docs:
        row = serialize_doc(doc)
        row["runs_today"] = runs_today.get(doc["_id"], 0)
        automations.append(row)

    return {
        "automations": automations,
        "has_access": access["has_access"],
        "access_denied_reason": None if access["has_access"] else access["reason"],
        "plan_limits": {
            "plan": access["plan"],
            "max_automations_per_month": access["limits"]["max_automations_per_month"],
            "runs_this_month": access["runs_this_month"],
            "features": access["limits"]["features"],
        },
    }


async def create_automation(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Raises:
        BadRequestError: name, type or account_id missing
        ForbiddenError: no access, feature blocked, or foreign account
    """
    name = sanitize_input(str(data.get("name") or ""), max_length=200)
    automation_type = str(data.get("type") or "").strip()
    account_id = data.get("account_id")
    if not name or not automation_type or not account_id:
        raise BadRequestError("name, type, and account_id are required")

    access = await _require_access(user_id)
    _check_feature(automation_type, access)

    account = await get_connected_accounts_collection().find_one({"_id": account_id, "user_id": user_id}, {"_id": 1})
    if not account:
        raise ForbiddenError("Account not found or access denied")

    now = utcnow()
    doc = {
        "_id": new_id(),
        "user_id": user_id,
        "account_id": account_id,
        "name": name,
        "type": automation_type,
        "trigger_keywords": _normalize_keywords(data.get("trigger_keywords")),
        "response_template": data.get("response_template"),
        "config": data.get("config") or {},
        "is_enabled": bool(data.get("is_enabled", True)),
        "created_at": now,
        "updated_at": now,
    }

    with LogContext(user_id=user_id, resource=doc["_id"]):
        await get_automations_collection().insert_one(doc)
        logger.info(f"🤖 Automation created: {automation_type}")
        await emit_event(
            EVENT_TYPES["AUTOMATION_CREATED"],
            user_id,
            {"automation_id": doc["_id"], "name": name, "type": automation_type},
            account_id=account_id,
        )

    return serialize_doc(doc)


async def update_automation(user_id: str, automation_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    access = await _require_access(user_id)

    automations = get_automations_collection()
    existing = await automations.find_one({"_id": automation_id, "user_id": user_id})
    if not existing:
        raise ResourceNotFoundError("Automation not found")

    updates = {k: v for k, v in strip_protected(data, extra=("user_id", "account_id")).items() if k in UPDATABLE_FIELDS}
    if "type" in updates:
        _check_feature(str(updates["type"]), access)
    if "trigger_keywords" in updates:
        updates["trigger_keywords"] = _normalize_keywords(updates["trigger_keywords"])
    if "name" in updates:
        updates["name"] = sanitize_input(str(updates["name"] or ""), max_length=200)
    if "is_enabled" in updates:
        updates["is_enabled"] = bool(updates["is_enabled"])
    updates["updated_at"] = utcnow()

    await automations.update_one({"_id": automation_id, "user_id": user_id}, {"$set": updates})
    existing.update(updates)

    await emit_event(
        EVENT_TYPES["AUTOMATION_UPDATED"],
        user_id,
        {"automation_id": automation_id, "changed_fields": sorted(updates)},
        account_id=existing.get("account_id"),
    )
    return serialize_doc(existing)


async def delete_automation(user_id: str, automation_id: str) -> Dict[str, Any]:
    await _require_access(user_id)

    automations = get_automations_collection()
    existing = await automations.find_one({"_id": automation_id, "user_id": user_id}, {"account_id": 1})
    if not existing:
        raise ResourceNotFoundError("Automation not found")

    await automations.delete_one({"_id": automation_id, "user_id": user_id})
    logger.info("🗑️ Automation deleted", extra={"user_id": user_id, "resource": automation_id})

    await emit_event(
        EVENT_TYPES["AUTOMATION_DELETED"],
        user_id,
        {"automation_id": automation_id},
        account_id=existing.get("account_id"),
    )
    return {"success": True}


async def list_execution_logs(user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
    limit = min(max(limit, 1), MAX_LOG_LIMIT)
    docs = await (
        get_execution_logs_collection()
        .find({"user_id": user_id})
        .sort("created_at", -1)
        .limit(limit)
        .to_list(length=limit)
    )
    return serialize_docs(docs)


async def cleanup_execution_logs() -> Dict[str, Any]:
    """
    Drops logs older than LOG_RETENTION_DAYS, then trims every user to
    their newest MAX_LOGS_PER_USER rows.
    """
    logs = get_execution_logs_collection()
    cutoff = utcnow() - timedelta(days=LOG_RETENTION_DAYS)
    old = await logs.delete_many({"created_at": {"$lt": cutoff}})

    excess = 0
    for user_id in await logs.distinct("user_id"):
        stale = await (
            logs.find({"user_id": user_id}, {"_id": 1})
            .sort("created_at", -1)
            .skip(MAX_LOGS_PER_USER)
            .to_list(length=None)
        )
        if not stale:
            continue
        result = await logs.delete_many({"_id": {"$in": [doc["_id"] for doc in stale]}})
        excess += result.deleted_count

    total = old.deleted_count + excess
    logger.info(f"🧹 Execution log cleanup removed {total} rows ({old.deleted_count} old, {excess} over cap)")
    return {
        "success": True,
        "deleted_old_logs": old.deleted_count,
        "deleted_excess_logs": excess,
        "total_deleted": total,
    }


# ============================================================
# FACEBOOK EVENTS
# ============================================================

async def process_facebook_event(event: FacebookEvent) -> Optional[str]:
    """
    Logs an inbound Facebook event for the owning account, resolves the
    matching automation and queues facebook.<kind>.

    Returns:
        The execution log id, or None when no connected account owns the page
    """
    account = await get_connected_accounts_collection().find_one({
        "platform": "facebook",
        "external_id": event.page_id,
        "is_connected": True,
    })
    if not account:
        logger.warning(f"No connected account for page {event.page_id}")
        return None

    user_id = account["user_id"]
    with LogContext(user_id=user_id, event_type=event.kind):
        automations = await get_automations_collection().find(
            {"user_id": user_id, "account_id": account["_id"], "is_enabled": True}
        ).sort("created_at", 1).to_list(length=None)

        if event.kind == "comment":
            candidates = [a for a in automations if a.get("type") == "comment"]
        else:
            candidates = [a for a in automations if a.get("type") != "comment"]
        matched = match_automation(candidates, event.text)

        log_id = new_id()
        await get_execution_logs_collection().insert_one({
            "_id": log_id,
            "user_id": user_id,
            "account_id": account["_id"],
            "automation_id": matched["_id"] if matched else None,
            "event_type": LOG_EVENT_TYPES[event.kind],
            "source_platform": "facebook",
            "status": "matched" if matched else "received",
            "incoming_payload": event.model_dump(mode="json"),
            "created_at": utcnow(),
        })

        logger.info(f"📨 Facebook {event.kind} logged (automation={'yes' if matched else 'no'})")

        await emit_event(
            EMIT_EVENT_TYPES[event.kind],
            user_id,
            {
                "page_id": event.page_id,
                "sender_id": event.sender_id,
                "text": event.text,
                "message_id": event.message_id,
                "comment_id": event.comment_id,
                "post_id": event.post_id,
                "postback_payload": event.postback_payload,
                "automation_id": matched["_id"] if matched else None,
                "response_template": matched.get("response_template") if matched else None,
                "execution_log_id": log_id,
            },
            account_id=account["_id"],
        )
        return log_id
