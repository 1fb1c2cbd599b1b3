"""
app/services/event_service.py

Purpose: Outgoing integration events

- emit_event: enrich and queue an event in outgoing_events
- dispatch_pending_events: deliver queued events to configured webhooks
- HMAC-SHA256 request signing
"""

import hashlib
import hmac
import json
from typing import Dict, Any, List, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger, LogContext
from app.db.mongo import (
    get_outgoing_events_collection,
    get_webhook_configs_collection,
    get_users_collection,
    get_site_settings_collection,
)
from app.services.plan_service import get_plan_limits
from utils.constants import MSG_NO_WEBHOOK_TARGET, SITE_SETTINGS_ID
from utils.doc_utils import new_id
from utils.time_utils import utcnow, isoformat

logger = get_logger(__name__)

EVENT_TYPES = {
    # User
    "USER_CREATED": "user.created",
    "USER_UPDATED": "user.updated",
    "USER_DELETED": "user.deleted",
    # Subscription
    "SUBSCRIPTION_CREATED": "subscription.created",
    "SUBSCRIPTION_ACTIVATED": "subscription.activated",
    "SUBSCRIPTION_UPDATED": "subscription.updated",
    "SUBSCRIPTION_EXPIRED": "subscription.expired",
    "SUBSCRIPTION_CANCELLED": "subscription.cancelled",
    "PLAN_CHANGED": "plan.changed",
    # Billing
    "BILLING_PAYMENT_REQUESTED": "billing.payment_requested",
    "BILLING_PAYMENT_SUCCEEDED": "billing.payment_succeeded",
    "BILLING_PAYMENT_REJECTED": "billing.payment_rejected",
    "TRIAL_STARTED": "trial.started",
    "TRIAL_ENDED": "trial.ended",
    # Integrations
    "FACEBOOK_MESSAGE": "facebook.message",
    "FACEBOOK_POSTBACK": "facebook.postback",
    "FACEBOOK_COMMENT": "facebook.comment",
    "FACEBOOK_PAGE_CONNECTED": "facebook.page_connected",
    "FACEBOOK_PAGE_DISCONNECTED": "facebook.page_disconnected",
    "WHATSAPP_CONNECTED": "whatsapp.connected",
    "WHATSAPP_DISCONNECTED": "whatsapp.disconnected",
    # Automation
    "AUTOMATION_CREATED": "automation.created",
    "AUTOMATION_UPDATED": "automation.updated",
    "AUTOMATION_DELETED": "automation.deleted",
    "AUTOMATION_EXECUTED": "automation.executed",
    # Commerce
    "PRODUCT_CREATED": "product.created",
    "PRODUCT_UPDATED": "product.updated",
    "PRODUCT_DELETED": "product.deleted",
    "ORDER_CREATED": "order.created",
    "ORDER_UPDATED": "order.updated",
    # Site / dashboard
    "SITE_SETTINGS_UPDATED": "site_settings.updated",
    "DASHBOARD_SNAPSHOT": "dashboard.snapshot",
}

CENTRAL_WEBHOOK_ID = "n8n_main"
DISPATCH_BATCH_SIZE = 100
MAX_ERROR_LENGTH = 500

# prefix -> extra webhook config ids (first match wins)
_ROUTES = (
    (("facebook.",), ["facebook"]),
    (("whatsapp.",), ["whatsapp"]),
    (("instagram.",), ["instagram"]),
    (("user.", "subscription.", "plan.", "trial."), ["user_events", "subscription"]),
    (("billing.", "payment."), ["payment"]),
    (("order.", "product."), ["ecommerce"]),
    (("automation.",), ["automation_events"]),
    (("email.",), ["email"]),
)


def route_event(event_type: str) -> List[str]:
    """
    Webhook config ids that should receive an event type.
    The central webhook always receives everything.
    """
    targets = [CENTRAL_WEBHOOK_ID]
    for prefixes, extra in _ROUTES:
        if event_type.startswith(prefixes):
            targets.extend(extra)
            break
    return targets


def sign_payload(body: str, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact request body."""
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


async def _user_context(user_id: str) -> Dict[str, Any]:
    user = await get_users_collection().find_one({"_id": user_id})
    if not user:
        return {}
    return {
        "user": {
            "id": user["_id"],
            "email": user.get("email"),
            "display_name": user.get("display_name"),
        },
        "subscription": {
            "plan": user.get("subscription_plan"),
            "is_trial_active": user.get("is_trial_active"),
            "trial_end_date": isoformat(user.get("trial_end_date")),
            "started_at": isoformat(user.get("subscription_started_at")),
            "ends_at": isoformat(user.get("subscription_ends_at")),
        },
        "plan_limits": get_plan_limits(user.get("subscription_plan")),
    }


async def emit_event(
    event_type: str,
    user_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    account_id: Optional[str] = None,
) -> Optional[str]:
    """
    Queues an outgoing event. Failures are logged, never raised.

    Returns:
        The new event id, or None if it could not be stored
    """
    with LogContext(user_id=user_id, event_type=event_type):
        try:
            enriched = dict(payload or {})
            if user_id:
                enriched.update(await _user_context(user_id))

            site = await get_site_settings_collection().find_one(
                {"_id": SITE_SETTINGS_ID},
                {"company_name": 1, "website_url": 1, "support_email": 1},
            )
            if site:
                site.pop("_id", None)
                enriched["site_context"] = site

            event_id = new_id()
            await get_outgoing_events_collection().insert_one({
                "_id": event_id,
                "event_type": event_type,
                "user_id": user_id,
                "account_id": account_id,
                "payload": enriched,
                "status": "pending",
                "retry_count": 0,
                "last_error": None,
                "created_at": utcnow(),
            })
            logger.info(f"📣 Event queued: {event_type} ({event_id})")
            return event_id

        except Exception as e:
            logger.error(f"Failed to queue event {event_type}: {e}", exc_info=True)
            return None


def build_webhook_body(event: Dict[str, Any]) -> Dict[str, Any]:
    created_at = event.get("created_at")
    return {
        "event_id": event["_id"],
        "event_type": event["event_type"],
        "user_id": event.get("user_id"),
        "account_id": event.get("account_id"),
        "occurred_at": isoformat(created_at) if hasattr(created_at, "isoformat") else created_at,
        "payload": event.get("payload"),
    }


async def _deliver(client: httpx.AsyncClient, webhook: Dict[str, Any], event: Dict[str, Any], body: str) -> Optional[str]:
    """
    POSTs one event to one webhook. Returns an error string or None.
    """
    headers = {
        "Content-Type": "application/json",
        "X-Autofloy-Signature": sign_payload(body, webhook.get("secret") or settings.WEBHOOK_SIGNING_SECRET),
        "X-Autofloy-Event-Type": event["event_type"],
        "X-Autofloy-Webhook-Id": webhook["_id"],
    }
    try:
        response = await client.post(webhook["url"], content=body, headers=headers, timeout=settings.WEBHOOK_TIMEOUT)
    except httpx.HTTPError as e:
        return f"{webhook['_id']}: {e}"

    if 200 <= response.status_code < 300:
        return None
    return f"{webhook['_id']}: HTTP {response.status_code} {response.text[:200]}"


async def dispatch_pending_events() -> Dict[str, int]:
    """
    Delivers up to DISPATCH_BATCH_SIZE pending events, oldest first.

    Returns:
        {"processed": n, "sent": n, "errors": n}
    """
    events_collection = get_outgoing_events_collection()

    webhooks = await get_webhook_configs_collection().find(
        {"is_active": True, "url": {"$nin": [None, ""]}}
    ).to_list(length=None)
    logger.info(f"Found {len(webhooks)} active webhooks with URLs")

    events = await events_collection.find({"status": "pending"}).sort("created_at", 1).to_list(length=DISPATCH_BATCH_SIZE)
    if not events:
        logger.info("No pending events to dispatch")
        return {"processed": 0, "sent": 0, "errors": 0}

    sent = 0
    errors = 0

    async with httpx.AsyncClient() as client:
        for event in events:
            wanted = route_event(event["event_type"])
            targets = [w for w in webhooks if w["_id"] in wanted and w.get("url")]

            if not targets:
                await events_collection.update_one(
                    {"_id": event["_id"]},
                    {"$set": {"status": "sent", "sent_at": utcnow(), "last_error": MSG_NO_WEBHOOK_TARGET}}
                )
                sent += 1
                continue

            body = json.dumps(build_webhook_body(event), default=str)
            failures = []
            for webhook in targets:
                error = await _deliver(client, webhook, event, body)
                if error:
                    failures.append(error)

            if not failures:
                await events_collection.update_one(
                    {"_id": event["_id"]},
                    {"$set": {"status": "sent", "sent_at": utcnow(), "last_error": None}}
                )
                sent += 1
            else:
                logger.warning(f"⚠️ Event {event['_id']} ({event['event_type']}) failed: {failures}")
                await events_collection.update_one(
                    {"_id": event["_id"]},
                    {
                        "$set": {"status": "error", "last_error": "; ".join(failures)[:MAX_ERROR_LENGTH]},
                        "$inc": {"retry_count": 1},
                    }
                )
                errors += 1

    logger.info(f"✅ Webhook dispatch complete: processed={len(events)} sent={sent} errors={errors}")
    return {"processed": len(events), "sent": sent, "errors": errors}
