"""
app/services/payment_service.py

Purpose: Manual payment requests

- Users submit proof of payment for a plan
- Admins review: approve activates the plan, reject notifies the user
"""

import math
from typing import Dict, Any, Optional, List

from app.core.exceptions import BadRequestError, ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_payment_requests_collection, get_users_collection
from app.services.email_service import email_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.notification_service import create_notification
from app.services.plan_service import apply_plan_change
from app.services.subscription_service import upsert_subscription
from utils import email_templates
from utils.constants import (
    MSG_PENDING_EXISTS,
    MSG_ALREADY_PROCESSED,
    PLAN_NAMES,
    PAYMENT_CURRENCY,
    PAID_PLANS,
    PLAN_LIFETIME,
)
from utils.doc_utils import new_id, serialize_doc, serialize_docs
from utils.time_utils import utcnow
from utils.validation_utils import escape_search, sanitize_input

logger = get_logger(__name__)

REQUIRED_FIELDS = ("plan_id", "amount", "payment_method")
REVIEW_STATUSES = ("approved", "rejected")
PURCHASABLE_PLANS = PAID_PLANS + (PLAN_LIFETIME,)


def plan_name_for(plan_id: str) -> str:
    return PLAN_NAMES[plan_id]


def _check_plan(plan_id: str) -> str:
    plan_id = str(plan_id or "").strip().lower()
    if plan_id not in PURCHASABLE_PLANS:
        raise BadRequestError(f"Invalid plan: {plan_id}")
    return plan_id


async def create_payment_request(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Raises:
        BadRequestError: missing fields, unknown plan, bad amount, or a pending request for the plan
    """
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
    if missing:
        raise BadRequestError(f"Missing required fields: {', '.join(missing)}")

    try:
        amount = float(data["amount"])
    except (TypeError, ValueError):
        raise BadRequestError("Amount must be a number")
    if amount <= 0:
        raise BadRequestError("Amount must be greater than zero")

    plan_id = _check_plan(data["plan_id"])
    requests = get_payment_requests_collection()

    pending = await requests.find_one({"user_id": user_id, "plan_id": plan_id, "status": "pending"}, {"_id": 1})
    if pending:
        raise BadRequestError(MSG_PENDING_EXISTS)

    now = utcnow()
    request_id = new_id()
    plan_name = plan_name_for(plan_id)

    await requests.insert_one({
        "_id": request_id,
        "user_id": user_id,
        "plan_id": plan_id,
        "plan_name": plan_name,
        "amount": amount,
        "currency": PAYMENT_CURRENCY,
        "payment_method": sanitize_input(str(data["payment_method"]), max_length=50),
        "transaction_id": sanitize_input(str(data.get("transaction_id") or ""), max_length=100) or None,
        "screenshot_url": data.get("screenshot_url"),
        "status": "pending",
        "admin_notes": None,
        "reviewed_by": None,
        "reviewed_at": None,
        "created_at": now,
        "updated_at": now,
    })

    logger.info(f"💳 Payment request created for {plan_name} ({amount} {PAYMENT_CURRENCY})", extra={"user_id": user_id})
    await emit_event(
        EVENT_TYPES["BILLING_PAYMENT_REQUESTED"],
        user_id,
        {"request_id": request_id, "plan_id": plan_id, "plan_name": plan_name, "amount": amount, "currency": PAYMENT_CURRENCY},
    )
    return {"success": True, "request_id": request_id}


async def list_user_requests(user_id: str) -> List[Dict[str, Any]]:
    docs = await (
        get_payment_requests_collection()
        .find({"user_id": user_id})
        .sort("created_at", -1)
        .to_list(length=None)
    )
    return serialize_docs(docs)


async def list_all_requests(
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Admin listing, each row enriched with the requester's email and name.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query: Dict[str, Any] = {}
    if status and status != "all":
        query["status"] = status
    pattern = escape_search(search)
    if pattern:
        query["transaction_id"] = {"$regex": pattern, "$options": "i"}

    requests = get_payment_requests_collection()
    total = await requests.count_documents(query)
    docs = await (
        requests.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(length=limit)
    )

    user_ids = list({d["user_id"] for d in docs})
    users = {}
    if user_ids:
        rows = await get_users_collection().find(
            {"_id": {"$in": user_ids}},
            {"email": 1, "display_name": 1},
        ).to_list(length=None)
        users = {u["_id"]: u for u in rows}

    results = []
    for doc in docs:
        row = serialize_doc(doc)
        user = users.get(doc["user_id"], {})
        row["user_email"] = user.get("email")
        row["user_name"] = user.get("display_name")
        results.append(row)

    return {
        "requests": results,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


async def review_request(request_id: str, status: Optional[str], admin_id: str, admin_notes: Optional[str] = None) -> Dict[str, Any]:
    """
    Approves or rejects a pending request.

    Raises:
        BadRequestError: invalid status or request already processed
        ResourceNotFoundError: unknown request
    """
    if status not in REVIEW_STATUSES:
        raise BadRequestError("Status must be 'approved' or 'rejected'")

    requests = get_payment_requests_collection()
    request = await requests.find_one({"_id": request_id})
    if not request:
        raise ResourceNotFoundError("Payment request not found")
    if request.get("status") != "pending":
        raise BadRequestError(MSG_ALREADY_PROCESSED)
    if status == "approved":
        _check_plan(request.get("plan_id"))

    user_id = request["user_id"]
    now = utcnow()

    with LogContext(user_id=user_id, resource=request_id):
        await requests.update_one(
            {"_id": request_id},
            {"$set": {
                "status": status,
                "admin_notes": admin_notes,
                "reviewed_by": admin_id,
                "reviewed_at": now,
                "updated_at": now,
            }}
        )

        if status == "approved":
            await _activate_plan(request, now)
        else:
            await create_notification(
                user_id,
                "Payment Rejected",
                f"Your payment for the {request['plan_name']} plan was rejected."
                + (f" Note: {admin_notes}" if admin_notes else ""),
                notification_type="error",
                metadata={"request_id": request_id},
            )
            await emit_event(
                EVENT_TYPES["BILLING_PAYMENT_REJECTED"],
                user_id,
                {"request_id": request_id, "plan_id": request["plan_id"], "admin_notes": admin_notes},
            )

        logger.info(f"💳 Payment request {status}")

    return {"success": True, "status": status}


async def _activate_plan(request: Dict[str, Any], now) -> None:
    user_id = request["user_id"]
    plan = _check_plan(request["plan_id"])
    updates = apply_plan_change(plan, now)
    updates["is_trial_active"] = False
    updates["updated_at"] = now

    users = get_users_collection()
    await users.update_one({"_id": user_id}, {"$set": updates})
    await upsert_subscription(user_id, plan, updates)

    await create_notification(
        user_id,
        "Payment Approved!",
        f"Your {request['plan_name']} plan is now active.",
        notification_type="success",
        metadata={"request_id": request["_id"], "plan": plan},
    )

    user = await users.find_one({"_id": user_id}, {"email": 1})
    if user and user.get("email"):
        subject, html = email_templates.payment_approved_email(
            request["plan_name"], request["amount"], request.get("currency", PAYMENT_CURRENCY)
        )
        result = await email_service.send_email(user["email"], subject, html)
        if not result.get("success"):
            logger.warning(f"Payment approval email not sent: {result.get('error')}")

    await emit_event(
        EVENT_TYPES["SUBSCRIPTION_ACTIVATED"],
        user_id,
        {"plan": plan, "request_id": request["_id"], "amount": request["amount"], "currency": request.get("currency")},
    )


async def delete_request(request_id: str) -> Dict[str, Any]:
    result = await get_payment_requests_collection().delete_one({"_id": request_id})
    if result.deleted_count == 0:
        raise ResourceNotFoundError("Payment request not found")
    logger.info(f"🗑️ Payment request deleted: {request_id}")
    return {"success": True}
