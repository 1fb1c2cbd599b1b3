from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import BadRequestError, ResourceNotFoundError
from app.services import payment_service
from utils.constants import MSG_ALREADY_PROCESSED


def _pending(plan_id="starter", **overrides):
    request = {
        "_id": "req-1",
        "user_id": "user-1",
        "plan_id": plan_id,
        "plan_name": "Starter",
        "amount": 999.0,
        "currency": "BDT",
        "status": "pending",
    }
    request.update(overrides)
    return request


@pytest.mark.parametrize("plan_id", ["platinum", "trial", "free", "none"])
async def test_create_request_rejects_unknown_plan(make_collection, plan_id):
    requests = make_collection()
    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         pytest.raises(BadRequestError) as exc:
        await payment_service.create_payment_request(
            "user-1", {"plan_id": plan_id, "amount": 500, "payment_method": "bkash"}
        )
    assert exc.value.message == f"Invalid plan: {plan_id}"
    requests.insert_one.assert_not_awaited()


async def test_create_request_normalises_plan_id(make_collection):
    requests = make_collection()
    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         patch.object(payment_service, "emit_event", AsyncMock()):
        result = await payment_service.create_payment_request(
            "user-1", {"plan_id": " Professional ", "amount": "1500", "payment_method": "nagad"}
        )

    assert result["success"] is True
    stored = requests.insert_one.call_args.args[0]
    assert stored["plan_id"] == "professional"
    assert stored["plan_name"] == "Professional"
    assert stored["amount"] == 1500.0


async def test_approve_activates_requested_plan(make_collection):
    requests = make_collection(find_one=_pending())
    users = make_collection(find_one={"_id": "user-1", "email": "u@example.com"})
    notify = AsyncMock()
    emit = AsyncMock()
    upsert = AsyncMock()
    send_email = AsyncMock(return_value={"success": True})

    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         patch.object(payment_service, "get_users_collection", return_value=users), \
         patch.object(payment_service, "create_notification", notify), \
         patch.object(payment_service, "emit_event", emit), \
         patch.object(payment_service, "upsert_subscription", upsert), \
         patch.object(payment_service.email_service, "send_email", send_email):
        result = await payment_service.review_request("req-1", "approved", admin_id="admin-1", admin_notes="ok")

    assert result == {"success": True, "status": "approved"}
    review = requests.update_one.call_args.args[1]["$set"]
    assert review["status"] == "approved"
    assert review["reviewed_by"] == "admin-1"

    user_set = users.update_one.call_args.args[1]["$set"]
    assert user_set["subscription_plan"] == "starter"
    assert user_set["is_trial_active"] is False
    assert user_set["subscription_ends_at"] > datetime.utcnow()
    assert upsert.call_args.args[:2] == ("user-1", "starter")
    assert notify.call_args.args[1] == "Payment Approved!"
    assert send_email.call_args.args[0] == "u@example.com"
    assert emit.call_args.args[0] == "subscription.activated"
    assert emit.call_args.args[2]["plan"] == "starter"


async def test_approve_refuses_request_with_unknown_plan(make_collection):
    requests = make_collection(find_one=_pending(plan_id="gold"))
    users = make_collection()

    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         patch.object(payment_service, "get_users_collection", return_value=users), \
         pytest.raises(BadRequestError):
        await payment_service.review_request("req-1", "approved", admin_id="admin-1")

    requests.update_one.assert_not_awaited()
    users.update_one.assert_not_awaited()


async def test_reject_notifies_user(make_collection):
    requests = make_collection(find_one=_pending())
    notify = AsyncMock()
    emit = AsyncMock()

    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         patch.object(payment_service, "create_notification", notify), \
         patch.object(payment_service, "emit_event", emit), \
         patch.object(payment_service, "_activate_plan", AsyncMock()) as activate:
        result = await payment_service.review_request("req-1", "rejected", admin_id="admin-1", admin_notes="blurry")

    assert result["status"] == "rejected"
    activate.assert_not_awaited()
    assert notify.call_args.args[1] == "Payment Rejected"
    assert "Note: blurry" in notify.call_args.args[2]
    assert emit.call_args.args[:3] == (
        "billing.payment_rejected",
        "user-1",
        {"request_id": "req-1", "plan_id": "starter", "admin_notes": "blurry"},
    )


async def test_processed_request_cannot_be_reviewed_again(make_collection):
    requests = make_collection(find_one=_pending(status="approved"))
    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         pytest.raises(BadRequestError) as exc:
        await payment_service.review_request("req-1", "rejected", admin_id="admin-1")
    assert exc.value.message == MSG_ALREADY_PROCESSED
    requests.update_one.assert_not_awaited()


async def test_review_unknown_request(make_collection):
    with patch.object(payment_service, "get_payment_requests_collection", return_value=make_collection()), \
         pytest.raises(ResourceNotFoundError):
        await payment_service.review_request("missing", "approved", admin_id="admin-1")


async def test_list_all_requests_adds_requester(make_collection):
    docs = [
        _pending(created_at=datetime(2024, 5, 2)),
        _pending(_id="req-2", user_id="user-2", status="rejected", created_at=datetime(2024, 5, 1)),
    ]
    requests = make_collection(find_docs=docs, count=2)
    users = make_collection(find_docs=[{"_id": "user-1", "email": "a@example.com", "display_name": "Ann"}])

    with patch.object(payment_service, "get_payment_requests_collection", return_value=requests), \
         patch.object(payment_service, "get_users_collection", return_value=users):
        result = await payment_service.list_all_requests(page=1, limit=500, search="TX.1", status="all")

    query = requests.count_documents.call_args.args[0]
    assert "status" not in query
    assert query["transaction_id"]["$regex"] == r"TX\.1"
    assert result["limit"] == 100
    assert result["total_pages"] == 1
    assert result["requests"][0]["user_email"] == "a@example.com"
    assert result["requests"][0]["user_name"] == "Ann"
    assert result["requests"][1]["user_email"] is None
