from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import BadRequestError, ForbiddenError, ResourceNotFoundError
from app.services import account_service

STARTER_USER = {
    "_id": "user-1",
    "subscription_plan": "starter",
    "subscription_ends_at": datetime.utcnow() + timedelta(days=10),
}


def _env(accounts, user=STARTER_USER, emit=None):
    return (
        patch.object(account_service, "get_connected_accounts_collection", return_value=accounts),
        patch.object(account_service.user_service, "get_user_by_id", AsyncMock(return_value=user)),
        patch.object(account_service, "emit_event", emit or AsyncMock()),
    )


async def test_list_reports_facebook_capacity(make_collection):
    accounts = make_collection(find_docs=[
        {"_id": "a1", "platform": "facebook", "external_id": "p1", "is_connected": True},
        {"_id": "a2", "platform": "facebook", "external_id": "p2", "is_connected": False},
    ])
    p_accounts, p_user, p_emit = _env(accounts)

    with p_accounts, p_user, p_emit:
        result = await account_service.list_accounts("user-1", platform="facebook")

    assert accounts.find.call_args.args[0] == {"user_id": "user-1", "platform": "facebook"}
    assert [a["id"] for a in result["accounts"]] == ["a1", "a2"]
    assert result["plan_limits"] == {
        "plan": "starter",
        "is_active": True,
        "max_facebook_pages": 1,
        "max_whatsapp_accounts": 0,
        "connected_facebook_pages": 1,
        "can_connect_more_facebook": False,
    }


async def test_connect_new_page(make_collection):
    accounts = make_collection(count=0)
    stored = {"_id": "acc-1", "user_id": "user-1", "platform": "facebook", "external_id": "page-9", "name": "Tea Shop"}
    accounts.find_one_and_update = AsyncMock(return_value=stored)
    emit = AsyncMock()
    p_accounts, p_user, p_emit = _env(accounts, emit=emit)

    with p_accounts, p_user, p_emit:
        account = await account_service.connect_account(
            "user-1", {"platform": "Facebook", "external_id": "page-9", "name": "Tea Shop"}
        )

    assert account["id"] == "acc-1"
    call = accounts.find_one_and_update.call_args
    assert call.args[0] == {"user_id": "user-1", "platform": "facebook", "external_id": "page-9"}
    assert call.args[1]["$set"]["is_connected"] is True
    assert call.kwargs["upsert"] is True
    assert emit.call_args.args[0] == "facebook.page_connected"
    assert emit.call_args.kwargs["account_id"] == "acc-1"


async def test_connect_beyond_plan_limit_is_forbidden(make_collection):
    accounts = make_collection(count=1)
    accounts.find_one_and_update = AsyncMock()
    p_accounts, p_user, p_emit = _env(accounts)

    with p_accounts, p_user, p_emit, pytest.raises(ForbiddenError) as exc:
        await account_service.connect_account("user-1", {"platform": "facebook", "external_id": "page-2"})

    assert exc.value.details["max_facebook_pages"] == 1
    accounts.find_one_and_update.assert_not_awaited()


async def test_connect_whatsapp_not_in_plan(make_collection):
    accounts = make_collection(count=0)
    accounts.find_one_and_update = AsyncMock()
    p_accounts, p_user, p_emit = _env(accounts)

    with p_accounts, p_user, p_emit, pytest.raises(ForbiddenError):
        await account_service.connect_account("user-1", {"platform": "whatsapp", "external_id": "8801700000000"})


async def test_reconnect_connected_page_skips_limit(make_collection):
    accounts = make_collection(find_one={"_id": "acc-1", "is_connected": True}, count=1)
    accounts.find_one_and_update = AsyncMock(return_value={"_id": "acc-1", "name": "Renamed"})
    emit = AsyncMock()
    p_accounts, p_user, p_emit = _env(accounts, emit=emit)

    with p_accounts, p_user, p_emit:
        await account_service.connect_account("user-1", {"platform": "facebook", "external_id": "p1", "name": "Renamed"})

    accounts.count_documents.assert_not_awaited()
    assert emit.call_args.args[2]["reconnected"] is True


async def test_connect_requires_active_plan(make_collection):
    accounts = make_collection()
    expired = {"_id": "user-1", "subscription_plan": "starter", "subscription_ends_at": datetime.utcnow() - timedelta(days=1)}
    p_accounts, p_user, p_emit = _env(accounts, user=expired)

    with p_accounts, p_user, p_emit, pytest.raises(ForbiddenError) as exc:
        await account_service.connect_account("user-1", {"platform": "facebook", "external_id": "p1"})
    assert exc.value.details["subscription_required"] is True


@pytest.mark.parametrize("data", [
    {"platform": "instagram", "external_id": "x"},
    {"platform": "facebook", "external_id": "  "},
])
async def test_connect_validates_input(data):
    with pytest.raises(BadRequestError):
        await account_service.connect_account("user-1", data)


async def test_disconnect_keeps_account(make_collection):
    accounts = make_collection(find_one={"_id": "acc-1", "name": "Tea Shop", "platform": "facebook", "external_id": "p1"})
    emit = AsyncMock()
    p_accounts, p_user, p_emit = _env(accounts, emit=emit)

    with p_accounts, p_user, p_emit:
        result = await account_service.delete_account("user-1", "acc-1")

    assert result == {"success": True, "message": "Tea Shop disconnected"}
    assert accounts.update_one.call_args.args[1]["$set"]["is_connected"] is False
    accounts.delete_one.assert_not_awaited()
    assert emit.call_args.args[0] == "facebook.page_disconnected"


async def test_remove_cascades_to_automation_data(make_collection):
    accounts = make_collection(find_one={"_id": "acc-1", "name": None, "platform": "facebook", "external_id": "p1"})
    automations = make_collection(find_docs=[{"_id": "auto-1"}, {"_id": "auto-2"}])
    logs = make_collection()
    events = make_collection()

    with patch.object(account_service, "get_connected_accounts_collection", return_value=accounts), \
         patch.object(account_service, "get_automations_collection", return_value=automations), \
         patch.object(account_service, "get_execution_logs_collection", return_value=logs), \
         patch.object(account_service, "get_outgoing_events_collection", return_value=events):
        result = await account_service.delete_account("user-1", "acc-1", action="remove")

    assert result == {"success": True, "message": "Account removed"}
    assert logs.delete_many.call_args_list[-1].args[0] == {"automation_id": {"$in": ["auto-1", "auto-2"]}}
    assert events.delete_many.call_args.args[0] == {"user_id": "user-1", "account_id": "acc-1"}
    assert automations.delete_many.call_args.args[0] == {"user_id": "user-1", "account_id": "acc-1"}
    accounts.delete_one.assert_awaited_once_with({"_id": "acc-1", "user_id": "user-1"})


async def test_delete_foreign_account_is_404(make_collection):
    accounts = make_collection(find_one=None)
    with patch.object(account_service, "get_connected_accounts_collection", return_value=accounts), \
         pytest.raises(ResourceNotFoundError) as exc:
        await account_service.delete_account("intruder", "acc-1", action="remove")
    assert exc.value.message == "Account not found"
    assert accounts.find_one.call_args.args[0] == {"_id": "acc-1", "user_id": "intruder"}
