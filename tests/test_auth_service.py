from contextlib import ExitStack
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    RateLimitError,
)
from app.core.security import create_access_token, hash_password, decode_access_token
from app.services import auth_service
from utils.constants import MSG_INVALID_CREDENTIALS, MSG_RESET_SENT


@pytest.fixture
def signup_env(make_collection):
    """Patches everything signup touches; yields the mocks by name."""
    mocks = {
        "users": make_collection(find_one=None),
        "history": make_collection(find_one=None),
        "send_email": AsyncMock(return_value={"success": True}),
        "emit": AsyncMock(),
        "issue_otp": AsyncMock(return_value="123456"),
    }
    with ExitStack() as stack:
        stack.enter_context(patch.object(auth_service, "get_users_collection", return_value=mocks["users"]))
        stack.enter_context(patch.object(auth_service, "get_email_usage_history_collection", return_value=mocks["history"]))
        stack.enter_context(patch.object(auth_service.rate_limit_service, "check_signup_allowed", AsyncMock()))
        stack.enter_context(patch.object(auth_service.rate_limit_service, "record_signup", AsyncMock()))
        stack.enter_context(patch.object(auth_service.otp_service, "issue_otp", mocks["issue_otp"]))
        stack.enter_context(patch.object(auth_service.email_service, "send_email", mocks["send_email"]))
        stack.enter_context(patch.object(auth_service, "emit_event", mocks["emit"]))
        yield mocks


async def test_first_signup_starts_trial(signup_env):
    result = await auth_service.signup("  Jane@Example.com ", "s3cret-pass", display_name="Jane")

    user = result["user"]
    assert user["email"] == "jane@example.com"
    assert user["subscription_plan"] == "trial"
    assert user["is_trial_active"] is True
    assert user["remaining_trial_days"] == 1
    assert "password_hash" not in user
    assert result["verification_email_sent"] is True
    assert decode_access_token(result["token"])["sub"] == user["id"]

    stored = signup_env["users"].insert_one.call_args.args[0]
    assert stored["password_hash"] != "s3cret-pass"
    signup_env["issue_otp"].assert_awaited_once_with(user["id"], "email", enforce_limits=False)
    assert [c.args[0] for c in signup_env["emit"].call_args_list] == ["user.created", "trial.started"]


async def test_returning_trial_user_gets_free_plan(signup_env):
    signup_env["history"].find_one.return_value = {"has_used_trial": True, "last_plan": "trial"}

    result = await auth_service.signup("jane@example.com", "s3cret-pass")

    assert result["user"]["subscription_plan"] == "free"
    assert result["user"]["is_trial_active"] is False
    assert [c.args[0] for c in signup_env["emit"].call_args_list] == ["user.created"]


async def test_signup_survives_email_failure(signup_env):
    signup_env["send_email"].return_value = {"success": False, "error": "Invalid API key"}
    result = await auth_service.signup("jane@example.com", "s3cret-pass")
    assert result["verification_email_sent"] is False


async def test_signup_duplicate_email(signup_env):
    signup_env["users"].find_one.return_value = {"_id": "existing"}
    with pytest.raises(ConflictError):
        await auth_service.signup("jane@example.com", "s3cret-pass")


@pytest.mark.parametrize("email,password,phone", [
    ("", "s3cret-pass", None),
    ("not-an-email", "s3cret-pass", None),
    ("jane@example.com", "short", None),
    ("jane@example.com", "s3cret-pass", "0123"),
])
async def test_signup_validation(signup_env, email, password, phone):
    with pytest.raises(BadRequestError):
        await auth_service.signup(email, password, phone=phone)


@pytest.fixture
def login_env():
    with patch.object(auth_service, "_timing_jitter", AsyncMock()), \
         patch.object(auth_service.rate_limit_service, "check_login_allowed", AsyncMock()), \
         patch.object(auth_service.rate_limit_service, "record_failed_login", AsyncMock()) as failed, \
         patch.object(auth_service.rate_limit_service, "clear_login_attempts", AsyncMock()) as cleared:
        yield {"failed": failed, "cleared": cleared}


def _stored_user(**extra):
    user = {
        "_id": "user-1",
        "email": "jane@example.com",
        "password_hash": hash_password("s3cret-pass"),
        "subscription_plan": "starter",
        "status": "active",
    }
    user.update(extra)
    return user


async def test_login_unknown_email_looks_like_wrong_password(login_env):
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=None)):
        with pytest.raises(AuthenticationError) as exc:
            await auth_service.login("ghost@example.com", "whatever", "10.0.0.1")

    assert exc.value.message == MSG_INVALID_CREDENTIALS
    login_env["failed"].assert_awaited_once_with("10.0.0.1", "ghost@example.com")


async def test_login_wrong_password(login_env):
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user())):
        with pytest.raises(AuthenticationError) as exc:
            await auth_service.login("jane@example.com", "nope", "10.0.0.1")

    assert exc.value.message == MSG_INVALID_CREDENTIALS
    login_env["failed"].assert_awaited_once()


async def test_login_suspended(login_env):
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user(status="suspended"))):
        with pytest.raises(ForbiddenError):
            await auth_service.login("jane@example.com", "s3cret-pass")


async def test_login_success_clears_attempts(login_env):
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user())):
        result = await auth_service.login("JANE@example.com", "s3cret-pass", "10.0.0.1")

    assert result["user"]["id"] == "user-1"
    assert decode_access_token(result["token"])["email"] == "jane@example.com"
    login_env["cleared"].assert_awaited_once_with("10.0.0.1", "jane@example.com")


async def test_password_reset_answer_does_not_leak_accounts():
    with patch.object(auth_service, "_timing_jitter", AsyncMock()), \
         patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=None)):
        unknown = await auth_service.request_password_reset("ghost@example.com")

    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service.otp_service, "issue_otp", AsyncMock(side_effect=RateLimitError("slow down"))):
        throttled = await auth_service.request_password_reset("jane@example.com")

    assert unknown == throttled == {"success": True, "message": MSG_RESET_SENT}


async def test_refresh_switches_off_expired_trial(make_collection):
    users = make_collection()
    user = _stored_user(
        subscription_plan="trial",
        is_trial_active=True,
        trial_end_date=datetime.utcnow() - timedelta(hours=2),
    )
    token = create_access_token("user-1", "jane@example.com")

    with patch.object(auth_service.user_service, "get_user_by_id", AsyncMock(return_value=user)), \
         patch.object(auth_service, "get_users_collection", return_value=users):
        result = await auth_service.refresh_user(token)

    stored = users.update_one.call_args.args[1]["$set"]
    assert stored["is_trial_active"] is False
    assert stored["subscription_plan"] == "none"
    assert result["user"]["subscription_plan"] == "none"
    assert result["user"]["is_trial_active"] is False
    assert decode_access_token(result["token"])["sub"] == "user-1"


async def test_refresh_leaves_paid_plan_alone(make_collection):
    users = make_collection()
    token = create_access_token("user-1", "jane@example.com")

    with patch.object(auth_service.user_service, "get_user_by_id", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service, "get_users_collection", return_value=users):
        result = await auth_service.refresh_user(token)

    users.update_one.assert_not_awaited()
    assert result["user"]["subscription_plan"] == "starter"


async def test_reset_password_sets_new_hash_and_clears_lockout():
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service.otp_service, "verify_otp", AsyncMock()) as verify, \
         patch.object(auth_service.user_service, "set_password", AsyncMock()) as set_password, \
         patch.object(auth_service.rate_limit_service, "clear_login_attempts", AsyncMock()) as cleared:
        result = await auth_service.reset_password(" Jane@Example.com ", "123456", "n3w-passw0rd")

    assert result["success"] is True
    assert verify.call_args.args[:3] == ("user-1", "password_reset", "123456")
    set_password.assert_awaited_once_with("user-1", "n3w-passw0rd")
    cleared.assert_awaited_once_with(None, "jane@example.com")


async def test_reset_password_with_bad_code_keeps_old_password():
    with patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service.otp_service, "verify_otp", AsyncMock(side_effect=BadRequestError("Invalid code"))), \
         patch.object(auth_service.user_service, "set_password", AsyncMock()) as set_password:
        with pytest.raises(BadRequestError):
            await auth_service.reset_password("jane@example.com", "000000", "n3w-passw0rd")

    set_password.assert_not_awaited()


async def test_confirm_account_deletion_emits_then_deletes():
    calls = []
    emit = AsyncMock(side_effect=lambda *a, **k: calls.append("emit"))
    delete = AsyncMock(side_effect=lambda *a, **k: calls.append("delete"))

    with patch.object(auth_service.user_service, "require_user", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service.otp_service, "verify_deletion_otp", AsyncMock()), \
         patch.object(auth_service, "emit_event", emit), \
         patch.object(auth_service.user_service, "delete_user_data", delete):
        result = await auth_service.confirm_account_deletion("user-1", "123456")

    assert result["success"] is True
    assert calls == ["emit", "delete"]
    assert emit.call_args.args == ("user.deleted", None, {"user_id": "user-1", "email": "jane@example.com"})
    delete.assert_awaited_once_with("user-1")


async def test_confirm_account_deletion_wrong_code():
    with patch.object(auth_service.user_service, "require_user", AsyncMock(return_value=_stored_user())), \
         patch.object(auth_service.otp_service, "verify_deletion_otp", AsyncMock(side_effect=BadRequestError("Invalid code"))), \
         patch.object(auth_service.user_service, "delete_user_data", AsyncMock()) as delete:
        with pytest.raises(BadRequestError):
            await auth_service.confirm_account_deletion("user-1", "999999")

    delete.assert_not_awaited()
