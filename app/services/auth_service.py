"""
app/services/auth_service.py

Purpose: Account authentication flows

- Signup with trial-abuse protection
- Login with lockout and timing-safe failure path
- Token refresh with trial expiry handling
- Email / phone verification, password reset, account deletion
"""

import asyncio
import secrets
from datetime import timedelta
from typing import Dict, Any, Optional

from pymongo.errors import DuplicateKeyError

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    RateLimitError,
)
from app.core.logging import get_logger, LogContext
from app.core.security import (
    create_access_token,
    decode_for_refresh,
    hash_password,
    verify_password,
    verify_dummy_password,
    mask_email,
)
from app.db.mongo import get_users_collection, get_email_usage_history_collection
from app.services import otp_service, rate_limit_service, user_service
from app.services.email_service import email_service
from app.services.event_service import emit_event, EVENT_TYPES
from app.services.plan_service import is_trial_expired
from app.services.site_service import get_company_name
from app.services.twilio_service import twilio_service
from utils import email_templates
from utils.constants import (
    MSG_INVALID_CREDENTIALS,
    MSG_EMAIL_PASSWORD_REQUIRED,
    MSG_INVALID_EMAIL,
    MSG_PASSWORD_TOO_SHORT,
    MSG_INVALID_PHONE,
    MSG_EMAIL_TAKEN,
    MSG_PHONE_TAKEN,
    MSG_ACCOUNT_SUSPENDED,
    MSG_NO_PHONE,
    MSG_RESET_SENT,
    MSG_RESET_INVALID,
    OTP_TYPE_EMAIL,
    OTP_TYPE_PHONE,
    OTP_TYPE_PASSWORD_RESET,
    PLAN_TRIAL,
    PLAN_FREE,
    PLAN_NONE,
    USER_STATUS_SUSPENDED,
)
from utils.doc_utils import new_id
from utils.time_utils import utcnow
from utils.validation_utils import (
    normalize_email,
    normalize_phone,
    validate_email,
    validate_phone_number,
    validate_password,
    sanitize_input,
)

logger = get_logger(__name__)


async def _timing_jitter():
    await asyncio.sleep(secrets.randbelow(51) / 1000)


# ============================================================
# SIGNUP / LOGIN
# ============================================================

async def check_trial_eligibility(email: str) -> Dict[str, Any]:
    """
    Looks the email up in usage history.

    Returns:
        {"can_use_trial": bool, "is_returning_user": bool, "last_plan": Optional[str]}
    """
    history = await get_email_usage_history_collection().find_one(
        {"email": email},
        sort=[("created_at", -1)],
    )
    if not history:
        return {"can_use_trial": True, "is_returning_user": False, "last_plan": None}
    return {
        "can_use_trial": not history.get("has_used_trial", True),
        "is_returning_user": True,
        "last_plan": history.get("last_plan"),
    }


async def signup(
    email: Optional[str],
    password: Optional[str],
    phone: Optional[str] = None,
    display_name: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Creates an account.

    Returns:
        {"token", "user", "verification_email_sent"}
    """
    email = normalize_email(email)
    if not email or not password:
        raise BadRequestError(MSG_EMAIL_PASSWORD_REQUIRED)
    if not validate_email(email):
        raise BadRequestError(MSG_INVALID_EMAIL)
    if not validate_password(password):
        raise BadRequestError(MSG_PASSWORD_TOO_SHORT)

    phone = normalize_phone(phone) or None
    if phone and not validate_phone_number(phone):
        raise BadRequestError(MSG_INVALID_PHONE)

    await rate_limit_service.check_signup_allowed(ip_address)

    users = get_users_collection()
    if await users.find_one({"email": email}, {"_id": 1}):
        raise ConflictError(MSG_EMAIL_TAKEN)
    if phone and await user_service.phone_in_use(phone):
        raise ConflictError(MSG_PHONE_TAKEN)

    eligibility = await check_trial_eligibility(email)
    now = utcnow()
    user_id = new_id()

    user: Dict[str, Any] = {
        "_id": user_id,
        "email": email,
        "password_hash": hash_password(password),
        "phone": phone,
        "display_name": sanitize_input(display_name or "", max_length=100) or None,
        "avatar_url": None,
        "subscription_type": "online",
        "email_verified": False,
        "phone_verified": False,
        "status": "active",
        "can_sync_business": False,
        "subscription_started_at": None,
        "subscription_ends_at": None,
        "created_at": now,
        "updated_at": now,
    }

    if eligibility["can_use_trial"]:
        user.update({
            "subscription_plan": PLAN_TRIAL,
            "is_trial_active": True,
            "trial_started_at": now,
            "trial_end_date": now + timedelta(hours=settings.TRIAL_HOURS),
            "has_used_trial": True,
        })
    else:
        last_plan = eligibility["last_plan"] or PLAN_NONE
        user.update({
            "subscription_plan": PLAN_FREE if last_plan == PLAN_TRIAL else last_plan,
            "is_trial_active": False,
            "trial_started_at": None,
            "trial_end_date": None,
            "has_used_trial": True,
        })

    with LogContext(user_id=user_id):
        try:
            await users.insert_one(user)
        except DuplicateKeyError:
            raise ConflictError(MSG_EMAIL_TAKEN)

        await get_email_usage_history_collection().insert_one({
            "_id": new_id(),
            "email": email,
            "user_id": user_id,
            "has_used_trial": True,
            "last_plan": user["subscription_plan"],
            "created_at": now,
        })
        await rate_limit_service.record_signup(ip_address, email)

        logger.info(
            f"👤 New user signed up (trial={eligibility['can_use_trial']}, "
            f"returning={eligibility['is_returning_user']})"
        )

        verification_email_sent = False
        try:
            code = await otp_service.issue_otp(user_id, OTP_TYPE_EMAIL, enforce_limits=False)
            subject, html = email_templates.otp_email(code, settings.OTP_EXPIRY_MINUTES)
            result = await email_service.send_email(email, subject, html)
            verification_email_sent = bool(result.get("success"))
        except Exception as e:
            logger.error(f"Failed to send signup verification email: {e}", exc_info=True)

        await emit_event(EVENT_TYPES["USER_CREATED"], user_id, {"email": email, "is_returning_user": eligibility["is_returning_user"]})
        if eligibility["can_use_trial"]:
            await emit_event(EVENT_TYPES["TRIAL_STARTED"], user_id, {"trial_end_date": user["trial_end_date"].isoformat() + "Z"})

    return {
        "token": create_access_token(user_id, email),
        "user": user_service.to_session_user(user),
        "verification_email_sent": verification_email_sent,
    }


async def login(email: Optional[str], password: Optional[str], ip_address: Optional[str] = None) -> Dict[str, Any]:
    """
    Returns:
        {"token", "user"}
    """
    email = normalize_email(email)
    if not email or not password:
        raise BadRequestError(MSG_EMAIL_PASSWORD_REQUIRED)

    await rate_limit_service.check_login_allowed(ip_address, email)

    user = await user_service.get_user_by_email(email)
    if not user:
        verify_dummy_password(password)
        await _timing_jitter()
        await rate_limit_service.record_failed_login(ip_address, email)
        raise AuthenticationError(MSG_INVALID_CREDENTIALS)

    if not verify_password(password, user.get("password_hash", "")):
        await _timing_jitter()
        await rate_limit_service.record_failed_login(ip_address, email)
        logger.warning("Failed login", extra={"user_id": user["_id"]})
        raise AuthenticationError(MSG_INVALID_CREDENTIALS)

    if user.get("status") == USER_STATUS_SUSPENDED:
        raise ForbiddenError(MSG_ACCOUNT_SUSPENDED)

    await rate_limit_service.clear_login_attempts(ip_address, email)
    logger.info("✅ Login successful", extra={"user_id": user["_id"]})

    return {
        "token": create_access_token(user["_id"], user["email"]),
        "user": user_service.to_session_user(user),
    }


async def refresh_user(token: str) -> Dict[str, Any]:
    """
    Re-issues a token (grace window applies) and returns the current user.
    An expired trial is switched off on the way.
    """
    payload = decode_for_refresh(token)
    user = await user_service.get_user_by_id(payload["sub"])
    if not user:
        raise AuthenticationError("User not found")
    if user.get("status") == USER_STATUS_SUSPENDED:
        raise ForbiddenError(MSG_ACCOUNT_SUSPENDED)

    if is_trial_expired(user):
        updates: Dict[str, Any] = {"is_trial_active": False, "updated_at": utcnow()}
        if user.get("subscription_plan") == PLAN_TRIAL:
            updates["subscription_plan"] = PLAN_NONE
        await get_users_collection().update_one({"_id": user["_id"]}, {"$set": updates})
        user.update(updates)
        logger.info("⌛ Trial expired on refresh", extra={"user_id": user["_id"]})

    return {
        "token": create_access_token(user["_id"], user["email"]),
        "user": user_service.to_session_user(user),
    }


# ============================================================
# EMAIL / PHONE VERIFICATION
# ============================================================

async def request_email_otp(user_id: str) -> Dict[str, Any]:
    user = await user_service.require_user(user_id)
    code = await otp_service.issue_otp(user_id, OTP_TYPE_EMAIL)

    subject, html = email_templates.otp_email(code, settings.OTP_EXPIRY_MINUTES)
    await email_service.send_or_raise(user["email"], subject, html)
    return {"success": True, "message": "Verification code sent to your email"}


async def verify_email_otp(user_id: str, otp: Optional[str]) -> Dict[str, Any]:
    user = await user_service.require_user(user_id)
    await otp_service.verify_otp(user_id, OTP_TYPE_EMAIL, otp)

    await get_users_collection().update_one(
        {"_id": user_id},
        {"$set": {"email_verified": True, "updated_at": utcnow()}}
    )

    subject, html = email_templates.welcome_email(user.get("display_name") or "")
    result = await email_service.send_email(user["email"], subject, html)
    if not result.get("success"):
        logger.warning(f"Welcome email not sent: {result.get('error')}", extra={"user_id": user_id})

    return {"success": True, "message": "Email verified successfully"}


async def request_phone_otp(user_id: str) -> Dict[str, Any]:
    user = await user_service.require_user(user_id)
    if not user.get("phone"):
        raise BadRequestError(MSG_NO_PHONE)

    code = await otp_service.issue_otp(user_id, OTP_TYPE_PHONE)
    result = await twilio_service.send_sms(
        user["phone"],
        f"Your AutoFloy verification code is {code}. It expires in {settings.OTP_EXPIRY_MINUTES} minutes."
    )
    if not result.get("success"):
        raise ExternalServiceError("Failed to send SMS. Please try again.", code="SMS_SEND_FAILED", status_code=500)
    return {"success": True, "message": "Verification code sent to your phone"}


async def verify_phone_otp(user_id: str, otp: Optional[str]) -> Dict[str, Any]:
    await user_service.require_user(user_id)
    await otp_service.verify_otp(user_id, OTP_TYPE_PHONE, otp)
    await get_users_collection().update_one(
        {"_id": user_id},
        {"$set": {"phone_verified": True, "updated_at": utcnow()}}
    )
    return {"success": True, "message": "Phone verified successfully"}


# ============================================================
# PASSWORD RESET
# ============================================================

async def request_password_reset(email: Optional[str]) -> Dict[str, Any]:
    """
    Always answers the same way, whether or not the account exists.
    """
    email = normalize_email(email)
    if not email or not validate_email(email):
        raise BadRequestError(MSG_INVALID_EMAIL)

    user = await user_service.get_user_by_email(email)
    if user:
        try:
            code = await otp_service.issue_otp(user["_id"], OTP_TYPE_PASSWORD_RESET)
        except RateLimitError:
            logger.warning("Password reset throttled", extra={"user_id": user["_id"]})
        else:
            subject, html = email_templates.password_reset_email(
                code, await get_company_name(), settings.OTP_EXPIRY_MINUTES
            )
            result = await email_service.send_email(email, subject, html)
            if not result.get("success"):
                logger.error(f"Password reset email failed: {result.get('error')}", extra={"user_id": user["_id"]})
    else:
        await _timing_jitter()

    return {"success": True, "message": MSG_RESET_SENT}


async def reset_password(email: Optional[str], otp: Optional[str], new_password: Optional[str]) -> Dict[str, Any]:
    email = normalize_email(email)
    if not email or not otp or not new_password:
        raise BadRequestError("Email, OTP and new password are required")
    if not validate_password(new_password):
        raise BadRequestError(MSG_PASSWORD_TOO_SHORT)

    user = await user_service.get_user_by_email(email)
    if not user:
        raise BadRequestError(MSG_RESET_INVALID)

    await otp_service.verify_otp(user["_id"], OTP_TYPE_PASSWORD_RESET, otp, messages=otp_service.RESET_MESSAGES)
    await user_service.set_password(user["_id"], new_password)
    await rate_limit_service.clear_login_attempts(None, email)

    logger.info("🔐 Password reset completed", extra={"user_id": user["_id"]})
    return {"success": True, "message": "Password reset successfully"}


# ============================================================
# ACCOUNT DELETION
# ============================================================

async def request_account_deletion(user_id: str) -> Dict[str, Any]:
    user = await user_service.require_user(user_id)
    code = await otp_service.issue_deletion_otp(user_id)

    subject, html = email_templates.account_deletion_email(code, settings.OTP_EXPIRY_MINUTES)
    await email_service.send_or_raise(user["email"], subject, html)

    return {"success": True, "masked_email": mask_email(user["email"])}


async def confirm_account_deletion(user_id: str, otp: Optional[str]) -> Dict[str, Any]:
    user = await user_service.require_user(user_id)
    await otp_service.verify_deletion_otp(user_id, otp)

    await emit_event(EVENT_TYPES["USER_DELETED"], None, {"user_id": user_id, "email": user.get("email")})
    await user_service.delete_user_data(user_id)
    return {"success": True, "message": "Account deleted successfully"}
