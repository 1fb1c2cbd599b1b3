"""
app/services/otp_service.py

Purpose: One-time code lifecycle

- Issue codes with a per-user cooldown and hourly budget
- Verify codes (missing / expired / mismatch handling)
- Account-deletion codes stored as SHA-256 with an explicit expiry
"""

import math
from datetime import timedelta
from typing import Dict, Any, Optional

from app.core.config import settings
from app.core.exceptions import BadRequestError, RateLimitError
from app.core.logging import get_logger, LogContext
from app.core.security import generate_otp, hash_otp, otp_matches
from app.db.mongo import get_verification_otps_collection, get_account_deletion_otps_collection
from utils.constants import (
    MSG_OTP_COOLDOWN,
    MSG_OTP_HOURLY_LIMIT,
    MSG_OTP_REQUIRED,
    MSG_OTP_NOT_FOUND,
    MSG_OTP_EXPIRED,
    MSG_OTP_INVALID,
    MSG_DELETION_NOT_FOUND,
    MSG_DELETION_EXPIRED,
    MSG_DELETION_INVALID,
    MSG_RESET_NOT_FOUND,
    MSG_RESET_EXPIRED,
    MSG_RESET_CODE_INVALID,
)
from utils.doc_utils import new_id
from utils.time_utils import utcnow, is_otp_expired, seconds_since

logger = get_logger(__name__)

RESET_MESSAGES = {
    "not_found": MSG_RESET_NOT_FOUND,
    "expired": MSG_RESET_EXPIRED,
    "invalid": MSG_RESET_CODE_INVALID,
}
VERIFY_MESSAGES = {
    "not_found": MSG_OTP_NOT_FOUND,
    "expired": MSG_OTP_EXPIRED,
    "invalid": MSG_OTP_INVALID,
}


async def enforce_request_limits(user_id: str, otp_type: str):
    """
    Raises RateLimitError inside the cooldown or past the hourly budget.
    """
    otps = get_verification_otps_collection()

    latest = await otps.find_one(
        {"user_id": user_id, "type": otp_type},
        sort=[("created_at", -1)],
    )
    if latest:
        elapsed = seconds_since(latest["created_at"])
        if elapsed < settings.OTP_COOLDOWN_SECONDS:
            wait = max(1, math.ceil(settings.OTP_COOLDOWN_SECONDS - elapsed))
            raise RateLimitError(MSG_OTP_COOLDOWN.format(seconds=wait), details={"retry_after": wait})

    hourly = await otps.count_documents({
        "user_id": user_id,
        "type": otp_type,
        "created_at": {"$gte": utcnow() - timedelta(hours=1)},
    })
    if hourly >= settings.OTP_MAX_PER_HOUR:
        logger.warning(f"OTP hourly limit reached: {hourly} {otp_type} codes", extra={"user_id": user_id})
        raise RateLimitError(MSG_OTP_HOURLY_LIMIT, details={"retry_after": 3600})


async def issue_otp(user_id: str, otp_type: str, enforce_limits: bool = True) -> str:
    """
    Creates a fresh code for (user, type). Earlier live codes of the same
    type stop being accepted; their rows stay for the hourly count.

    Returns:
        The plain 6-digit code, for delivery
    """
    with LogContext(user_id=user_id):
        if enforce_limits:
            await enforce_request_limits(user_id, otp_type)

        otps = get_verification_otps_collection()
        await otps.update_many(
            {"user_id": user_id, "type": otp_type, "is_active": True},
            {"$set": {"is_active": False}}
        )

        code = generate_otp()
        await otps.insert_one({
            "_id": new_id(),
            "user_id": user_id,
            "type": otp_type,
            "otp_hash": hash_otp(code),
            "is_active": True,
            "created_at": utcnow(),
        })
        logger.info(f"🔑 Issued {otp_type} OTP")
        return code


async def verify_otp(user_id: str, otp_type: str, otp: Optional[str], messages: Dict[str, str] = VERIFY_MESSAGES):
    """
    Checks a submitted code and consumes it on success.

    Raises:
        BadRequestError: code missing, none outstanding, expired, or wrong
    """
    if not otp or not str(otp).strip():
        raise BadRequestError(MSG_OTP_REQUIRED)

    otps = get_verification_otps_collection()
    record = await otps.find_one(
        {"user_id": user_id, "type": otp_type, "is_active": True},
        sort=[("created_at", -1)],
    )
    if not record:
        raise BadRequestError(messages["not_found"])

    if is_otp_expired(record["created_at"], settings.OTP_EXPIRY_MINUTES):
        await otps.delete_one({"_id": record["_id"]})
        raise BadRequestError(messages["expired"])

    if not otp_matches(str(otp).strip(), record.get("otp_hash")):
        raise BadRequestError(messages["invalid"])

    await otps.delete_many({"user_id": user_id, "type": otp_type})
    logger.info(f"✅ {otp_type} OTP verified", extra={"user_id": user_id})


async def issue_deletion_otp(user_id: str) -> str:
    deletion_otps = get_account_deletion_otps_collection()
    await deletion_otps.delete_many({"user_id": user_id})

    code = generate_otp()
    now = utcnow()
    await deletion_otps.insert_one({
        "_id": new_id(),
        "user_id": user_id,
        "otp_hash": hash_otp(code),
        "verified": False,
        "created_at": now,
        "expires_at": now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
    })
    logger.info("🔑 Issued account deletion OTP", extra={"user_id": user_id})
    return code


async def verify_deletion_otp(user_id: str, otp: Optional[str]) -> Dict[str, Any]:
    if not otp or len(str(otp).strip()) != 6:
        raise BadRequestError("Please enter a valid 6-digit code")

    deletion_otps = get_account_deletion_otps_collection()
    record = await deletion_otps.find_one(
        {"user_id": user_id, "verified": False},
        sort=[("created_at", -1)],
    )
    if not record:
        raise BadRequestError(MSG_DELETION_NOT_FOUND)

    if record["expires_at"] < utcnow():
        await deletion_otps.delete_one({"_id": record["_id"]})
        raise BadRequestError(MSG_DELETION_EXPIRED)

    if not otp_matches(str(otp).strip(), record.get("otp_hash")):
        raise BadRequestError(MSG_DELETION_INVALID)

    await deletion_otps.update_one({"_id": record["_id"]}, {"$set": {"verified": True}})
    return record
