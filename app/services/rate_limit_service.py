"""
app/services/rate_limit_service.py

Purpose: Brute-force and abuse protection

- Failed-login counters per IP and per email with temporary lockout
- Signup throttling per IP (hourly and daily budgets)
"""

from datetime import timedelta
from typing import Optional

from app.core.config import settings
from app.core.exceptions import RateLimitError
from app.core.logging import get_logger
from app.db.mongo import get_login_attempts_collection, get_signup_rate_limits_collection
from utils.constants import MSG_IP_LOCKED, MSG_EMAIL_LOCKED, MSG_SIGNUP_LIMIT
from utils.doc_utils import new_id
from utils.time_utils import utcnow

logger = get_logger(__name__)

IDENTIFIER_IP = "ip"
IDENTIFIER_EMAIL = "email"


async def _locked_until(identifier: str, identifier_type: str):
    record = await get_login_attempts_collection().find_one(
        {"identifier": identifier, "identifier_type": identifier_type}
    )
    if record and record.get("locked_until") and record["locked_until"] > utcnow():
        return record["locked_until"]
    return None


async def check_login_allowed(ip_address: Optional[str], email: str):
    """
    Raises RateLimitError while the IP or the email is locked out.
    The IP check runs first.
    """
    now = utcnow()
    if ip_address:
        locked = await _locked_until(ip_address, IDENTIFIER_IP)
        if locked:
            logger.warning(f"🔒 Login blocked for IP {ip_address}")
            raise RateLimitError(MSG_IP_LOCKED, details={"retry_after": int((locked - now).total_seconds()) + 1})

    locked = await _locked_until(email, IDENTIFIER_EMAIL)
    if locked:
        logger.warning(f"🔒 Login blocked for {email}")
        raise RateLimitError(MSG_EMAIL_LOCKED, details={"retry_after": int((locked - now).total_seconds()) + 1})


async def _record_failure(identifier: str, identifier_type: str, max_attempts: int) -> int:
    attempts = get_login_attempts_collection()
    now = utcnow()
    window = timedelta(minutes=settings.LOGIN_WINDOW_MINUTES)

    record = await attempts.find_one({"identifier": identifier, "identifier_type": identifier_type})

    if not record or now - record.get("first_attempt_at", now) > window:
        count = 1
        update = {
            "attempt_count": 1,
            "first_attempt_at": now,
            "last_attempt_at": now,
            "locked_until": None,
        }
    else:
        count = record.get("attempt_count", 0) + 1
        update = {"attempt_count": count, "last_attempt_at": now}

    if count >= max_attempts:
        update["locked_until"] = now + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
        logger.warning(f"🔒 Locking {identifier_type} {identifier} after {count} failed attempts")

    # Keep the row around until both window and lockout have passed
    update["expires_at"] = now + max(window, timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES))

    await attempts.update_one(
        {"identifier": identifier, "identifier_type": identifier_type},
        {"$set": update, "$setOnInsert": {"_id": new_id()}},
        upsert=True,
    )
    return count


async def record_failed_login(ip_address: Optional[str], email: str):
    if ip_address:
        await _record_failure(ip_address, IDENTIFIER_IP, settings.LOGIN_MAX_ATTEMPTS_PER_IP)
    await _record_failure(email, IDENTIFIER_EMAIL, settings.LOGIN_MAX_ATTEMPTS_PER_EMAIL)


async def clear_login_attempts(ip_address: Optional[str], email: str):
    identifiers = [{"identifier": email, "identifier_type": IDENTIFIER_EMAIL}]
    if ip_address:
        identifiers.append({"identifier": ip_address, "identifier_type": IDENTIFIER_IP})
    await get_login_attempts_collection().delete_many({"$or": identifiers})


async def check_signup_allowed(ip_address: Optional[str]):
    """
    Raises RateLimitError when the IP used its hourly or daily signup budget.
    """
    if not ip_address:
        return

    signups = get_signup_rate_limits_collection()
    now = utcnow()

    last_hour = await signups.count_documents(
        {"ip_address": ip_address, "created_at": {"$gte": now - timedelta(hours=1)}}
    )
    if last_hour >= settings.SIGNUP_MAX_PER_HOUR:
        logger.warning(f"🚫 Hourly signup limit hit for {ip_address}")
        raise RateLimitError(MSG_SIGNUP_LIMIT, details={"retry_after": 3600})

    last_day = await signups.count_documents(
        {"ip_address": ip_address, "created_at": {"$gte": now - timedelta(days=1)}}
    )
    if last_day >= settings.SIGNUP_MAX_PER_DAY:
        logger.warning(f"🚫 Daily signup limit hit for {ip_address}")
        raise RateLimitError(MSG_SIGNUP_LIMIT, details={"retry_after": 86400})


async def record_signup(ip_address: Optional[str], email: str):
    if not ip_address:
        return
    await get_signup_rate_limits_collection().insert_one({
        "_id": new_id(),
        "ip_address": ip_address,
        "email": email,
        "created_at": utcnow(),
    })
