"""
utils/time_utils.py

Purpose: Time and expiry helpers

- OTP expiry checks
- Trial / subscription countdowns
- Timestamp utilities
"""

import math
from datetime import datetime, timedelta
from typing import Optional, Union


def utcnow() -> datetime:
    """Naive UTC now, matching what Motor returns for stored dates."""
    return datetime.utcnow()


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Accepts a datetime or an ISO-8601 string and returns a naive UTC datetime.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = (dt - dt.utcoffset()).replace(tzinfo=None)
    return dt


def calculate_otp_expiry(otp_time: datetime, validity_minutes: int = 10) -> datetime:
    """
    Calculates OTP expiry timestamp.
    """
    return otp_time + timedelta(minutes=validity_minutes)


def is_otp_expired(otp_time: datetime, validity_minutes: int = 10, now: Optional[datetime] = None) -> bool:
    """
    Checks if an OTP has expired.
    """
    if not otp_time:
        return True
    return (now or utcnow()) > calculate_otp_expiry(otp_time, validity_minutes)


def seconds_since(then: datetime, now: Optional[datetime] = None) -> float:
    return ((now or utcnow()) - then).total_seconds()


def hours_until(when: datetime, now: Optional[datetime] = None) -> float:
    return (when - (now or utcnow())).total_seconds() / 3600


def remaining_days(end: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """
    Whole days left until `end`, rounded up. 0 once passed, None without an end.
    """
    if end is None:
        return None
    delta = (end - (now or utcnow())).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta / 86400)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if not dt:
        return None
    return dt.isoformat() + "Z" if dt.tzinfo is None else dt.isoformat()
