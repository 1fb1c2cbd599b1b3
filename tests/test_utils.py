from datetime import datetime, timedelta, timezone

import pytest

from utils.time_utils import (
    parse_datetime,
    is_otp_expired,
    remaining_days,
    isoformat,
    hours_until,
)
from utils.validation_utils import (
    normalize_email,
    validate_email,
    validate_phone_number,
    validate_password,
    validate_otp_format,
    sanitize_input,
    escape_search,
)


NOW = datetime(2025, 1, 29, 12, 0, 0)


@pytest.mark.parametrize("email,valid", [
    ("jane@example.com", True),
    ("  jane@example.com ", True),
    ("jane@example", False),
    ("jane example@x.com", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert validate_email(email) is valid


def test_normalize_email():
    assert normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert normalize_email(None) == ""


@pytest.mark.parametrize("phone,valid", [
    ("+8801712345678", True),
    ("+880 1712-345678", True),
    ("01712345678", False),
    ("+1234567890123456", False),
    ("", False),
])
def test_validate_phone_number(phone, valid):
    assert validate_phone_number(phone) is valid


def test_validate_password_length():
    assert validate_password("12345678")
    assert not validate_password("1234567")
    assert not validate_password(None)


def test_validate_otp_format():
    assert validate_otp_format("123456")
    assert not validate_otp_format("12345")
    assert not validate_otp_format("12a456")


def test_sanitize_input():
    assert sanitize_input("  <b>hi</b>   there ") == "bhi/b there"


def test_escape_search():
    assert escape_search("a.b") == r"a\.b"
    assert escape_search("   ") is None
    assert len(escape_search("x" * 500)) == 100


def test_parse_datetime_handles_z_suffix_and_offsets():
    assert parse_datetime("2025-01-29T12:00:00Z") == NOW
    assert parse_datetime("2025-01-29T18:00:00+06:00") == NOW
    assert parse_datetime(NOW.replace(tzinfo=timezone.utc)) == NOW
    assert parse_datetime(None) is None
    assert parse_datetime("") is None


def test_is_otp_expired():
    created = NOW - timedelta(minutes=9)
    assert not is_otp_expired(created, 10, now=NOW)
    assert is_otp_expired(NOW - timedelta(minutes=11), 10, now=NOW)
    assert is_otp_expired(None)


def test_remaining_days_rounds_up():
    assert remaining_days(NOW + timedelta(hours=1), now=NOW) == 1
    assert remaining_days(NOW + timedelta(days=2, hours=1), now=NOW) == 3
    assert remaining_days(NOW - timedelta(hours=1), now=NOW) == 0
    assert remaining_days(None, now=NOW) is None


def test_hours_until():
    assert hours_until(NOW + timedelta(hours=6), now=NOW) == 6


def test_isoformat_marks_naive_utc():
    assert isoformat(NOW) == "2025-01-29T12:00:00Z"
    assert isoformat(None) is None
