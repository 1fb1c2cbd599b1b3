"""
utils/validation_utils.py

Purpose: Input validation helpers

- Email / phone / password checks used by signup and profile updates
- OTP format checks
- Search-term sanitising for admin queries
"""

import re
from typing import Optional

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_REGEX = re.compile(r"^\+?[1-9]\d{1,14}$")
MIN_PASSWORD_LENGTH = 8
MAX_SEARCH_LENGTH = 100


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> bool:
    """
    Validates a basic local@domain.tld shape.
    """
    if not email:
        return False
    return bool(EMAIL_REGEX.match(email.strip()))


def normalize_phone(phone: Optional[str]) -> str:
    """
    Strips spaces and dashes: "+880 171-234" -> "+880171234".
    """
    return re.sub(r"[\s\-]", "", phone or "")


def validate_phone_number(phone: str) -> bool:
    """
    Validates an E.164-style number (optional +, up to 15 digits, no leading 0).

    Args:
        phone: Phone number string, separators allowed
    """
    if not phone:
        return False
    return bool(PHONE_REGEX.match(normalize_phone(phone)))


def validate_password(password: str) -> bool:
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def validate_otp_format(otp: str) -> bool:
    """
    Validates OTP format (must be 6 digits).
    """
    if not otp:
        return False

    return bool(re.match(r"^\d{6}$", otp.strip()))


def sanitize_input(text: str, max_length: int = 1000) -> str:
    """
    Trims, drops markup characters and collapses whitespace.

    Args:
        text: Input text
        max_length: Maximum allowed length
    """
    if not text:
        return ""

    text = text[:max_length]
    text = re.sub(r"[<>{}\[\]]", "", text)
    text = " ".join(text.split())

    return text.strip()


def escape_search(term: Optional[str], max_length: int = MAX_SEARCH_LENGTH) -> Optional[str]:
    """
    Turns free text into a literal, length-capped regex fragment.
    Returns None for blank input.
    """
    if not term:
        return None
    term = term.strip()[:max_length]
    if not term:
        return None
    return re.escape(term)
