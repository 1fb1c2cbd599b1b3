"""
app/core/security.py

Purpose: Credential and token primitives

- PBKDF2 password hashing (passlib) with constant-time verification
- HS256 access tokens (PyJWT) with a refresh grace window
- OTP generation and hashing
- Facebook delivery signature checks
"""

import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta
from typing import Dict, Any

import jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.core.exceptions import AuthenticationError

PBKDF2_ITERATIONS = 100000

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    pbkdf2_sha256__default_rounds=PBKDF2_ITERATIONS,
)

# Verified against when the account does not exist so the response time
# does not reveal whether an email is registered.
DUMMY_HASH = pwd_context.hash("autofloy-dummy-password")

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """
    Hashes a password in passlib's modular crypt format
    ($pbkdf2-sha256$rounds$salt$checksum).
    """
    return pwd_context.hash(password)


def verify_password(password: str, stored_hash: str) -> bool:
    """
    Checks a password against a stored hash in constant time.
    Malformed hashes never match.
    """
    if not password or not stored_hash:
        return False

    try:
        return pwd_context.verify(password, stored_hash)
    except (ValueError, TypeError):
        return False


def verify_dummy_password(password: str) -> bool:
    """
    Runs a full key derivation against DUMMY_HASH. Always False.
    """
    pwd_context.verify(password or "", DUMMY_HASH)
    return False


def create_access_token(user_id: str, email: str) -> str:
    """
    Issues a signed access token.

    Claims: sub (user id), email, iat, exp (JWT_EXPIRY_HOURS from now).
    """
    now = datetime.utcnow()
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verifies signature and expiry.

    Raises:
        AuthenticationError: token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError:
        raise AuthenticationError("Unauthorized")

    if not payload.get("sub"):
        raise AuthenticationError("Unauthorized")
    return payload


def decode_for_refresh(token: str) -> Dict[str, Any]:
    """
    Like decode_access_token, but accepts a token that expired
    less than REFRESH_GRACE_DAYS ago.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"], "verify_exp": False},
        )
    except jwt.PyJWTError:
        raise AuthenticationError("Unauthorized")

    expired_at = datetime.utcfromtimestamp(int(payload["exp"]))
    if datetime.utcnow() - expired_at > timedelta(days=settings.REFRESH_GRACE_DAYS):
        raise AuthenticationError("Token expired beyond refresh window")

    if not payload.get("sub"):
        raise AuthenticationError("Unauthorized")
    return payload


def extract_bearer_token(authorization: str) -> str:
    """
    Returns the token part of an "Authorization: Bearer <token>" header.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Unauthorized")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Unauthorized")
    return token


def generate_otp() -> str:
    """Six-digit numeric code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def hash_otp(otp: str) -> str:
    return hashlib.sha256(otp.encode("utf-8")).hexdigest()


def otp_matches(otp: str, otp_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(otp), otp_hash or "")


def mask_email(email: str) -> str:
    """
    jane.doe@example.com -> ja***@example.com
    """
    return re.sub(r"^(.{2})(.*)(@.*)$", r"\1***\3", email or "")


def facebook_signature_valid(body: bytes, signature: str, app_secret: str) -> bool:
    """
    Checks an X-Hub-Signature-256 header ("sha256=<hex>") against the raw body.
    """
    if not signature or not signature.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)
