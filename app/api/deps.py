"""
app/api/deps.py

Purpose: Shared FastAPI dependencies

- Bearer token authentication
- Admin role check
- Cron secret check
- Client IP resolution
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from app.core.config import settings
from app.core.exceptions import AuthenticationError, ForbiddenError
from app.core.security import decode_access_token, extract_bearer_token
from app.services.admin_service import is_admin
from utils.constants import MSG_UNAUTHORIZED, MSG_ADMIN_REQUIRED


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Resolves the caller from `Authorization: Bearer <jwt>`.
    """
    token = extract_bearer_token(authorization or "")
    payload = decode_access_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(MSG_UNAUTHORIZED)
    return user_id


async def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    if not await is_admin(user_id):
        raise ForbiddenError(MSG_ADMIN_REQUIRED)
    return user_id


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> None:
    """
    No-op when CRON_SECRET is unset.
    """
    expected = settings.CRON_SECRET
    if not expected:
        return

    provided = x_cron_secret
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not provided or not hmac.compare_digest(provided, expected):
        raise AuthenticationError(MSG_UNAUTHORIZED)


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def get_shop_id(request: Request) -> Optional[str]:
    """`X-Shop-Id` header, else the `shop_id` query parameter."""
    return request.headers.get("x-shop-id") or request.query_params.get("shop_id") or None
