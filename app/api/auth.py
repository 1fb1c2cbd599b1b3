"""
app/api/auth.py

Authentication API Endpoints
============================

- Signup / login / token refresh
- Email and phone verification codes
- Password reset
- Account deletion with an emailed code
"""

from fastapi import APIRouter, Depends, Header, Request
from typing import Optional

from app.api.deps import get_current_user_id, get_client_ip
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import extract_bearer_token
from app.schemas.auth import (
    SignupRequest,
    LoginRequest,
    OtpVerifyRequest,
    PasswordResetRequest,
    PasswordResetConfirm,
    AuthResponse,
)
from app.schemas.response import MessageResponse
from app.services import auth_service

logger = get_logger(__name__)

router = APIRouter(prefix=f"{settings.API_PREFIX}/auth", tags=["Auth"])


# ============================================================================
# SIGNUP / LOGIN
# ============================================================================

@router.post("/signup", response_model=AuthResponse, status_code=201)
async def signup(body: SignupRequest, request: Request):
    """
    Creates an account. First-time emails start a trial.
    """
    return await auth_service.signup(
        email=body.email,
        password=body.password,
        phone=body.phone,
        display_name=body.display_name,
        ip_address=get_client_ip(request),
    )


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
async def login(body: LoginRequest, request: Request):
    return await auth_service.login(body.email, body.password, ip_address=get_client_ip(request))


@router.post("/refresh-user", response_model=AuthResponse, response_model_exclude_none=True)
async def refresh_user(authorization: Optional[str] = Header(None)):
    """
    Accepts recently expired tokens (grace window) and returns a fresh one.
    """
    token = extract_bearer_token(authorization or "")
    return await auth_service.refresh_user(token)


# ============================================================================
# VERIFICATION CODES
# ============================================================================

@router.post("/email-otp/request", response_model=MessageResponse)
async def request_email_otp(user_id: str = Depends(get_current_user_id)):
    return await auth_service.request_email_otp(user_id)


@router.post("/email-otp/verify", response_model=MessageResponse)
async def verify_email_otp(body: OtpVerifyRequest, user_id: str = Depends(get_current_user_id)):
    return await auth_service.verify_email_otp(user_id, body.otp)


@router.post("/phone-otp/request", response_model=MessageResponse)
async def request_phone_otp(user_id: str = Depends(get_current_user_id)):
    return await auth_service.request_phone_otp(user_id)


@router.post("/phone-otp/verify", response_model=MessageResponse)
async def verify_phone_otp(body: OtpVerifyRequest, user_id: str = Depends(get_current_user_id)):
    return await auth_service.verify_phone_otp(user_id, body.otp)


# ============================================================================
# PASSWORD RESET
# ============================================================================

@router.post("/password-reset/request", response_model=MessageResponse)
async def request_password_reset(body: PasswordResetRequest):
    """
    Same answer whether or not the account exists.
    """
    return await auth_service.request_password_reset(body.email)


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(body: PasswordResetConfirm):
    return await auth_service.reset_password(body.email, body.otp, body.new_password)


# ============================================================================
# ACCOUNT DELETION
# ============================================================================

@router.post("/deletion/request-otp")
async def request_deletion_otp(user_id: str = Depends(get_current_user_id)):
    return await auth_service.request_account_deletion(user_id)


@router.post("/deletion/confirm", response_model=MessageResponse)
async def confirm_deletion(body: OtpVerifyRequest, user_id: str = Depends(get_current_user_id)):
    return await auth_service.confirm_account_deletion(user_id, body.otp)
