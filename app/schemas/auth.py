"""
app/schemas/auth.py

Pydantic models for authentication and account endpoints.
Fields stay optional so missing values get the same 400 messages as invalid ones.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any


class SignupRequest(BaseModel):
    """Request schema for account signup."""
    email: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    display_name: Optional[str] = Field(default=None, max_length=200)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    """Request schema for email / phone / deletion code checks."""
    otp: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: Optional[str] = None


class PasswordResetConfirm(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None
    new_password: Optional[str] = None


class AuthResponse(BaseModel):
    """Response schema for signup / login / refresh."""
    token: str = Field(..., description="HS256 access token")
    user: Dict[str, Any]
    verification_email_sent: Optional[bool] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None
