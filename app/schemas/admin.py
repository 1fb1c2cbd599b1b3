"""
app/schemas/admin.py

Pydantic models for admin, payment, notification, automation and connected account requests.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union


class NotificationAction(BaseModel):
    notification_id: Optional[str] = None
    mark_all: bool = False


class PaymentRequestCreate(BaseModel):
    """Request schema for a manual payment submission."""
    plan_id: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    screenshot_url: Optional[str] = None


class PaymentReview(BaseModel):
    status: Optional[str] = Field(default=None, description="approved | rejected")
    admin_notes: Optional[str] = None


class AdminPasswordRequest(BaseModel):
    new_password: Optional[str] = None


class RoleRequest(BaseModel):
    role: Optional[str] = Field(default=None, description="admin | user")


class StatusRequest(BaseModel):
    status: Optional[str] = Field(default=None, description="active | suspended")


class AutomationCreate(BaseModel):
    """Request schema for creating a keyword automation."""
    name: Optional[str] = None
    type: Optional[str] = None
    account_id: Optional[str] = None
    trigger_keywords: Optional[Union[List[str], str]] = None
    response_template: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    is_enabled: bool = True


class ConnectedAccountCreate(BaseModel):
    """Request schema for connecting a Facebook page or WhatsApp number."""
    platform: Optional[str] = Field(default=None, description="facebook | whatsapp")
    external_id: Optional[str] = Field(default=None, description="Page id or WhatsApp phone number id")
    name: Optional[str] = None
    category: Optional[str] = None
    picture_url: Optional[str] = None
