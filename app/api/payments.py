"""
app/api/payments.py

Payment Request Endpoints
=========================

- Users submit and list their manual payment requests
- Admins list, review and delete requests
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.api.deps import get_current_user_id, require_admin
from app.core.config import settings
from app.schemas.admin import PaymentRequestCreate, PaymentReview
from app.services import payment_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["Payments"])


@router.post("/payment-requests", status_code=201)
async def create_payment_request(body: PaymentRequestCreate, user_id: str = Depends(get_current_user_id)):
    return await payment_service.create_payment_request(user_id, body.model_dump())


@router.get("/payment-requests")
async def list_my_payment_requests(user_id: str = Depends(get_current_user_id)):
    return {"requests": await payment_service.list_user_requests(user_id)}


# ============================================================================
# ADMIN
# ============================================================================

@router.get("/admin/payment-requests")
async def list_payment_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[str] = None,
    admin_id: str = Depends(require_admin),
):
    return await payment_service.list_all_requests(page=page, limit=limit, search=search, status=status)


@router.put("/admin/payment-requests/{request_id}")
async def review_payment_request(request_id: str, body: PaymentReview, admin_id: str = Depends(require_admin)):
    return await payment_service.review_request(request_id, body.status, admin_id, body.admin_notes)


@router.delete("/admin/payment-requests/{request_id}")
async def delete_payment_request(request_id: str, admin_id: str = Depends(require_admin)):
    return await payment_service.delete_request(request_id)
