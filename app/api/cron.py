"""
app/api/cron.py

Scheduled job endpoints, protected by the cron secret.
"""

from fastapi import APIRouter, Depends

from app.api.deps import verify_cron_secret
from app.core.config import settings
from app.services import automation_service, shop_service, subscription_service
from app.services.event_service import dispatch_pending_events

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.post("/trial-expiry-check")
async def trial_expiry_check():
    return await subscription_service.run_trial_expiry_check()


@router.post("/subscription-expiry-check")
async def subscription_expiry_check():
    return await subscription_service.run_subscription_expiry_check()


@router.post("/webhook-dispatch")
async def webhook_dispatch():
    """
    Delivers queued outgoing events to configured webhooks.
    """
    return await dispatch_pending_events()


@router.post("/trash-cleanup")
async def trash_cleanup():
    return await shop_service.cleanup_trash()


@router.post("/logs-cleanup")
async def logs_cleanup():
    """
    Applies execution log retention.
    """
    return await automation_service.cleanup_execution_logs()
