"""
app/api/facebook_webhook.py

Purpose: Facebook page webhook endpoint

- Answers the subscription handshake (hub.challenge)
- Receives page messaging / feed deliveries, signed with the app secret
- Normalizes them into FacebookEvent and passes them to automation processing
- Always acknowledges with 200 so Facebook does not retry
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import facebook_signature_valid
from app.schemas.webhook import parse_facebook_payload
from app.services.automation_service import process_facebook_event

logger = get_logger(__name__)
router = APIRouter(prefix=f"{settings.API_PREFIX}/webhooks", tags=["Webhooks"])


@router.get("/facebook")
async def facebook_verification(request: Request):
    """
    Webhook verification handshake
    """
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge") or ""

    if mode == "subscribe" and token == settings.FACEBOOK_VERIFY_TOKEN:
        logger.info("✅ Facebook webhook verified")
        return PlainTextResponse(challenge)

    logger.warning("Facebook webhook verification failed")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("/facebook")
async def facebook_webhook(request: Request):
    """
    Facebook page events (messages, postbacks, feed comments)
    """
    if settings.FACEBOOK_APP_SECRET:
        body = await request.body()
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not facebook_signature_valid(body, signature, settings.FACEBOOK_APP_SECRET):
            logger.warning("⚠️ Facebook delivery with missing or invalid signature ignored")
            return {"status": "ok"}

    try:
        payload = await request.json()
        events = parse_facebook_payload(payload)
        logger.info(f"📱 Facebook webhook received: object={payload.get('object')}, events={len(events)}")

        for event in events:
            try:
                await process_facebook_event(event)
            except Exception as e:
                logger.error(f"Failed to process Facebook {event.kind} for page {event.page_id}: {e}", exc_info=True)

    except Exception as e:
        logger.error(f"Facebook webhook error: {e}", exc_info=True)

    return {"status": "ok"}
