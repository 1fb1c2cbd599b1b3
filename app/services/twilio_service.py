"""
app/services/twilio_service.py

Purpose: Twilio SMS sending

- Sends phone verification codes by SMS through the Twilio REST API
- Returns result dicts instead of raising
"""

import httpx
from typing import Dict, Any
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class TwilioService:
    """Service for sending SMS via Twilio"""

    def __init__(self):
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.from_number = settings.TWILIO_SMS_NUMBER
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}"

    async def send_sms(self, to_phone: str, message: str) -> Dict[str, Any]:
        """
        Sends an SMS via Twilio

        Args:
            to_phone: Recipient phone (+8801712345678)
            message: Message text

        Returns:
            {
                "success": True/False,
                "message_sid": "SMxxx...",
                "error": "Optional error message"
            }
        """
        if not self.is_configured():
            logger.warning(f"📭 SMS not sent to {to_phone}: Twilio is not configured")
            return {"success": False, "error": "SMS provider not configured"}

        if not to_phone.startswith("+"):
            to_phone = f"+{to_phone}"

        try:
            logger.info(f"📤 Sending SMS to {to_phone}")

            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/Messages.json",
                    data={"From": self.from_number, "To": to_phone, "Body": message},
                    auth=(self.account_sid, self.auth_token),
                    timeout=10.0
                )

            if response.status_code in [200, 201]:
                result = response.json()
                logger.info(f"✅ SMS sent: SID={result.get('sid')}")
                return {
                    "success": True,
                    "message_sid": result.get("sid"),
                    "status": result.get("status")
                }

            logger.error(f"❌ Twilio API error: {response.status_code} - {response.text}")
            return {
                "success": False,
                "error": f"Twilio API error: {response.status_code}"
            }

        except httpx.TimeoutException:
            logger.error("Twilio API timeout")
            return {"success": False, "error": "Twilio API timeout"}
        except httpx.HTTPError as e:
            logger.error(f"Error sending Twilio SMS: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

    def is_configured(self) -> bool:
        """Check if Twilio is properly configured"""
        return bool(
            self.account_sid
            and self.auth_token
            and self.from_number
            and self.account_sid != "your_twilio_sid"
        )


# Singleton instance
twilio_service = TwilioService()
