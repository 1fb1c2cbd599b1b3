"""
app/services/email_service.py

Purpose: Transactional email sending

- Sends email via the Resend REST API
- Classifies provider failures for user-facing errors
"""

import httpx
from typing import Dict, Any, Optional
from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.logging import get_logger

logger = get_logger(__name__)


def classify_email_error(error: Optional[str]) -> ExternalServiceError:
    """
    Maps a provider error string to the error returned to the client.
    """
    text = (error or "").lower()
    if "domain" in text and ("verif" in text or "not verified" in text):
        return ExternalServiceError(
            "Email domain is not verified. Please contact support.",
            code="DOMAIN_NOT_VERIFIED",
            status_code=503,
        )
    if "api key" in text or "api_key" in text or "unauthorized" in text or "401" in text:
        return ExternalServiceError(
            "Email service is misconfigured. Please contact support.",
            code="INVALID_API_KEY",
            status_code=503,
        )
    return ExternalServiceError(
        "Failed to send email. Please try again.",
        code="EMAIL_SEND_FAILED",
        status_code=500,
        details={"reason": error} if error else None,
    )


class EmailService:
    """Service for sending email via Resend"""

    def __init__(self):
        self.api_key = settings.RESEND_API_KEY
        self.base_url = settings.RESEND_BASE_URL
        self.sender = settings.EMAIL_FROM

    async def send_email(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        """
        Sends an email.

        Returns:
            {
                "success": True/False,
                "id": "resend message id",
                "error": "Optional error message"
            }
        """
        if not self.is_configured():
            logger.warning(f"📭 Email not sent to {to}: RESEND_API_KEY is not set")
            return {"success": False, "error": "Email API key not configured"}

        try:
            logger.info(f"📧 Sending email '{subject}' to {to}")

            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/emails",
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=10.0
                )

            if response.status_code in [200, 201]:
                result = response.json()
                logger.info(f"✅ Email sent: id={result.get('id')}")
                return {"success": True, "id": result.get("id")}

            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            logger.error(f"❌ Resend API error: {response.status_code} - {message}")
            return {
                "success": False,
                "error": f"{response.status_code}: {message}"
            }

        except httpx.TimeoutException:
            logger.error("Resend API timeout")
            return {"success": False, "error": "Email API timeout"}
        except httpx.HTTPError as e:
            logger.error(f"Error sending email: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

    async def send_or_raise(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        """
        Sends an email and raises a classified ExternalServiceError on failure.
        """
        result = await self.send_email(to, subject, html)
        if not result.get("success"):
            raise classify_email_error(result.get("error"))
        return result

    def is_configured(self) -> bool:
        """Check if Resend is configured"""
        return bool(self.api_key)


# Singleton instance
email_service = EmailService()
