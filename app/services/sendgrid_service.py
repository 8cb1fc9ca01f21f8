"""SendGrid email service for newsletter and transactional emails.

Wraps the SendGrid REST API v3 with httpx, no SDK.
Sending never raises: every call returns
{"success": bool, "status_code": int|None, "message_id": str|None, "error": str|None}
so the campaign loop can record a failure and move on.
"""

import logging
import uuid
from typing import Optional, Dict, Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3"
SEND_TIMEOUT_SECONDS = 15.0


def _failure(error: str, status_code: Optional[int] = None) -> Dict[str, Any]:
    return {"success": False, "status_code": status_code, "message_id": None, "error": error}


class SendGridService:
    """Service for sending emails via the SendGrid v3 mail/send endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_address: Optional[str] = None,
        from_name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_address = from_address or settings.SENDGRID_FROM_EMAIL
        self.from_name = from_name or settings.SENDGRID_FROM_NAME
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key) and bool(self.from_address)

    def get_status(self) -> Dict[str, Any]:
        """Get email service configuration status."""
        if not self.is_configured:
            return {
                "connected": False,
                "configured": False,
                "provider": "sendgrid",
                "message": "SendGrid not configured. Set SENDGRID_API_KEY and SENDGRID_FROM_EMAIL.",
            }
        return {
            "connected": True,
            "configured": True,
            "provider": "sendgrid",
            "from_address": self.from_address,
            "from_name": self.from_name,
            "message": "SendGrid email service configured",
        }

    def _build_payload(self, to: str, subject: str, html_body: str, to_name: Optional[str]) -> Dict[str, Any]:
        recipient = {"email": to}
        if to_name:
            recipient["name"] = to_name
        return {
            "personalizations": [{"to": [recipient]}],
            "from": {"email": self.from_address, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        to_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a single HTML email.

        Args:
            to: Recipient email address
            subject: Email subject line
            html_body: Fully rendered HTML document
            to_name: Optional display name of the recipient

        Returns:
            Dict with success, status_code, message_id and error
        """
        if not self.is_configured:
            logger.warning("SendGrid not configured - SENDGRID_API_KEY missing")
            return _failure("SendGrid not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = self._build_payload(to, subject, html_body, to_name)

        try:
            async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.post(f"{SENDGRID_API_URL}/mail/send", json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error("SendGrid request timed out", extra={"to": to})
            return _failure("SendGrid request timed out")
        except httpx.HTTPError as e:
            logger.error("SendGrid request failed", extra={"to": to, "error": str(e)})
            return _failure(str(e))

        if response.status_code == 202:
            message_id = response.headers.get("X-Message-Id")
            logger.info(
                "Email accepted by SendGrid",
                extra={"to": to, "subject": subject[:50], "message_id": message_id},
            )
            return {
                "success": True,
                "status_code": response.status_code,
                "message_id": message_id,
                "error": None,
            }

        logger.warning(f"SendGrid error {response.status_code}: {response.text[:200]}")
        return _failure(f"SendGrid HTTP {response.status_code}: {response.text[:200]}", response.status_code)


class MockSendGridService(SendGridService):
    """Mock email service for tests and local development."""

    def __init__(self, fail_for: Optional[set] = None, fail_all: bool = False):
        super().__init__(api_key="mock-key", from_address="test@example.com", from_name="Test Sender")
        self.fail_for = set(fail_for or ())
        self.fail_all = fail_all
        self._sent_emails: list[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        """Mock service is always configured."""
        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            "connected": True,
            "configured": True,
            "provider": "mock",
            "from_address": self.from_address,
            "from_name": self.from_name,
            "message": "Mock email service (emails not actually sent)",
        }

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        to_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record the email; fail for addresses listed in fail_for."""
        if self.fail_all or to in self.fail_for:
            logger.info(f"Mock email rejected for {to}: {subject}")
            return _failure("Mock rejection", 400)

        mock_message_id = f"mock-{uuid.uuid4().hex[:16]}"
        self._sent_emails.append(
            {
                "to": to,
                "to_name": to_name,
                "subject": subject,
                "html_body": html_body,
                "message_id": mock_message_id,
            }
        )
        logger.info(f"Mock email sent to {to}: {subject}")
        return {
            "success": True,
            "status_code": 202,
            "message_id": mock_message_id,
            "error": None,
        }
