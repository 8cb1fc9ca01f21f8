"""
Tests for SendGrid Service.

The real service is exercised against httpx.MockTransport, so no request
leaves the process.
"""

import json

import httpx
import pytest

from app.services.sendgrid_service import SendGridService, MockSendGridService


def _service(handler) -> SendGridService:
    return SendGridService(
        api_key="SG.test-key",
        from_address="newsletter@example.com",
        from_name="Scuola di Longboard",
        transport=httpx.MockTransport(handler),
    )


class TestSendGridService:
    """Tests for SendGridService."""

    def test_not_configured_without_api_key(self):
        service = SendGridService(api_key="")
        assert service.is_configured is False
        assert service.get_status()["configured"] is False

    def test_configured_status(self):
        service = _service(lambda request: httpx.Response(202))
        status = service.get_status()
        assert status["configured"] is True
        assert status["from_address"] == "newsletter@example.com"

    @pytest.mark.asyncio
    async def test_send_email_accepted(self):
        """202 from SendGrid is a success carrying X-Message-Id."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(202, headers={"X-Message-Id": "sg-abc123"})

        service = _service(handler)
        result = await service.send_email(
            to="surfer@example.com",
            subject="Nuove onde",
            html_body="<p>Ciao</p>",
            to_name="Luca",
        )

        assert result["success"] is True
        assert result["message_id"] == "sg-abc123"
        assert result["error"] is None
        assert captured["url"] == "https://api.sendgrid.com/v3/mail/send"
        assert captured["auth"] == "Bearer SG.test-key"
        assert captured["body"]["personalizations"][0]["to"] == [{"email": "surfer@example.com", "name": "Luca"}]
        assert captured["body"]["from"] == {"email": "newsletter@example.com", "name": "Scuola di Longboard"}
        assert captured["body"]["content"] == [{"type": "text/html", "value": "<p>Ciao</p>"}]

    @pytest.mark.asyncio
    async def test_send_email_rejected(self):
        """Non-202 responses become a failure result, never an exception."""
        service = _service(lambda request: httpx.Response(400, text='{"errors":[{"message":"bad"}]}'))

        result = await service.send_email(to="x@example.com", subject="s", html_body="<p>b</p>")

        assert result["success"] is False
        assert result["status_code"] == 400
        assert "400" in result["error"]

    @pytest.mark.asyncio
    async def test_send_email_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _service(handler).send_email(to="x@example.com", subject="s", html_body="b")

        assert result["success"] is False
        assert "connection refused" in result["error"]

    @pytest.mark.asyncio
    async def test_send_email_not_configured(self):
        result = await SendGridService(api_key="").send_email(to="x@example.com", subject="s", html_body="b")
        assert result["success"] is False
        assert result["error"] == "SendGrid not configured"


class TestMockSendGridService:
    """Tests for MockSendGridService."""

    @pytest.mark.asyncio
    async def test_records_sent_emails(self):
        service = MockSendGridService()

        result = await service.send_email(to="a@example.com", subject="Hi", html_body="<p>x</p>")

        assert result["success"] is True
        assert result["message_id"].startswith("mock-")
        assert service._sent_emails[0]["to"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_fail_for_selected_addresses(self):
        service = MockSendGridService(fail_for={"bad@example.com"})

        bad = await service.send_email(to="bad@example.com", subject="Hi", html_body="x")
        good = await service.send_email(to="good@example.com", subject="Hi", html_body="x")

        assert bad["success"] is False
        assert good["success"] is True
        assert [email["to"] for email in service._sent_emails] == ["good@example.com"]
