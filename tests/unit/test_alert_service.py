from datetime import UTC, datetime

import httpx
import pytest

from reviewreply.models.domain.review_domain import ReplyRunResult
from reviewreply.services.alert_service import AlertService
from reviewreply.services.resend_client import RESEND_API_URL

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"


@pytest.fixture
def alert_settings(test_settings):
    test_settings.ALERT_EMAIL = "ops@example.com"
    test_settings.ALERT_PHONE = "+15550001111"
    test_settings.TWILIO_ACCOUNT_SID = "AC123"
    test_settings.TWILIO_AUTH_TOKEN = "token"
    test_settings.TWILIO_FROM_NUMBER = "+15550002222"
    return test_settings


def test_messages_for_exception(test_settings):
    service = AlertService(test_settings)

    subject, body, sms = service.build_messages(
        "Bakery", "acc-1", error=RuntimeError("token revoked"), now=NOW
    )

    assert subject == "ReviewReply: auto-reply error"
    assert body.startswith("ReviewReply auto-reply failed for Bakery (acc-1).")
    assert "Error: token revoked" in body
    assert body.endswith(f"Time: {NOW.isoformat()}")
    assert sms == "ReviewReply error (Bakery): token revoked"


def test_messages_for_failed_replies(test_settings):
    result = ReplyRunResult()
    result.record_success("r1", 5)
    result.record_failure("r2", 1, "quota exceeded")

    subject, body, sms = AlertService(test_settings).build_messages(
        None, "acc-1", result=result, now=NOW
    )

    assert subject == "ReviewReply: auto-reply failed"
    assert "Attempted: 2, succeeded: 1, failed: 1." in body
    assert "Reason: quota exceeded" in body
    assert sms == "ReviewReply: 1 reply failed for acc-1. Check email."


def test_channels_disabled_without_configuration(test_settings):
    service = AlertService(test_settings)

    assert service.email_enabled is False
    assert service.sms_enabled is False


@pytest.mark.asyncio
async def test_sends_email_and_sms(alert_settings, httpx_mock):
    httpx_mock.add_response(method="POST", url=RESEND_API_URL, json={"id": "email-1"})
    httpx_mock.add_response(method="POST", url=TWILIO_URL, status_code=201, json={"sid": "SM1"})

    await AlertService(alert_settings).send_failure_alert("Bakery", "acc-1", error="boom")

    requests = {str(r.url): r for r in httpx_mock.get_requests()}
    assert b"ops@example.com" in requests[RESEND_API_URL].content
    assert b"Body=ReviewReply+error" in requests[TWILIO_URL].content


@pytest.mark.asyncio
async def test_delivery_failures_are_swallowed(alert_settings, httpx_mock):
    httpx_mock.add_response(method="POST", url=RESEND_API_URL, status_code=500, json={})
    httpx_mock.add_exception(httpx.ConnectError("twilio down"), method="POST", url=TWILIO_URL)

    await AlertService(alert_settings).send_failure_alert("Bakery", "acc-1", error="boom")
