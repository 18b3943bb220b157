import json

import httpx
import respx

from onboardx.config import get_settings
from onboardx.schemas.schemas import AccountDetails
from onboardx.services import notification_service
from onboardx.services.notification_service import NotificationService
from tests.conftest import MAIL_URL

DETAILS = AccountDetails(
    account_number="312345678901",
    ifsc="ONBX0001234",
    account_type="Savings Account",
    monthly_income=100000,
    risk_level="Low",
    risk_probability=0.0148,
)


def test_render_lists_account_fields():
    subject, body_html, body_text = NotificationService.render_account_email(DETAILS)

    assert "OnboardX" in subject
    assert "Account Number: 312345678901" in body_text
    assert "Monthly Income: ₹1,00,000" in body_text
    assert "Risk Level: Low (1% default probability)" in body_text
    assert "ONBX0001234" in body_html


def test_render_escapes_html():
    details = DETAILS.model_copy(update={"account_type": "<b>Savings</b>"})
    _, body_html, _ = NotificationService.render_account_email(details)
    assert "&lt;b&gt;Savings&lt;/b&gt;" in body_html


@respx.mock
async def test_send_posts_to_mail_api():
    route = respx.post(MAIL_URL).mock(return_value=httpx.Response(200, json={"id": "msg_1"}))

    result = await NotificationService.send_account_email("asha@example.com", DETAILS)

    assert result == {"success": True, "provider": "resend", "id": "msg_1"}
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer test-mail-key"
    body = json.loads(request.content)
    assert body["to"] == ["asha@example.com"]
    assert "312345678901" in body["text"]


@respx.mock
async def test_provider_rejection_is_reported_not_raised():
    respx.post(MAIL_URL).mock(return_value=httpx.Response(422, json={"message": "bad sender"}))
    result = await NotificationService.send_account_email("asha@example.com", DETAILS)
    assert result["success"] is False
    assert result["error"] == "HTTP 422"


@respx.mock
async def test_network_failure_is_reported_not_raised():
    respx.post(MAIL_URL).mock(side_effect=httpx.ConnectError("down"))
    result = await NotificationService.send_account_email("asha@example.com", DETAILS)
    assert result["success"] is False


async def test_missing_key_skips_dispatch(monkeypatch):
    unconfigured = get_settings().model_copy(update={"EMAIL_API_KEY": ""})
    monkeypatch.setattr(notification_service, "get_settings", lambda: unconfigured)

    result = await NotificationService.send_account_email("asha@example.com", DETAILS)

    assert result["success"] is False
    assert "not configured" in result["error"]
