"""
Notification Service — Account-details e-mail through an HTTP mail API.

Dispatch never raises: the caller gets ``{"success": False, ...}`` and
carries on, since onboarding must complete even when mail is down.
"""
import html
from typing import Any, Dict, Tuple

import httpx

from onboardx.config import get_settings
from onboardx.schemas.schemas import AccountDetails
from onboardx.utils.formatting import format_inr, to_fixed
from onboardx.utils.logger import log_event


def _detail_rows(details: AccountDetails) -> list[Tuple[str, str]]:
    rows = [
        ("Account Number", details.account_number),
        ("IFSC Code", details.ifsc),
        ("Branch", details.branch),
        ("Account Type", details.account_type),
    ]
    if details.monthly_income:
        rows.append(("Monthly Income", format_inr(details.monthly_income)))
    if details.risk_level:
        label = details.risk_level
        if details.risk_probability is not None:
            label += f" ({to_fixed(details.risk_probability * 100)}% default probability)"
        rows.append(("Risk Level", label))
    return rows


class NotificationService:
    @staticmethod
    def render_account_email(details: AccountDetails) -> Tuple[str, str, str]:
        """Build (subject, html, text) for the welcome mail."""
        rows = _detail_rows(details)
        subject = "Your OnboardX bank account is ready 🎉"
        text = "Welcome to OnboardX!\n\n" + "\n".join(f"{k}: {v}" for k, v in rows)
        table = "".join(
            f"<tr><td style=\"padding:6px 12px;color:#666\">{html.escape(k)}</td>"
            f"<td style=\"padding:6px 12px;font-weight:600\">{html.escape(v)}</td></tr>"
            for k, v in rows
        )
        body = (
            "<div style=\"font-family:Arial,sans-serif;max-width:520px\">"
            "<h2>Welcome to OnboardX 🎉</h2>"
            "<p>Your account has been created. Keep these details safe.</p>"
            f"<table style=\"border-collapse:collapse\">{table}</table>"
            "<p style=\"color:#999;font-size:12px\">This is an automated message.</p>"
            "</div>"
        )
        return subject, body, text

    @staticmethod
    async def send_account_email(to: str, details: AccountDetails) -> Dict[str, Any]:
        """Send the account details to ``to``."""
        settings = get_settings()
        if not settings.EMAIL_API_KEY:
            log_event("notification", "EMAIL_API_KEY missing; account e-mail not sent")
            return {"success": False, "provider": "resend", "error": "Email dispatch is not configured"}

        subject, body_html, body_text = NotificationService.render_account_email(details)
        try:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    settings.EMAIL_API_URL,
                    headers={"Authorization": f"Bearer {settings.EMAIL_API_KEY}"},
                    json={
                        "from": settings.EMAIL_FROM,
                        "to": [to],
                        "subject": subject,
                        "html": body_html,
                        "text": body_text,
                    },
                )
        except httpx.HTTPError as exc:
            log_event("notification", f"E-mail transport failure: {exc!r}")
            return {"success": False, "provider": "resend", "error": "Email service unreachable"}

        if not response.is_success:
            log_event("notification", f"E-mail API HTTP {response.status_code}: {response.text[:300]}")
            return {"success": False, "provider": "resend", "error": f"HTTP {response.status_code}"}

        try:
            message_id = response.json().get("id")
        except (ValueError, AttributeError):
            message_id = None
        log_event("notification", f"Account e-mail sent (id={message_id})")
        return {"success": True, "provider": "resend", "id": message_id}
