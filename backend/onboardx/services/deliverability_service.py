"""
Deliverability Service — AbstractAPI e-mail and phone validation.

Both lookups are best-effort. Infrastructure failure (missing key, non-2xx,
network error) never blocks onboarding: the verdict fails open.
"""
from typing import Any, Dict, Optional

import httpx

from onboardx.config import get_settings
from onboardx.schemas.schemas import EmailValidationResult, PhoneValidationResult
from onboardx.utils.logger import log_event
from onboardx.utils.validators import is_valid_email_format, normalize_phone

ACCEPTED_EMAIL_STATUSES = ("deliverable", "risky")
INDIA_COUNTRY_CODE = "IN"


def interpret_email_payload(data: Dict[str, Any]) -> EmailValidationResult:
    """Read both the v2 (``email_deliverability``) and v1 response shapes."""
    if isinstance(data.get("email_deliverability"), dict):
        block = data["email_deliverability"]
        status = str(block.get("status") or "").lower()
        format_valid = block.get("is_format_valid") is True
    else:
        status = str(data.get("deliverability") or "").lower()
        format_flag = data.get("is_valid_format")
        if isinstance(format_flag, dict):
            format_flag = format_flag.get("value")
        format_valid = format_flag is True

    if not format_valid:
        return EmailValidationResult(valid=False, reason="Invalid email format")
    if status in ACCEPTED_EMAIL_STATUSES:
        return EmailValidationResult(valid=True, reason="Email is valid")
    return EmailValidationResult(valid=False, reason=f"Email issue: {status or 'unknown'}")


class DeliverabilityService:
    """Best-effort contact validation against AbstractAPI."""

    def __init__(self, timeout: Optional[float] = None):
        settings = get_settings()
        self.settings = settings
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def _lookup(self, url: str, params: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """GET a validation endpoint; None on any infrastructure failure."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            log_event("deliverability", f"Lookup transport failure: {exc!r}")
            return None
        if not response.is_success:
            log_event("deliverability", f"Lookup HTTP {response.status_code}: {response.text[:300]}")
            return None
        try:
            data = response.json()
        except ValueError:
            log_event("deliverability", "Lookup returned a non-JSON body")
            return None
        return data if isinstance(data, dict) else None

    async def validate_email(self, email: str) -> EmailValidationResult:
        email = (email or "").strip()
        if not is_valid_email_format(email):
            return EmailValidationResult(valid=False, reason="Invalid email format")
        if not self.settings.ABSTRACT_EMAIL_API_KEY:
            return EmailValidationResult(valid=True, reason="Email validation is not configured. Proceeding.")

        data = await self._lookup(
            self.settings.EMAIL_VALIDATION_URL,
            {"api_key": self.settings.ABSTRACT_EMAIL_API_KEY, "email": email},
        )
        if data is None:
            return EmailValidationResult(
                valid=True, reason="Validation service temporarily unavailable. Proceeding."
            )
        return interpret_email_payload(data)

    async def validate_phone(self, phone: str) -> PhoneValidationResult:
        cleaned = normalize_phone(phone)
        if cleaned is None:
            return PhoneValidationResult(
                valid=False, is_indian=None, reason="Phone number must contain only digits."
            )
        if not self.settings.ABSTRACT_PHONE_API_KEY:
            return PhoneValidationResult(
                valid=True, is_indian=None, reason="Phone validation is not configured. Proceeding."
            )

        data = await self._lookup(
            self.settings.PHONE_VALIDATION_URL,
            {"api_key": self.settings.ABSTRACT_PHONE_API_KEY, "phone": cleaned},
        )
        if data is None:
            return PhoneValidationResult(
                valid=True, is_indian=None, reason="Validation service unavailable. Proceeding."
            )

        country = data.get("country")
        if isinstance(country, dict):
            country = country.get("code")
        is_indian = isinstance(country, str) and country.upper() == INDIA_COUNTRY_CODE
        if not is_indian:
            return PhoneValidationResult(
                valid=False, is_indian=False, reason="Only Indian mobile numbers (+91) are accepted."
            )
        valid = data.get("valid") is True
        return PhoneValidationResult(
            valid=valid,
            is_indian=True,
            reason="Phone is valid" if valid else "Phone number appears invalid",
        )
