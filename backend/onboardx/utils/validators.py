"""
Validators — Regex and rule-based checks for onboarding inputs.
None of these raise: a failed check is reported back so the chat can re-prompt.
"""
import re
from typing import NamedTuple, Optional

# 4th character encodes the holder category.
PAN_PATTERN = re.compile(r"^[A-Z]{3}[ABCFGHLJPT][A-Z]\d{4}[A-Z]$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-().]")
PHONE_DIGITS_PATTERN = re.compile(r"^\+?\d+$")
INCOME_STRIP_PATTERN = re.compile(r"[^0-9.]")
LEADING_NUMBER_PATTERN = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)")

PAN_FORMAT_REASON = (
    "PAN must be 10 characters: 5 letters, 4 digits and 1 letter (e.g. ABCPT1234F). "
    "The 4th letter is the holder type: P = Individual, C = Company, H = HUF, F = Firm, "
    "A = AOP, T = Trust, B = BOI, L = Local Authority, J = Artificial Juridical Person, "
    "G = Government."
)

SKIP_TOKEN = "skip"


class FormatCheck(NamedTuple):
    valid: bool
    reason: str


def validate_pan(pan: str | None) -> FormatCheck:
    """Validate Indian PAN structure on the upper-cased input."""
    if not pan or not pan.strip():
        return FormatCheck(False, "PAN number is missing. " + PAN_FORMAT_REASON)
    if PAN_PATTERN.match(pan.strip().upper()):
        return FormatCheck(True, "PAN format is valid")
    return FormatCheck(False, PAN_FORMAT_REASON)


def is_valid_email_format(email: str | None) -> bool:
    """Local pre-check run before any deliverability lookup."""
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def normalize_phone(phone: str | None) -> Optional[str]:
    """Strip spaces, dashes, dots and parentheses.

    Returns the cleaned number (optionally ``+``-prefixed digits), or None
    when the input does not reduce to digits.
    """
    if not phone:
        return None
    cleaned = PHONE_STRIP_PATTERN.sub("", phone)
    if not PHONE_DIGITS_PATTERN.match(cleaned):
        return None
    return cleaned


def is_skip(text: str | None) -> bool:
    return (text or "").strip().lower() == SKIP_TOKEN


def parse_income(text: str | None) -> Optional[float]:
    """Read a monthly income from free text such as "₹45,000 per month".

    Every character other than digits and dots is dropped, then the leading
    numeric prefix is read. Returns None when nothing numeric remains.
    """
    cleaned = INCOME_STRIP_PATTERN.sub("", text or "")
    match = LEADING_NUMBER_PATTERN.match(cleaned)
    if not match:
        return None
    return float(match.group(1))


def detect_employment(text: str | None) -> str:
    """Map free text to an employment type, or "" when nothing matches."""
    t = (text or "").lower()
    if "freelan" in t:
        return "freelancer"
    if "salar" in t:
        return "salaried"
    if "business" in t or "owner" in t:
        return "business"
    if "student" in t:
        return "student"
    return ""


def normalize_name(name: str | None) -> str:
    """Canonical form used to compare names across documents."""
    if not name:
        return ""
    letters = re.sub(r"[^a-zA-Z\s]", "", name)
    return " ".join(letters.split()).casefold()
