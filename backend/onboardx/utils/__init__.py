from onboardx.utils.validators import (
    validate_pan, is_valid_email_format, normalize_phone, parse_income, detect_employment,
)
from onboardx.utils.formatting import format_inr, to_fixed

__all__ = [
    "validate_pan", "is_valid_email_format", "normalize_phone", "parse_income",
    "detect_employment", "format_inr", "to_fixed",
]
