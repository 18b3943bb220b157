import pytest

from onboardx.utils.formatting import format_inr, to_fixed
from onboardx.utils.validators import (
    detect_employment, is_skip, is_valid_email_format, normalize_name, normalize_phone,
    parse_income, validate_pan,
)


@pytest.mark.parametrize("pan", ["ABCPT1234F", "abcpt1234f", " AAACB1234Z "])
def test_valid_pans(pan):
    assert validate_pan(pan).valid is True


@pytest.mark.parametrize("pan", ["ABCD1234F", "ABCDE1234F", "ABCP11234F", "", None])
def test_invalid_pans_explain_the_structure(pan):
    valid, reason = validate_pan(pan)
    assert valid is False
    assert "10 characters" in reason
    assert "4th letter" in reason


@pytest.mark.parametrize("email,expected", [
    ("a@b.co", True),
    ("john.doe@gmail.com", True),
    ("a@b", False),
    ("skip", False),
    ("two words@x.com", False),
    ("", False),
])
def test_email_format(email, expected):
    assert is_valid_email_format(email) is expected


@pytest.mark.parametrize("raw,cleaned", [
    ("+91 98765-43210", "+919876543210"),
    ("(022) 1234.5678", "02212345678"),
    ("9876543210", "9876543210"),
])
def test_phone_normalization(raw, cleaned):
    assert normalize_phone(raw) == cleaned


@pytest.mark.parametrize("raw", ["98765abc", "call me", "", None, "+"])
def test_phone_rejects_non_digits(raw):
    assert normalize_phone(raw) is None


@pytest.mark.parametrize("text,amount", [
    ("45000", 45000.0),
    ("₹45,000", 45000.0),
    ("around 1,20,000 per month", 120000.0),
    ("45000.50", 45000.5),
    ("1.2.3", 1.2),
])
def test_parse_income(text, amount):
    assert parse_income(text) == amount


def test_parse_income_without_digits():
    assert parse_income("a lot") is None


@pytest.mark.parametrize("text,employment", [
    ("I'm a Freelancer", "freelancer"),
    ("I am salaried at Infosys", "salaried"),
    ("I run a small business", "business"),
    ("shop owner", "business"),
    ("still a student", "student"),
    ("hello there", ""),
])
def test_detect_employment(text, employment):
    assert detect_employment(text) == employment


def test_skip_token():
    assert is_skip("  SKIP ")
    assert not is_skip("skip it")


def test_name_normalization_ignores_case_and_spacing():
    assert normalize_name("Rahul  Kumar") == normalize_name("RAHUL KUMAR.")
    assert normalize_name(None) == ""


@pytest.mark.parametrize("amount,text", [
    (999, "₹999"),
    (100000, "₹1,00,000"),
    (1234567, "₹12,34,567"),
    (45000.5, "₹45,000.5"),
])
def test_format_inr_uses_indian_grouping(amount, text):
    assert format_inr(amount) == text


def test_to_fixed_rounds_half_up_on_exact_value():
    assert to_fixed(0.5) == "1"
    assert to_fixed(2.5) == "3"
    assert to_fixed(1.005, 2) == "1.00"
    assert to_fixed(14.8) == "15"
