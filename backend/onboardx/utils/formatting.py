"""
Number formatting helpers.

Displayed percentages must not drift between the server and any client,
so rounding is done on the exact binary value of the float, half away
from zero.
"""
from decimal import Decimal, ROUND_HALF_UP


def to_fixed(value: float, digits: int = 0) -> str:
    """Fixed-point rendering with half-up rounding of the exact float value."""
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def group_indian(integer_digits: str) -> str:
    """Apply en-IN digit grouping: last three digits, then pairs (12,34,567)."""
    if len(integer_digits) <= 3:
        return integer_digits
    head, tail = integer_digits[:-3], integer_digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_inr_amount(amount: float) -> str:
    """Render an amount the way en-IN locales do, with up to 3 fraction digits.

    >>> format_inr_amount(123456)
    '1,23,456'
    >>> format_inr_amount(45000.5)
    '45,000.5'
    """
    sign = "-" if amount < 0 else ""
    text = to_fixed(abs(amount), 3)
    integer_part, _, fraction = text.partition(".")
    fraction = fraction.rstrip("0")
    grouped = group_indian(integer_part)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_inr(amount: float) -> str:
    return f"₹{format_inr_amount(amount)}"
