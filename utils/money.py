from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def to_decimal(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Numbers and numeric strings -> Decimal. Floats go through str() so 0.1 stays 0.1."""
    if value is None or value == "" or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    amount = to_decimal(value, Decimal("0"))
    return f"${round_cents(amount):,.2f}"
