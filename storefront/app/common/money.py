from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£", "CAD": "$"}


def to_decimal(value: Any) -> Decimal:
    """Parse "12.5", 12.5 or a Decimal without rounding.

    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("a number is required")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return amount


def to_cents(value: Any) -> int:
    """Parse a decimal amount into integer cents, rounding half up."""
    amount = to_decimal(value)
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_amount(cents: int | None) -> float:
    return round((cents or 0) / 100, 2)


def format_money(cents: int | None, currency: str = "EUR") -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper(), "")
    amount = Decimal(cents or 0) / 100
    text = f"{amount:,.2f}"
    return f"{symbol}{text}" if symbol else f"{text} {currency}"
