from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENT = Decimal("0.01")
CURRENCY_SYMBOL = "R$"

_NON_DIGITS = re.compile(r"\D")


def to_number(value: Any) -> float:
    """Coerce a price-like value to float, degrading anything non-numeric to 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def to_decimal(value: Any) -> Decimal:
    return Decimal(str(to_number(value)))


def to_cents(value: Any) -> Decimal:
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Any) -> str:
    # pt-BR: "." groups thousands, "," separates cents
    amount = f"{to_cents(value):,.2f}"
    amount = amount.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{CURRENCY_SYMBOL} {amount}"


def parse_money(text: str) -> Decimal:
    digits = text.replace(CURRENCY_SYMBOL, "").strip()
    return Decimal(digits.replace(".", "").replace(",", "."))


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def format_phone(number: str) -> str:
    cleaned = digits_only(number)
    if len(cleaned) == 11:
        return f"({cleaned[:2]}) {cleaned[2:7]}-{cleaned[7:]}"
    if len(cleaned) == 13 and cleaned.startswith("55"):
        return f"({cleaned[2:4]}) {cleaned[4:9]}-{cleaned[9:]}"
    return number
