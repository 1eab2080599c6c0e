from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping

from formatters import to_cents, to_decimal


def line_field(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


def line_quantity(line: Any) -> int:
    try:
        qty = int(line_field(line, "quantity", 1))
    except (TypeError, ValueError):
        return 1
    return qty if qty >= 1 else 1


def line_subtotal(line: Any) -> Decimal:
    return to_decimal(line_field(line, "price")) * line_quantity(line)


def compute_total(lines: Iterable[Any]) -> Decimal:
    """Sum of price x quantity, rounded to cents. Unusable prices count as 0."""
    return to_cents(sum((line_subtotal(line) for line in lines), Decimal("0")))
