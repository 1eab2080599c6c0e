"""
WhatsApp handoff helpers: destination number normalization, order/contact
message rendering and deep-link construction.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional
from urllib.parse import quote

from formatters import digits_only, money
from pricing import line_field, line_quantity, line_subtotal

COUNTRY_CODE = "55"
PLACEHOLDER = "N/A"

# same reserved set as JavaScript's encodeURIComponent
_URI_SAFE = "-_.!~*'()"


def normalize_phone(number: Optional[str]) -> str:
    cleaned = digits_only(number or "")
    if len(cleaned) <= 11 and not cleaned.startswith(COUNTRY_CODE):
        cleaned = COUNTRY_CODE + cleaned
    return cleaned


def build_whatsapp_url(base_url: str, phone: str, text: Optional[str] = None) -> str:
    url = f"{base_url.rstrip('/')}/{normalize_phone(phone)}"
    if text:
        url += f"?text={quote(text, safe=_URI_SAFE)}"
    return url


def render_order_message(
    store_name: str,
    customer_name: str,
    customer_phone: str,
    customer_city: str,
    lines: Iterable[Any],
    total: Decimal,
    notes: Optional[str] = None,
) -> str:
    parts = [
        f"*{store_name}*",
        "Olá, gostaria de fazer um pedido:",
        "",
        f"*Cliente:* {customer_name}",
        f"*Telefone:* {customer_phone}",
        f"*Cidade:* {customer_city}",
        "",
        "*Produtos:*",
    ]
    for n, line in enumerate(lines, start=1):
        parts.append(
            f"{n}. {line_field(line, 'name', '')}"
            f" | Cor: {line_field(line, 'selected_color') or PLACEHOLDER}"
            f" | Tecido: {line_field(line, 'selected_fabric') or PLACEHOLDER}"
            f" | Qtd: {line_quantity(line)}"
            f" | Subtotal: {money(line_subtotal(line))}"
        )
    if notes:
        parts += ["", f"*Observações:* {notes}"]
    parts += ["", f"*Total Estimado:* {money(total)}"]
    return "\n".join(parts)


def render_contact_message(name: str, subject: str, message: str) -> str:
    return f"Olá, meu nome é {name}. Assunto: {subject}. Mensagem: {message}"
