"""
Reglas puras de facturación: transiciones de estado, totales y numeración.

Sin acceso a base de datos; el servicio las aplica dentro de su transacción.
"""
import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, Optional

from app.common.exceptions import InvalidTransition, ValidationError
from app.modules.invoices.models import InvoiceStatus

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DEFAULT_PREFIX = "INV"
SEQUENCE_DIGITS = 6

ALLOWED_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.PENDING, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def money(value) -> Decimal:
    """Redondeo monetario a 2 decimales (half up)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def can_transition(current: InvoiceStatus, new: InvoiceStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: InvoiceStatus, new: InvoiceStatus) -> None:
    if not can_transition(current, new):
        raise InvalidTransition(
            f"Transición de estado inválida: {current.value} -> {new.value}"
        )


def calculate_item_total(quantity, unit_price, discount_amount=0) -> Decimal:
    """total = cantidad x precio unitario - descuento; nunca negativo."""
    total = money(Decimal(str(quantity)) * Decimal(str(unit_price)) - Decimal(str(discount_amount or 0)))
    if total < 0:
        raise ValidationError("El descuento del ítem no puede superar su valor")
    return total


def calculate_totals(subtotal, tax_rate=0, discount_rate=0) -> Dict[str, Decimal]:
    """
    Totales de la factura a partir del subtotal y de tasas en porcentaje.

    tax = subtotal x tax_rate / 100
    discount = subtotal x discount_rate / 100
    total = subtotal + tax - discount
    """
    subtotal = money(subtotal)
    tax_amount = money(subtotal * Decimal(str(tax_rate or 0)) / HUNDRED)
    discount_amount = money(subtotal * Decimal(str(discount_rate or 0)) / HUNDRED)
    return {
        "subtotal_amount": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
        "total_amount": money(subtotal + tax_amount - discount_amount),
    }


def invoice_prefix(company_name: Optional[str]) -> str:
    prefix = re.sub(r"[^A-Z]", "", (company_name or "")[:3].upper())
    return prefix or DEFAULT_PREFIX


def number_pattern(prefix: str, year: int, month: int) -> str:
    return f"{prefix}-{year:04d}{month:02d}-"


def format_invoice_number(prefix: str, year: int, month: int, sequence: int) -> str:
    return f"{number_pattern(prefix, year, month)}{sequence:0{SEQUENCE_DIGITS}d}"


def next_sequence(last_number: Optional[str]) -> int:
    """Secuencia siguiente a partir del último número emitido en el mes."""
    if not last_number:
        return 1
    try:
        return int(last_number.rsplit("-", 1)[1]) + 1
    except (IndexError, ValueError):
        return 1


def is_overdue(status: InvoiceStatus, due_date: Optional[date], today: date) -> bool:
    return status == InvoiceStatus.PENDING and due_date is not None and due_date < today


def days_past_due(status: InvoiceStatus, due_date: Optional[date], today: date) -> int:
    """Días de mora. Una factura PENDING vencida cuenta aunque aún no esté marcada OVERDUE."""
    if due_date is None:
        return 0
    if status == InvoiceStatus.OVERDUE or is_overdue(status, due_date, today):
        return max((today - due_date).days, 0)
    return 0
