"""
Formatting utilities for API payloads and CLI output.
Numbers, money and dates in Brazilian style.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional

from clinic_finance.models import PaymentMethod, PaymentStatus
from clinic_finance.services.overdue_service import is_overdue_status


PAYMENT_METHOD_LABELS = {
    PaymentMethod.CASH: 'Dinheiro',
    PaymentMethod.CREDIT_CARD: 'Cartão de Crédito',
    PaymentMethod.DEBIT_CARD: 'Cartão de Débito',
    PaymentMethod.PIX: 'PIX',
    PaymentMethod.BANK_TRANSFER: 'Transferência Bancária',
    PaymentMethod.CHECK: 'Cheque',
    PaymentMethod.INSURANCE: 'Convênio',
}

PAYMENT_STATUS_LABELS = {
    PaymentStatus.PENDING: 'Pendente',
    PaymentStatus.PAID: 'Pago',
    PaymentStatus.CANCELLED: 'Cancelado',
    PaymentStatus.REFUNDED: 'Reembolsado',
}

OVERDUE_LABEL = 'Em Atraso'


def _group_thousands(integer_part: str) -> str:
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    return '.'.join(groups)[::-1]


def format_currency(value: Union[int, float, Decimal, str, None], symbol: str = 'R$') -> str:
    """
    Format a monetary amount with exactly 2 decimals and a currency symbol.

    Examples:
        format_currency(150) -> "R$ 150,00"
        format_currency(1250.5) -> "R$ 1.250,50"
        format_currency(-10) -> "-R$ 10,00"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    integer_part, decimal_part = f"{abs(num):.2f}".split(".")

    return f"{sign}{symbol} {_group_thousands(integer_part)},{decimal_part}"


def date_br(value: Union[date, datetime, None]) -> str:
    """
    Format a date as DD/MM/YYYY.

    Examples:
        date_br(date(2026, 1, 12)) -> "12/01/2026"
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")


def payment_method_label(method) -> str:
    """Human label for a payment method (enum or raw value)."""
    try:
        return PAYMENT_METHOD_LABELS[PaymentMethod(method) if isinstance(method, str) else method]
    except (KeyError, ValueError):
        return str(method)


def _as_status(status):
    if isinstance(status, str):
        try:
            return PaymentStatus(status)
        except ValueError:
            return None
    return status


def payment_status_label(status, due_date: Optional[date] = None, today: Optional[date] = None) -> str:
    """
    Human label for a payment status.

    A pending payment past its due date is labelled as overdue.
    """
    status_member = _as_status(status)
    if status_member is not None and is_overdue_status(status_member, due_date, today or date.today()):
        return OVERDUE_LABEL
    return PAYMENT_STATUS_LABELS.get(status_member, str(status))
