"""
Reporting service - financial summaries and dashboard aggregates.

Each figure is fetched by its own query; results composed from several
queries are not snapshot-consistent under concurrent writes.
"""
from datetime import date
from decimal import Decimal
import logging
from typing import Callable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from clinic_finance.exceptions import NotFoundError, ValidationError
from clinic_finance.models import (
    Appointment, FinancialTransaction, Patient, Payment, PaymentStatus, TransactionType
)
from clinic_finance.services.ledger_service import range_clause
from clinic_finance.services.overdue_service import is_overdue
from clinic_finance.utils.dates import parse_iso_date, parse_optional_date

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Cancelled and refunded charges are not revenue of any kind
REVENUE_STATUSES = (PaymentStatus.PAID, PaymentStatus.PENDING)


def _to_decimal(value) -> Decimal:
    """Safe conversion of aggregate results (None, float, int) to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def _parse_required_range(start, end):
    start_date = parse_iso_date(start, 'start_date')
    end_date = parse_iso_date(end, 'end_date')
    if start_date > end_date:
        raise ValidationError('start_date must not be after end_date', field='start_date')
    return start_date, end_date


class ReportingService:
    """Aggregations over payments and the ledger."""

    def __init__(self, session, clock: Optional[Callable[[], date]] = None):
        self.session = session
        self.clock = clock or date.today

    def _sum_transactions(self, transaction_type: TransactionType, start: date, end: date) -> Decimal:
        total = self.session.query(
            func.coalesce(func.sum(FinancialTransaction.amount), 0)
        ).filter(range_clause(start, end, transaction_type)).scalar()
        return _to_decimal(total)

    def _total_pending(self) -> Decimal:
        total = self.session.query(
            func.coalesce(func.sum(Payment.amount), 0)
        ).filter(
            Payment.status == PaymentStatus.PENDING
        ).scalar()
        return _to_decimal(total)

    def get_financial_summary(self, start, end) -> dict:
        """
        Income and expenses for a period plus the current outstanding balance.

        Args:
            start: Start date (inclusive), required
            end: End date (inclusive), required

        Returns:
            dict with keys:
            - totalIncome, totalExpenses, netIncome: Decimal (period-scoped)
            - totalPending: Decimal, every pending payment regardless of period
            - period: {'startDate': str, 'endDate': str}

        Raises:
            ValidationError: when a date is missing or malformed
        """
        start_date, end_date = _parse_required_range(start, end)

        total_income = self._sum_transactions(TransactionType.INCOME, start_date, end_date)
        total_expenses = self._sum_transactions(TransactionType.EXPENSE, start_date, end_date)
        total_pending = self._total_pending()

        return {
            'totalIncome': total_income,
            'totalExpenses': total_expenses,
            'netIncome': total_income - total_expenses,
            'totalPending': total_pending,
            'period': {
                'startDate': start_date.isoformat(),
                'endDate': end_date.isoformat(),
            },
        }

    def calculate_revenue(self, start, end) -> dict:
        """Ledger revenue for a period, with the number of transactions behind it."""
        start_date, end_date = _parse_required_range(start, end)

        total_revenue = self._sum_transactions(TransactionType.INCOME, start_date, end_date)
        total_expenses = self._sum_transactions(TransactionType.EXPENSE, start_date, end_date)
        transaction_count = self.session.query(func.count(FinancialTransaction.id)).filter(
            range_clause(start_date, end_date)
        ).scalar() or 0

        return {
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'total_revenue': total_revenue,
            'total_expenses': total_expenses,
            'net_revenue': total_revenue - total_expenses,
            'transaction_count': transaction_count,
        }

    def get_financial_dashboard(self, start=None, end=None) -> dict:
        """
        Revenue split by derived payment state.

        Buckets are mutually exclusive: paid, pending (not overdue) and
        overdue. Cancelled and refunded payments are left out. The optional
        range filters on the date the payment was recorded
        (the same clock date as its income ledger entry); without it every payment
        is covered. Appointment counts are distinct appointments per bucket;
        total_appointments counts each appointment once.

        Returns:
            dict with keys:
            - total_revenue, paid_revenue, pending_revenue, overdue_revenue
            - total_appointments, paid_appointments, pending_appointments, overdue_appointments
            - average_appointment_value: Decimal
            - payment_rate_percentage: float, 0 when there is no revenue
        """
        start_date = parse_optional_date(start, 'start_date')
        end_date = parse_optional_date(end, 'end_date')
        if start_date and end_date and start_date > end_date:
            raise ValidationError('start_date must not be after end_date', field='start_date')

        query = self.session.query(Payment).filter(Payment.status.in_(REVENUE_STATUSES))
        if start_date:
            query = query.filter(Payment.recorded_on >= start_date)
        if end_date:
            query = query.filter(Payment.recorded_on <= end_date)

        today = self.clock()
        paid_revenue = pending_revenue = overdue_revenue = ZERO
        paid_ids, pending_ids, overdue_ids = set(), set(), set()

        for payment in query.all():
            amount = _to_decimal(payment.amount)
            if payment.status == PaymentStatus.PAID:
                paid_revenue += amount
                paid_ids.add(payment.appointment_id)
            elif is_overdue(payment, today):
                overdue_revenue += amount
                overdue_ids.add(payment.appointment_id)
            else:
                pending_revenue += amount
                pending_ids.add(payment.appointment_id)

        total_revenue = paid_revenue + pending_revenue + overdue_revenue
        total_count = len(paid_ids | pending_ids | overdue_ids)

        average_value = (total_revenue / total_count).quantize(CENT) if total_count else ZERO
        payment_rate = float(paid_revenue / total_revenue * 100) if total_revenue > 0 else 0.0

        return {
            'total_revenue': total_revenue,
            'paid_revenue': paid_revenue,
            'pending_revenue': pending_revenue,
            'overdue_revenue': overdue_revenue,
            'total_appointments': total_count,
            'paid_appointments': len(paid_ids),
            'pending_appointments': len(pending_ids),
            'overdue_appointments': len(overdue_ids),
            'average_appointment_value': average_value,
            'payment_rate_percentage': round(payment_rate, 2),
        }

    def get_accounts_receivable(self) -> List[Payment]:
        """Pending payments with display joins, earliest due date first (undated last)."""
        return (
            self.session.query(Payment)
            .options(
                joinedload(Payment.appointment).joinedload(Appointment.patient),
                joinedload(Payment.appointment).joinedload(Appointment.doctor)
            )
            .filter(Payment.status == PaymentStatus.PENDING)
            .order_by(
                case((Payment.due_date.is_(None), 1), else_=0),
                Payment.due_date.asc(),
                Payment.created_at.asc()
            )
            .all()
        )

    def get_patient_financial_summary(self, patient_id: str) -> dict:
        """
        Totals across every appointment of one patient.

        Raises:
            NotFoundError: unknown patient
        """
        patient = self.session.get(Patient, patient_id)
        if patient is None:
            raise NotFoundError(f'Patient {patient_id} not found')

        total_appointments = self.session.query(func.count(Appointment.id)).filter(
            Appointment.patient_id == patient_id
        ).scalar() or 0

        payments = (
            self.session.query(Payment)
            .join(Appointment, Payment.appointment_id == Appointment.id)
            .filter(Appointment.patient_id == patient_id)
            .all()
        )

        today = self.clock()
        total_paid = total_pending = total_overdue = ZERO
        last_payment_date = None

        for payment in payments:
            amount = _to_decimal(payment.amount)
            if payment.status == PaymentStatus.PAID:
                total_paid += amount
                if payment.payment_date and (last_payment_date is None or payment.payment_date > last_payment_date):
                    last_payment_date = payment.payment_date
            elif payment.status == PaymentStatus.PENDING:
                total_pending += amount
                if is_overdue(payment, today):
                    total_overdue += amount

        return {
            'patient_id': patient.id,
            'patient_name': patient.name,
            'total_appointments': total_appointments,
            'total_amount': total_paid + total_pending,
            'total_paid': total_paid,
            'total_pending': total_pending,
            'total_overdue': total_overdue,
            'payments_count': len(payments),
            'last_payment_date': last_payment_date.isoformat() if last_payment_date else None,
        }
