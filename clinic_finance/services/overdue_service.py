"""
Overdue detection and payment alerts.

Overdue is never stored: a payment is overdue when it is still pending, has a
due date, and that due date is before the evaluation date. Every read path
(lists, dashboard, alerts, labels) goes through ``is_overdue_status`` or its
SQL twin ``overdue_clause``.
"""
from datetime import date
import logging
from typing import Callable, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import joinedload

from clinic_finance.models import Appointment, Payment, PaymentStatus
from clinic_finance.utils.dates import days_between

logger = logging.getLogger(__name__)

PRIORITY_CRITICAL = 'critical'
PRIORITY_HIGH = 'high'
PRIORITY_MEDIUM = 'medium'

PRIORITY_SEVERITY = {
    PRIORITY_CRITICAL: 3,
    PRIORITY_HIGH: 2,
    PRIORITY_MEDIUM: 1,
}


def is_overdue_status(status: PaymentStatus, due_date: Optional[date], today: date) -> bool:
    """Overdue predicate on raw field values."""
    return (
        status == PaymentStatus.PENDING and
        due_date is not None and
        due_date < today
    )


def is_overdue(payment: Payment, today: date) -> bool:
    """Check whether a payment is overdue at ``today``."""
    return is_overdue_status(payment.status, payment.due_date, today)


def overdue_clause(today: date):
    """SQL filter equivalent to ``is_overdue`` for use in queries."""
    return and_(
        Payment.status == PaymentStatus.PENDING,
        Payment.due_date.isnot(None),
        Payment.due_date < today
    )


def days_overdue(payment: Payment, today: date) -> int:
    """Days since the due date, 0 when the payment is not overdue."""
    if not is_overdue(payment, today):
        return 0
    return days_between(payment.due_date, today)


def alert_priority(days: int, critical_days: int = 30, high_days: int = 14) -> Optional[str]:
    """
    Map days overdue to an alert tier.

    Returns:
        'critical', 'high', 'medium' or None when no alert applies
    """
    if days >= critical_days:
        return PRIORITY_CRITICAL
    if days >= high_days:
        return PRIORITY_HIGH
    if days >= 1:
        return PRIORITY_MEDIUM
    return None


class OverdueService:
    """Derives overdue lists and prioritized alerts from current payment data."""

    def __init__(
        self,
        session,
        clock: Optional[Callable[[], date]] = None,
        critical_days: int = 30,
        high_days: int = 14
    ):
        self.session = session
        self.clock = clock or date.today
        self.critical_days = critical_days
        self.high_days = high_days

    def _overdue_query(self, today: date):
        return (
            self.session.query(Payment)
            .options(
                joinedload(Payment.appointment).joinedload(Appointment.patient),
                joinedload(Payment.appointment).joinedload(Appointment.doctor)
            )
            .filter(overdue_clause(today))
        )

    def list_overdue(self) -> List[Payment]:
        """Overdue payments, earliest due date first."""
        today = self.clock()
        return (
            self._overdue_query(today)
            .order_by(Payment.due_date.asc(), Payment.created_at.asc())
            .all()
        )

    def count_overdue(self) -> int:
        """Number of payments overdue right now."""
        today = self.clock()
        return self.session.query(Payment).filter(overdue_clause(today)).count()

    def generate_alerts(self) -> List[dict]:
        """
        Build fresh alerts for every overdue payment.

        Returns:
            List of dicts with keys:
            - alert_type, alert_message
            - payment_id, patient_name, patient_phone
            - amount: Decimal
            - due_date: date
            - days_overdue: int
            - priority: 'critical' | 'high' | 'medium'

            Ordered by priority severity, then days overdue, both descending.
        """
        today = self.clock()
        alerts = []

        for payment in self._overdue_query(today).all():
            days = days_overdue(payment, today)
            priority = alert_priority(days, self.critical_days, self.high_days)
            if priority is None:
                continue

            patient = payment.appointment.patient if payment.appointment else None
            alerts.append({
                'alert_type': 'overdue_payment',
                'alert_message': f'Payment overdue for {days} days',
                'payment_id': payment.id,
                'patient_name': patient.name if patient else None,
                'patient_phone': patient.phone if patient else None,
                'amount': payment.amount,
                'due_date': payment.due_date,
                'days_overdue': days,
                'priority': priority,
            })

        alerts.sort(key=lambda a: (PRIORITY_SEVERITY[a['priority']], a['days_overdue']), reverse=True)

        logger.debug(f"Generated {len(alerts)} payment alerts for {today.isoformat()}")
        return alerts
