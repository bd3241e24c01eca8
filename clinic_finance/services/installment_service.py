"""Installment service - splits payments into dated installments."""
from datetime import date
from decimal import Decimal, ROUND_DOWN
import logging
from typing import Callable, List, Optional

from clinic_finance.database import UnitOfWork
from clinic_finance.exceptions import NotFoundError, ValidationError
from clinic_finance.models import (
    AuditAction, Payment, PaymentStatus, PaymentInstallment, InstallmentStatus
)
from clinic_finance.services.audit_service import log_action
from clinic_finance.utils.dates import add_months, parse_iso_date, parse_optional_date
from clinic_finance.utils.number_format import parse_amount, parse_positive_int

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def check_splittable(total: Decimal, count: int):
    """Every installment must carry at least one cent."""
    if total < CENT * count:
        raise ValidationError(
            f'{total} cannot be split into {count} installments of at least {CENT}',
            field='installments'
        )


def split_amount(total: Decimal, count: int) -> List[Decimal]:
    """
    Split ``total`` into ``count`` cent-exact parts.

    Every part is total/count rounded down to the cent; the leftover cents go
    to the final part, so the parts always sum to ``total``.

    Raises:
        ValidationError: if some part would be zero (total < count cents)

    Examples:
        split_amount(Decimal('300.00'), 3) -> [100.00, 100.00, 100.00]
        split_amount(Decimal('100.00'), 3) -> [33.33, 33.33, 33.34]
    """
    check_splittable(total, count)
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    parts = [base] * (count - 1)
    parts.append(total - base * (count - 1))
    return parts


def installment_due_dates(start: date, count: int) -> List[date]:
    """Due date of installment i is ``start`` shifted by i-1 months."""
    return [add_months(start, offset) for offset in range(count)]


def effective_installment_status(installment: PaymentInstallment, today: date) -> InstallmentStatus:
    """Stored status, reported as OVERDUE while pending past its due date."""
    if installment.status == InstallmentStatus.PENDING and installment.due_date < today:
        return InstallmentStatus.OVERDUE
    return installment.status


class InstallmentGenerator:
    """Builds and settles PaymentInstallment schedules."""

    def __init__(self, session, clock: Optional[Callable[[], date]] = None):
        self.session = session
        self.clock = clock or date.today

    def generate(self, payment_id: str, installment_count, total_amount, start: date = None) -> List[PaymentInstallment]:
        """
        Stage ``installment_count`` pending installments for a payment.

        The rows are added to the session and flushed but not committed: the
        caller owns the transaction (see PaymentService.create).

        Args:
            payment_id: Parent payment id
            installment_count: Number of installments (>= 1)
            total_amount: Amount to split
            start: Due date of the first installment (defaults to today)

        Returns:
            List of PaymentInstallment ordered by installment_number
        """
        count = parse_positive_int(installment_count, 'installments')
        total = parse_amount(total_amount, 'total_amount')
        first_due = start or self.clock()

        schedule = []
        amounts = split_amount(total, count)
        due_dates = installment_due_dates(first_due, count)
        for number, (amount, due_date) in enumerate(zip(amounts, due_dates), start=1):
            schedule.append(PaymentInstallment(
                payment_id=payment_id,
                installment_number=number,
                amount=amount,
                due_date=due_date,
                status=InstallmentStatus.PENDING
            ))

        self.session.add_all(schedule)
        self.session.flush()

        logger.debug(f"Staged {count} installments for payment {payment_id} (total {total})")
        return schedule

    def list_for_payment(self, payment_id: str) -> List[PaymentInstallment]:
        if self.session.get(Payment, payment_id) is None:
            raise NotFoundError(f'Payment {payment_id} not found')

        return (
            self.session.query(PaymentInstallment)
            .filter(PaymentInstallment.payment_id == payment_id)
            .order_by(PaymentInstallment.installment_number.asc())
            .all()
        )

    def _get(self, installment_id: str) -> PaymentInstallment:
        installment = self.session.get(PaymentInstallment, installment_id)
        if installment is None:
            raise NotFoundError(f'Installment {installment_id} not found')
        return installment

    def pay_installment(self, installment_id: str, paid_at=None) -> PaymentInstallment:
        """
        Mark one installment as paid.

        When the last open installment is settled the parent payment becomes
        paid as well.
        """
        installment = self._get(installment_id)

        if installment.status == InstallmentStatus.PAID:
            raise ValidationError('Installment is already paid', field='status')
        if installment.status == InstallmentStatus.CANCELLED:
            raise ValidationError('Cancelled installments cannot be paid', field='status')

        payment = installment.payment
        if payment.status != PaymentStatus.PENDING:
            raise ValidationError(
                f'Installments of a {payment.status.value} payment cannot be paid', field='status'
            )

        paid_on = parse_iso_date(paid_at, 'paid_at') if paid_at else self.clock()

        with UnitOfWork(self.session):
            installment.status = InstallmentStatus.PAID
            installment.paid_at = paid_on

            open_installments = [
                item for item in payment.installment_schedule
                if item.status not in (InstallmentStatus.PAID, InstallmentStatus.CANCELLED)
            ]
            if not open_installments:
                payment.status = PaymentStatus.PAID
                payment.payment_date = paid_on
                logger.info(f"Payment {payment.id} fully settled by installment {installment.installment_number}")

        log_action(
            self.session, AuditAction.INSTALLMENT_PAID, 'payment_installment', installment.id,
            {'payment_id': payment.id, 'paid_at': paid_on}
        )

        return installment

    def create_schedule(self, payment_id: str, installment_count, total_amount=None, start=None) -> List[PaymentInstallment]:
        """
        Generate and commit the installment schedule of an existing payment.

        Only pending payments without a schedule qualify. ``total_amount``
        defaults to the payment amount and must match it when given, so the
        installments always sum to the parent total.

        Args:
            payment_id: Parent payment id
            installment_count: Number of installments (>= 1)
            total_amount: Optional amount to split
            start: Optional ISO due date of the first installment

        Returns:
            List of committed PaymentInstallment
        """
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f'Payment {payment_id} not found')

        count = parse_positive_int(installment_count, 'installments')

        if payment.status != PaymentStatus.PENDING:
            raise ValidationError(
                f'Cannot generate installments for a {payment.status.value} payment', field='status'
            )
        if payment.installment_schedule:
            raise ValidationError('Payment already has an installment schedule', field='installments')
        if count < payment.installment_number:
            raise ValidationError(
                'installments cannot be lower than the payment installment_number', field='installments'
            )

        total = payment.amount
        if total_amount not in (None, ''):
            total = parse_amount(total_amount, 'total_amount')
            if total != payment.amount:
                raise ValidationError('total_amount must match the payment amount', field='total_amount')
        check_splittable(total, count)

        first_due = parse_optional_date(start, 'start_date') or self.clock()

        with UnitOfWork(self.session):
            payment.installments = count
            schedule = self.generate(payment.id, count, total, first_due)

        logger.info(f"Generated {count} installments for payment {payment.id}")
        log_action(
            self.session, AuditAction.INSTALLMENTS_GENERATED, 'payment', payment.id,
            {'installments': count, 'first_due_date': first_due}
        )
        return schedule

    def update_installment(self, installment_id: str, fields: dict) -> PaymentInstallment:
        """
        Correct the due date of a pending installment or mark it as paid.

        Amounts are not editable; they must keep summing to the parent total.
        Overdue is derived from the due date and cannot be stored. Paying goes
        through ``pay_installment`` so the parent payment settles with its
        last installment.
        """
        installment = self._get(installment_id)

        unknown = set(fields) - {'status', 'due_date'}
        if unknown:
            raise ValidationError(f'Fields not updatable: {", ".join(sorted(unknown))}')

        payment = installment.payment
        if payment.status != PaymentStatus.PENDING:
            raise ValidationError(
                f'Installments of a {payment.status.value} payment cannot be changed', field='status'
            )

        pay = False
        if 'status' in fields:
            try:
                new_status = InstallmentStatus(str(fields['status']).lower())
            except ValueError:
                raise ValidationError(f"Invalid installment status: {fields['status']}", field='status')

            if new_status == InstallmentStatus.OVERDUE:
                raise ValidationError('overdue is derived from the due date and cannot be set', field='status')
            if new_status != installment.status:
                if new_status != InstallmentStatus.PAID:
                    raise ValidationError(
                        f'Cannot change installment status from {installment.status.value} to {new_status.value}',
                        field='status'
                    )
                pay = True

        if 'due_date' in fields:
            if installment.status != InstallmentStatus.PENDING:
                raise ValidationError('Only pending installments can be rescheduled', field='due_date')
            new_due_date = parse_iso_date(fields['due_date'], 'due_date')
            for sibling in payment.installment_schedule:
                if sibling.id == installment.id:
                    continue
                if sibling.installment_number < installment.installment_number and sibling.due_date >= new_due_date:
                    raise ValidationError('due_date must be after the previous installment', field='due_date')
                if sibling.installment_number > installment.installment_number and sibling.due_date <= new_due_date:
                    raise ValidationError('due_date must be before the next installment', field='due_date')

            if new_due_date != installment.due_date:
                previous = installment.due_date
                with UnitOfWork(self.session):
                    installment.due_date = new_due_date
                log_action(
                    self.session, AuditAction.INSTALLMENT_RESCHEDULED, 'payment_installment', installment.id,
                    {'from': previous, 'to': new_due_date}
                )

        if pay:
            return self.pay_installment(installment.id)
        return installment
