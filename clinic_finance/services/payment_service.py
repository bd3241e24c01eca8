"""
Payment service - payment store with transactional ledger recording.

Creating a payment writes three things in one unit of work: the payment row,
its income ledger entry and, for multi-installment payments, the installment
schedule. Either all of them are committed or none is.
"""
from datetime import date
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import joinedload

from clinic_finance.database import UnitOfWork
from clinic_finance.exceptions import (
    FinanceError, LedgerConsistencyError, NotFoundError,
    ReferentialIntegrityError, ValidationError
)
from clinic_finance.models import (
    Appointment, AuditAction, InstallmentStatus, Payment, PaymentStatus,
    PAYMENT_STATUS_TRANSITIONS, TransactionType,
    normalize_payment_method, normalize_payment_status
)
from clinic_finance.services.audit_service import log_action
from clinic_finance.services.installment_service import InstallmentGenerator, check_splittable
from clinic_finance.services.ledger_service import LedgerRecorder
from clinic_finance.utils.dates import parse_iso_date, parse_optional_date
from clinic_finance.utils.number_format import parse_amount, parse_positive_int

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    'amount', 'payment_method', 'payment_date', 'status',
    'notes', 'transaction_id', 'due_date'
}


def _method(value):
    try:
        return normalize_payment_method(value)
    except ValueError as e:
        raise ValidationError(str(e), field='payment_method')


def _status(value):
    try:
        return normalize_payment_status(value)
    except ValueError as e:
        raise ValidationError(str(e), field='status')


def _metrics_payment_created():
    try:
        from clinic_finance.blueprints.metrics import payments_created_total
        payments_created_total.inc()
    except Exception as e:
        logger.debug(f"Payment metric not recorded: {e}")


class PaymentService:
    """CRUD over payments plus the payment lifecycle operations."""

    def __init__(
        self,
        session,
        ledger: Optional[LedgerRecorder] = None,
        installments: Optional[InstallmentGenerator] = None,
        clock: Optional[Callable[[], date]] = None,
        ledger_category: str = 'consultation'
    ):
        self.session = session
        self.clock = clock or date.today
        self.ledger = ledger or LedgerRecorder(session, self.clock)
        self.installments = installments or InstallmentGenerator(session, self.clock)
        self.ledger_category = ledger_category

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _validate_create(self, data: dict) -> dict:
        appointment_id = data.get('appointment_id')
        if not appointment_id:
            raise ValidationError('appointment_id is required', field='appointment_id')

        if data.get('payment_method') in (None, ''):
            raise ValidationError('payment_method is required', field='payment_method')

        installments = parse_positive_int(data.get('installments'), 'installments', default=1)
        installment_number = parse_positive_int(data.get('installment_number'), 'installment_number', default=1)
        if installment_number > installments:
            raise ValidationError(
                'installment_number cannot be greater than installments',
                field='installment_number'
            )

        amount = parse_amount(data.get('amount'))
        check_splittable(amount, installments)

        status = _status(data['status']) if data.get('status') else PaymentStatus.PENDING
        payment_date = parse_optional_date(data.get('payment_date'), 'payment_date')
        if status == PaymentStatus.PAID and payment_date is None:
            payment_date = self.clock()

        return {
            'appointment_id': str(appointment_id),
            'amount': amount,
            'payment_method': _method(data.get('payment_method')),
            'status': status,
            'payment_date': payment_date,
            'due_date': parse_optional_date(data.get('due_date'), 'due_date'),
            'installments': installments,
            'installment_number': installment_number,
            'notes': data.get('notes'),
            'transaction_id': data.get('transaction_id'),
            'recorded_on': self.clock(),
        }

    def create(self, data: dict) -> Payment:
        """
        Create a payment together with its ledger entry and installments.

        Args:
            data: dict with appointment_id, amount, payment_method and the
                optional status, installments, installment_number, due_date,
                payment_date, notes, transaction_id

        Returns:
            The committed Payment

        Raises:
            ValidationError: malformed input
            ReferentialIntegrityError: appointment does not exist
            LedgerConsistencyError: the combined write could not be committed
        """
        fields = self._validate_create(data)

        if self.session.get(Appointment, fields['appointment_id']) is None:
            raise ReferentialIntegrityError(
                f"Appointment {fields['appointment_id']} does not exist",
                payload={'field': 'appointment_id'}
            )

        try:
            with UnitOfWork(self.session) as uow:
                payment = uow.add(Payment(**fields))
                uow.flush()

                self.ledger.stage({
                    'payment_id': payment.id,
                    'transaction_type': TransactionType.INCOME,
                    'amount': payment.amount,
                    'description': f'Payment for appointment {payment.appointment_id}',
                    'category': self.ledger_category,
                    'transaction_date': payment.recorded_on,
                })

                if payment.installments > 1:
                    self.installments.generate(payment.id, payment.installments, payment.amount)

        except FinanceError:
            raise
        except Exception as e:
            logger.error(f"Payment for appointment {fields['appointment_id']} rolled back: {e}")
            raise LedgerConsistencyError(
                f'Payment and ledger entry could not be recorded together: {e}'
            ) from e

        _metrics_payment_created()
        logger.info(
            f"Payment {payment.id} created: {payment.amount} for appointment "
            f"{payment.appointment_id} ({payment.installments} installment(s))"
        )
        log_action(
            self.session, AuditAction.PAYMENT_CREATED, 'payment', payment.id,
            {'amount': payment.amount, 'installments': payment.installments}
        )
        return payment

    def _settle_installments(self, payment: Payment, paid_on: date):
        for installment in payment.installment_schedule:
            if installment.status in (InstallmentStatus.PENDING, InstallmentStatus.OVERDUE):
                installment.status = InstallmentStatus.PAID
                installment.paid_at = paid_on

    def _cancel_installments(self, payment: Payment):
        for installment in payment.installment_schedule:
            if installment.status in (InstallmentStatus.PENDING, InstallmentStatus.OVERDUE):
                installment.status = InstallmentStatus.CANCELLED

    def update(self, payment_id: str, fields: dict) -> Payment:
        """
        Apply a partial update.

        Status changes must follow pending→paid, pending→cancelled or
        paid→refunded. The amount of a payment with an installment schedule
        cannot change.
        """
        payment = self.get_by_id(payment_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f'Fields not updatable: {", ".join(sorted(unknown))}')

        changes = {}
        if 'amount' in fields:
            amount = parse_amount(fields['amount'])
            if amount != payment.amount and payment.installment_schedule:
                raise ValidationError(
                    'amount cannot change once installments were generated', field='amount'
                )
            changes['amount'] = amount

        if 'payment_method' in fields:
            changes['payment_method'] = _method(fields['payment_method'])

        if 'due_date' in fields:
            changes['due_date'] = parse_optional_date(fields['due_date'], 'due_date')

        if 'payment_date' in fields:
            changes['payment_date'] = parse_optional_date(fields['payment_date'], 'payment_date')

        for key in ('notes', 'transaction_id'):
            if key in fields:
                changes[key] = fields[key]

        new_status = payment.status
        if 'status' in fields:
            new_status = _status(fields['status'])
            if new_status != payment.status and new_status not in PAYMENT_STATUS_TRANSITIONS[payment.status]:
                raise ValidationError(
                    f'Cannot change status from {payment.status.value} to {new_status.value}',
                    field='status'
                )

        status_changed = new_status != payment.status

        with UnitOfWork(self.session):
            for key, value in changes.items():
                setattr(payment, key, value)

            if status_changed:
                payment.status = new_status
                if new_status == PaymentStatus.PAID:
                    if payment.payment_date is None:
                        payment.payment_date = self.clock()
                    self._settle_installments(payment, payment.payment_date)
                elif new_status == PaymentStatus.CANCELLED:
                    self._cancel_installments(payment)

        logger.info(f"Payment {payment.id} updated: {sorted(set(changes) | ({'status'} if status_changed else set()))}")
        log_action(
            self.session, AuditAction.PAYMENT_UPDATED, 'payment', payment.id,
            {key: fields[key] for key in fields}
        )
        return payment

    def process_payment(self, payment_id: str, payment_method, transaction_id: str = None, notes: str = None) -> dict:
        """
        Settle a pending payment.

        Sets status paid and payment_date today, stores the method, external
        transaction id and notes, and marks open installments as paid. The
        income ledger entry was already written when the payment was created,
        so no second entry is added here.

        Returns:
            {'message': str, 'payment_id': str}
        """
        payment = self.get_by_id(payment_id)

        if payment.status != PaymentStatus.PENDING:
            raise ValidationError(
                f'Only pending payments can be processed (current status: {payment.status.value})',
                field='status'
            )

        method = _method(payment_method)
        today = self.clock()

        with UnitOfWork(self.session):
            payment.status = PaymentStatus.PAID
            payment.payment_date = today
            payment.payment_method = method
            if transaction_id is not None:
                payment.transaction_id = transaction_id
            if notes is not None:
                payment.notes = notes
            self._settle_installments(payment, today)

        logger.info(f"Payment {payment.id} processed via {method.value}")
        log_action(
            self.session, AuditAction.PAYMENT_PROCESSED, 'payment', payment.id,
            {'payment_method': method.value, 'transaction_id': transaction_id}
        )
        return {'message': 'Payment processed successfully', 'payment_id': payment.id}

    def delete(self, payment_id: str) -> None:
        """
        Remove a payment and its installments (administrative correction only).

        Ledger rows are left untouched.
        """
        payment = self.get_by_id(payment_id)

        with UnitOfWork(self.session) as uow:
            uow.delete(payment)

        logger.warning(f"Payment {payment_id} deleted by administrative correction")
        log_action(self.session, AuditAction.PAYMENT_DELETED, 'payment', payment_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, payment_id: str) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f'Payment {payment_id} not found')
        return payment

    def get_with_details(self, payment_id: str) -> Payment:
        """Payment with appointment, patient and doctor eagerly loaded."""
        payment = (
            self.session.query(Payment)
            .options(
                joinedload(Payment.appointment).joinedload(Appointment.patient),
                joinedload(Payment.appointment).joinedload(Appointment.doctor)
            )
            .filter(Payment.id == payment_id)
            .first()
        )
        if payment is None:
            raise NotFoundError(f'Payment {payment_id} not found')
        return payment

    def list_by_appointment(self, appointment_id: str) -> List[Payment]:
        """Payments of one appointment, newest first."""
        return (
            self.session.query(Payment)
            .filter(Payment.appointment_id == appointment_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    def list_by_patient(self, patient_id: str) -> List[Payment]:
        """Payments of every appointment of a patient, newest first."""
        return (
            self.session.query(Payment)
            .join(Appointment, Payment.appointment_id == Appointment.id)
            .options(joinedload(Payment.appointment))
            .filter(Appointment.patient_id == patient_id)
            .order_by(Payment.created_at.desc())
            .all()
        )
