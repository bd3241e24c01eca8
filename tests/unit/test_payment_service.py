"""
Unit tests for PaymentService: creation with ledger entry, lifecycle and reads.
"""
import pytest
from datetime import date
from decimal import Decimal

from clinic_finance.exceptions import (
    LedgerConsistencyError, NotFoundError, ReferentialIntegrityError, ValidationError
)
from clinic_finance.models import (
    AuditAction, AuditLog, FinancialTransaction, InstallmentStatus, Payment,
    PaymentInstallment, PaymentMethod, PaymentStatus, TransactionType
)
from clinic_finance.services.ledger_service import LedgerRecorder
from clinic_finance.services.payment_service import PaymentService


class FailingLedger(LedgerRecorder):
    """Ledger whose staging step blows up after the payment row was flushed."""

    def stage(self, entry):
        raise RuntimeError('ledger store unavailable')


class TestCreatePayment:

    def test_create_writes_exactly_one_income_entry(self, make_payment, session):
        payment = make_payment(amount='250.00')

        entries = session.query(FinancialTransaction).filter_by(payment_id=payment.id).all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.transaction_type == TransactionType.INCOME
        assert entry.amount == Decimal('250.00')
        assert entry.category == 'consultation'
        assert entry.transaction_date == date(2026, 3, 15)
        assert entry.description == f'Payment for appointment {payment.appointment_id}'

    def test_defaults(self, make_payment):
        payment = make_payment()

        assert payment.status == PaymentStatus.PENDING
        assert payment.payment_method == PaymentMethod.PIX
        assert payment.installments == 1
        assert payment.installment_number == 1
        assert payment.payment_date is None

    def test_paid_on_creation_gets_payment_date(self, make_payment):
        payment = make_payment(status='paid')
        assert payment.status == PaymentStatus.PAID
        assert payment.payment_date == date(2026, 3, 15)

    def test_brazilian_amount_is_accepted(self, make_payment):
        payment = make_payment(amount='1.250,50')
        assert payment.amount == Decimal('1250.50')

    def test_ledger_category_is_configurable(self, session, appointment, clock):
        service = PaymentService(session, clock=clock, ledger_category='procedure')
        payment = service.create({'appointment_id': appointment.id, 'amount': 90, 'payment_method': 'cash'})

        entry = session.query(FinancialTransaction).filter_by(payment_id=payment.id).one()
        assert entry.category == 'procedure'

    @pytest.mark.parametrize('overrides, field', [
        ({'amount': 0}, 'amount'),
        ({'amount': '-5'}, 'amount'),
        ({'amount': 'abc'}, 'amount'),
        ({'installments': 0}, 'installments'),
        ({'installment_number': 0}, 'installment_number'),
        ({'installments': 2, 'installment_number': 3}, 'installment_number'),
        ({'installments': 1.5}, 'installments'),
        ({'amount': '0.10', 'installments': 12}, 'installments'),
        ({'payment_method': 'bitcoin'}, 'payment_method'),
        ({'payment_method': None}, 'payment_method'),
        ({'status': 'lost'}, 'status'),
        ({'due_date': '15/03/2026'}, 'due_date'),
        ({'appointment_id': ''}, 'appointment_id'),
    ])
    def test_invalid_input_is_rejected(self, make_payment, session, overrides, field):
        with pytest.raises(ValidationError) as exc:
            make_payment(**overrides)

        assert exc.value.field == field
        assert session.query(Payment).count() == 0
        assert session.query(FinancialTransaction).count() == 0

    def test_unknown_appointment(self, payment_service, session):
        with pytest.raises(ReferentialIntegrityError):
            payment_service.create({
                'appointment_id': 'does-not-exist',
                'amount': '100.00',
                'payment_method': 'cash',
            })
        assert session.query(Payment).count() == 0

    def test_ledger_failure_rolls_back_payment(self, session, appointment, clock):
        service = PaymentService(session, ledger=FailingLedger(session, clock), clock=clock)

        with pytest.raises(LedgerConsistencyError):
            service.create({
                'appointment_id': appointment.id,
                'amount': '300.00',
                'payment_method': 'credit_card',
                'installments': 3,
            })

        assert session.query(Payment).count() == 0
        assert session.query(PaymentInstallment).count() == 0
        assert session.query(FinancialTransaction).count() == 0

    def test_creation_is_audited(self, make_payment, session):
        payment = make_payment()

        audit = session.query(AuditLog).filter_by(resource_id=payment.id).one()
        assert audit.action == AuditAction.PAYMENT_CREATED
        assert audit.resource_type == 'payment'


class TestUpdatePayment:

    def test_update_notes_and_due_date(self, make_payment, payment_service):
        payment = make_payment()

        updated = payment_service.update(payment.id, {'notes': 'Retorno', 'due_date': '2026-04-01'})
        assert updated.notes == 'Retorno'
        assert updated.due_date == date(2026, 4, 1)

    def test_unknown_field_is_rejected(self, make_payment, payment_service):
        payment = make_payment()
        with pytest.raises(ValidationError):
            payment_service.update(payment.id, {'appointment_id': 'other'})

    def test_pending_to_paid_sets_payment_date_and_settles_installments(self, make_payment, payment_service):
        payment = make_payment(amount='300.00', installments=3)

        updated = payment_service.update(payment.id, {'status': 'paid'})

        assert updated.status == PaymentStatus.PAID
        assert updated.payment_date == date(2026, 3, 15)
        assert all(item.status == InstallmentStatus.PAID for item in updated.installment_schedule)

    def test_paid_to_refunded_is_allowed(self, make_payment, payment_service):
        payment = make_payment(status='paid')
        assert payment_service.update(payment.id, {'status': 'refunded'}).status == PaymentStatus.REFUNDED

    @pytest.mark.parametrize('start, target', [
        ('paid', 'pending'),
        ('paid', 'cancelled'),
        ('pending', 'refunded'),
    ])
    def test_forbidden_transitions(self, make_payment, payment_service, start, target):
        payment = make_payment(status=start)
        with pytest.raises(ValidationError) as exc:
            payment_service.update(payment.id, {'status': target})
        assert exc.value.field == 'status'

    def test_cancelled_is_terminal(self, make_payment, payment_service):
        payment = make_payment()
        payment_service.update(payment.id, {'status': 'cancelled'})
        with pytest.raises(ValidationError):
            payment_service.update(payment.id, {'status': 'paid'})

    def test_amount_locked_once_installments_exist(self, make_payment, payment_service):
        payment = make_payment(amount='300.00', installments=3)
        with pytest.raises(ValidationError):
            payment_service.update(payment.id, {'amount': '400.00'})

    def test_update_does_not_touch_ledger(self, make_payment, payment_service, session):
        payment = make_payment(amount='250.00')
        payment_service.update(payment.id, {'amount': '260.00'})

        entry = session.query(FinancialTransaction).filter_by(payment_id=payment.id).one()
        assert entry.amount == Decimal('250.00')

    def test_unknown_payment(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.update('missing', {'notes': 'x'})


class TestProcessPayment:

    def test_process_marks_paid_without_second_ledger_entry(self, make_payment, payment_service, session):
        payment = make_payment(amount='300.00', installments=3, due_date='2026-03-01')

        result = payment_service.process_payment(payment.id, 'credit_card', transaction_id='TX-1', notes='POS')

        assert result == {'message': 'Payment processed successfully', 'payment_id': payment.id}
        processed = payment_service.get_by_id(payment.id)
        assert processed.status == PaymentStatus.PAID
        assert processed.payment_date == date(2026, 3, 15)
        assert processed.payment_method == PaymentMethod.CREDIT_CARD
        assert processed.transaction_id == 'TX-1'
        assert processed.notes == 'POS'
        assert all(item.status == InstallmentStatus.PAID for item in processed.installment_schedule)
        assert session.query(FinancialTransaction).filter_by(payment_id=payment.id).count() == 1

    def test_only_pending_payments_can_be_processed(self, make_payment, payment_service):
        payment = make_payment(status='paid')
        with pytest.raises(ValidationError):
            payment_service.process_payment(payment.id, 'cash')

    def test_invalid_method(self, make_payment, payment_service):
        payment = make_payment()
        with pytest.raises(ValidationError):
            payment_service.process_payment(payment.id, 'seashells')


class TestDeletePayment:

    def test_delete_removes_installments_but_keeps_ledger(self, make_payment, payment_service, session):
        payment = make_payment(amount='300.00', installments=3)
        payment_id = payment.id

        payment_service.delete(payment_id)

        assert session.get(Payment, payment_id) is None
        assert session.query(PaymentInstallment).filter_by(payment_id=payment_id).count() == 0
        assert session.query(FinancialTransaction).filter_by(payment_id=payment_id).count() == 1

    def test_delete_unknown(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.delete('missing')


class TestReads:

    def test_get_with_details_loads_people(self, make_payment, payment_service, patient, doctor):
        payment = make_payment()

        loaded = payment_service.get_with_details(payment.id)
        assert loaded.appointment.patient.name == patient.name
        assert loaded.appointment.doctor.name == doctor.name

    def test_get_unknown(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.get_by_id('missing')
        with pytest.raises(NotFoundError):
            payment_service.get_with_details('missing')

    def test_lists_are_newest_first(self, make_payment, payment_service, appointment, other_appointment, patient):
        first = make_payment(amount='100.00')
        second = make_payment(amount='200.00')
        third = payment_service.create({
            'appointment_id': other_appointment.id, 'amount': '50.00', 'payment_method': 'cash'
        })

        by_appointment = payment_service.list_by_appointment(appointment.id)
        assert [p.id for p in by_appointment] == [second.id, first.id]

        by_patient = payment_service.list_by_patient(patient.id)
        assert [p.id for p in by_patient] == [third.id, second.id, first.id]

    def test_list_for_unknown_patient_is_empty(self, payment_service):
        assert payment_service.list_by_patient('missing') == []
