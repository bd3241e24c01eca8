"""
Unit tests for installment splitting, scheduling and settlement.
"""
import pytest
from datetime import date
from decimal import Decimal

from clinic_finance.exceptions import NotFoundError, ValidationError
from clinic_finance.models import InstallmentStatus, PaymentInstallment, PaymentStatus
from clinic_finance.services.installment_service import (
    InstallmentGenerator, effective_installment_status, installment_due_dates, split_amount
)


class TestSplitAmount:

    def test_even_split(self):
        assert split_amount(Decimal('300.00'), 3) == [Decimal('100.00')] * 3

    def test_remainder_goes_to_last_installment(self):
        assert split_amount(Decimal('100.00'), 3) == [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]

    @pytest.mark.parametrize('count', range(1, 13))
    def test_parts_always_sum_to_total(self, count):
        total = Decimal('1234.57')
        parts = split_amount(total, count)
        assert len(parts) == count
        assert sum(parts) == total
        assert all(part > 0 for part in parts)

    def test_single_installment_keeps_total(self):
        assert split_amount(Decimal('99.99'), 1) == [Decimal('99.99')]

    def test_every_installment_gets_at_least_one_cent(self):
        assert split_amount(Decimal('0.12'), 12) == [Decimal('0.01')] * 12

        with pytest.raises(ValidationError) as exc:
            split_amount(Decimal('0.10'), 12)
        assert exc.value.field == 'installments'


class TestDueDates:

    def test_monthly_schedule_from_start(self):
        assert installment_due_dates(date(2026, 3, 15), 3) == [
            date(2026, 3, 15), date(2026, 4, 15), date(2026, 5, 15)
        ]

    def test_month_end_clamping(self):
        assert installment_due_dates(date(2026, 1, 31), 4) == [
            date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)
        ]


class TestInstallmentGenerator:

    def test_payment_with_installments_gets_schedule(self, make_payment, session, clock):
        payment = make_payment(amount='300.00', installments=3)

        schedule = InstallmentGenerator(session, clock).list_for_payment(payment.id)

        assert [item.installment_number for item in schedule] == [1, 2, 3]
        assert [item.amount for item in schedule] == [Decimal('100.00')] * 3
        assert [item.due_date for item in schedule] == [
            date(2026, 3, 15), date(2026, 4, 15), date(2026, 5, 15)
        ]
        assert all(item.status == InstallmentStatus.PENDING for item in schedule)

    def test_single_installment_payment_has_no_schedule(self, make_payment, session, clock):
        payment = make_payment(installments=1)
        assert InstallmentGenerator(session, clock).list_for_payment(payment.id) == []

    def test_schedule_sums_to_payment_amount(self, make_payment, session, clock):
        payment = make_payment(amount='1000.00', installments=7)
        schedule = InstallmentGenerator(session, clock).list_for_payment(payment.id)
        assert sum(item.amount for item in schedule) == payment.amount

    def test_generate_rejects_invalid_count(self, session, clock):
        generator = InstallmentGenerator(session, clock)
        with pytest.raises(ValidationError):
            generator.generate('any-payment', 0, Decimal('100.00'))
        with pytest.raises(ValidationError):
            generator.generate('any-payment', 'three', Decimal('100.00'))
        with pytest.raises(ValidationError):
            generator.generate('any-payment', 1.5, Decimal('100.00'))
        with pytest.raises(ValidationError):
            generator.generate('any-payment', None, Decimal('100.00'))

    def test_generate_rejects_non_positive_total(self, session, clock):
        with pytest.raises(ValidationError):
            InstallmentGenerator(session, clock).generate('any-payment', 2, Decimal('0'))

    def test_list_for_unknown_payment(self, session, clock):
        with pytest.raises(NotFoundError):
            InstallmentGenerator(session, clock).list_for_payment('missing')

    def test_effective_status_reports_overdue(self):
        installment = PaymentInstallment(
            installment_number=1, amount=Decimal('10.00'),
            due_date=date(2026, 3, 1), status=InstallmentStatus.PENDING
        )
        assert effective_installment_status(installment, date(2026, 3, 15)) == InstallmentStatus.OVERDUE
        assert effective_installment_status(installment, date(2026, 3, 1)) == InstallmentStatus.PENDING

        installment.status = InstallmentStatus.PAID
        assert effective_installment_status(installment, date(2026, 3, 15)) == InstallmentStatus.PAID


class TestPayInstallment:

    def test_paying_every_installment_settles_payment(self, make_payment, session, clock):
        payment = make_payment(amount='200.00', installments=2)
        generator = InstallmentGenerator(session, clock)
        first, second = generator.list_for_payment(payment.id)

        generator.pay_installment(first.id)
        assert first.status == InstallmentStatus.PAID
        assert first.paid_at == date(2026, 3, 15)
        assert payment.status == PaymentStatus.PENDING

        generator.pay_installment(second.id, paid_at='2026-04-10')
        assert payment.status == PaymentStatus.PAID
        assert payment.payment_date == date(2026, 4, 10)

    def test_paying_twice_is_rejected(self, make_payment, session, clock):
        payment = make_payment(installments=2)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        generator.pay_installment(first.id)
        with pytest.raises(ValidationError):
            generator.pay_installment(first.id)

    def test_installments_of_cancelled_payment_cannot_be_paid(self, make_payment, payment_service, session, clock):
        payment = make_payment(installments=2)
        payment_service.update(payment.id, {'status': 'cancelled'})

        first = InstallmentGenerator(session, clock).list_for_payment(payment.id)[0]
        assert first.status == InstallmentStatus.CANCELLED
        with pytest.raises(ValidationError):
            InstallmentGenerator(session, clock).pay_installment(first.id)

    def test_unknown_installment(self, session, clock):
        with pytest.raises(NotFoundError):
            InstallmentGenerator(session, clock).pay_installment('missing')


class TestUpdateInstallment:

    def test_due_date_must_stay_between_neighbours(self, make_payment, session, clock):
        payment = make_payment(amount='300.00', installments=3)
        generator = InstallmentGenerator(session, clock)
        middle = generator.list_for_payment(payment.id)[1]

        updated = generator.update_installment(middle.id, {'due_date': '2026-04-20'})
        assert updated.due_date == date(2026, 4, 20)

        with pytest.raises(ValidationError):
            generator.update_installment(middle.id, {'due_date': '2026-03-10'})
        with pytest.raises(ValidationError):
            generator.update_installment(middle.id, {'due_date': '2026-05-15'})

    def test_amount_is_not_editable(self, make_payment, session, clock):
        payment = make_payment(installments=2)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'amount': '1.00'})

    def test_invalid_status(self, make_payment, session, clock):
        payment = make_payment(installments=2)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'status': 'lost'})

    def test_paid_status_settles_the_payment(self, make_payment, session, clock):
        payment = make_payment(amount='200.00', installments=2)
        generator = InstallmentGenerator(session, clock)

        for installment in generator.list_for_payment(payment.id):
            updated = generator.update_installment(installment.id, {'status': 'paid'})
            assert updated.status == InstallmentStatus.PAID
            assert updated.paid_at == date(2026, 3, 15)

        assert payment.status == PaymentStatus.PAID
        assert payment.payment_date == date(2026, 3, 15)

    def test_overdue_cannot_be_stored(self, make_payment, session, clock):
        payment = make_payment(installments=2)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        with pytest.raises(ValidationError) as exc:
            generator.update_installment(first.id, {'status': 'overdue'})
        assert exc.value.field == 'status'
        assert first.status == InstallmentStatus.PENDING

    def test_installments_of_cancelled_payment_stay_cancelled(self, make_payment, payment_service, session, clock):
        payment = make_payment(installments=2)
        payment_service.update(payment.id, {'status': 'cancelled'})
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'status': 'pending'})
        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'due_date': '2026-03-20'})
        assert first.status == InstallmentStatus.CANCELLED

    def test_paid_installment_cannot_be_reopened(self, make_payment, session, clock):
        payment = make_payment(amount='300.00', installments=3)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]
        generator.pay_installment(first.id)

        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'status': 'pending'})
        with pytest.raises(ValidationError):
            generator.update_installment(first.id, {'due_date': '2026-03-01'})

    def test_same_status_is_a_no_op(self, make_payment, session, clock):
        payment = make_payment(installments=2)
        generator = InstallmentGenerator(session, clock)
        first = generator.list_for_payment(payment.id)[0]

        assert generator.update_installment(first.id, {'status': 'pending'}).status == InstallmentStatus.PENDING


class TestCreateSchedule:

    def test_schedule_for_existing_payment(self, make_payment, session, clock):
        payment = make_payment(amount='300.00')
        generator = InstallmentGenerator(session, clock)

        schedule = generator.create_schedule(payment.id, 3, total_amount='300.00', start='2026-04-01')

        assert [item.amount for item in schedule] == [Decimal('100.00')] * 3
        assert [item.due_date for item in schedule] == [
            date(2026, 4, 1), date(2026, 5, 1), date(2026, 6, 1)
        ]
        assert payment.installments == 3
        assert len(generator.list_for_payment(payment.id)) == 3

    def test_total_defaults_to_payment_amount(self, make_payment, session, clock):
        payment = make_payment(amount='100.00')

        schedule = InstallmentGenerator(session, clock).create_schedule(payment.id, '3')

        assert [item.amount for item in schedule] == [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
        assert schedule[0].due_date == date(2026, 3, 15)

    def test_total_must_match_payment(self, make_payment, session, clock):
        payment = make_payment(amount='300.00')
        generator = InstallmentGenerator(session, clock)

        with pytest.raises(ValidationError) as exc:
            generator.create_schedule(payment.id, 3, total_amount='250.00')
        assert exc.value.field == 'total_amount'
        assert generator.list_for_payment(payment.id) == []

    def test_existing_schedule_is_kept(self, make_payment, session, clock):
        payment = make_payment(amount='300.00', installments=3)
        generator = InstallmentGenerator(session, clock)

        with pytest.raises(ValidationError):
            generator.create_schedule(payment.id, 2)
        assert len(generator.list_for_payment(payment.id)) == 3

    def test_only_pending_payments(self, make_payment, session, clock):
        payment = make_payment(status='paid')
        with pytest.raises(ValidationError):
            InstallmentGenerator(session, clock).create_schedule(payment.id, 2)

    @pytest.mark.parametrize('count', [0, 1.5, 'two', None])
    def test_invalid_count(self, make_payment, session, clock, count):
        payment = make_payment(amount='300.00')
        with pytest.raises(ValidationError):
            InstallmentGenerator(session, clock).create_schedule(payment.id, count)

    def test_cents_cannot_be_spread_thinner(self, make_payment, session, clock):
        payment = make_payment(amount='0.10')
        with pytest.raises(ValidationError):
            InstallmentGenerator(session, clock).create_schedule(payment.id, 12)

    def test_unknown_payment(self, session, clock):
        with pytest.raises(NotFoundError):
            InstallmentGenerator(session, clock).create_schedule('missing', 2)
