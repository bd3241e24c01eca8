"""Payment model."""
from datetime import datetime, timezone
import enum

from sqlalchemy import Column, String, Integer, Numeric, Date, DateTime, Text, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from clinic_finance.database import Base, generate_id


def _utcnow():
    return datetime.now(timezone.utc)


class PaymentMethod(enum.Enum):
    """Payment method enum."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    INSURANCE = "insurance"


class PaymentStatus(enum.Enum):
    """Payment status enum."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Allowed lifecycle moves; same-status updates are always accepted
PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.CANCELLED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}


def normalize_payment_method(value) -> PaymentMethod:
    """
    Normalize payment method input to a PaymentMethod member.

    Args:
        value: PaymentMethod enum or string ('pix', 'PIX', 'credit_card', ...)

    Returns:
        PaymentMethod

    Raises:
        ValueError: If value is missing or not a known method
    """
    if isinstance(value, PaymentMethod):
        return value

    if isinstance(value, str):
        normalized = value.strip().lower()
        for method in PaymentMethod:
            if method.value == normalized:
                return method

    raise ValueError(f"Invalid payment method: {value}")


def normalize_payment_status(value) -> PaymentStatus:
    """Normalize payment status input to a PaymentStatus member."""
    if isinstance(value, PaymentStatus):
        return value

    if isinstance(value, str):
        normalized = value.strip().lower()
        for status in PaymentStatus:
            if status.value == normalized:
                return status

    raise ValueError(f"Invalid payment status: {value}")


class Payment(Base):
    """One charge against one appointment."""

    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        CheckConstraint('installments >= 1', name='ck_payments_installments_min'),
        CheckConstraint('installment_number >= 1', name='ck_payments_installment_number_min'),
        CheckConstraint('installment_number <= installments', name='ck_payments_installment_number_max'),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    appointment_id = Column(String(36), ForeignKey('appointments.id'), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    status = Column(Enum(PaymentStatus, name='payment_status'), nullable=False, default=PaymentStatus.PENDING)
    payment_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True, index=True)
    installments = Column(Integer, nullable=False, default=1)
    installment_number = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    transaction_id = Column(String(120), nullable=True)
    # Business date the charge was recorded on; same clock as its ledger entry
    recorded_on = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    # Relationships
    appointment = relationship('Appointment')
    installment_schedule = relationship(
        'PaymentInstallment',
        back_populates='payment',
        cascade='all, delete-orphan',
        order_by='PaymentInstallment.installment_number'
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, status={self.status.value})>"
