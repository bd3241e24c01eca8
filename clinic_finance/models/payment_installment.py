"""Payment Installment model."""
import enum

from sqlalchemy import Column, String, Integer, Numeric, Date, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from clinic_finance.database import Base, generate_id


class InstallmentStatus(enum.Enum):
    """Installment status enum."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentInstallment(Base):
    """Scheduled sub-payment of a multi-installment Payment."""

    __tablename__ = 'payment_installments'
    __table_args__ = (
        UniqueConstraint('payment_id', 'installment_number', name='uq_installment_number_per_payment'),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    payment_id = Column(String(36), ForeignKey('payments.id', ondelete='CASCADE'), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Enum(InstallmentStatus, name='installment_status'), nullable=False, default=InstallmentStatus.PENDING)
    paid_at = Column(Date, nullable=True)

    # Relationships
    payment = relationship('Payment', back_populates='installment_schedule')

    def __repr__(self):
        return (
            f"<PaymentInstallment(payment={self.payment_id}, number={self.installment_number}, "
            f"amount={self.amount}, due={self.due_date})>"
        )
