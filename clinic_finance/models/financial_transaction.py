"""Financial Transaction model (append-only ledger)."""
from datetime import datetime, timezone
import enum

from sqlalchemy import Column, String, Numeric, Date, DateTime, Text, Enum, event
from sqlalchemy.orm import object_session

from clinic_finance.database import Base, generate_id
from clinic_finance.exceptions import ImmutableLedgerError


class TransactionType(enum.Enum):
    """Ledger type enum."""
    INCOME = "income"
    EXPENSE = "expense"


def normalize_transaction_type(value) -> TransactionType:
    """
    Normalize transaction type input.

    Raises:
        ValueError: If value is not 'income' or 'expense'
    """
    if isinstance(value, TransactionType):
        return value

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ('income', 'expense'):
            return TransactionType(normalized)

    raise ValueError(f"Invalid transaction type: {value}. Must be 'income' or 'expense'.")


class FinancialTransaction(Base):
    """Immutable ledger row."""

    __tablename__ = 'financial_transactions'

    id = Column(String(36), primary_key=True, default=generate_id)
    # Plain reference: ledger history outlives administrative payment removal
    payment_id = Column(String(36), nullable=True, index=True)
    transaction_type = Column(Enum(TransactionType, name='transaction_type'), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(80), nullable=True)
    transaction_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return (
            f"<FinancialTransaction(id={self.id}, type={self.transaction_type.value}, "
            f"amount={self.amount})>"
        )


@event.listens_for(FinancialTransaction, 'before_update')
def _reject_ledger_update(mapper, connection, target):
    session = object_session(target)
    if session is None or session.is_modified(target, include_collections=False):
        raise ImmutableLedgerError(f"Financial transaction {target.id} cannot be modified")


@event.listens_for(FinancialTransaction, 'before_delete')
def _reject_ledger_delete(mapper, connection, target):
    raise ImmutableLedgerError(f"Financial transaction {target.id} cannot be deleted")
