"""Ledger service - append-only financial transactions."""
from datetime import date
import logging
from typing import Callable, List, Optional

from sqlalchemy import and_

from clinic_finance.exceptions import ValidationError
from clinic_finance.models import AuditAction, FinancialTransaction, TransactionType, normalize_transaction_type
from clinic_finance.services.audit_service import log_action
from clinic_finance.utils.dates import parse_iso_date, parse_optional_date
from clinic_finance.utils.number_format import parse_amount

logger = logging.getLogger(__name__)


def range_clause(start_date: date, end_date: date, transaction_type: Optional[TransactionType] = None):
    """SQL filter for transactions dated within [start_date, end_date], both inclusive."""
    conditions = [
        FinancialTransaction.transaction_date >= start_date,
        FinancialTransaction.transaction_date <= end_date,
    ]
    if transaction_type is not None:
        conditions.append(FinancialTransaction.transaction_type == transaction_type)
    return and_(*conditions)


def _metrics_ledger_entry(transaction_type: TransactionType):
    try:
        from clinic_finance.blueprints.metrics import ledger_entries_total
        ledger_entries_total.labels(transaction_type=transaction_type.value).inc()
    except Exception as e:
        logger.debug(f"Ledger metric not recorded: {e}")


class LedgerRecorder:
    """
    Writes and reads FinancialTransaction rows.

    No update or delete operation exists; the model additionally rejects
    ORM-level mutation of persisted rows.
    """

    def __init__(self, session, clock: Optional[Callable[[], date]] = None):
        self.session = session
        self.clock = clock or date.today

    def build_entry(self, entry: dict) -> FinancialTransaction:
        """
        Validate an entry dict and build an unsaved FinancialTransaction.

        Args:
            entry: dict with keys transaction_type, amount, description,
                category, transaction_date (optional, defaults to today) and
                payment_id (optional)

        Raises:
            ValidationError: for a non-positive amount, unknown type or bad date
        """
        try:
            transaction_type = normalize_transaction_type(entry.get('transaction_type'))
        except ValueError as e:
            raise ValidationError(str(e), field='transaction_type')

        amount = parse_amount(entry.get('amount'))

        transaction_date = entry.get('transaction_date')
        if transaction_date is None:
            transaction_date = self.clock()
        else:
            transaction_date = parse_iso_date(transaction_date, 'transaction_date')

        description = entry.get('description')
        if description is not None:
            description = str(description).replace('\n', ' ').replace('\r', '')[:500]

        return FinancialTransaction(
            payment_id=entry.get('payment_id'),
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            category=entry.get('category'),
            transaction_date=transaction_date
        )

    def stage(self, entry: dict) -> FinancialTransaction:
        """Add a validated entry to the current session without committing."""
        transaction = self.build_entry(entry)
        self.session.add(transaction)
        return transaction

    def record(self, entry: dict) -> FinancialTransaction:
        """Persist a standalone ledger entry and commit it."""
        try:
            transaction = self.stage(entry)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        _metrics_ledger_entry(transaction.transaction_type)
        logger.info(
            f"Ledger entry recorded: {transaction.transaction_type.value} "
            f"{transaction.amount} on {transaction.transaction_date}"
        )
        log_action(
            self.session, AuditAction.LEDGER_ENTRY_CREATED, 'financial_transaction', transaction.id,
            {'transaction_type': transaction.transaction_type.value, 'amount': transaction.amount}
        )
        return transaction

    def record_expense(self, amount, description: str, category: str = None, transaction_date=None) -> FinancialTransaction:
        """Record a manual expense not tied to any payment."""
        return self.record({
            'transaction_type': TransactionType.EXPENSE,
            'amount': amount,
            'description': description,
            'category': category,
            'transaction_date': transaction_date,
        })

    def get_range(self, start, end, transaction_type=None) -> List[FinancialTransaction]:
        """
        Transactions dated within [start, end], both bounds inclusive.

        Args:
            start: Start date (inclusive)
            end: End date (inclusive)
            transaction_type: optional 'income' / 'expense' filter
        """
        start_date = parse_iso_date(start, 'start_date')
        end_date = parse_iso_date(end, 'end_date')

        if transaction_type is not None:
            try:
                transaction_type = normalize_transaction_type(transaction_type)
            except ValueError as e:
                raise ValidationError(str(e), field='transaction_type')

        query = self.session.query(FinancialTransaction).filter(
            range_clause(start_date, end_date, transaction_type)
        )
        return query.order_by(FinancialTransaction.transaction_date.asc()).all()

    def list_transactions(self, start=None, end=None) -> List[FinancialTransaction]:
        """All transactions, newest first, optionally bounded on either side."""
        start_date = parse_optional_date(start, 'start_date')
        end_date = parse_optional_date(end, 'end_date')

        query = self.session.query(FinancialTransaction)
        if start_date:
            query = query.filter(FinancialTransaction.transaction_date >= start_date)
        if end_date:
            query = query.filter(FinancialTransaction.transaction_date <= end_date)

        return query.order_by(
            FinancialTransaction.transaction_date.desc(),
            FinancialTransaction.created_at.desc()
        ).all()

    def list_for_payment(self, payment_id: str) -> List[FinancialTransaction]:
        return (
            self.session.query(FinancialTransaction)
            .filter(FinancialTransaction.payment_id == payment_id)
            .order_by(FinancialTransaction.created_at.asc())
            .all()
        )
