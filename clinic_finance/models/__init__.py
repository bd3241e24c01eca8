"""Models package - exports all SQLAlchemy models."""
# Foreign entities (read-only here)
from clinic_finance.models.patient import Patient
from clinic_finance.models.doctor import Doctor
from clinic_finance.models.appointment import Appointment

# Finance Models
from clinic_finance.models.payment import (
    Payment, PaymentMethod, PaymentStatus, PAYMENT_STATUS_TRANSITIONS,
    normalize_payment_method, normalize_payment_status
)
from clinic_finance.models.payment_installment import PaymentInstallment, InstallmentStatus
from clinic_finance.models.service_price import ServicePrice
from clinic_finance.models.financial_transaction import (
    FinancialTransaction, TransactionType, normalize_transaction_type
)
from clinic_finance.models.audit_log import AuditLog, AuditAction

__all__ = [
    # Foreign entities
    'Patient', 'Doctor', 'Appointment',
    # Finance
    'Payment', 'PaymentMethod', 'PaymentStatus', 'PAYMENT_STATUS_TRANSITIONS',
    'normalize_payment_method', 'normalize_payment_status',
    'PaymentInstallment', 'InstallmentStatus',
    'ServicePrice',
    'FinancialTransaction', 'TransactionType', 'normalize_transaction_type',
    'AuditLog', 'AuditAction',
]
