"""Audit Log model for tracking financial actions."""
from datetime import datetime, timezone
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum as SQLEnum

from clinic_finance.database import Base


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    INSTALLMENTS_GENERATED = "INSTALLMENTS_GENERATED"
    INSTALLMENT_PAID = "INSTALLMENT_PAID"
    INSTALLMENT_RESCHEDULED = "INSTALLMENT_RESCHEDULED"
    LEDGER_ENTRY_CREATED = "LEDGER_ENTRY_CREATED"
    SERVICE_PRICE_CHANGED = "SERVICE_PRICE_CHANGED"


class AuditLog(Base):
    """Audit log for tracking financial actions."""
    __tablename__ = 'audit_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'payment', 'service_price'
    resource_id = Column(String(36))
    details = Column(Text)  # JSON with additional details
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action.value} on {self.resource_type} {self.resource_id}>"
