"""Service Price model."""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Numeric, Boolean, DateTime

from clinic_finance.database import Base, generate_id


def _utcnow():
    return datetime.now(timezone.utc)


class ServicePrice(Base):
    """Priced service catalog entry."""

    __tablename__ = 'service_prices'

    id = Column(String(36), primary_key=True, default=generate_id)
    service_name = Column(String(200), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False)
    insurance_price = Column(Numeric(12, 2), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<ServicePrice(id={self.id}, service_name='{self.service_name}', active={self.active})>"
