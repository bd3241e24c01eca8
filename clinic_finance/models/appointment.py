"""Appointment model (owned by the scheduling module, read-only here)."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from clinic_finance.database import Base, generate_id


class Appointment(Base):
    """Scheduled appointment a payment is charged against."""

    __tablename__ = 'appointments'

    id = Column(String(36), primary_key=True, default=generate_id)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    value = Column(Numeric(12, 2), nullable=True)
    patient_id = Column(String(36), ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey('users.id'), nullable=True)

    # Relationships
    patient = relationship('Patient')
    doctor = relationship('Doctor')

    def __repr__(self):
        return f"<Appointment(id={self.id}, scheduled_at={self.scheduled_at})>"
