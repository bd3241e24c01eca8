"""Patient model (owned by the patient registry, read-only here)."""
from sqlalchemy import Column, String

from clinic_finance.database import Base, generate_id


class Patient(Base):
    """Patient (paciente)."""

    __tablename__ = 'patients'

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False)
    cpf = Column(String(14), nullable=True)
    phone = Column(String(50), nullable=True)

    def __repr__(self):
        return f"<Patient(id={self.id}, name='{self.name}')>"
