"""Doctor model, stored in the shared users table."""
from sqlalchemy import Column, String

from clinic_finance.database import Base, generate_id


class Doctor(Base):
    """User acting as the attending doctor of an appointment."""

    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False)

    def __repr__(self):
        return f"<Doctor(id={self.id}, name='{self.name}')>"
