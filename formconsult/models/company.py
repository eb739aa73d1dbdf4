"""Company model definitions."""

from sqlalchemy import Column, DateTime, String
from formconsult.database import Base
from formconsult.models.ids import new_id, utc_now


class Company(Base):
    """Represents a client organization whose employees request consultations."""
    __tablename__ = "companies"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
