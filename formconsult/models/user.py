"""User model definitions."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, Float, ForeignKey, Integer, String
from formconsult.database import Base
from formconsult.models.ids import new_id


class UserRole(str, Enum):
    EMPLOYE = "EMPLOYE"
    ADMIN_ENTREPRISE = "ADMIN_ENTREPRISE"
    CONSULTANT = "CONSULTANT"
    FORMATEUR = "FORMATEUR"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = frozenset({UserRole.ADMIN_ENTREPRISE, UserRole.SUPER_ADMIN})


def normalize_role(value: "str | UserRole") -> UserRole:
    """Map loosely-cased role strings ('consultant', ' Admin_Entreprise ') onto UserRole."""
    if isinstance(value, UserRole):
        return value
    normalized = (value or "").strip().upper()
    try:
        return UserRole(normalized)
    except ValueError:
        raise ValueError(f"Unknown role: {value!r}") from None


class User(Base):
    """Represents an application user; consultant profile columns are unused for other roles."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    role = Column(String, nullable=False, default=UserRole.EMPLOYE.value)
    company_id = Column(String, ForeignKey("companies.id"), index=True)

    specialties = Column(JSON, default=list)
    is_available = Column(Boolean, default=True, nullable=False)
    total_sessions = Column(Integer, default=0, nullable=False)
    rating = Column(Float, default=0.0, nullable=False)
    success_rate = Column(Float, default=0.0, nullable=False)
    response_time_minutes = Column(Integer)
