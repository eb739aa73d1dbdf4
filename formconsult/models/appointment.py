"""Appointment (consultation request) model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from formconsult.database import Base
from formconsult.models.ids import new_id, utc_now


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


TERMINAL_STATUSES = frozenset({
    AppointmentStatus.REJECTED,
    AppointmentStatus.CANCELED,
    AppointmentStatus.COMPLETED,
})


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


def normalize_status(value: "str | AppointmentStatus") -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    normalized = (value or "").strip().upper()
    # Older dashboards sent CANCELLED.
    if normalized == "CANCELLED":
        normalized = AppointmentStatus.CANCELED.value
    try:
        return AppointmentStatus(normalized)
    except ValueError:
        raise ValueError(f"Unknown appointment status: {value!r}") from None


def normalize_urgency(value: "str | Urgency | None") -> Urgency:
    if value is None:
        return Urgency.NORMAL
    if isinstance(value, Urgency):
        return value
    normalized = value.strip().lower()
    if not normalized:
        return Urgency.NORMAL
    try:
        return Urgency(normalized)
    except ValueError:
        raise ValueError(f"Unknown urgency: {value!r}") from None


class Appointment(Base):
    """Represents a consultation request and its lifecycle state."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    urgency = Column(String, nullable=False, default=Urgency.NORMAL.value)

    requester_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    consultant_id = Column(String, ForeignKey("users.id"), index=True)
    company_id = Column(String, ForeignKey("companies.id"), index=True)

    meeting_url = Column(String)
    notes = Column(Text)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)
