import logging
from typing import Any, Callable, Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from formconsult.models.appointment import Appointment, AppointmentStatus
from formconsult.models.user import User, UserRole
from formconsult.services.errors import ConcurrentModification, NotFound

logger = logging.getLogger(__name__)


def get_appointment(db: Session, appointment_id: str) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def get_consultant(db: Session, consultant_id: str) -> User:
    consultant = db.query(User).filter(
        User.id == consultant_id,
        User.role == UserRole.CONSULTANT.value,
    ).first()
    if consultant is None:
        raise NotFound('Consultant not found.')
    return consultant


def list_consultants(db: Session) -> list[User]:
    return db.query(User).filter(User.role == UserRole.CONSULTANT.value).order_by(User.name.asc()).all()


def add_appointment(db: Session, appointment: Appointment) -> Appointment:
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def query_appointments(
    db: Session,
    *,
    requester_id: str | None = None,
    company_id: str | None = None,
    consultant_id: str | None = None,
    status: AppointmentStatus | None = None,
    search_text: str | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)
    if requester_id is not None:
        query = query.filter(Appointment.requester_id == requester_id)
    if company_id is not None:
        query = query.filter(Appointment.company_id == company_id)
    if consultant_id is not None:
        query = query.filter(Appointment.consultant_id == consultant_id)
    if status is not None:
        query = query.filter(Appointment.status == status.value)
    if search_text:
        pattern = f'%{search_text}%'
        query = query.filter(
            or_(
                Appointment.title.ilike(pattern),
                Appointment.description.ilike(pattern),
            )
        )
    return query.order_by(Appointment.scheduled_at.asc(), Appointment.created_at.asc()).all()


def find_schedule_conflicts(db: Session, appointment: Appointment, consultant_ids: list[str]) -> set[str]:
    """Consultants already holding an active appointment at the same start time."""
    if not consultant_ids:
        return set()
    rows = db.query(Appointment.consultant_id).filter(
        Appointment.id != appointment.id,
        Appointment.consultant_id.in_(consultant_ids),
        Appointment.scheduled_at == appointment.scheduled_at,
        Appointment.status.in_([AppointmentStatus.ASSIGNED.value, AppointmentStatus.CONFIRMED.value]),
    ).all()
    return {consultant_id for (consultant_id,) in rows}


def apply_conditional_update(
    db: Session,
    appointment_id: str,
    expected_status: AppointmentStatus,
    values: dict[str, Any],
) -> bool:
    """UPDATE appointments SET ... WHERE id = :id AND status = :expected.

    Returns False (and writes nothing) when the row no longer has the expected
    status. The caller owns the commit.
    """
    updated = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.status == expected_status.value,
    ).update(values, synchronize_session=False)
    return updated == 1


def current_status(db: Session, appointment_id: str) -> str | None:
    return db.query(Appointment.status).filter(Appointment.id == appointment_id).scalar()


def commit_transition(
    db: Session,
    appointment_id: str,
    expected_status: AppointmentStatus,
    values: dict[str, Any],
    side_effects: Iterable[Callable[[Session], None]] = (),
) -> Appointment:
    """Apply ``values`` and ``side_effects`` in one transaction or raise without writing anything."""
    if not apply_conditional_update(db, appointment_id, expected_status, values):
        db.rollback()
        status = current_status(db, appointment_id)
        if status is None:
            raise NotFound('Appointment not found.')
        logger.info(
            'Conditional update lost race on appointment %s: expected %s, found %s',
            appointment_id,
            expected_status.value,
            status,
        )
        raise ConcurrentModification(
            f'Appointment changed to {status} while this request was processed; reload and try again.'
        )
    for side_effect in side_effects:
        side_effect(db)
    db.commit()
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    db.refresh(appointment)
    return appointment
