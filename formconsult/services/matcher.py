"""Consultant candidate ranking and assignment.

Ranking is a display policy: available consultants first, then by success
rate and rating (both descending), then by name. Unavailable consultants stay
in the list and remain assignable.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from formconsult.models.appointment import Appointment, AppointmentStatus, normalize_status
from formconsult.models.user import User
from formconsult.services import appointment_store as store
from formconsult.services import lifecycle
from formconsult.services.actor import Actor
from formconsult.services.errors import Forbidden, InvalidState
from formconsult.services.notifications import NotificationEmitter


@dataclass
class ConsultantCandidate:
    consultant: User
    has_schedule_conflict: bool = False

    @property
    def is_available(self) -> bool:
        return bool(self.consultant.is_available)


def ranking_key(consultant: User) -> tuple:
    return (
        not consultant.is_available,
        -(consultant.success_rate or 0.0),
        -(consultant.rating or 0.0),
        (consultant.name or consultant.email or '').lower(),
    )


def rank_consultants(consultants: list[User]) -> list[User]:
    return sorted(consultants, key=ranking_key)


def _matches_text(consultant: User, needle: str) -> bool:
    haystack = [consultant.name or '', consultant.email or '', *(consultant.specialties or [])]
    return any(needle in value.lower() for value in haystack)


def filter_consultants(
    consultants: list[User],
    search_text: str | None = None,
    specialty: str | None = None,
    available: bool | None = None,
) -> list[User]:
    needle = (search_text or '').strip().lower()
    wanted_specialty = (specialty or '').strip().lower()
    selected = []
    for consultant in consultants:
        if available is not None and bool(consultant.is_available) != available:
            continue
        if wanted_specialty and not any(
            wanted_specialty in (value or '').lower() for value in (consultant.specialties or [])
        ):
            continue
        if needle and not _matches_text(consultant, needle):
            continue
        selected.append(consultant)
    return selected


def directory(
    db: Session,
    search_text: str | None = None,
    specialty: str | None = None,
    available: bool | None = None,
) -> list[User]:
    consultants = store.list_consultants(db)
    return rank_consultants(filter_consultants(consultants, search_text, specialty, available))


def list_candidates(
    db: Session,
    appointment_id: str,
    actor: Actor,
    search_text: str | None = None,
) -> tuple[Appointment, list[ConsultantCandidate]]:
    appointment = lifecycle.get_appointment(db, appointment_id, actor)
    if not actor.administers(appointment.company_id):
        raise Forbidden('Only admins can choose a consultant.')
    if normalize_status(appointment.status) is not AppointmentStatus.PENDING:
        raise InvalidState(f'Appointment is {appointment.status}; consultants can only be chosen while PENDING.')

    consultants = directory(db, search_text=search_text)
    conflicts = store.find_schedule_conflicts(db, appointment, [consultant.id for consultant in consultants])
    return appointment, [
        ConsultantCandidate(consultant=consultant, has_schedule_conflict=consultant.id in conflicts)
        for consultant in consultants
    ]


def assign_consultant(
    db: Session,
    appointment_id: str,
    consultant_id: str,
    actor: Actor,
    notes: str | None = None,
    force: bool = False,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    """Assign through the lifecycle; the consultant_assigned event is emitted there."""
    return lifecycle.assign(
        db,
        appointment_id,
        consultant_id,
        actor,
        notes=notes,
        force=force,
        emitter=emitter,
    )
