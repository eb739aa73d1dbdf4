"""Appointment lifecycle operations.

Every mutating operation follows the same path: load the record, let
``transitions.plan_transition`` validate the request, apply the plan with a
conditional update keyed on the status that was read, then emit a
notification. Notification failures are logged and never undo the write.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formconsult.core import config
from formconsult.models.appointment import Appointment, AppointmentStatus, normalize_status, normalize_urgency
from formconsult.models.ids import is_valid_id, utc_now
from formconsult.models.user import User, UserRole
from formconsult.services import appointment_store as store
from formconsult.services import notifications
from formconsult.services.actor import Actor
from formconsult.services.errors import (
    AppointmentValidationError,
    ConsultantUnavailable,
    Forbidden,
)
from formconsult.services.meetings import provision_meeting_url
from formconsult.services.notifications import NotificationEmitter, NotificationEvent, emit_safely
from formconsult.services.transitions import Action, normalize_action, plan_transition

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
REQUESTER_ROLES = frozenset({UserRole.EMPLOYE, UserRole.ADMIN_ENTREPRISE, UserRole.FORMATEUR})

EVENT_TYPES = {
    Action.ASSIGN: notifications.CONSULTANT_ASSIGNED,
    Action.ACCEPT: notifications.CONSULTATION_ACCEPTED,
    Action.REFUSE: notifications.CONSULTATION_REFUSED,
    Action.REJECT: notifications.CONSULTATION_REJECTED,
    Action.CANCEL: notifications.CONSULTATION_CANCELED,
    Action.COMPLETE: notifications.CONSULTATION_COMPLETED,
}

# Actions whose outcome is also reported to company and platform admins.
ADMIN_FANOUT_ACTIONS = frozenset({Action.ACCEPT, Action.REFUSE, Action.REJECT, Action.CANCEL, Action.COMPLETE})

SCHEDULE_CONFLICT_MESSAGE = 'Le consultant a déjà une consultation à cette date/heure'


class Scope(str, Enum):
    SELF = 'self'
    COMPANY = 'company'
    ASSIGNED_TO_ME = 'assigned-to-me'
    ALL = 'all'


def _require_id(value: Any, label: str) -> str:
    if not is_valid_id(value):
        raise AppointmentValidationError(f'{label} id is malformed.')
    return value


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _platform_admin_ids(db: Session) -> tuple[str, ...]:
    rows = db.query(User.id).filter(User.role == UserRole.SUPER_ADMIN.value).order_by(User.id).all()
    return tuple(user_id for (user_id,) in rows)


def _admin_ids(db: Session, company_id: str | None) -> tuple[str, ...]:
    """Super admins plus the company admins of ``company_id``."""
    condition = User.role == UserRole.SUPER_ADMIN.value
    if company_id:
        condition = or_(
            condition,
            and_(User.role == UserRole.ADMIN_ENTREPRISE.value, User.company_id == company_id),
        )
    rows = db.query(User.id).filter(condition).order_by(User.id).all()
    return tuple(user_id for (user_id,) in rows)


def _transition_recipients(db: Session, action: Action, appointment: Appointment) -> tuple[str, ...]:
    participants = (appointment.requester_id, appointment.consultant_id)
    if action not in ADMIN_FANOUT_ACTIONS:
        return participants
    return participants + _admin_ids(db, appointment.company_id)


def _notify(
    db: Session,
    emitter: NotificationEmitter | None,
    event: NotificationEvent,
    resolve_recipients: Callable[[], tuple[str, ...]],
) -> None:
    """Resolve recipients and emit. Runs after the commit, so failures are only logged."""
    if emitter is None:
        return
    try:
        recipients = resolve_recipients()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Could not resolve recipients for %s on appointment %s', event.type, event.appointment_id)
        return
    emit_safely(emitter, replace(event, recipients=recipients))


def create_appointment(
    db: Session,
    actor: Actor,
    *,
    title: str,
    scheduled_at: datetime,
    duration: int | None = None,
    description: str | None = None,
    urgency: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    if actor.role not in REQUESTER_ROLES:
        raise Forbidden('Only employees, trainers and company admins can request a consultation.')
    if actor.role is UserRole.EMPLOYE and not actor.company_id:
        raise Forbidden('Employees must belong to a company to request a consultation.')

    title = (title or '').strip()
    if not title:
        raise AppointmentValidationError('Title is required.')
    if len(title) > MAX_TITLE_LENGTH:
        raise AppointmentValidationError(f'Title must be {MAX_TITLE_LENGTH} characters or fewer.')
    if not isinstance(scheduled_at, datetime):
        raise AppointmentValidationError('Scheduled date is required.')

    if duration is None:
        duration = config.DEFAULT_APPOINTMENT_DURATION
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise AppointmentValidationError('Duration must be a positive number of minutes.')

    try:
        normalized_urgency = normalize_urgency(urgency)
    except ValueError as exc:
        raise AppointmentValidationError(str(exc)) from exc

    now = utc_now()
    appointment = store.add_appointment(
        db,
        Appointment(
            title=title,
            description=(description or '').strip() or None,
            scheduled_at=_to_naive_utc(scheduled_at),
            duration=duration,
            status=AppointmentStatus.PENDING.value,
            urgency=normalized_urgency.value,
            requester_id=actor.user_id,
            company_id=actor.company_id,
            created_at=now,
            updated_at=now,
        ),
    )
    logger.info('Appointment %s requested by %s', appointment.id, actor.user_id)

    _notify(
        db,
        emitter,
        NotificationEvent(
            type=notifications.CONSULTATION_REQUESTED,
            appointment_id=appointment.id,
            actor_id=actor.user_id,
            timestamp=now,
            appointment_title=appointment.title,
        ),
        lambda: _platform_admin_ids(db),
    )
    return appointment


def _check_consultant_availability(consultant: User, actor: Actor, force: bool) -> None:
    if consultant.is_available:
        return
    if config.STRICT_CONSULTANT_AVAILABILITY and not (force and actor.is_admin):
        raise ConsultantUnavailable(f'Consultant {consultant.name or consultant.id} is not available.')
    logger.warning(
        'Assigning unavailable consultant %s (actor %s, role %s)',
        consultant.id,
        actor.user_id,
        actor.role.value,
    )


def _check_schedule_conflict(
    db: Session,
    appointment: Appointment,
    consultant: User,
    actor: Actor,
    force: bool,
) -> None:
    """Refuse to double-book a consultant who already holds an active appointment at the same time."""
    if consultant.id not in store.find_schedule_conflicts(db, appointment, [consultant.id]):
        return
    if not (force and actor.is_admin):
        raise ConsultantUnavailable(SCHEDULE_CONFLICT_MESSAGE)
    logger.warning(
        'Double-booking consultant %s at %s for appointment %s (forced by %s)',
        consultant.id,
        appointment.scheduled_at,
        appointment.id,
        actor.user_id,
    )


def _increment_sessions(consultant_id: str):
    def apply(session: Session) -> None:
        session.query(User).filter(User.id == consultant_id).update(
            {User.total_sessions: User.total_sessions + 1},
            synchronize_session=False,
        )
    return apply


def transition(
    db: Session,
    appointment_id: str,
    action: str | Action,
    actor: Actor,
    *,
    consultant_id: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    actual_duration: int | None = None,
    meeting_url: str | None = None,
    force: bool = False,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    """Run ``action`` against the appointment; raise without writing on any failure."""
    appointment_id = _require_id(appointment_id, 'Appointment')
    action = normalize_action(action)
    appointment = store.get_appointment(db, appointment_id)
    now = utc_now()

    plan = plan_transition(
        appointment,
        action,
        actor,
        now=now,
        consultant_id=consultant_id,
        reason=reason,
        notes=notes,
        actual_duration=actual_duration,
        meeting_url=meeting_url,
        allow_fast_confirm=config.ALLOW_ADMIN_FAST_CONFIRM,
        rejection_message=config.DEFAULT_REJECTION_MESSAGE,
        max_notes_length=config.MAX_NOTES_LENGTH,
    )

    if 'consultant_id' in plan.values:
        consultant = store.get_consultant(db, plan.values['consultant_id'])
        _check_consultant_availability(consultant, actor, force)
        _check_schedule_conflict(db, appointment, consultant, actor, force)

    if plan.target_status is AppointmentStatus.CONFIRMED and 'meeting_url' not in plan.values:
        provisioned = provision_meeting_url(appointment)
        if provisioned:
            plan.values['meeting_url'] = provisioned

    side_effects = []
    if plan.action is Action.COMPLETE and appointment.consultant_id:
        side_effects.append(_increment_sessions(appointment.consultant_id))

    previous_consultant = appointment.consultant_id
    updated = store.commit_transition(db, appointment_id, plan.expected_status, plan.values, side_effects)
    logger.info(
        'Appointment %s: %s -> %s by %s (%s)',
        updated.id,
        plan.expected_status.value,
        plan.target_status.value,
        actor.user_id,
        action.value,
    )

    data: dict[str, Any] = {'status': updated.status}
    if action is Action.ASSIGN or (action is Action.ACCEPT and previous_consultant is None):
        data['consultantId'] = updated.consultant_id
    _notify(
        db,
        emitter,
        NotificationEvent(
            type=EVENT_TYPES[action],
            appointment_id=updated.id,
            actor_id=actor.user_id,
            timestamp=now,
            appointment_title=updated.title,
            data=data,
        ),
        lambda: _transition_recipients(db, action, updated),
    )
    return updated


def assign(
    db: Session,
    appointment_id: str,
    consultant_id: str,
    actor: Actor,
    notes: str | None = None,
    force: bool = False,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(
        db, appointment_id, Action.ASSIGN, actor,
        consultant_id=consultant_id, notes=notes, force=force, emitter=emitter,
    )


def accept(
    db: Session,
    appointment_id: str,
    actor: Actor,
    meeting_url: str | None = None,
    consultant_id: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(
        db, appointment_id, Action.ACCEPT, actor,
        meeting_url=meeting_url, consultant_id=consultant_id, emitter=emitter,
    )


def refuse(
    db: Session,
    appointment_id: str,
    actor: Actor,
    reason: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(db, appointment_id, Action.REFUSE, actor, reason=reason, emitter=emitter)


def reject(
    db: Session,
    appointment_id: str,
    actor: Actor,
    reason: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(db, appointment_id, Action.REJECT, actor, reason=reason, emitter=emitter)


def cancel(
    db: Session,
    appointment_id: str,
    actor: Actor,
    reason: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(db, appointment_id, Action.CANCEL, actor, reason=reason, emitter=emitter)


def complete(
    db: Session,
    appointment_id: str,
    actual_duration: int,
    actor: Actor,
    notes: str | None = None,
    emitter: NotificationEmitter | None = None,
) -> Appointment:
    return transition(
        db, appointment_id, Action.COMPLETE, actor,
        actual_duration=actual_duration, notes=notes, emitter=emitter,
    )


def _normalize_scope(scope: str | Scope) -> Scope:
    if isinstance(scope, Scope):
        return scope
    try:
        return Scope((scope or '').strip().lower())
    except ValueError:
        raise AppointmentValidationError(f'Unknown scope: {scope!r}') from None


def list_appointments(
    db: Session,
    actor: Actor,
    scope: str | Scope,
    status_filter: str | AppointmentStatus | None = None,
    search_text: str | None = None,
) -> list[Appointment]:
    scope = _normalize_scope(scope)
    status = None
    if status_filter:
        try:
            status = normalize_status(status_filter)
        except ValueError as exc:
            raise AppointmentValidationError(str(exc)) from exc
    search_text = (search_text or '').strip() or None

    filters: dict[str, Any] = {'status': status, 'search_text': search_text}
    if scope is Scope.SELF:
        filters['requester_id'] = actor.user_id
    elif scope is Scope.COMPANY:
        if not actor.is_admin:
            raise Forbidden('Only company admins can list company appointments.')
        if not actor.company_id:
            raise Forbidden('No company is associated with this account.')
        filters['company_id'] = actor.company_id
    elif scope is Scope.ASSIGNED_TO_ME:
        if actor.role is not UserRole.CONSULTANT:
            raise Forbidden('Only consultants have assigned appointments.')
        filters['consultant_id'] = actor.user_id
    elif not actor.is_super_admin:
        raise Forbidden('Only platform admins can list every appointment.')

    return store.query_appointments(db, **filters)


def get_appointment(db: Session, appointment_id: str, actor: Actor) -> Appointment:
    appointment = store.get_appointment(db, _require_id(appointment_id, 'Appointment'))
    if (
        appointment.requester_id == actor.user_id
        or appointment.consultant_id == actor.user_id
        or actor.administers(appointment.company_id)
    ):
        return appointment
    raise Forbidden('You are not allowed to view this appointment.')
