"""Appointment status state machine.

Pure functions only: given the current record, the requested action and the
actor, decide whether the transition is legal and compute the exact column
writes it mandates. Nothing here touches the database; the store applies the
resulting plan with a conditional update keyed on ``expected_status``.

    PENDING   --assign-->   ASSIGNED
    PENDING   --reject-->   REJECTED
    ASSIGNED  --accept-->   CONFIRMED
    ASSIGNED  --refuse-->   REJECTED
    ASSIGNED  --reject-->   REJECTED
    CONFIRMED --complete--> COMPLETED
    any non-terminal --cancel--> CANCELED
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from formconsult.models.appointment import TERMINAL_STATUSES, Appointment, AppointmentStatus, normalize_status
from formconsult.models.ids import is_valid_id
from formconsult.models.user import UserRole
from formconsult.services.actor import Actor
from formconsult.services.errors import AppointmentValidationError, Forbidden, InvalidState


class Action(str, Enum):
    ASSIGN = "assign"
    ACCEPT = "accept"
    REFUSE = "refuse"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"


S = AppointmentStatus

TRANSITIONS: dict[tuple[AppointmentStatus, Action], AppointmentStatus] = {
    (S.PENDING, Action.ASSIGN): S.ASSIGNED,
    (S.PENDING, Action.REJECT): S.REJECTED,
    (S.ASSIGNED, Action.ACCEPT): S.CONFIRMED,
    (S.ASSIGNED, Action.REFUSE): S.REJECTED,
    (S.ASSIGNED, Action.REJECT): S.REJECTED,
    (S.CONFIRMED, Action.COMPLETE): S.COMPLETED,
    (S.PENDING, Action.CANCEL): S.CANCELED,
    (S.ASSIGNED, Action.CANCEL): S.CANCELED,
    (S.CONFIRMED, Action.CANCEL): S.CANCELED,
}

FAST_CONFIRM = (S.PENDING, Action.ACCEPT)


@dataclass
class TransitionPlan:
    action: Action
    expected_status: AppointmentStatus
    target_status: AppointmentStatus
    values: dict[str, Any] = field(default_factory=dict)


def normalize_action(value: "str | Action") -> Action:
    if isinstance(value, Action):
        return value
    try:
        return Action((value or "").strip().lower())
    except ValueError:
        raise AppointmentValidationError(f"Unknown action: {value!r}") from None


TARGET_ACTIONS = {
    S.ASSIGNED: Action.ASSIGN,
    S.CONFIRMED: Action.ACCEPT,
    S.REJECTED: Action.REJECT,
    S.CANCELED: Action.CANCEL,
    S.COMPLETED: Action.COMPLETE,
}


def action_for_target(target: "str | AppointmentStatus", actor: Actor) -> Action:
    """Map a requested target status (status-style payloads) to the action that reaches it."""
    try:
        status = normalize_status(target)
    except ValueError as exc:
        raise AppointmentValidationError(str(exc)) from exc
    action = TARGET_ACTIONS.get(status)
    if action is None:
        raise InvalidState(f"Appointments cannot be moved back to {status.value}.")
    # A consultant declining is a refusal, not an admin rejection.
    if action is Action.REJECT and actor.role is UserRole.CONSULTANT:
        return Action.REFUSE
    return action


def resolve_target(
    current: AppointmentStatus,
    action: Action,
    allow_fast_confirm: bool = False,
) -> AppointmentStatus:
    if current in TERMINAL_STATUSES:
        raise InvalidState(f"Appointment is {current.value}; no further changes are allowed.")
    target = TRANSITIONS.get((current, action))
    if target is None and allow_fast_confirm and (current, action) == FAST_CONFIRM:
        target = S.CONFIRMED
    if target is None:
        raise InvalidState(f"Cannot {action.value} an appointment that is {current.value}.")
    return target


def _is_assigned_consultant(appointment: Appointment, actor: Actor) -> bool:
    return (
        actor.role is UserRole.CONSULTANT
        and appointment.consultant_id is not None
        and appointment.consultant_id == actor.user_id
    )


def check_permission(appointment: Appointment, action: Action, actor: Actor) -> None:
    company_admin = actor.administers(appointment.company_id)

    if action in (Action.ASSIGN, Action.REJECT):
        allowed = company_admin
    elif action in (Action.ACCEPT, Action.COMPLETE):
        allowed = company_admin or _is_assigned_consultant(appointment, actor)
    elif action is Action.REFUSE:
        allowed = _is_assigned_consultant(appointment, actor)
    elif action is Action.CANCEL:
        allowed = company_admin or appointment.requester_id == actor.user_id
    else:
        allowed = False

    if not allowed:
        raise Forbidden(f"You are not allowed to {action.value} this appointment.")


def append_note(existing: str | None, addition: str | None) -> str | None:
    addition = (addition or "").strip()
    if not addition:
        return existing
    if not existing:
        return addition
    return f"{existing}\n{addition}"


def _clean_text(value: str | None, label: str, max_length: int) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        raise AppointmentValidationError(f"{label} must be {max_length} characters or fewer.")
    return cleaned


def _require_consultant_id(consultant_id: Any) -> str:
    if consultant_id is None or consultant_id == "":
        raise AppointmentValidationError("A consultant id is required.")
    if not is_valid_id(consultant_id):
        raise AppointmentValidationError("Consultant id is malformed.")
    return consultant_id


def _require_positive_minutes(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise AppointmentValidationError("Actual duration must be a positive number of minutes.")
    return value


def _clean_meeting_url(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if not cleaned.startswith(("http://", "https://")):
        raise AppointmentValidationError("Meeting URL must be an http(s) link.")
    return cleaned


def plan_transition(
    appointment: Appointment,
    action: "str | Action",
    actor: Actor,
    *,
    now: datetime,
    consultant_id: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    actual_duration: int | None = None,
    meeting_url: str | None = None,
    allow_fast_confirm: bool = False,
    rejection_message: str = "",
    max_notes_length: int = 2000,
) -> TransitionPlan:
    """Validate ``action`` against ``appointment`` and return the writes it requires.

    Checks run in order: legal transition (InvalidState), actor permission
    (Forbidden), then payload (ValidationError). The appointment is never
    mutated.
    """
    action = normalize_action(action)
    current = normalize_status(appointment.status)
    fast_confirm = allow_fast_confirm and actor.is_admin
    target = resolve_target(current, action, allow_fast_confirm=fast_confirm)
    check_permission(appointment, action, actor)

    reason = _clean_text(reason, "Reason", max_notes_length)
    notes = _clean_text(notes, "Notes", max_notes_length)
    values: dict[str, Any] = {"status": target.value, "updated_at": now}

    if action is Action.ASSIGN:
        values["consultant_id"] = _require_consultant_id(consultant_id)
        values["notes"] = append_note(appointment.notes, notes)
    elif action is Action.ACCEPT:
        if current is S.PENDING:
            values["consultant_id"] = _require_consultant_id(consultant_id)
        url = _clean_meeting_url(meeting_url)
        if url:
            values["meeting_url"] = url
        values["notes"] = append_note(appointment.notes, notes)
    elif action is Action.REFUSE:
        values["notes"] = append_note(appointment.notes, reason)
    elif action is Action.REJECT:
        values["notes"] = append_note(appointment.notes, reason or rejection_message)
    elif action is Action.CANCEL:
        values["notes"] = append_note(appointment.notes, reason)
    elif action is Action.COMPLETE:
        values["duration"] = _require_positive_minutes(actual_duration)
        values["completed_at"] = now
        values["notes"] = append_note(appointment.notes, notes)

    return TransitionPlan(action=action, expected_status=current, target_status=target, values=values)
