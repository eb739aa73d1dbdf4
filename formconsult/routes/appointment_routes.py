from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formconsult.auth.dependencies import get_current_actor
from formconsult.core import config
from formconsult.routes.consultant_routes import ConsultantResponse
from formconsult.routes.deps import database_unavailable, ensure_database_ready, get_db, to_http_exception
from formconsult.services import lifecycle, matcher
from formconsult.services.actor import Actor
from formconsult.services.errors import AppointmentError
from formconsult.services.notifications import DatabaseNotificationEmitter, NotificationEmitter
from formconsult.services.transitions import Action, action_for_target

router = APIRouter(tags=['appointments'])


class _CamelModel(BaseModel):
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > config.MAX_NOTES_LENGTH:
        raise ValueError(f'Text must be {config.MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


class CreateAppointmentRequest(_CamelModel):
    title: str
    scheduled_at: datetime
    description: str | None = None
    duration: int | None = None
    urgency: str | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class TransitionRequest(_CamelModel):
    action: str | None = None
    status: str | None = None
    consultant_id: str | None = None
    reason: str | None = None
    notes: str | None = None
    actual_duration: int | None = None
    meeting_url: str | None = None
    force: bool = False

    @field_validator('action')
    @classmethod
    def validate_action(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in {action.value for action in Action}:
            raise ValueError('Invalid action.')
        return normalized

    @model_validator(mode='after')
    def require_action_or_status(self) -> 'TransitionRequest':
        if self.action is None and not (self.status or '').strip():
            raise ValueError('Either action or status is required.')
        return self

    def resolve_action(self, actor: Actor) -> Action:
        if self.action is not None:
            return Action(self.action)
        return action_for_target(self.status, actor)

    @field_validator('reason', 'notes')
    @classmethod
    def validate_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class AssignConsultantRequest(_CamelModel):
    consultant_id: str
    notes: str | None = None
    force: bool = False

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class AppointmentResponse(_CamelModel):
    id: str
    title: str
    description: str | None = None
    scheduled_at: datetime
    duration: int
    status: str
    urgency: str
    requester_id: str
    consultant_id: str | None = None
    company_id: str | None = None
    meeting_url: str | None = None
    notes: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CandidateResponse(ConsultantResponse):
    has_schedule_conflict: bool = False


def notification_emitter(db: Session) -> NotificationEmitter:
    return DatabaseNotificationEmitter(db)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = lifecycle.create_appointment(
            db,
            actor,
            title=data.title,
            scheduled_at=data.scheduled_at,
            duration=data.duration,
            description=data.description,
            urgency=data.urgency,
            emitter=notification_emitter(db),
        )
        return AppointmentResponse.model_validate(appointment)
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    scope: str = Query(default='self'),
    status_filter: str | None = Query(default=None, alias='status'),
    search: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = lifecycle.list_appointments(db, actor, scope, status_filter, search)
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return AppointmentResponse.model_validate(lifecycle.get_appointment(db, appointment_id, actor))
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/{appointment_id}', response_model=AppointmentResponse)
@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def transition_appointment(
    appointment_id: str,
    data: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = lifecycle.transition(
            db,
            appointment_id,
            data.resolve_action(actor),
            actor,
            consultant_id=data.consultant_id,
            reason=data.reason,
            notes=data.notes,
            actual_duration=data.actual_duration,
            meeting_url=data.meeting_url,
            force=data.force,
            emitter=notification_emitter(db),
        )
        return AppointmentResponse.model_validate(appointment)
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/{appointment_id}/candidates', response_model=list[CandidateResponse])
def list_candidates(
    appointment_id: str,
    search: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        _, candidates = matcher.list_candidates(db, appointment_id, actor, search_text=search)
        return [
            CandidateResponse.model_validate(
                {
                    **ConsultantResponse.model_validate(candidate.consultant).model_dump(),
                    'has_schedule_conflict': candidate.has_schedule_conflict,
                }
            )
            for candidate in candidates
        ]
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/assign', response_model=AppointmentResponse)
def assign_consultant(
    appointment_id: str,
    data: AssignConsultantRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = matcher.assign_consultant(
            db,
            appointment_id,
            data.consultant_id,
            actor,
            notes=data.notes,
            force=data.force,
            emitter=notification_emitter(db),
        )
        return AppointmentResponse.model_validate(appointment)
    except AppointmentError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
