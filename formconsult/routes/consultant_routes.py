from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formconsult.auth.dependencies import get_current_actor
from formconsult.routes.deps import database_unavailable, ensure_database_ready, get_db
from formconsult.services import matcher
from formconsult.services.actor import Actor

router = APIRouter(tags=['consultants'])


class ConsultantResponse(BaseModel):
    id: str
    name: str | None = None
    email: str
    specialties: list[str] = []
    is_available: bool
    total_sessions: int = 0
    rating: float = 0.0
    success_rate: float = 0.0
    response_time_minutes: int | None = None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

    @field_validator('specialties', mode='before')
    @classmethod
    def default_specialties(cls, value):
        return value or []


@router.get('', response_model=list[ConsultantResponse])
def list_consultants(
    search: str | None = Query(default=None),
    specialty: str | None = Query(default=None),
    available: bool | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only admins can browse consultants.',
        )

    ensure_database_ready()

    try:
        consultants = matcher.directory(db, search_text=search, specialty=specialty, available=available)
        return [ConsultantResponse.model_validate(consultant) for consultant in consultants]
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
