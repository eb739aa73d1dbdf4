import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from formconsult.database import SessionLocal, ensure_schema
from formconsult.services.errors import (
    AppointmentError,
    AppointmentValidationError,
    Forbidden,
    InvalidState,
    NotFound,
)

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_CODES = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidState, status.HTTP_409_CONFLICT),
    (AppointmentValidationError, status.HTTP_400_BAD_REQUEST),
    (Forbidden, status.HTTP_403_FORBIDDEN),
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def to_http_exception(exc: AppointmentError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Database error: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE,
    )
