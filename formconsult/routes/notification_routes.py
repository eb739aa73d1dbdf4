from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formconsult.auth.dependencies import get_current_actor
from formconsult.routes.deps import database_unavailable, ensure_database_ready, get_db
from formconsult.services import notifications
from formconsult.services.actor import Actor

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


@router.get('', response_model=list[NotificationResponse])
def list_notifications(
    unread: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rows = notifications.list_notifications(db, actor.user_id, unread_only=unread, limit=limit)
        return [NotificationResponse.model_validate(row) for row in rows]
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        notification = notifications.mark_notification_read(db, notification_id, actor.user_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Notification not found.',
        )
    return NotificationResponse.model_validate(notification)
