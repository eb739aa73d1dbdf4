import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.orm import Session

from formconsult.models.notification import Notification

logger = logging.getLogger(__name__)

CONSULTATION_REQUESTED = 'consultation_requested'
CONSULTANT_ASSIGNED = 'consultant_assigned'
CONSULTATION_ACCEPTED = 'consultation_accepted'
CONSULTATION_REFUSED = 'consultation_refused'
CONSULTATION_REJECTED = 'consultation_rejected'
CONSULTATION_CANCELED = 'consultation_canceled'
CONSULTATION_COMPLETED = 'consultation_completed'

# (title, message template); templates receive the appointment title.
MESSAGES = {
    CONSULTATION_REQUESTED: ('Nouvelle demande de consultation', 'Une consultation "{title}" a été demandée.'),
    CONSULTANT_ASSIGNED: ('Consultation assignée', 'Un consultant a été assigné à la consultation "{title}".'),
    CONSULTATION_ACCEPTED: ('Consultation acceptée', 'La consultation "{title}" a été confirmée.'),
    CONSULTATION_REFUSED: ('Consultation refusée', 'La consultation "{title}" a été refusée par le consultant.'),
    CONSULTATION_REJECTED: ('Demande rejetée', 'La demande "{title}" a été rejetée.'),
    CONSULTATION_CANCELED: ('Consultation annulée', 'La consultation "{title}" a été annulée.'),
    CONSULTATION_COMPLETED: ('Consultation terminée', 'La consultation "{title}" est terminée.'),
}


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    appointment_id: str
    actor_id: str
    timestamp: datetime
    recipients: tuple[str, ...] = ()
    appointment_title: str = ''
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            'type': self.type,
            'appointmentId': self.appointment_id,
            'actorId': self.actor_id,
            'timestamp': self.timestamp.isoformat(),
            **self.data,
        }


class NotificationEmitter(Protocol):
    def emit(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationEmitter:
    def emit(self, event: NotificationEvent) -> None:
        logger.info('Notification %s', event.payload())


class DatabaseNotificationEmitter:
    """Stores one in-app notification per recipient, skipping the actor."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def emit(self, event: NotificationEvent) -> None:
        title, template = MESSAGES.get(event.type, ('Mise à jour de consultation', '{title}'))
        message = template.format(title=event.appointment_title)
        recipients = [user_id for user_id in dict.fromkeys(event.recipients) if user_id and user_id != event.actor_id]
        if not recipients:
            return
        try:
            for user_id in recipients:
                self.db.add(
                    Notification(
                        user_id=user_id,
                        type=event.type,
                        title=title,
                        message=message,
                        data=event.payload(),
                        is_read=False,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.debug('Stored %d notification(s) for %s', len(recipients), event.type)


def emit_safely(emitter: NotificationEmitter | None, event: NotificationEvent) -> None:
    if emitter is None:
        return
    try:
        emitter.emit(event)
    except Exception:
        logger.exception('Notification %s for appointment %s failed', event.type, event.appointment_id)


def list_notifications(db: Session, user_id: str, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def mark_notification_read(db: Session, notification_id: str, user_id: str) -> Notification | None:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if notification is None:
        return None
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
