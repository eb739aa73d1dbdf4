"""Notification model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text
from formconsult.database import Base
from formconsult.models.ids import new_id, utc_now


class Notification(Base):
    """Represents an in-app notification shown in a user's dashboard dropdown."""
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
