import secrets

from formconsult.core import config
from formconsult.models.appointment import Appointment


def provision_meeting_url(appointment: Appointment, base_url: str | None = None) -> str | None:
    """Room link for a confirmed appointment, or None when no video provider is configured."""
    base = (base_url if base_url is not None else config.MEETING_URL_BASE).rstrip('/')
    if not base:
        return None
    return f'{base}/{appointment.id}-{secrets.token_urlsafe(8)}'
