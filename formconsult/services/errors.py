class AppointmentError(Exception):
    """Base class for failures surfaced to dashboards as a displayable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(AppointmentError):
    pass


class InvalidState(AppointmentError):
    pass


class ConcurrentModification(InvalidState):
    """The stored status changed between the read and the conditional write."""


class ConsultantUnavailable(InvalidState):
    pass


class AppointmentValidationError(AppointmentError):
    pass


class Forbidden(AppointmentError):
    pass
