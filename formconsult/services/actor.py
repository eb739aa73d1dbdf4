from dataclasses import dataclass

from formconsult.models.user import ADMIN_ROLES, UserRole, normalize_role
from formconsult.services.errors import AppointmentValidationError


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the session provider."""

    user_id: str
    role: UserRole
    company_id: str | None = None

    @classmethod
    def build(cls, user_id: str, role: str | UserRole, company_id: str | None = None) -> "Actor":
        try:
            normalized_role = normalize_role(role)
        except ValueError as exc:
            raise AppointmentValidationError(str(exc)) from exc
        if not user_id:
            raise AppointmentValidationError("Actor id is required.")
        return cls(user_id=user_id, role=normalized_role, company_id=company_id)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role is UserRole.SUPER_ADMIN

    def administers(self, company_id: str | None) -> bool:
        if self.is_super_admin:
            return True
        return (
            self.role is UserRole.ADMIN_ENTREPRISE
            and self.company_id is not None
            and self.company_id == company_id
        )
