import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if APP_ENV.lower() == "production" else "DEBUG")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_APPOINTMENT_DURATION = int(os.getenv("DEFAULT_APPOINTMENT_DURATION", "60"))
MAX_NOTES_LENGTH = int(os.getenv("MAX_NOTES_LENGTH", "2000"))
DEFAULT_REJECTION_MESSAGE = os.getenv(
    "DEFAULT_REJECTION_MESSAGE",
    "Demande rejetée par l'administrateur",
)

# PENDING -> CONFIRMED shortcut for admins; requires a consultant in the same call.
ALLOW_ADMIN_FAST_CONFIRM = _get_bool(os.getenv("ALLOW_ADMIN_FAST_CONFIRM"), default=False)
STRICT_CONSULTANT_AVAILABILITY = _get_bool(os.getenv("STRICT_CONSULTANT_AVAILABILITY"), default=False)

MEETING_URL_BASE = os.getenv("MEETING_URL_BASE", "")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
