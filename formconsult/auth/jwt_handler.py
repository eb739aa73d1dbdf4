from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from formconsult.core import config

TOKEN_ISSUER = "formconsult"


def create_access_token(
    user_id: str,
    role: str | None = None,
    company_id: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """Issue a bearer token for ``user_id``; role and company claims are informational only."""
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    claims: dict[str, Any] = {
        "sub": user_id,
        "iss": TOKEN_ISSUER,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    if role:
        claims["role"] = role
    if company_id:
        claims["company_id"] = company_id
    return jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        issuer=TOKEN_ISSUER,
        options={"require": ["sub", "exp"]},
    )


def token_subject(token: str) -> str:
    """Return the user id carried by ``token``; raises ``jwt.InvalidTokenError`` otherwise."""
    subject = decode_access_token(token).get("sub")
    if not isinstance(subject, str) or not subject:
        raise jwt.InvalidTokenError("Token subject is missing.")
    return subject
