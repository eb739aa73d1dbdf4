import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from formconsult.auth import jwt_handler
from formconsult.models.user import User
from formconsult.routes.deps import get_db
from formconsult.services.actor import Actor
from formconsult.services.errors import AppointmentValidationError

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the bearer token to an Actor using the role and company stored on the user."""
    try:
        user_id = jwt_handler.token_subject(credentials.credentials)
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    try:
        return Actor.build(user.id, user.role, user.company_id)
    except AppointmentValidationError as exc:
        logger.warning("User %s has unsupported role %r", user.id, user.role)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc
