"""
API dependencies for FastAPI dependency injection.

Provides common dependencies like database sessions, the authenticated actor
and the notification collaborator.
"""
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import InvalidTokenError

from bricolage.lib.db import get_db as get_db_session
from bricolage.lib.jwt import get_actor_from_token
from bricolage.models.users import UserRole
from bricolage.services.notification_service import Notifier, get_notification_service


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer()


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as asserted by the identity token."""
    id: UUID
    role: UserRole


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """
    Dependency to get the current actor from the JWT bearer token.

    Raises:
        HTTPException: 401 if the token is invalid or carries an unknown role
    """
    try:
        user_id, role = get_actor_from_token(credentials.credentials)
        return Actor(id=UUID(str(user_id)), role=UserRole(str(role).upper()))
    except (InvalidTokenError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
        )


def get_notifier() -> Notifier:
    """Notification collaborator handed to the booking services."""
    return get_notification_service()
