"""JWT token generation and validation utilities.

Tokens are issued by the identity service; this module verifies them and
extracts the actor. Standard claims (exp, iat, sub) plus a custom role claim.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import InvalidTokenError

from bricolage.lib.settings import settings


def create_access_token(
    user_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Used by local tooling and tests; production tokens come from the
    identity service and carry the same claims.

    Args:
        user_id: UUID of the user (stored in 'sub' claim)
        role: Actor role (CLIENT, TECHNICIAN, ADMIN)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def get_actor_from_token(token: str) -> tuple[str, str]:
    """Extract (user_id, role) from a token.

    Raises:
        InvalidTokenError: If token is invalid or a required claim is missing
    """
    payload = verify_token(token)
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise InvalidTokenError("Token is missing the sub or role claim")
    return user_id, role
