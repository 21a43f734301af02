"""Tests for JWT utilities."""
from datetime import timedelta

import jwt
import pytest
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from bricolage.lib.jwt import create_access_token, get_actor_from_token, verify_token
from bricolage.lib.settings import settings


USER_ID = "123e4567-e89b-12d3-a456-426614174000"


@pytest.mark.unit
def test_create_and_verify_token():
    """Test creating and verifying a valid token."""
    token = create_access_token(USER_ID, "TECHNICIAN")

    payload = verify_token(token)
    assert payload["sub"] == USER_ID
    assert payload["role"] == "TECHNICIAN"
    assert "iat" in payload
    assert "exp" in payload


@pytest.mark.unit
def test_get_actor_from_token():
    """Test extracting the actor from a token."""
    token = create_access_token(USER_ID, "CLIENT")

    assert get_actor_from_token(token) == (USER_ID, "CLIENT")


@pytest.mark.unit
def test_token_without_role_rejected():
    token = jwt.encode({"sub": USER_ID}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(InvalidTokenError):
        get_actor_from_token(token)


@pytest.mark.unit
def test_expired_token():
    """Test that expired tokens are rejected."""
    token = create_access_token(USER_ID, "ADMIN", expires_delta=timedelta(seconds=-10))

    with pytest.raises(ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_invalid_token():
    """Test that malformed tokens are rejected."""
    with pytest.raises(InvalidTokenError):
        verify_token("not.a.valid.token")


@pytest.mark.unit
def test_token_signed_with_other_secret():
    token = jwt.encode(
        {"sub": USER_ID, "role": "ADMIN"},
        settings.jwt_secret + "-other",
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(InvalidTokenError):
        verify_token(token)


@pytest.mark.unit
def test_custom_expiry():
    """Test creating token with custom expiration time."""
    token = create_access_token(USER_ID, "CLIENT", expires_delta=timedelta(hours=1))

    payload = verify_token(token)

    diff = payload["exp"] - payload["iat"]
    assert 3590 < diff < 3610
