import pytest
from jose import JWTError, jwt

from app.core.config import settings
from app.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = get_password_hash("Password1")

    assert hashed != "Password1"
    assert verify_password("Password1", hashed)
    assert not verify_password("Password2", hashed)


def test_access_token_carries_organisation():
    token = create_access_token("user-1", "Greenfield High")

    claims = decode_access_token(token)

    assert claims.user_id == "user-1"
    assert claims.organisation == "Greenfield High"


def test_foreign_token_type_is_rejected():
    token = jwt.encode({"sub": "user-1", "typ": "refresh"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(JWTError):
        decode_access_token(token)


def test_tampered_token_is_rejected():
    token = jwt.encode({"sub": "user-1", "typ": "access"}, "not-the-secret", algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(JWTError):
        decode_access_token(token)
