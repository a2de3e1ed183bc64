# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_TYPE = "access"


class TokenClaims(NamedTuple):
    user_id: str
    organisation: Optional[str]


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(subject: str, organisation: str) -> str:
    """Issue a bearer token scoped to the teacher's organisation."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(subject),
        "org": organisation,
        "typ": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    """
    Decode a bearer token.

    Raises:
        JWTError: bad signature, expired, wrong token type or missing subject
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("typ") != TOKEN_TYPE or not payload.get("sub"):
        raise JWTError("Not an access token")
    return TokenClaims(user_id=payload["sub"], organisation=payload.get("org"))
