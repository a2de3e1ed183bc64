# app/api/v1/routes/auth/auth.py
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.response import ResponseModel, error_response, success_response
from app.core.security import create_access_token, get_password_hash, verify_password, decode_access_token
from app.db.deps import get_db
from app.models.user import User
from app.schemas.auth.auth_schema import LoginRequest, Token, UserCreate, UserProfile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


async def get_user_by_email(db: AsyncSession, email: str):
    q = await db.execute(select(User).where(User.email == email))
    return q.scalars().first()


# Register User
@router.post("/register", status_code=201, response_model=ResponseModel)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    if await get_user_by_email(db, user_in.email):
        return error_response(
            msg="Email already registered",
            data={"error_type": "EMAIL_TAKEN"},
            status_code=status.HTTP_409_CONFLICT,
        )

    user = User(
        full_name=user_in.full_name,
        email=user_in.email,
        organisation=user_in.organisation,
        password_hash=get_password_hash(user_in.password),
    )
    db.add(user)
    await db.commit()
    logger.info(f"Registered user {user.id} in organisation {user.organisation}")

    return success_response(
        msg="Registration successful",
        data=UserProfile.model_validate(user),
        status_code=status.HTTP_201_CREATED,
    )


# User Login
@router.post("/login", response_model=ResponseModel)
async def login(creds: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await get_user_by_email(db, creds.email)
    if not user or not verify_password(creds.password, user.password_hash):
        return error_response(
            msg="Incorrect email or password.",
            data={"error_type": "INVALID_CREDENTIALS"},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    if not user.is_active:
        return error_response(
            msg="This account has been deactivated.",
            data={"error_type": "ACCOUNT_INACTIVE"},
            status_code=status.HTTP_403_FORBIDDEN,
        )

    return success_response(
        msg="Login successful!",
        data=Token(access_token=create_access_token(subject=str(user.id), organisation=user.organisation)),
    )


# Get Current user
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = decode_access_token(token)
        user = await db.get(User, uuid.UUID(claims.user_id))
    except (JWTError, ValueError):
        raise credentials_exception
    if user is None or not user.is_active:
        raise credentials_exception
    # Tokens issued before an organisation change stop working.
    if claims.organisation != user.organisation:
        raise credentials_exception
    return user


@router.get("/me", response_model=ResponseModel)
async def read_me(current_user: User = Depends(get_current_user)):
    return success_response(msg="Current user", data=UserProfile.model_validate(current_user))
