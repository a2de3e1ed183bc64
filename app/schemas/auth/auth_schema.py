# app/schemas/auth/auth_schema.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from uuid import UUID

from app.utils.enums import Role


def _normalize_email_value(email: str | None) -> str:
    """Normalize user-provided email strings for consistent lookups."""
    if email is None:
        raise ValueError("Email cannot be empty.")
    normalized = email.strip().lower()
    if not normalized:
        raise ValueError("Email cannot be empty.")
    return normalized


# User/auth
class UserCreate(BaseModel):
    full_name: str = Field(
        ...,
        min_length=1,
        max_length=80,
        description="Teacher's full name",
        json_schema_extra={"example": "Ada Obi"},
    )
    email: EmailStr = Field(
        ...,
        description="User's email address",
        json_schema_extra={"example": "teacher@school.edu"},
    )
    organisation: str = Field(
        ...,
        min_length=1,
        max_length=120,
        description="School or organisation; students are shared within it",
        json_schema_extra={"example": "Greenfield High"},
    )
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="User's password (8-128 characters, letters and numbers)",
        json_schema_extra={"example": "securePassword1"},
    )

    @field_validator("email", mode="before")
    def normalize_email(cls, email: str) -> str:
        return _normalize_email_value(email)

    @field_validator("organisation", "full_name")
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Value cannot be blank.")
        return value

    @field_validator("password")
    def validate_password(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Password cannot be empty.")
        if not any(char.isdigit() for char in value):
            raise ValueError("Password must include at least one number.")
        if not any(char.isalpha() for char in value):
            raise ValueError("Password must include at least one letter.")
        return value


class LoginRequest(BaseModel):
    email: EmailStr = Field(
        ...,
        description="User's email address",
        json_schema_extra={"example": "teacher@school.edu"},
    )
    password: str = Field(
        ...,
        json_schema_extra={"example": "securePassword1"},
    )

    @field_validator("email", mode="before")
    def normalize_email(cls, email: str) -> str:
        return _normalize_email_value(email)


# Token
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# User profile
class UserProfile(BaseModel):
    id: UUID
    full_name: str
    email: str
    organisation: str
    role: Role
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
