"""
API request and response models for the storefront auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Input contract: the services in auth/ assume what these models guarantee --
emails are normalized (stripped, lower-cased) and syntactically valid,
passwords satisfy the strength policy, profile fields are reduced to digits.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from auth.models import PublicUser
from auth.passwords import MAX_PASSWORD_BYTES, fits_bcrypt

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100

POSTAL_CODE_PATTERN = r"^\d{5}-?\d{3}$"
PHONE_PATTERN = r"^\(?[1-9]{2}\)?\s?9?\d{4}-?\d{4}$"

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter."),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter."),
    (re.compile(r"[0-9]"), "Password must contain at least one digit."),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character."),
)


def check_password_policy(value: str) -> str:
    """Raise ValueError naming the first rule the password breaks.

    PASSWORD_MAX_LENGTH counts characters; bcrypt additionally caps the UTF-8
    encoding at 72 bytes, which multi-byte characters reach sooner.
    """
    if not fits_bcrypt(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


def _normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    postal_code: Optional[str] = Field(default=None, pattern=POSTAL_CODE_PATTERN)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_policy(value)

    @field_validator("postal_code", "phone")
    @classmethod
    def digits_only(cls, value: Optional[str]) -> Optional[str]:
        """Store 01001-000 as 01001000 and (11) 91234-5678 as 11912345678."""
        return re.sub(r"\D", "", value) if value is not None else None


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    # No policy check here: old passwords must still be accepted for login.
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class ChangePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/password."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_policy(value)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/password/forgot."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/password/reset."""

    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    confirm_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("token", mode="before")
    @classmethod
    def strip_token(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_policy(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        return self


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes password or reset token fields."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            postal_code=user.postal_code,
            phone=user.phone,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    """Response for register and login. The token is also set as a cookie."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    user: UserResponse
    token: str


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    users: list[UserResponse]


class MeResponse(BaseModel):
    """Identity carried by the verified session token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str


class SessionInfoResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    issued_at: str
    expires_at: str
    expires_in_seconds: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class GreetingResponse(BaseModel):
    """Response for GET /api/v1/catalog/greeting."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
