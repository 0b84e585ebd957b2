"""
API request and response models for the marketplace auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Validation rules live here (email format, password strength, Indonesian
phone numbers). The session core only ever sees requests that passed them.

Token fields use camelCase on the wire (accessToken / refreshToken) to keep
the existing frontend contract; populate_by_name lets Python code use the
snake_case names.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import AuthResult, ClientRegistration, TokenPair, User, VendorRegistration
from auth.passwords import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PHONE_PATTERN = r"^(\+62|62|0)[0-9]{9,12}$"

PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = MAX_PASSWORD_BYTES

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")


def _check_password_strength(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    if not (_LOWER.search(value) and _UPPER.search(value) and _DIGIT.search(value)):
        raise ValueError("Password must contain uppercase, lowercase, and number")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class VendorRegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register/vendor."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    company_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    address: str = Field(min_length=1, max_length=1000)
    npwp: Optional[str] = Field(default=None, max_length=32)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)

    def to_domain(self) -> VendorRegistration:
        return VendorRegistration(
            email=str(self.email).lower(),
            password=self.password,
            company_name=self.company_name,
            phone=self.phone,
            address=self.address,
            npwp=self.npwp or None,
        )


class ClientRegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register/client."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    contact_person: str = Field(min_length=1, max_length=255)
    phone: str = Field(pattern=PHONE_PATTERN)
    company_name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)

    def to_domain(self) -> ClientRegistration:
        return ClientRegistration(
            email=str(self.email).lower(),
            password=self.password,
            contact_person=self.contact_person,
            phone=self.phone,
            company_name=self.company_name or None,
            address=self.address or None,
        )


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. Strength rules are not re-checked here."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh-token."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class LogoutRequest(BaseModel):
    """Request body for POST /api/v1/auth/logout.

    Any JSON object is accepted and only a non-empty string refreshToken is
    acted on. Logout never answers 422.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    refresh_token: Any = Field(default=None, alias="refreshToken")

    def token(self) -> Optional[str]:
        if isinstance(self.refresh_token, str) and self.refresh_token:
            return self.refresh_token
        return None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=user.id, email=user.email, role=user.role.value)


class VendorRegisterResponse(BaseModel):
    """Vendors get no tokens at sign-up; they wait for approval."""

    model_config = ConfigDict(frozen=True)

    email: str
    status: str


class TokenPairResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh-token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token)


class AuthResponse(BaseModel):
    """Response for client registration and login."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user: UserSummary
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            user=UserSummary.from_user(result.user),
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        )


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


class ProfileResponse(BaseModel):
    """Response for GET /api/v1/auth/profile. Role-specific fields are None when not applicable."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    npwp: Optional[str] = None
    status: Optional[str] = None
    registration_type: Optional[str] = None
    contact_person: Optional[str] = None


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
    components: dict[str, str]
