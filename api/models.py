"""
API request and response models for the Inkpress auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Raw refresh and session tokens never appear in response bodies; the routes
set them as httpOnly cookies.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Shape check only. Deliverability is not the concern of this layer.
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class RoleEnum(str, Enum):
    admin = "admin"
    author = "author"
    reader = "reader"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    name: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    identity_id: int
    new_password: str = Field(min_length=1, max_length=255)


class PasswordCheckRequest(BaseModel):
    """Body for POST /password/validate. email and name feed the personal-info rule."""

    password: str = Field(max_length=255)
    email: str = Field(default="", max_length=255)
    name: str = Field(default="", max_length=255)


class GeneratePasswordRequest(BaseModel):
    length: int = Field(default=12, ge=8, le=128)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    role: RoleEnum
    created_at: Optional[str] = None


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    identity: IdentityResponse


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    message: str


class PasswordCheckResponse(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    strength: str
    score: int


class GeneratedPasswordResponse(BaseModel):
    password: str
    strength: str
    score: int


class SessionResponse(BaseModel):
    """One device session. The opaque token itself is never returned."""

    id: int
    device_fingerprint: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    last_activity_at: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: str
    is_current: bool = False


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class TerminatedResponse(BaseModel):
    terminated_count: int
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
