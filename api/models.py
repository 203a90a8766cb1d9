"""
API request and response models for the gateway's REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are Optional on purpose: a missing field and an empty string
must both produce the endpoint's own 400 message, not FastAPI's generic 422.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: Optional[str] = None
    password: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserPublic(BaseModel):
    """The client-visible part of a user record. Never carries the hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(**user.public_view())


class AuthResponse(BaseModel):
    """Response for successful register (201) and login (200)."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    user: UserPublic


class TokenUser(BaseModel):
    """Decoded token claims as returned by GET /auth/verify."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    iat: int
    exp: int


class VerifyResponse(BaseModel):
    """Response for GET /auth/verify."""

    model_config = ConfigDict(frozen=True)

    valid: bool = True
    user: TokenUser


class MessageResponse(BaseModel):
    """Body of every error response (4xx/5xx)."""

    model_config = ConfigDict(frozen=True)

    message: str
