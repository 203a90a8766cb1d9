"""
api/routes/auth.py -- The unauthenticated surface: register, login, verify.

Routes:
  POST /auth/register   -- create a user; 201 with token + public user
  POST /auth/login      -- check credentials; 200 with token + public user
  GET  /auth/verify     -- decode a Bearer token; 200 {valid, user}

These three paths are the whole PUBLIC_ROUTES allow-list in auth/gate.py.
Every other path on the app goes through the access gate first.

Security:
  POST /login and POST /register are rate-limited per client address.
  Login answers unknown email and wrong password with the same 401 body, and
  UserStore.authenticate() spends the same bcrypt time on both.
  Verify answers every token failure with the same 401 body; the reason is
  only logged.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthResponse, LoginRequest, RegisterRequest, TokenUser, UserPublic, VerifyResponse
from auth.errors import AuthError, ConflictError, ValidationError
from auth.gate import bearer_token
from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings

logger = logging.getLogger("authgate.api")

_settings = get_settings()

BAD_CREDENTIALS = "Incorrect email or password"

router = APIRouter()


def _check_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def _token_response(status_code: int, message: str, token: str, user: User) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(message=message, token=token, user=UserPublic.from_user(user)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user and return a token for it.

    The exists() pre-check only spares a bcrypt round for obvious duplicates.
    UserStore.append() re-checks under its write lock and is the authority.
    """
    if not body.email or not body.password or not body.name:
        raise ValidationError("Email, password and name are required")
    _check_password_length(body.password)

    user_store: UserStore = request.app.state.user_store
    tokens: TokenService = request.app.state.token_service

    if user_store.exists(body.email):
        raise ConflictError("This email is already in use")

    user = user_store.append(
        User(
            email=body.email,
            name=body.name,
            password_hash=user_store.hasher.hash(body.password),
        )
    )
    token = tokens.issue(user.id, user.email)
    return _token_response(201, "User created successfully", token, user)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and return a fresh token."""
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    user_store: UserStore = request.app.state.user_store
    tokens: TokenService = request.app.state.token_service

    user = user_store.authenticate(body.email, body.password)
    if user is None:
        raise AuthError(BAD_CREDENTIALS)

    token = tokens.issue(user.id, user.email)
    return _token_response(200, "Login successful", token, user)


@router.get("/auth/verify", response_model=VerifyResponse)
async def verify(request: Request) -> VerifyResponse:
    """Return the decoded claims of the Bearer token in the Authorization header."""
    header = request.headers.get("Authorization")
    if not header:
        raise AuthError("Token missing")
    token = bearer_token(header)
    if token is None:
        raise AuthError("Invalid token")

    tokens: TokenService = request.app.state.token_service
    try:
        result = tokens.verify(token)
    except Exception:
        logger.exception("Token verification raised on /auth/verify")
        raise AuthError("Invalid token") from None
    if not result.ok:
        logger.info("verify rejected token: %s (%s)", result.reason, result.detail)
        raise AuthError("Invalid token")
    return VerifyResponse(valid=True, user=TokenUser(**result.claims.as_dict()))
