"""
api/main.py -- FastAPI application entry point for the auth gateway.

Run with:  python main.py serve
           uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- answers preflights, adds CORS headers
  2. log_requests          -- one log line per request with latency
  3. access_gate           -- 401 for protected paths without a valid token
  4. SlowAPIMiddleware     -- per-route rate limits from api.limiter

Lifespan builds the shared components from Settings and stores them on
app.state: password hasher, token service, credential store, resource store.
A store that cannot be opened aborts startup.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import make_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import MessageResponse
from api.routes.auth import router as auth_router
from api.routes.resources import router as resources_router
from auth.errors import AuthGatewayError, InternalError
from auth.gate import PUBLIC_ROUTES, check_access, is_public
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenConfig, TokenService
from core.config import Settings, get_settings
from resources.store import ResourceStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=MessageResponse(message=message).model_dump())


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_token_service(settings: Settings) -> TokenService:
    """Build the token service from settings. The only place TokenConfig is assembled."""
    return TokenService(
        TokenConfig(
            secret_key=settings.secret_key,
            algorithm=settings.token_algorithm,
            lifetime_seconds=settings.token_expire_seconds,
        )
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared components on startup and release them on shutdown."""
    settings = get_settings()
    logger.info("Auth gateway starting up")
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.token_service = build_token_service(settings)
    app.state.user_store = UserStore(settings.database_url, hasher)
    app.state.resource_store = ResourceStore(settings.database_url)
    logger.info(
        "Storage ready (%s, %d users)",
        make_url(settings.database_url).render_as_string(hide_password=True),
        app.state.user_store.count(),
    )
    logger.info("Public routes: %s", ", ".join(p.pattern for p in PUBLIC_ROUTES))

    yield

    app.state.user_store.close()
    app.state.resource_store.close()
    logger.info("Auth gateway shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Auth Gateway",
    description="Registers users, issues bearer tokens and gates a generic resource API.",
    version=VERSION,
    lifespan=lifespan,
)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


# ---------------------------------------------------------------------------
# Access gate
#
# Runs before routing, so an unauthenticated request to an unknown path gets
# 401 rather than 404. Exception handlers do not apply at this level; the gate
# builds its own responses.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def access_gate(request: Request, call_next):
    path = request.url.path
    if is_public(path):
        return await call_next(request)
    decision = check_access(path, request.headers.get("Authorization"), request.app.state.token_service)
    if not decision.allowed:
        return _error(401, decision.message)
    request.state.user_id = decision.user_id
    return await call_next(request)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# Added last so it is outermost: preflight requests never reach the gate.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
# Catch-all /{collection} patterns -- must stay last.
app.include_router(resources_router, tags=["Resources"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"message": ...}. Internal detail is logged, never sent.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthGatewayError)
async def gateway_error_handler(request: Request, exc: AuthGatewayError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return _error(500, InternalError.default_message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON, wrong field types or a bad path parameter."""
    logger.info("Rejected request on %s: %s", request.url.path, exc.errors())
    return _error(400, "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """404 and 405 from routing. Headers such as Allow are passed through."""
    response = _error(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, InternalError.default_message)
