"""
auth/gate.py -- Access decision for every request outside the public allow-list.

The HTTP middleware in api/main.py is a thin adapter around check_access():
it passes the path and the raw Authorization header, and turns the returned
GateDecision into either request.state.user_id + call_next, or a 401 JSON
response. Keeping the decision here means it is testable without an ASGI app.

Public routes are an explicit allow-list of full-path patterns. A path that
merely starts with "/auth" (e.g. "/authors") is protected like any other.

The gate fails closed: an exception raised while verifying a token is a
rejection, never a pass-through and never a 500.

Layer rule: no imports from api/, core/ or resources/.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from auth.tokens import TokenService

logger = logging.getLogger("authgate.auth")

PUBLIC_ROUTES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^/auth/register/?$"),
    re.compile(r"^/auth/login/?$"),
    re.compile(r"^/auth/verify/?$"),
)

MISSING_TOKEN = "Unauthorized - token missing"
INVALID_TOKEN = "Invalid or expired token"
VERIFICATION_FAILED = "Token verification failed"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    user_id: int | None = None
    message: str = ""


def is_public(path: str) -> bool:
    """Return True if the path is served without a token."""
    return any(pattern.match(path) for pattern in PUBLIC_ROUTES)


def bearer_token(header: str | None) -> str | None:
    """Extract the token from an "Authorization: Bearer <token>" header.

    Returns None when the header is absent, uses another scheme, or carries
    no token after the scheme. The scheme match is case-sensitive.
    """
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer":
        return None
    token = token.strip()
    return token or None


def check_access(path: str, header: str | None, tokens: TokenService) -> GateDecision:
    """Decide whether a request to a protected path may proceed."""
    token = bearer_token(header)
    if token is None:
        return GateDecision(allowed=False, message=MISSING_TOKEN)
    try:
        result = tokens.verify(token)
    except Exception:
        logger.exception("Token verification raised on %s", path)
        return GateDecision(allowed=False, message=VERIFICATION_FAILED)
    if not result.ok:
        logger.info("Rejected token on %s: %s (%s)", path, result.reason, result.detail)
        return GateDecision(allowed=False, message=INVALID_TOKEN)
    return GateDecision(allowed=True, user_id=result.claims.id)
