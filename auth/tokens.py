"""
auth/tokens.py -- Bearer token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256 by default. Tokens carry the user id and email
       plus integer iat/exp claims. Any standard JWT library holding the same
       secret can verify them.

  Injected config: TokenService receives a TokenConfig at construction and
       never reads settings or module globals. Tests build services with their
       own keys and lifetimes; key rotation means building a new service.

  Result type: verify() returns either ValidToken or InvalidToken. Callers
       branch on .ok and can never mistake an error value for claims. The
       InvalidToken.reason is for logging only -- HTTP responses must not
       reveal whether a token was expired, tampered with or malformed.

Tokens are stateless: there is no revocation list. A token stops working only
by expiring or by the signing key changing.

Layer rule: no imports from api/, core/ or resources/.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import ClassVar, Union

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

# Reasons reported by InvalidToken
EXPIRED = "expired"
INVALID_CLAIMS = "invalid_claims"
MALFORMED = "malformed"

_DECODE_OPTIONS = {"require_exp": True, "require_iat": True}


@dataclass(frozen=True)
class TokenConfig:
    secret_key: str
    algorithm: str = "HS256"
    lifetime_seconds: int = 24 * 60 * 60


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, signature-checked token payload."""

    id: int
    email: str
    issued_at: int
    expires_at: int

    def as_dict(self) -> dict:
        """Wire shape used in token payloads and in GET /auth/verify responses."""
        return {"id": self.id, "email": self.email, "iat": self.issued_at, "exp": self.expires_at}


@dataclass(frozen=True)
class ValidToken:
    claims: TokenClaims
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class InvalidToken:
    reason: str
    detail: str = ""
    ok: ClassVar[bool] = False


TokenResult = Union[ValidToken, InvalidToken]


class TokenService:
    """Issue and verify signed, time-limited bearer tokens.

    Usage:
        service = TokenService(TokenConfig(secret_key="..." * 8))
        token = service.issue(user_id=42, email="a@x.com")
        result = service.verify(token)
        if result.ok:
            result.claims.id   # 42
    """

    def __init__(self, config: TokenConfig) -> None:
        if not config.secret_key:
            raise ValueError("TokenConfig.secret_key must not be empty")
        self.config = config

    def issue(self, user_id: int, email: str, issued_at: int | None = None) -> str:
        """Encode a signed token for the given identity.

        Args:
            user_id:   Numeric id of the user record.
            email:     Email of the user record.
            issued_at: Epoch seconds to stamp as iat. Defaults to now; the
                       expiry is always iat + lifetime_seconds.
        """
        iat = int(time.time()) if issued_at is None else int(issued_at)
        payload = {
            "id": user_id,
            "email": email,
            "iat": iat,
            "exp": iat + self.config.lifetime_seconds,
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)

    def verify(self, token: str) -> TokenResult:
        """Check signature and expiry; return the claims only if both hold."""
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                options=_DECODE_OPTIONS,
            )
        except ExpiredSignatureError as exc:
            return InvalidToken(EXPIRED, str(exc))
        except JWTClaimsError as exc:
            return InvalidToken(INVALID_CLAIMS, str(exc))
        except JWTError as exc:
            # Bad signature, wrong algorithm, truncated or non-JWT input.
            return InvalidToken(MALFORMED, str(exc))

        user_id = payload.get("id")
        email = payload.get("email")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            return InvalidToken(INVALID_CLAIMS, "id claim must be an integer")
        if not isinstance(email, str) or not email:
            return InvalidToken(INVALID_CLAIMS, "email claim must be a non-empty string")
        return ValidToken(
            TokenClaims(
                id=user_id,
                email=email,
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        )
