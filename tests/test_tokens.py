"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - issue/verify round trip yields the same id and email
  - expiry boundary: valid just before iat + lifetime, rejected just after
  - tampered payload, foreign signature, wrong key, garbage -> InvalidToken
  - tokens are plain HS256 JWTs any standard verifier can read
  - claim shape checks (id must be int, email must be a non-empty string)
"""

import base64
import json
import time

import pytest
from jose import jwt

from auth.tokens import (
    EXPIRED,
    INVALID_CLAIMS,
    MALFORMED,
    InvalidToken,
    TokenConfig,
    TokenService,
    ValidToken,
)

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
OTHER_SECRET = "another-secret-key-that-is-long-enough-9876543210"
DAY = 24 * 60 * 60


def _b64(obj: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")


class TestIssueAndVerify:
    def test_roundtrip(self, token_service: TokenService) -> None:
        token = token_service.issue(42, "a@x.com")
        result = token_service.verify(token)
        assert isinstance(result, ValidToken)
        assert result.ok is True
        assert result.claims.id == 42
        assert result.claims.email == "a@x.com"

    def test_expiry_is_lifetime_after_issue(self, token_service: TokenService) -> None:
        payload = jwt.get_unverified_claims(token_service.issue(1, "a@x.com", issued_at=1_700_000_000))
        assert payload["iat"] == 1_700_000_000
        assert payload["exp"] - payload["iat"] == DAY

    def test_as_dict_shape(self, token_service: TokenService) -> None:
        result = token_service.verify(token_service.issue(7, "b@x.com"))
        assert set(result.claims.as_dict()) == {"id", "email", "iat", "exp"}

    def test_standard_verifier_can_decode(self, token_service: TokenService) -> None:
        """Tokens must stay verifiable by any HS256 implementation holding the secret."""
        token = token_service.issue(5, "c@x.com")
        assert jwt.get_unverified_header(token)["alg"] == "HS256"
        payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"])
        assert payload["id"] == 5
        assert payload["email"] == "c@x.com"


class TestExpiryBoundary:
    def test_valid_just_before_expiry(self, token_service: TokenService) -> None:
        issued_at = int(time.time()) - DAY + 30
        result = token_service.verify(token_service.issue(1, "a@x.com", issued_at=issued_at))
        assert result.ok is True

    def test_invalid_just_after_expiry(self, token_service: TokenService) -> None:
        issued_at = int(time.time()) - DAY - 30
        result = token_service.verify(token_service.issue(1, "a@x.com", issued_at=issued_at))
        assert isinstance(result, InvalidToken)
        assert result.reason == EXPIRED

    def test_short_lifetime_config(self) -> None:
        service = TokenService(TokenConfig(secret_key=TEST_SECRET, lifetime_seconds=60))
        issued_at = int(time.time()) - 61
        assert service.verify(service.issue(1, "a@x.com", issued_at=issued_at)).ok is False


class TestTampering:
    def test_altered_payload_fails(self, token_service: TokenService) -> None:
        token = token_service.issue(1, "a@x.com")
        header, _payload, signature = token.split(".")
        forged = jwt.encode(
            {"id": 2, "email": "admin@x.com", "iat": int(time.time()), "exp": int(time.time()) + DAY},
            TEST_SECRET,
            algorithm="HS256",
        ).split(".")[1]
        result = token_service.verify(f"{header}.{forged}.{signature}")
        assert result.ok is False
        assert result.reason == MALFORMED

    def test_foreign_signature_fails(self, token_service: TokenService) -> None:
        """Well-formed claims signed with another key never verify."""
        other = TokenService(TokenConfig(secret_key=OTHER_SECRET))
        assert token_service.verify(other.issue(1, "a@x.com")).ok is False

    def test_swapped_signature_fails(self, token_service: TokenService) -> None:
        other = TokenService(TokenConfig(secret_key=OTHER_SECRET))
        head, body, _sig = token_service.issue(1, "a@x.com").split(".")
        foreign_sig = other.issue(1, "a@x.com").split(".")[2]
        assert token_service.verify(f"{head}.{body}.{foreign_sig}").ok is False

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c", "Bearer x", "....."])
    def test_garbage_is_malformed(self, token_service: TokenService, garbage: str) -> None:
        result = token_service.verify(garbage)
        assert result.ok is False
        assert result.reason == MALFORMED

    def test_unsigned_token_rejected(self, token_service: TokenService) -> None:
        now = int(time.time())
        token = ".".join(
            [
                _b64({"alg": "none", "typ": "JWT"}),
                _b64({"id": 1, "email": "a@x.com", "iat": now, "exp": now + 60}),
                "",
            ]
        )
        assert token_service.verify(token).ok is False


class TestClaimShape:
    def _raw(self, payload: dict) -> str:
        return jwt.encode(payload, TEST_SECRET, algorithm="HS256")

    def test_missing_exp_rejected(self, token_service: TokenService) -> None:
        token = self._raw({"id": 1, "email": "a@x.com", "iat": int(time.time())})
        assert token_service.verify(token).ok is False

    def test_string_id_rejected(self, token_service: TokenService) -> None:
        now = int(time.time())
        token = self._raw({"id": "1", "email": "a@x.com", "iat": now, "exp": now + 60})
        result = token_service.verify(token)
        assert result.ok is False
        assert result.reason == INVALID_CLAIMS

    def test_missing_email_rejected(self, token_service: TokenService) -> None:
        now = int(time.time())
        token = self._raw({"id": 1, "iat": now, "exp": now + 60})
        result = token_service.verify(token)
        assert result.ok is False
        assert result.reason == INVALID_CLAIMS


def test_empty_secret_refused() -> None:
    with pytest.raises(ValueError):
        TokenService(TokenConfig(secret_key=""))
