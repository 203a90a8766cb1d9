"""
tests/test_access_gate.py -- Unit and integration tests for the access gate.

Unit part exercises auth/gate.py directly (allow-list, header parsing,
check_access decisions). Integration part goes through the real ASGI stack to
prove rejected requests never reach the resource router.

Coverage:
  - only the three auth endpoints are public; "/authors" is not
  - missing header / non-Bearer scheme -> 401 "Unauthorized - token missing"
  - invalid, tampered or expired token -> 401 "Invalid or expired token"
  - verifier blowing up -> 401 "Token verification failed" (fails closed)
  - valid token -> request proceeds with the user id attached
"""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from auth.gate import (
    INVALID_TOKEN,
    MISSING_TOKEN,
    VERIFICATION_FAILED,
    bearer_token,
    check_access,
    is_public,
)
from auth.store import UserStore
from auth.tokens import TokenConfig, TokenService

# ===========================================================================
# Unit tests
# ===========================================================================


class TestAllowList:
    @pytest.mark.parametrize("path", ["/auth/register", "/auth/login", "/auth/verify", "/auth/login/"])
    def test_auth_endpoints_are_public(self, path: str) -> None:
        assert is_public(path) is True

    @pytest.mark.parametrize("path", ["/", "/products", "/authors", "/auth", "/auth/other", "/api/auth/login"])
    def test_everything_else_is_protected(self, path: str) -> None:
        assert is_public(path) is False


class TestBearerToken:
    def test_extracts_token(self) -> None:
        assert bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer ", "Basic dXNlcjpwYXNz", "bearer abc", "Token abc"])
    def test_rejects_missing_or_other_scheme(self, header) -> None:
        assert bearer_token(header) is None


class TestCheckAccess:
    def test_missing_header(self, token_service: TokenService) -> None:
        decision = check_access("/products", None, token_service)
        assert decision.allowed is False
        assert decision.message == MISSING_TOKEN

    def test_wrong_scheme(self, token_service: TokenService) -> None:
        decision = check_access("/products", "Basic abc", token_service)
        assert decision.message == MISSING_TOKEN

    def test_invalid_token(self, token_service: TokenService) -> None:
        decision = check_access("/products", "Bearer not-a-token", token_service)
        assert decision.allowed is False
        assert decision.message == INVALID_TOKEN

    def test_expired_and_tampered_look_the_same(self, token_service: TokenService) -> None:
        expired = token_service.issue(1, "a@x.com", issued_at=int(time.time()) - 2 * 24 * 3600)
        other = TokenService(TokenConfig(secret_key="z" * 40)).issue(1, "a@x.com")
        first = check_access("/p", f"Bearer {expired}", token_service)
        second = check_access("/p", f"Bearer {other}", token_service)
        assert first == second

    def test_valid_token_carries_user_id(self, token_service: TokenService) -> None:
        decision = check_access("/products", f"Bearer {token_service.issue(99, 'a@x.com')}", token_service)
        assert decision.allowed is True
        assert decision.user_id == 99

    def test_verifier_error_fails_closed(self, token_service: TokenService, monkeypatch) -> None:
        def boom(token):
            raise RuntimeError("key store unavailable")

        monkeypatch.setattr(token_service, "verify", boom)
        decision = check_access("/products", "Bearer abc", token_service)
        assert decision.allowed is False
        assert decision.message == VERIFICATION_FAILED


# ===========================================================================
# Integration tests
# ===========================================================================


class TestGateOverHttp:
    def test_no_header_is_rejected(self, api_client: tuple[TestClient, TokenService, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/products")
        assert resp.status_code == 401
        assert resp.json() == {"message": MISSING_TOKEN}

    def test_basic_scheme_is_rejected(self, api_client) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/products", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401
        assert resp.json() == {"message": MISSING_TOKEN}

    def test_garbage_token_is_rejected(self, api_client) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/products", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json() == {"message": INVALID_TOKEN}

    def test_expired_token_is_rejected(self, api_client) -> None:
        client, tokens, _store = api_client
        expired = tokens.issue(1, "a@x.com", issued_at=int(time.time()) - 2 * 24 * 3600)
        resp = client.get("/products", headers={"Authorization": f"Bearer {expired}"})
        assert resp.status_code == 401
        assert resp.json() == {"message": INVALID_TOKEN}

    def test_protected_write_never_reaches_router(self, api_client) -> None:
        """A rejected POST must not create anything."""
        client, tokens, _store = api_client
        resp = client.post("/gated-writes", json={"name": "sneaky"})
        assert resp.status_code == 401
        ok = client.get("/gated-writes", headers={"Authorization": f"Bearer {tokens.issue(1, 'a@x.com')}"})
        assert ok.status_code == 200
        assert ok.json() == []

    def test_lookalike_auth_prefix_is_protected(self, api_client) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/authors")
        assert resp.status_code == 401

    def test_unknown_path_without_token_is_401_not_404(self, api_client) -> None:
        client, _tokens, _store = api_client
        assert client.get("/no/such/thing/here").status_code == 401

    def test_valid_token_passes(self, api_client) -> None:
        client, tokens, _store = api_client
        resp = client.get("/products", headers={"Authorization": f"Bearer {tokens.issue(1, 'a@x.com')}"})
        assert resp.status_code == 200

    def test_verifier_error_over_http_is_401(self, api_client, monkeypatch) -> None:
        client, tokens, _store = api_client

        def boom(token):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(tokens, "verify", boom)
        resp = client.get("/products", headers={"Authorization": "Bearer anything"})
        assert resp.status_code == 401
        assert resp.json() == {"message": VERIFICATION_FAILED}
