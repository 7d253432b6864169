from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from hris_billing.core import auth
from hris_billing.core.auth import AuthContext, context_from_claims, require_auth_context, require_owner

SECRET = "test-secret"


def _token(claims: dict, secret: str = SECRET) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=jwt.encode(claims, secret, algorithm="HS256"))


@pytest.fixture(autouse=True)
def _jwt_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth.settings, "jwt_secret", SECRET)
    monkeypatch.setattr(auth.settings, "jwt_issuer", "")
    monkeypatch.setattr(auth.settings, "owner_roles_csv", "owner, Admin")


def test_owner_roles_are_case_insensitive() -> None:
    assert AuthContext(tenant_id=uuid4(), subject="u", role="OWNER").is_owner is True
    assert AuthContext(tenant_id=uuid4(), subject="u", role="admin").is_owner is True
    assert AuthContext(tenant_id=uuid4(), subject="u", role="member").is_owner is False


def test_context_from_claims_requires_tenant_and_subject() -> None:
    tenant_id = uuid4()
    context = context_from_claims({"tenant_id": str(tenant_id), "sub": "user_1"})

    assert context.tenant_id == tenant_id
    assert context.role == "member"

    with pytest.raises(HTTPException) as missing:
        context_from_claims({"sub": "user_1"})
    assert missing.value.status_code == 403

    with pytest.raises(HTTPException) as malformed:
        context_from_claims({"tenant_id": "not-a-uuid", "sub": "user_1"})
    assert malformed.value.status_code == 403


@pytest.mark.asyncio
async def test_require_auth_context_decodes_token_and_sets_request_state() -> None:
    tenant_id = uuid4()
    request = SimpleNamespace(state=SimpleNamespace())

    context = await require_auth_context(
        request,
        _token({"tenant_id": str(tenant_id), "sub": "user_1", "role": "owner"}),
    )

    assert context.tenant_id == tenant_id
    assert context.is_owner is True
    assert request.state.tenant_id == tenant_id
    assert request.state.user_subject == "user_1"


@pytest.mark.asyncio
async def test_require_auth_context_rejects_bad_signature() -> None:
    request = SimpleNamespace(state=SimpleNamespace())

    with pytest.raises(HTTPException) as exc_info:
        await require_auth_context(request, _token({"tenant_id": str(uuid4()), "sub": "u"}, secret="other"))
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_require_auth_context_checks_issuer_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth.settings, "jwt_issuer", "https://auth.example.test")
    request = SimpleNamespace(state=SimpleNamespace())
    claims = {"tenant_id": str(uuid4()), "sub": "u"}

    with pytest.raises(HTTPException) as exc_info:
        await require_auth_context(request, _token({**claims, "iss": "https://evil.example.test"}))
    assert exc_info.value.status_code == 401

    context = await require_auth_context(request, _token({**claims, "iss": "https://auth.example.test"}))
    assert context.subject == "u"


@pytest.mark.asyncio
async def test_require_owner() -> None:
    owner = AuthContext(tenant_id=uuid4(), subject="u", role="owner")
    assert await require_owner(owner) is owner

    with pytest.raises(HTTPException) as exc_info:
        await require_owner(AuthContext(tenant_id=uuid4(), subject="u", role="member"))
    assert exc_info.value.status_code == 403
