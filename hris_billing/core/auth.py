from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from hris_billing.core.config import settings

bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(slots=True)
class AuthContext:
    tenant_id: UUID
    subject: str
    role: str

    @property
    def is_owner(self) -> bool:
        return self.role.lower() in settings.owner_roles()


def _decode_jwt(token: str) -> dict:
    options = {"verify_iss": bool(settings.jwt_issuer)}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


def context_from_claims(claims: dict) -> AuthContext:
    raw_tenant_id = claims.get("tenant_id")
    subject = claims.get("sub")
    if not raw_tenant_id or not subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is missing required claims",
        )

    try:
        tenant_id = UUID(str(raw_tenant_id))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token carries a malformed tenant id",
        ) from exc

    return AuthContext(tenant_id=tenant_id, subject=subject, role=str(claims.get("role") or "member"))


async def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AuthContext:
    context = context_from_claims(_decode_jwt(credentials.credentials))
    request.state.tenant_id = context.tenant_id
    request.state.user_subject = context.subject
    return context


async def require_owner(context: AuthContext = Depends(require_auth_context)) -> AuthContext:
    if not context.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the company owner can manage billing",
        )
    return context
