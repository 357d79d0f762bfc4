"""
Authentication and authorization for TeamHub.

- Email/password login with bcrypt hashes
- JWT access/refresh tokens with a Redis revocation list
- Tenant guard: the path tenant must match the token tenant (SUPER_ADMIN bypasses)
- Role dependencies built on ``capabilities_for``
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.config import get_settings
from teamhub_api.core.database import get_session
from teamhub_api.core.errors import Forbidden, NotFound, Unauthorized
from teamhub_api.core.permissions import Capabilities, capabilities_for
from teamhub_api.core.redis import get_redis
from teamhub_api.models.tenant import Tenant
from teamhub_api.models.user import User
from teamhub_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

TokenType = Literal["access", "refresh"]

# ---------------------------------------------------------------------------
# Password hashing (call through asyncio.to_thread from async code)
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt at the configured cost factor."""
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user: User,
    token_type: TokenType = "access",
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = (
            timedelta(minutes=settings.access_token_expire_minutes)
            if token_type == "access"
            else timedelta(days=settings.refresh_token_expire_days)
        )
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "tenantId": str(user.tenant_id),
        "role": user.role,
        "iat": now,
        "exp": now + expires_delta,
        "jti": jti,
        "type": token_type,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp", "jti", "type"]},
    )


def token_ttl_seconds(payload: dict) -> int:
    """Seconds until the token expires (at least 1, for Redis SETEX)."""
    remaining = int(payload["exp"] - datetime.now(timezone.utc).timestamp())
    return max(remaining, 1)


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


async def verify_token(token: str, expected_type: TokenType = "access") -> dict:
    """Decode a token and reject the wrong type or a revoked jti."""
    try:
        payload = decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Session has expired")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired session")

    if payload.get("type") != expected_type:
        raise Unauthorized("Invalid token type")
    if await is_jwt_revoked(payload["jti"]):
        raise Unauthorized("Session has been revoked")
    return payload


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated user and the tenant the request is scoped to."""

    def __init__(self, user: User, tenant_id: uuid.UUID, token: dict):
        self.user = user
        self.user_id = user.id
        self.tenant_id = tenant_id
        self.role = Role(user.role)
        self.jti = token.get("jti")
        self.token = token

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def capabilities(
        self, resource_tenant_id: uuid.UUID | None = None, *, is_creator: bool = False
    ) -> Capabilities:
        """Capabilities on a resource; defaults to the scoped tenant itself."""
        return capabilities_for(
            self.role,
            resource_tenant_id if resource_tenant_id is not None else self.tenant_id,
            self.user.tenant_id,
            is_creator,
        )


async def authenticate_token(token: str, session: AsyncSession) -> AuthenticatedUser:
    """Resolve an access token to an active user. Shared by REST and the gateway."""
    payload = await verify_token(token, "access")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise Unauthorized("Invalid or expired session")

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthorized("Account is inactive or no longer exists")

    return AuthenticatedUser(user=user, tenant_id=user.tenant_id, token=payload)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Authenticate the Bearer token; scope is the caller's own tenant."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Authentication required")
    auth = await authenticate_token(credentials.credentials, session)
    request.state.auth = auth
    return auth


async def get_authenticated_user(
    tenantId: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Tenant guard for ``/tenants/{tenantId}/...`` routes."""
    if not auth.is_super_admin and tenantId != auth.user.tenant_id:
        log.info(
            "auth.tenant_mismatch",
            user_id=str(auth.user_id),
            token_tenant=str(auth.user.tenant_id),
            path_tenant=str(tenantId),
        )
        raise Forbidden("Access to this tenant is not allowed")

    if await session.get(Tenant, tenantId) is None:
        raise NotFound("Tenant not found")

    auth.tenant_id = tenantId
    return auth


# ---------------------------------------------------------------------------
# Authorization dependencies (capability checks)
# ---------------------------------------------------------------------------

async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any user of the tenant (VIEWER included) can access this endpoint."""
    if not auth.capabilities().can_read:
        raise Forbidden("Tenant access required")
    return auth


async def require_writer(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """MEMBER and above; VIEWERs are read-only."""
    if not auth.capabilities().can_write:
        raise Forbidden("Write access required")
    return auth


async def require_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Tenant ADMIN (or SUPER_ADMIN)."""
    if not auth.capabilities().can_manage:
        raise Forbidden("Administrator access required")
    return auth


async def require_any_admin(
    auth: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """ADMIN of the caller's own tenant, or SUPER_ADMIN. Not path-scoped."""
    if not auth.capabilities(auth.user.tenant_id).can_manage:
        raise Forbidden("Administrator access required")
    return auth


async def require_super_admin(
    auth: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    if not auth.is_super_admin:
        raise Forbidden("Super administrator access required")
    return auth
