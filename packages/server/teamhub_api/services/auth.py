"""
Authentication service: registration, login, token refresh and logout.
"""

from __future__ import annotations

import asyncio
import uuid

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import (
    AuthenticatedUser,
    create_jwt,
    hash_password,
    revoke_jwt,
    token_ttl_seconds,
    verify_password,
    verify_token,
)
from teamhub_api.core.errors import Conflict, Unauthorized
from teamhub_api.models.tenant import Tenant
from teamhub_api.models.user import User
from teamhub_api.services.users import get_user_by_email, normalize_email, to_user_response
from teamhub_shared.schemas.auth import LoginRequest, RegisterRequest, SessionResponse
from teamhub_shared.schemas.common import Role, TenantStatus

log = structlog.get_logger()


def issue_session(user: User) -> SessionResponse:
    access_token, _ = create_jwt(user, "access")
    refresh_token, _ = create_jwt(user, "refresh")
    return SessionResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=to_user_response(user),
    )


async def register(req: RegisterRequest, session: AsyncSession) -> SessionResponse:
    """Create a TRIAL tenant and its first ADMIN user in one transaction."""
    email = normalize_email(req.email)
    if await get_user_by_email(email, session):
        raise Conflict("Email is already registered", field="email")

    password_hash = await asyncio.to_thread(hash_password, req.password)

    tenant = Tenant(name=req.tenant_name, plan="free", status=TenantStatus.TRIAL.value)
    session.add(tenant)
    await session.flush()

    user = User(
        tenant_id=tenant.id,
        email=email,
        password_hash=password_hash,
        role=Role.ADMIN.value,
        profile={"first_name": req.first_name, "last_name": req.last_name},
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        raise Conflict("Email is already registered", field="email")

    log.info("user.registered", user_id=str(user.id), tenant_id=str(tenant.id))
    return issue_session(user)


async def login(req: LoginRequest, session: AsyncSession) -> SessionResponse:
    user = await get_user_by_email(req.email, session)
    if user is None:
        log.info("auth.login_failure", reason="unknown_email")
        raise Unauthorized("Invalid email or password")

    if not await asyncio.to_thread(verify_password, req.password, user.password_hash):
        log.info("auth.login_failure", reason="bad_password", user_id=str(user.id))
        raise Unauthorized("Invalid email or password")

    if not user.is_active:
        log.info("auth.login_failure", reason="inactive", user_id=str(user.id))
        raise Unauthorized("Account is inactive")

    log.info("auth.login_success", user_id=str(user.id), tenant_id=str(user.tenant_id))
    return issue_session(user)


async def refresh(refresh_token: str, session: AsyncSession) -> SessionResponse:
    """Rotate a refresh token: the presented one is revoked, a new pair is issued."""
    payload = await verify_token(refresh_token, "refresh")

    user = await session.get(User, _subject(payload))
    if user is None or not user.is_active:
        raise Unauthorized("Account is inactive or no longer exists")

    await revoke_jwt(payload["jti"], token_ttl_seconds(payload))
    log.info("auth.token_refreshed", user_id=str(user.id))
    return issue_session(user)


async def logout(auth: AuthenticatedUser) -> None:
    await revoke_jwt(auth.jti, token_ttl_seconds(auth.token))
    log.info("auth.logout", user_id=str(auth.user_id))


def _subject(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(payload["sub"])
    except ValueError:
        raise Unauthorized("Invalid or expired session")
