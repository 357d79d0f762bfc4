"""
Authentication endpoints.

POST /api/v1/auth/register  - Create a tenant and its first admin
POST /api/v1/auth/login     - Email/password login
POST /api/v1/auth/refresh   - Rotate the refresh token
POST /api/v1/auth/logout    - Revoke the current access token
GET  /api/v1/auth/me        - The authenticated user
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, get_current_user
from teamhub_api.core.database import get_session
from teamhub_api.services import auth as auth_service
from teamhub_api.services.users import to_user_response
from teamhub_shared.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest
from teamhub_shared.schemas.common import ok

router = APIRouter()


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new tenant; the caller becomes its ADMIN."""
    return ok(await auth_service.register(body, session), "Registration successful")


@router.post("/login")
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    return ok(await auth_service.login(body, session), "Login successful")


@router.post("/refresh")
async def refresh(
    body: RefreshRequest,
    session: AsyncSession = Depends(get_session),
):
    return ok(await auth_service.refresh(body.refresh_token, session))


@router.post("/logout")
async def logout(auth: AuthenticatedUser = Depends(get_current_user)):
    await auth_service.logout(auth)
    return ok(message="Logged out")


@router.get("/me")
async def me(auth: AuthenticatedUser = Depends(get_current_user)):
    return ok(to_user_response(auth.user))
