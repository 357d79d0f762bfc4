"""Authentication request/response schemas."""

from __future__ import annotations

from pydantic import EmailStr, Field

from .common import CamelModel
from .users import UserResponse


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    tenant_name: str = Field(min_length=1, max_length=100)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class SessionResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
