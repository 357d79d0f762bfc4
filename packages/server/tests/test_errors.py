"""
Tests for the error envelope: typed application errors, request validation
and unexpected exceptions all render as ``{success: false, message, errors}``.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field

from teamhub_api.core.errors import (
    Conflict,
    Forbidden,
    NotFound,
    Unauthorized,
    ValidationFailed,
    register_exception_handlers,
)


class Payload(BaseModel):
    name: str = Field(min_length=1)
    count: int


def build_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise Conflict("Email is already registered", field="email")

    @app.get("/forbidden")
    async def forbidden():
        raise Forbidden()

    @app.get("/not-found")
    async def not_found():
        raise NotFound("Channel not found")

    @app.get("/unauthorized")
    async def unauthorized():
        raise Unauthorized()

    @app.get("/invalid")
    async def invalid():
        raise ValidationFailed("Bad cursor", field="before")

    @app.post("/payload")
    async def payload(body: Payload):
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    return app


@pytest.fixture
async def error_client():
    transport = ASGITransport(app=build_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path,status,code",
    [
        ("/conflict", 409, "conflict"),
        ("/forbidden", 403, "forbidden"),
        ("/not-found", 404, "not_found"),
        ("/unauthorized", 401, "unauthorized"),
        ("/invalid", 400, "validation_error"),
    ],
)
async def test_typed_errors_render_envelope(error_client, path, status, code):
    response = await error_client.get(path)
    assert response.status_code == status
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == code
    assert body["message"] == body["errors"][0]["message"]
    assert "data" not in body


@pytest.mark.asyncio
async def test_error_field_is_reported(error_client):
    body = (await error_client.get("/conflict")).json()
    assert body["errors"] == [
        {"message": "Email is already registered", "code": "conflict", "field": "email"}
    ]


@pytest.mark.asyncio
async def test_unauthorized_sets_bearer_challenge(error_client):
    response = await error_client.get("/unauthorized")
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_request_validation_is_400_with_fields(error_client):
    response = await error_client.post("/payload", json={"name": ""})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    fields = {e["field"] for e in body["errors"]}
    assert fields == {"name", "count"}


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(error_client):
    response = await error_client.get("/nope")
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "not_found"


@pytest.mark.asyncio
async def test_unhandled_exception_is_500_without_details(error_client):
    response = await error_client.get("/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "internal_error"
    assert "hunter2" not in response.text
