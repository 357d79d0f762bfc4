"""
Integration tests for cross-tenant administration.

Covers:
- SUPER_ADMIN-only access to tenant, user and analytics endpoints
- Tenant create / update / cascading delete
- User creation rules for tenant ADMINs vs SUPER_ADMIN
- Role changes, account updates and hard delete
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from conftest import DEFAULT_PASSWORD, create_channel, post_message, unique_email


def new_user_body(tenant_id: str, role: str = "MEMBER", email: str | None = None) -> dict:
    return {
        "email": email or unique_email(),
        "password": DEFAULT_PASSWORD,
        "firstName": "New",
        "lastName": "User",
        "role": role,
        "tenantId": tenant_id,
    }


class TestAccess:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/admin/tenants"),
            ("POST", "/api/v1/admin/tenants"),
            ("GET", "/api/v1/admin/users"),
            ("GET", "/api/v1/admin/analytics"),
        ],
    )
    async def test_tenant_admin_is_forbidden(self, client: AsyncClient, register, method, path):
        admin = await register()
        response = await client.request(method, path, headers=admin.headers, json={"name": "x"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_anonymous_is_unauthorized(self, client: AsyncClient):
        response = await client.get("/api/v1/admin/tenants")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_member_cannot_create_users(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.post(
            "/api/v1/admin/users", headers=member.headers, json=new_user_body(member.tenant_id)
        )
        assert response.status_code == 403


class TestTenants:
    @pytest.mark.asyncio
    async def test_list_tenants_with_counts(self, client: AsyncClient, register, super_admin):
        admin = await register(tenant_name="Counted")
        await create_channel(client, admin, "general")

        response = await client.get("/api/v1/admin/tenants", headers=super_admin.headers)
        assert response.status_code == 200
        tenants = {t["id"]: t for t in response.json()["data"]}
        counted = tenants[admin.tenant_id]
        assert counted["name"] == "Counted"
        assert counted["counts"] == {"users": 1, "projects": 0, "channels": 1}
        assert tenants[super_admin.tenant_id]["name"] == "System"

    @pytest.mark.asyncio
    async def test_create_and_update_tenant(self, client: AsyncClient, super_admin):
        response = await client.post(
            "/api/v1/admin/tenants", headers=super_admin.headers, json={"name": "Globex", "plan": "pro"}
        )
        assert response.status_code == 201
        tenant = response.json()["data"]
        assert tenant["status"] == "ACTIVE"
        assert tenant["plan"] == "pro"

        response = await client.patch(
            f"/api/v1/admin/tenants/{tenant['id']}",
            headers=super_admin.headers,
            json={"status": "SUSPENDED", "settings": {"theme": "dark"}},
        )
        assert response.status_code == 200
        updated = response.json()["data"]
        assert updated["status"] == "SUSPENDED"
        assert updated["settings"] == {"theme": "dark"}
        assert updated["name"] == "Globex"

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, client: AsyncClient, super_admin):
        response = await client.patch(
            f"/api/v1/admin/tenants/{super_admin.tenant_id}",
            headers=super_admin.headers,
            json={"id": str(uuid.uuid4())},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_unknown_tenant(self, client: AsyncClient, super_admin):
        response = await client.patch(
            f"/api/v1/admin/tenants/{uuid.uuid4()}", headers=super_admin.headers, json={"name": "x"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_tenant_cascades(self, client: AsyncClient, register, add_user, super_admin):
        admin = await register(tenant_name="Doomed")
        member = await add_user(admin)
        channel = await create_channel(client, admin, "general")
        await post_message(client, admin, channel["id"], "last words")
        project = await client.post(admin.url("/projects"), headers=admin.headers, json={"name": "Apollo"})
        assert project.status_code == 201

        response = await client.delete(f"/api/v1/admin/tenants/{admin.tenant_id}", headers=super_admin.headers)
        assert response.status_code == 200

        # Former users can no longer reach anything
        for acct in (admin, member):
            response = await client.get(acct.url("/chat/channels"), headers=acct.headers)
            assert response.status_code == 401

        # Even a super admin finds nothing left under that tenant
        response = await client.get(
            f"/api/v1/tenants/{admin.tenant_id}/chat/channels", headers=super_admin.headers
        )
        assert response.status_code == 404

        users = (await client.get("/api/v1/admin/users", headers=super_admin.headers)).json()["data"]
        assert admin.user_id not in {u["id"] for u in users}
        assert member.user_id not in {u["id"] for u in users}

        analytics = (await client.get("/api/v1/admin/analytics", headers=super_admin.headers)).json()["data"]
        assert analytics["totalChannels"] == 0
        assert analytics["totalMessages"] == 0


class TestUsers:
    @pytest.mark.asyncio
    async def test_admin_creates_user_in_own_tenant(self, client: AsyncClient, register):
        admin = await register()
        response = await client.post(
            "/api/v1/admin/users", headers=admin.headers, json=new_user_body(admin.tenant_id, "VIEWER")
        )
        assert response.status_code == 201
        user = response.json()["data"]
        assert user["role"] == "VIEWER"
        assert user["tenantId"] == admin.tenant_id
        assert user["tenant"]["id"] == admin.tenant_id
        assert "passwordHash" not in user

    @pytest.mark.asyncio
    async def test_admin_cannot_create_user_elsewhere(self, client: AsyncClient, register):
        alpha = await register(tenant_name="Alpha")
        beta = await register(tenant_name="Beta")
        response = await client.post(
            "/api/v1/admin/users", headers=alpha.headers, json=new_user_body(beta.tenant_id)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_cannot_create_super_admin(self, client: AsyncClient, register):
        admin = await register()
        response = await client.post(
            "/api/v1/admin/users", headers=admin.headers, json=new_user_body(admin.tenant_id, "SUPER_ADMIN")
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_super_admin_creates_user_anywhere(self, client: AsyncClient, register, super_admin, login):
        admin = await register()
        body = new_user_body(admin.tenant_id, "ADMIN")
        response = await client.post("/api/v1/admin/users", headers=super_admin.headers, json=body)
        assert response.status_code == 201

        created = await login(body["email"])
        assert created.tenant_id == admin.tenant_id
        assert created.user["role"] == "ADMIN"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, register):
        admin = await register()
        response = await client.post(
            "/api/v1/admin/users",
            headers=admin.headers,
            json=new_user_body(admin.tenant_id, email=admin.email),
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_change_role(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)

        response = await client.patch(
            f"/api/v1/admin/users/{member.user_id}/role", headers=admin.headers, json={"role": "VIEWER"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "VIEWER"

        # The new role applies on the next request with the same token
        response = await client.post(member.url("/chat/channels"), headers=member.headers, json={"name": "x"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_change_own_role_rejected(self, client: AsyncClient, register):
        admin = await register()
        response = await client.patch(
            f"/api/v1/admin/users/{admin.user_id}/role", headers=admin.headers, json={"role": "MEMBER"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_role_change_across_tenants_not_found(self, client: AsyncClient, register):
        alpha = await register(tenant_name="Alpha")
        beta = await register(tenant_name="Beta")
        response = await client.patch(
            f"/api/v1/admin/users/{beta.user_id}/role", headers=alpha.headers, json={"role": "VIEWER"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_role(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.patch(
            f"/api/v1/admin/users/{member.user_id}/role", headers=admin.headers, json={"role": "OWNER"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_super_admin_updates_user(self, client: AsyncClient, register, add_user, super_admin):
        admin = await register()
        member = await add_user(admin)
        new_email = unique_email("renamed")

        response = await client.patch(
            f"/api/v1/admin/users/{member.user_id}",
            headers=super_admin.headers,
            json={"email": new_email, "isActive": False, "profile": {"phone": "555-0100"}},
        )
        assert response.status_code == 200
        user = response.json()["data"]
        assert user["email"] == new_email
        assert user["isActive"] is False
        assert user["profile"]["phone"] == "555-0100"
        assert user["profile"]["firstName"] == "Grace"

        response = await client.post(
            "/api/v1/auth/login", json={"email": new_email, "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_update_rejects_mass_assignment(self, client: AsyncClient, register, super_admin):
        admin = await register()
        response = await client.patch(
            f"/api/v1/admin/users/{admin.user_id}",
            headers=super_admin.headers,
            json={"tenantId": super_admin.tenant_id},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_rejects_null_name(self, client: AsyncClient, register, add_user, super_admin):
        admin = await register()
        member = await add_user(admin)

        response = await client.patch(
            f"/api/v1/admin/users/{member.user_id}",
            headers=super_admin.headers,
            json={"profile": {"firstName": None}},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "profile.firstName"

        response = await client.get(admin.url("/users"), headers=admin.headers)
        assert response.status_code == 200
        names = {u["id"]: u["profile"]["firstName"] for u in response.json()["data"]}
        assert names[member.user_id] == "Grace"

    @pytest.mark.asyncio
    async def test_super_admin_cannot_change_own_role(self, client: AsyncClient, super_admin):
        response = await client.patch(
            f"/api/v1/admin/users/{super_admin.user_id}",
            headers=super_admin.headers,
            json={"role": "MEMBER"},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "role"

        response = await client.get("/api/v1/admin/analytics", headers=super_admin.headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_super_admin_cannot_deactivate_self(self, client: AsyncClient, super_admin):
        response = await client.patch(
            f"/api/v1/admin/users/{super_admin.user_id}",
            headers=super_admin.headers,
            json={"isActive": False},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_hard_delete_user(self, client: AsyncClient, register, add_user, super_admin):
        admin = await register()
        member = await add_user(admin)
        channel = await create_channel(client, admin, "general")
        await client.post(member.url(f"/chat/channels/{channel['id']}/join"), headers=member.headers)
        await post_message(client, member, channel["id"], "bye")
        await client.post(
            admin.url("/chat/direct-messages"), headers=admin.headers, json={"recipientId": member.user_id}
        )

        response = await client.delete(f"/api/v1/admin/users/{member.user_id}", headers=super_admin.headers)
        assert response.status_code == 200

        response = await client.get(admin.url(f"/users/{member.user_id}"), headers=admin.headers)
        assert response.status_code == 404

        detail = (await client.get(admin.url(f"/chat/channels/{channel['id']}"), headers=admin.headers)).json()
        assert detail["data"]["memberCount"] == 1
        dms = (await client.get(admin.url("/chat/direct-messages"), headers=admin.headers)).json()["data"]
        assert dms == []

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, client: AsyncClient, super_admin):
        response = await client.delete(f"/api/v1/admin/users/{super_admin.user_id}", headers=super_admin.headers)
        assert response.status_code == 400


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_totals(self, client: AsyncClient, register, super_admin):
        admin = await register()
        channel = await create_channel(client, admin, "general")
        await post_message(client, admin, channel["id"], "one")
        await post_message(client, admin, channel["id"], "two")

        response = await client.get("/api/v1/admin/analytics", headers=super_admin.headers)
        assert response.status_code == 200
        assert response.json()["data"] == {
            "totalUsers": 2,
            "totalTenants": 2,
            "totalChannels": 1,
            "totalMessages": 2,
        }
