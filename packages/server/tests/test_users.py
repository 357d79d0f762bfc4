"""
Integration tests for tenant-scoped user management.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from teamhub_shared.schemas.users import AVATAR_MAX_BYTES

from conftest import create_channel, post_message

PNG_AVATAR = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


class TestListAndGet:
    @pytest.mark.asyncio
    async def test_list_users_of_tenant_only(self, client: AsyncClient, register, add_user):
        admin = await register(tenant_name="Alpha")
        member = await add_user(admin)
        outsider = await register(tenant_name="Beta")

        response = await client.get(admin.url("/users"), headers=admin.headers)
        assert response.status_code == 200
        ids = {u["id"] for u in response.json()["data"]}
        assert ids == {admin.user_id, member.user_id}
        assert outsider.user_id not in ids

    @pytest.mark.asyncio
    async def test_viewer_can_read(self, client: AsyncClient, register, add_user):
        admin = await register()
        viewer = await add_user(admin, role="VIEWER")
        response = await client.get(viewer.url(f"/users/{admin.user_id}"), headers=viewer.headers)
        assert response.status_code == 200
        assert response.json()["data"]["email"] == admin.email

    @pytest.mark.asyncio
    async def test_user_of_other_tenant_not_found(self, client: AsyncClient, register):
        alpha = await register(tenant_name="Alpha")
        beta = await register(tenant_name="Beta")
        response = await client.get(alpha.url(f"/users/{beta.user_id}"), headers=alpha.headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_uuid(self, client: AsyncClient, register):
        admin = await register()
        response = await client.get(admin.url("/users/not-a-uuid"), headers=admin.headers)
        assert response.status_code == 400


class TestUpdate:
    @pytest.mark.asyncio
    async def test_self_updates_profile(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin, first_name="Grace", last_name="Hopper")

        response = await client.patch(
            member.url(f"/users/{member.user_id}"),
            headers=member.headers,
            json={"profile": {"lastName": "Brewster Murray Hopper", "avatar": PNG_AVATAR}},
        )
        assert response.status_code == 200
        profile = response.json()["data"]["profile"]
        assert profile["firstName"] == "Grace"
        assert profile["lastName"] == "Brewster Murray Hopper"
        assert profile["avatar"] == PNG_AVATAR

    @pytest.mark.asyncio
    async def test_unknown_profile_fields_rejected(self, client: AsyncClient, register):
        admin = await register()
        response = await client.patch(
            admin.url(f"/users/{admin.user_id}"),
            headers=admin.headers,
            json={"profile": {"isAdmin": True}},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_member_cannot_update_others(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.patch(
            member.url(f"/users/{admin.user_id}"),
            headers=member.headers,
            json={"profile": {"firstName": "Hacked"}},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_change_own_role(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.patch(
            member.url(f"/users/{member.user_id}"), headers=member.headers, json={"role": "ADMIN"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_changes_role(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.patch(
            admin.url(f"/users/{member.user_id}"), headers=admin.headers, json={"role": "VIEWER"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "VIEWER"

    @pytest.mark.asyncio
    async def test_admin_cannot_grant_super_admin(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.patch(
            admin.url(f"/users/{member.user_id}"), headers=admin.headers, json={"role": "SUPER_ADMIN"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_null_name_rejected_and_record_intact(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        channel = await create_channel(client, admin, "general")
        await client.post(member.url(f"/chat/channels/{channel['id']}/join"), headers=member.headers)
        await post_message(client, member, channel["id"], "hi")

        for field in ("firstName", "lastName"):
            response = await client.patch(
                member.url(f"/users/{member.user_id}"),
                headers=member.headers,
                json={"profile": {field: None}},
            )
            assert response.status_code == 400
            assert response.json()["errors"][0]["field"] == f"profile.{field}"

        response = await client.get(admin.url("/users"), headers=admin.headers)
        assert response.status_code == 200
        response = await client.get(
            admin.url(f"/chat/channels/{channel['id']}/messages"), headers=admin.headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["messages"][0]["user"]["profile"]["firstName"] == "Grace"

    @pytest.mark.asyncio
    async def test_null_avatar_and_phone_are_removed(self, client: AsyncClient, register):
        admin = await register()
        url = admin.url(f"/users/{admin.user_id}")
        await client.patch(
            url, headers=admin.headers, json={"profile": {"avatar": PNG_AVATAR, "phone": "555-0100"}}
        )

        response = await client.patch(
            url, headers=admin.headers, json={"profile": {"avatar": None, "phone": None}}
        )
        assert response.status_code == 200
        profile = response.json()["data"]["profile"]
        assert profile["avatar"] is None
        assert profile["phone"] is None
        assert profile["firstName"] == "Ada"

    @pytest.mark.asyncio
    async def test_avatar_must_be_image_data_url(self, client: AsyncClient, register):
        admin = await register()
        response = await client.patch(
            admin.url(f"/users/{admin.user_id}"),
            headers=admin.headers,
            json={"profile": {"avatar": "https://example.com/g.png"}},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "profile.avatar"


class TestAvatar:
    @pytest.mark.asyncio
    async def test_upload_and_remove(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        url = member.url(f"/users/{member.user_id}/avatar")

        response = await client.post(url, headers=member.headers, json={"avatar": PNG_AVATAR})
        assert response.status_code == 200
        profile = response.json()["data"]["profile"]
        assert profile["avatar"] == PNG_AVATAR
        assert profile["firstName"] == "Grace"

        response = await client.delete(url, headers=member.headers)
        assert response.status_code == 200
        assert response.json()["data"]["profile"]["avatar"] is None

        response = await client.get(member.url(f"/users/{member.user_id}"), headers=member.headers)
        assert response.json()["data"]["profile"]["avatar"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "avatar",
        [
            "https://example.com/g.png",
            "data:image/svg+xml;base64,PHN2Zz4=",
            "data:image/png;base64,",
        ],
    )
    async def test_invalid_format_rejected(self, client: AsyncClient, register, avatar):
        admin = await register()
        response = await client.post(
            admin.url(f"/users/{admin.user_id}/avatar"), headers=admin.headers, json={"avatar": avatar}
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "avatar"

    @pytest.mark.asyncio
    async def test_oversized_image_rejected(self, client: AsyncClient, register):
        admin = await register()
        data = "A" * (4 * (AVATAR_MAX_BYTES // 3 + 2))
        response = await client.post(
            admin.url(f"/users/{admin.user_id}/avatar"),
            headers=admin.headers,
            json={"avatar": f"data:image/jpeg;base64,{data}"},
        )
        assert response.status_code == 400
        assert "2MB" in response.json()["errors"][0]["message"]

    @pytest.mark.asyncio
    async def test_only_self_or_admin(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)

        response = await client.post(
            member.url(f"/users/{admin.user_id}/avatar"), headers=member.headers, json={"avatar": PNG_AVATAR}
        )
        assert response.status_code == 403
        response = await client.delete(member.url(f"/users/{admin.user_id}/avatar"), headers=member.headers)
        assert response.status_code == 403

        response = await client.post(
            admin.url(f"/users/{member.user_id}/avatar"), headers=admin.headers, json={"avatar": PNG_AVATAR}
        )
        assert response.status_code == 200


class TestDeactivate:
    @pytest.mark.asyncio
    async def test_admin_deactivates_member(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)

        response = await client.delete(admin.url(f"/users/{member.user_id}"), headers=admin.headers)
        assert response.status_code == 200
        assert response.json()["data"]["isActive"] is False

        # Soft delete: the row is still listed
        response = await client.get(admin.url(f"/users/{member.user_id}"), headers=admin.headers)
        assert response.status_code == 200
        assert response.json()["data"]["isActive"] is False

    @pytest.mark.asyncio
    async def test_member_cannot_deactivate(self, client: AsyncClient, register, add_user):
        admin = await register()
        member = await add_user(admin)
        response = await client.delete(member.url(f"/users/{admin.user_id}"), headers=member.headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_deactivate_self(self, client: AsyncClient, register):
        admin = await register()
        response = await client.delete(admin.url(f"/users/{admin.user_id}"), headers=admin.headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, register):
        admin = await register()
        response = await client.delete(admin.url(f"/users/{uuid.uuid4()}"), headers=admin.headers)
        assert response.status_code == 404
