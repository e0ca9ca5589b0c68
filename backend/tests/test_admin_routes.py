"""
Tests for the admin user management and operation log API.
"""
import pytest
import pytest_asyncio
from datetime import timedelta

from app.core.utils import utcnow
from app.models.user import UserRole, UserStatus
from app.services.user_service import UserService

from conftest import auth_headers, create_user, login

ADMIN = "/api/v1/admin"


@pytest_asyncio.fixture
async def admin_headers(client, database):
    await create_user(database, username="root", email="root@example.com", role=UserRole.ADMIN)
    return await auth_headers(client, "root")


class TestAccess:
    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        assert (await client.get(f"{ADMIN}/users")).status_code == 401

    @pytest.mark.asyncio
    async def test_requires_admin_role(self, client, database):
        await create_user(database)
        headers = await auth_headers(client, "alice")

        resp = await client.get(f"{ADMIN}/users", headers=headers)

        assert resp.status_code == 403
        assert resp.json()["detail"] == "Admin access required"


class TestUserManagement:
    @pytest.mark.asyncio
    async def test_list_and_search(self, client, database, admin_headers):
        await create_user(database, username="alice", email="alice@example.com")
        await create_user(database, username="bob", email="bob@example.com", status=UserStatus.DISABLED)

        resp = await client.get(f"{ADMIN}/users", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 3

        resp = await client.get(f"{ADMIN}/users", params={"keyword": "ALI"}, headers=admin_headers)
        assert [u["username"] for u in resp.json()["users"]] == ["alice"]

        resp = await client.get(f"{ADMIN}/users", params={"status": "disabled"}, headers=admin_headers)
        assert [u["username"] for u in resp.json()["users"]] == ["bob"]

    @pytest.mark.asyncio
    async def test_create_user(self, client, admin_headers):
        resp = await client.post(
            f"{ADMIN}/users",
            json={"username": "carol", "email": "Carol@Example.com", "password": "carol-pass"},
            headers=admin_headers,
        )

        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["email"] == "carol@example.com"
        assert body["role"] == "user"
        assert body["status"] == "active"
        assert (await login(client, "carol", "carol-pass")).status_code == 200

    @pytest.mark.asyncio
    async def test_create_duplicate(self, client, database, admin_headers):
        await create_user(database)
        resp = await client.post(
            f"{ADMIN}/users",
            json={"username": "alice", "email": "new@example.com", "password": "alice-pass"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_update_user(self, client, database, admin_headers):
        user = await create_user(database)

        resp = await client.put(
            f"{ADMIN}/users/{user.id}",
            json={"nickname": "Al", "role": "admin"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.json()["nickname"] == "Al"
        assert resp.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_missing_user(self, client, admin_headers):
        resp = await client.get(f"{ADMIN}/users/9999", headers=admin_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_disable_blocks_login(self, client, database, admin_headers):
        user = await create_user(database)

        resp = await client.put(
            f"{ADMIN}/users/{user.id}/status", json={"status": "disabled"}, headers=admin_headers
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "disabled"
        assert (await login(client, "alice")).status_code == 403

    @pytest.mark.asyncio
    async def test_cannot_disable_self(self, client, database, admin_headers):
        async with database.session() as db:
            me = await UserService(db).get_user_by_username("root")

        resp = await client.put(
            f"{ADMIN}/users/{me.id}/status", json={"status": "disabled"}, headers=admin_headers
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_soft_delete_frees_username(self, client, database, admin_headers):
        user = await create_user(database)

        resp = await client.delete(f"{ADMIN}/users/{user.id}", headers=admin_headers)
        assert resp.status_code == 200

        assert (await client.get(f"{ADMIN}/users/{user.id}", headers=admin_headers)).status_code == 404
        assert (await login(client, "alice")).status_code == 401

        # Name and email are free again among live users
        await create_user(database)

    @pytest.mark.asyncio
    async def test_reset_password(self, client, database, admin_headers):
        user = await create_user(database)

        resp = await client.put(
            f"{ADMIN}/users/{user.id}/password", json={"new_password": "from-admin-1"}, headers=admin_headers
        )

        assert resp.status_code == 200
        assert (await login(client, "alice", "from-admin-1")).status_code == 200

    @pytest.mark.asyncio
    async def test_unlock(self, client, database, admin_headers):
        user = await create_user(database, failed_login_attempts=5, locked_for=timedelta(minutes=10))
        assert (await login(client, "alice")).status_code == 403

        resp = await client.post(f"{ADMIN}/users/{user.id}/unlock", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json()["is_locked"] is False
        assert resp.json()["failed_login_attempts"] == 0
        assert (await login(client, "alice")).status_code == 200


class TestOperationLogs:
    @pytest.mark.asyncio
    async def test_admin_requests_are_logged(self, client, app, admin_headers):
        await client.get(f"{ADMIN}/users", headers=admin_headers)
        await app.state.tasks.drain(timeout=5)

        resp = await client.get(f"{ADMIN}/logs", params={"module": "user_management"}, headers=admin_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        entry = body["logs"][0]
        assert entry["username"] == "root"
        assert entry["method"] == "GET"
        assert entry["action"] == "view"
        assert entry["path"] == f"{ADMIN}/users"
        assert entry["status_code"] == 200

    @pytest.mark.asyncio
    async def test_public_requests_not_logged(self, client, app, admin_headers):
        await client.post("/api/v1/public/forgot-password", json={"email": "ghost@example.com"})
        await app.state.tasks.drain(timeout=5)

        resp = await client.get(f"{ADMIN}/logs", headers=admin_headers)
        assert resp.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_stats(self, client, app, admin_headers):
        await client.get(f"{ADMIN}/users", headers=admin_headers)
        await client.get(f"{ADMIN}/users", headers=admin_headers)
        await app.state.tasks.drain(timeout=5)

        resp = await client.get(f"{ADMIN}/logs/stats", headers=admin_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 2
        assert body["today"] == 2
        assert body["modules"] == [{"module": "user_management", "count": 2}]
        assert body["methods"] == {"GET": 2}

    @pytest.mark.asyncio
    async def test_clean(self, client, app, admin_headers):
        await client.get(f"{ADMIN}/users", headers=admin_headers)
        await app.state.tasks.drain(timeout=5)

        future = (utcnow() + timedelta(minutes=1)).isoformat()
        resp = await client.post(f"{ADMIN}/logs/clean", json={"before_time": future}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json() == {"affected": 1}
