"""
Tests for application wiring: health, lifespan, error rendering.
"""
import httpx
import pytest
from unittest.mock import AsyncMock

from sqlalchemy import func, select

from app.core.database import Database
from app.main import create_app
from app.models.email import EmailTemplate
from app.services.email_templates import DEFAULT_TEMPLATES

from conftest import FakeMailProvider, StubCaptcha


class TestHealth:
    @pytest.mark.asyncio
    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "operational"

    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["code_cleanup"]["running"] is False

    @pytest.mark.asyncio
    async def test_health_db_down(self, client, app):
        app.state.database.ping = AsyncMock(side_effect=OSError("connection refused"))

        resp = await client.get("/health")

        assert resp.status_code == 503
        assert resp.json()["database"] == "error"


class TestErrorRendering:
    @pytest.mark.asyncio
    async def test_validation_error_shape(self, client):
        resp = await client.post("/api/v1/public/login", json={"password": "x"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "validation_error"
        assert body["errors"]
        assert "username" in body["message"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("debug", [False, True])
    async def test_details_only_in_debug(self, settings, database, debug):
        settings.DEBUG = debug
        app = create_app(settings, database=database, mail_provider=FakeMailProvider(fail=True), captcha=StubCaptcha())

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.post("/api/v1/public/send-register-code", json={"email": "a@x.com"})
        await app.state.tasks.drain(timeout=5)

        assert resp.status_code == 500
        assert resp.json()["error"] == "mail_delivery_failed"
        assert ("details" in resp.json()) is debug


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self, settings):
        settings.DB_AUTO_CREATE = True
        settings.CLEANUP_ENABLED = True
        database = Database.from_settings(settings)
        provider = FakeMailProvider()
        app = create_app(settings, database=database, mail_provider=provider, captcha=StubCaptcha())

        async with app.router.lifespan_context(app):
            assert app.state.cleanup_scheduler.is_running
            async with database.session() as db:
                count = (await db.execute(select(func.count(EmailTemplate.id)))).scalar()
                assert count == len(DEFAULT_TEMPLATES)

        assert not app.state.cleanup_scheduler.is_running
        assert app.state.cleanup_status.snapshot()["running"] is False
        assert provider.closed

    @pytest.mark.asyncio
    async def test_admin_prefix_follows_config(self, settings, database):
        settings.ADMIN_PATH = "/backoffice"
        app = create_app(settings, database=database, mail_provider=None, captcha=StubCaptcha())

        paths = app.openapi()["paths"]
        assert "/api/v1/backoffice/users" in paths
        assert "/api/v1/backoffice/logs/stats" in paths
        assert "/api/v1/public/login" in paths

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            assert (await ac.get("/api/v1/backoffice/users")).status_code == 401
            assert (await ac.get("/api/v1/admin/users")).status_code == 404
