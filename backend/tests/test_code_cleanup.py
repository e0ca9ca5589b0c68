"""
Tests for the verification code sweeper and its status endpoint.
"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update

from app.core.utils import utcnow
from app.models.verification_code import CodePurpose, VerificationCode
from app.services.code_cleanup import CleanupStatus, CodeCleanupScheduler
from app.services.verification_codes import VerificationCodeService

from conftest import auth_headers, create_user

SECRET = "test-secret-key-for-unit-tests-only"


class TestCleanupStatus:
    def test_fresh_status(self):
        snapshot = CleanupStatus(interval_minutes=10).snapshot()
        assert snapshot == {
            "running": False,
            "interval_minutes": 10,
            "last_cleanup_time": None,
            "next_cleanup_time": None,
        }

    def test_next_run_follows_last_run(self):
        status = CleanupStatus(interval_minutes=10)
        status.mark_started(15)
        status.mark_run(datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc))

        snapshot = status.snapshot()
        assert snapshot["running"] is True
        assert snapshot["interval_minutes"] == 15
        assert snapshot["last_cleanup_time"] == "2024-05-01 08:00:00"
        assert snapshot["next_cleanup_time"] == "2024-05-01 08:15:00"

    def test_mark_stopped(self):
        status = CleanupStatus()
        status.mark_started(10)
        status.mark_stopped()
        assert status.snapshot()["running"] is False


class TestScheduler:
    @pytest.fixture
    def status(self):
        return CleanupStatus(interval_minutes=10)

    @pytest.fixture
    def scheduler(self, database, status):
        return CodeCleanupScheduler(database, status, SECRET, interval_minutes=10, retention_days=7)

    @pytest.mark.asyncio
    async def test_run_once_sweeps_and_purges(self, scheduler, database, status):
        async with database.session() as db:
            codes = VerificationCodeService(db, SECRET)
            await codes.issue_code("old@x.com", CodePurpose.REGISTER, timedelta(seconds=-5))
            await codes.issue_code("ancient@x.com", CodePurpose.REGISTER, timedelta(minutes=5))
            await codes.issue_code("live@x.com", CodePurpose.REGISTER, timedelta(minutes=5))
        async with database.session() as db:
            await db.execute(
                update(VerificationCode)
                .where(VerificationCode.email == "ancient@x.com")
                .values(is_used=True, updated_at=utcnow() - timedelta(days=30))
            )

        result = await scheduler.run_once()

        assert result == {"expired_marked": 1, "purged": 1}
        assert scheduler.stats["runs"] == 1
        assert status.snapshot()["last_cleanup_time"] is not None

        async with database.session() as db:
            emails = (await db.execute(select(VerificationCode.email).order_by(VerificationCode.email))).scalars().all()
            assert emails == ["live@x.com", "old@x.com"]

    @pytest.mark.asyncio
    async def test_run_once_survives_store_errors(self, status, settings):
        from app.core.database import Database

        # Tables were never created
        empty = Database.from_settings(settings)
        scheduler = CodeCleanupScheduler(empty, status, SECRET)
        try:
            result = await scheduler.run_once()
        finally:
            await empty.dispose()

        assert result == {"expired_marked": 0, "purged": 0}
        assert scheduler.stats["errors"] == 1
        assert status.snapshot()["last_cleanup_time"] is not None

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stops(self, scheduler, status, database):
        async with database.session() as db:
            await VerificationCodeService(db, SECRET).issue_code(
                "old@x.com", CodePurpose.REGISTER, timedelta(seconds=-5)
            )

        scheduler.start()
        assert scheduler.is_running
        assert status.snapshot()["running"] is True

        for _ in range(50):
            if scheduler.stats["runs"]:
                break
            await asyncio.sleep(0.05)

        await scheduler.stop()

        assert not scheduler.is_running
        assert status.snapshot()["running"] is False
        assert scheduler.stats["expired_marked"] == 1
        async with database.session() as db:
            live = (await db.execute(
                select(func.count(VerificationCode.id)).where(VerificationCode.is_deleted.is_(False))
            )).scalar()
            assert live == 0


class TestCleanupStatusEndpoint:
    @pytest.mark.asyncio
    async def test_requires_login(self, client):
        assert (await client.get("/api/v1/system/cleanup-status")).status_code == 401

    @pytest.mark.asyncio
    async def test_reports_status(self, client, database, app):
        await create_user(database)
        headers = await auth_headers(client, "alice")

        resp = await client.get("/api/v1/system/cleanup-status", headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {
            "running": False,
            "interval_minutes": 10,
            "last_cleanup_time": None,
            "next_cleanup_time": None,
        }

        await app.state.cleanup_scheduler.run_once()
        body = (await client.get("/api/v1/system/cleanup-status", headers=headers)).json()
        assert body["last_cleanup_time"] is not None
        assert body["next_cleanup_time"] is not None
