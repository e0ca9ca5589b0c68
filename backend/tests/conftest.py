"""
Shared fixtures for the auth backend tests.

Every test gets its own SQLite file, its own Database and its own app
instance; nothing is shared between tests except the process limiter,
which is disabled.
"""
import os
import re

# Set test environment before anything imports app.main
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./fst_test_import.db"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["DB_AUTO_CREATE"] = "false"
os.environ["CLEANUP_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GEETEST_ENABLED"] = "false"

from datetime import timedelta
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio

from app.core.config import Settings
from app.core.database import Database
from app.core.security import get_password_hash
from app.core.utils import utcnow
from app.main import create_app
from app.models.user import User, UserRole, UserStatus
from app.services.email_provider import EmailMessage, SendResult
from app.services.email_templates import EmailTemplateService

TEST_PASSWORD = "correct-horse-9"


class FakeMailProvider:
    """Records outgoing mail instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[EmailMessage] = []
        self.closed = False

    async def send(self, message: EmailMessage) -> SendResult:
        self.sent.append(message)
        if self.fail:
            return SendResult(success=False, error="smtp down")
        return SendResult(success=True, message_id=f"fake-{len(self.sent)}")

    async def close(self) -> None:
        self.closed = True

    def last_code(self) -> str:
        """Pull the 6-digit code out of the most recent message."""
        match = re.search(r"\b(\d{6})\b", self.sent[-1].html_content)
        assert match, "no code in last message"
        return match.group(1)


class StubCaptcha:
    def __init__(self, enabled: bool = False, accept: bool = True):
        self.enabled = enabled
        self.accept = accept
        self.calls = 0

    async def verify(self, challenge) -> bool:
        self.calls += 1
        return self.accept


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="development",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        SECRET_KEY="test-secret-key-for-unit-tests-only",
        RATE_LIMIT_ENABLED=False,
        CLEANUP_ENABLED=False,
        DB_AUTO_CREATE=False,
        GEETEST_ENABLED=False,
        FRONTEND_URL="https://fst.example.com",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database.from_settings(settings)
    await db.create_all()
    async with db.session() as session:
        await EmailTemplateService(session).seed_defaults()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def mail_provider() -> FakeMailProvider:
    return FakeMailProvider()


@pytest.fixture
def captcha() -> StubCaptcha:
    return StubCaptcha()


@pytest.fixture
def app(settings, database, mail_provider, captcha):
    return create_app(settings, database=database, mail_provider=mail_provider, captcha=captcha)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.tasks.drain(timeout=5)


async def create_user(
    database: Database,
    username: str = "alice",
    email: str = "alice@example.com",
    password: str = TEST_PASSWORD,
    role: str = UserRole.USER,
    status: str = UserStatus.ACTIVE,
    failed_login_attempts: int = 0,
    locked_for: Optional[timedelta] = None,
) -> User:
    """Insert a user directly. locked_for may be negative for an elapsed lock."""
    async with database.session() as session:
        user = User(
            username=username,
            email=email,
            nickname=username,
            hashed_password=get_password_hash(password),
            role=role,
            status=status,
            failed_login_attempts=failed_login_attempts,
            locked_until=utcnow() + locked_for if locked_for is not None else None,
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
    return user


async def login(client, identifier: str, password: str = TEST_PASSWORD) -> httpx.Response:
    return await client.post(
        "/api/v1/public/login",
        json={"username": identifier, "password": password},
    )


async def auth_headers(client, identifier: str, password: str = TEST_PASSWORD) -> dict:
    resp = await login(client, identifier, password)
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
