"""
Database configuration and session management

P2-7: Configurable connection pooling per environment

The Database object owns the engine and session factory. One instance is
built per application by create_app() and stored on app.state; background
work opens its own sessions through Database.session().
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import Settings

Base = declarative_base()


def build_engine_options(settings: Settings) -> dict:
    """Pool configuration for the configured backend."""
    if settings.DATABASE_URL.startswith("sqlite"):
        # SQLite (tests, local tinkering): no pool sizing, allow cross-thread use
        return {"connect_args": {"check_same_thread": False}}

    if settings.ENVIRONMENT == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,  # Verify connections before use
        }

    # Development: Simpler pool for local development
    return {
        "pool_size": 2,
        "max_overflow": 5,
        "pool_pre_ping": True,
    }


class Database:
    """Engine plus session factory for one application instance."""

    def __init__(self, url: str, echo: bool = False, **engine_options):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, future=True, **engine_options)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.DATABASE_URL, echo=settings.DEBUG, **build_engine_options(settings))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions outside FastAPI request context.

        Use this in:
        - Background tasks (email log, operation log)
        - The code cleanup sweeper
        - Startup seeding

        Usage:
            async with database.session() as db:
                result = await db.execute(...)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def create_all(self) -> None:
        """Create missing tables for every registered model."""
        import app.models  # noqa: F401 - registers models on Base.metadata

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions (one transaction per request)"""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
