"""
F.st Auth Backend
FastAPI application entry point

- Code cleanup scheduler owned by the lifespan
- P1-3: Rate limiting with SlowAPI
- P2-4: Error sanitization middleware
- P2-8: Health endpoint with DB ping
- Operation log middleware on the admin surface

create_app() builds one fully wired instance from an explicit Settings
object; uvicorn serves the module-level `app`.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.api.routes import admin_logs, admin_users, auth, system
from app.core.background import TaskRunner
from app.core.config import Settings, get_settings
from app.core.database import Database
from app.core.error_handler import register_error_handlers
from app.core.rate_limit import configure_limiter, rate_limit_exceeded_handler
from app.middleware.operation_log import OperationLogMiddleware
from app.services.captcha import CaptchaVerifier, build_captcha_verifier
from app.services.code_cleanup import CleanupStatus, CodeCleanupScheduler
from app.services.email_provider import MailProvider, build_mail_provider
from app.services.email_templates import EmailTemplateService

logger = logging.getLogger(__name__)

_UNSET = object()


async def prepare_database(database: Database) -> None:
    """Create missing tables and seed default email templates."""
    await database.create_all()
    async with database.session() as db:
        await EmailTemplateService(db).seed_defaults()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Prepare storage and start the code cleanup scheduler on startup;
    stop it, drain background work and close connections on shutdown.
    """
    settings: Settings = app.state.settings
    database: Database = app.state.database

    if settings.DB_AUTO_CREATE:
        await prepare_database(database)

    scheduler: CodeCleanupScheduler = app.state.cleanup_scheduler
    if settings.CLEANUP_ENABLED:
        scheduler.start()
        logger.info("Code cleanup scheduler ENABLED")
    else:
        logger.info("Code cleanup scheduler DISABLED via config")

    yield

    await scheduler.stop()
    await app.state.tasks.drain(timeout=settings.MAIL_SEND_TIMEOUT_SECONDS)

    if app.state.mail_provider is not None:
        await app.state.mail_provider.close()
    await database.dispose()
    logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    mail_provider=_UNSET,
    captcha: Optional[CaptchaVerifier] = None,
) -> FastAPI:
    """
    Build the application.

    database, mail_provider and captcha default to what settings describe;
    pass them in to substitute (tests). mail_provider=None means no transport.
    """
    settings = settings or get_settings()
    database = database or Database.from_settings(settings)
    provider: Optional[MailProvider] = (
        build_mail_provider(settings) if mail_provider is _UNSET else mail_provider
    )

    docs_enabled = settings.ENABLE_DOCS or not settings.is_production
    app = FastAPI(
        lifespan=lifespan,
        title=f"{settings.APP_NAME} API",
        version="1.0.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    cleanup_status = CleanupStatus(settings.CLEANUP_INTERVAL_MINUTES)
    app.state.settings = settings
    app.state.database = database
    app.state.mail_provider = provider
    app.state.captcha = captcha or build_captcha_verifier(settings)
    app.state.tasks = TaskRunner()
    app.state.cleanup_status = cleanup_status
    app.state.cleanup_scheduler = CodeCleanupScheduler(
        database=database,
        status=cleanup_status,
        secret_key=settings.SECRET_KEY,
        interval_minutes=settings.CLEANUP_INTERVAL_MINUTES,
        retention_days=settings.CODE_RETENTION_DAYS,
    )

    # P1-3: Rate limiting
    app.state.limiter = configure_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    # RATE_LIMIT_DEFAULT for every route without its own limit
    app.add_middleware(SlowAPIMiddleware)

    admin_prefix = f"/api/v1{settings.ADMIN_PATH}"

    # Operation log for the admin surface
    app.add_middleware(OperationLogMiddleware, path_prefix=admin_prefix)

    # P2-4: Auth error rendering + sanitization of anything unhandled
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api/v1/public", tags=["Authentication"])
    app.include_router(auth.user_router, prefix="/api/v1/user", tags=["User"])
    app.include_router(system.router, prefix="/api/v1/system", tags=["System"])
    app.include_router(admin_users.router, prefix=f"{admin_prefix}/users", tags=["Admin - Users"])
    app.include_router(admin_logs.router, prefix=f"{admin_prefix}/logs", tags=["Admin - Logs"])

    @app.get("/", tags=["Health"])
    async def root():
        return {
            "message": f"{settings.APP_NAME} API",
            "status": "operational",
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """P2-8: DB ping plus sweeper state. 503 if the database is unreachable."""
        health_status = {
            "status": "healthy",
            "database": "unknown",
            "code_cleanup": cleanup_status.snapshot(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await database.ping()
            health_status["database"] = "connected"
        except Exception as e:
            logger.error(f"Health check DB ping failed: {type(e).__name__}: {e}")
            health_status["database"] = "error"
            health_status["status"] = "unhealthy"
            return JSONResponse(status_code=503, content=health_status)

        return health_status

    return app


def _build_default_app() -> FastAPI:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    return create_app()


app = _build_default_app()
