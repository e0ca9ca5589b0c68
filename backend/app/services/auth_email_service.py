"""
Auth Email Service

Renders and delivers registration and password-reset codes.

- deliver(): awaited with a bounded timeout; the caller sees the outcome
- dispatch(): detached; the outcome only reaches the logs
Every attempt writes an EmailLog row from a background task.
"""
import asyncio
import logging
from typing import Optional
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.background import TaskRunner
from app.core.config import Settings
from app.core.database import Database
from app.core.exceptions import MailNotConfiguredError
from app.models.email import EmailLog
from app.services.email_provider import EmailMessage, MailProvider, SendResult
from app.services.email_templates import (
    EmailTemplateService,
    RenderedEmail,
    TEMPLATE_REGISTER_CODE,
    TEMPLATE_RESET_PASSWORD,
)

logger = logging.getLogger(__name__)


class AuthEmailService:
    """
    Service for sending authentication-related emails.

    Handles:
    - Registration code emails
    - Password reset emails (code plus link)
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        provider: Optional[MailProvider],
        tasks: TaskRunner,
        database: Database,
    ):
        self.db = db
        self.settings = settings
        self.provider = provider
        self.tasks = tasks
        self.database = database
        self.templates = EmailTemplateService(db)

    def with_session(self, db: AsyncSession) -> "AuthEmailService":
        """Same transport and settings, templates read through another session."""
        return AuthEmailService(db, self.settings, self.provider, self.tasks, self.database)

    @property
    def is_configured(self) -> bool:
        return self.provider is not None

    def build_reset_link(self, email: str, code: str) -> str:
        return (
            f"{self.settings.frontend_base_url}/#/login/reset-password-confirm"
            f"?email={quote(email)}&token={code}"
        )

    async def render_register_code(self, code: str, lang: str) -> RenderedEmail:
        return await self.templates.render(
            TEMPLATE_REGISTER_CODE,
            lang,
            {
                "code": code,
                "app_name": self.settings.APP_NAME,
                "expire_minutes": str(self.settings.REGISTER_CODE_EXPIRE_MINUTES),
            },
        )

    async def render_reset_password(self, email: str, code: str, lang: str) -> RenderedEmail:
        return await self.templates.render(
            TEMPLATE_RESET_PASSWORD,
            lang,
            {
                "code": code,
                "link": self.build_reset_link(email, code),
                "app_name": self.settings.APP_NAME,
                "expire_minutes": str(self.settings.RESET_CODE_EXPIRE_MINUTES),
            },
        )

    async def deliver(self, to_email: str, rendered: RenderedEmail) -> SendResult:
        """
        Send and wait (bounded). Raises MailNotConfiguredError when there is
        no transport; delivery problems come back in the SendResult.
        """
        if self.provider is None:
            raise MailNotConfiguredError()

        message = EmailMessage(to_email=to_email, subject=rendered.subject, html_content=rendered.content)
        try:
            result = await asyncio.wait_for(
                self.provider.send(message),
                timeout=self.settings.MAIL_SEND_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Mail to {to_email} timed out after {self.settings.MAIL_SEND_TIMEOUT_SECONDS}s"
            )
            result = SendResult(success=False, error="Mail transport timed out")

        if result.success:
            logger.info(f"Sent {rendered.template_name} mail to {to_email}")
        else:
            logger.error(f"Failed to send {rendered.template_name} mail to {to_email}: {result.error}")

        self.tasks.spawn(
            self.record_email_log(to_email, rendered, result),
            name=f"email-log:{rendered.template_name}",
        )
        return result

    def dispatch(self, to_email: str, rendered: RenderedEmail) -> None:
        """Fire and forget. Used where the caller must not learn the outcome."""
        if self.provider is None:
            logger.warning(f"Mail transport not configured, {rendered.template_name} mail to {to_email} dropped")
            return
        self.tasks.spawn(self._deliver_quietly(to_email, rendered), name=f"mail:{rendered.template_name}")

    async def _deliver_quietly(self, to_email: str, rendered: RenderedEmail) -> None:
        try:
            await self.deliver(to_email, rendered)
        except MailNotConfiguredError:
            logger.warning(f"Mail transport went away before sending to {to_email}")

    async def record_email_log(self, to_email: str, rendered: RenderedEmail, result: SendResult) -> None:
        """Best-effort delivery log on its own session."""
        try:
            async with self.database.session() as db:
                db.add(EmailLog(
                    to_email=to_email,
                    subject=rendered.subject,
                    content=rendered.content,
                    template_name=rendered.template_name,
                    status=EmailLog.STATUS_SENT if result.success else EmailLog.STATUS_FAILED,
                    error_msg=result.error,
                ))
        except Exception as e:
            logger.error(f"Could not write email log for {to_email}: {type(e).__name__}: {e}")
