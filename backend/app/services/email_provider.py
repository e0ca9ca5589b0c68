"""
Email Providers (SMTP, SendGrid)

Transactional mail transport for verification and reset codes.
Providers never raise on delivery problems; they report them in SendResult.
"""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage as MIMEMessage
from email.utils import formataddr, make_msgid
from typing import Optional, Protocol

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to_email: str
    subject: str
    html_content: str


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class MailProvider(Protocol):
    """Protocol for mail transports."""

    async def send(self, message: EmailMessage) -> SendResult:
        ...

    async def close(self) -> None:
        ...


class SMTPMailProvider:
    """Blocking smtplib run in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_ssl: bool = True,
        from_email: str = "",
        from_name: str = "",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.from_email = from_email or username
        self.from_name = from_name
        self.timeout = timeout

    def _build_message(self, message: EmailMessage) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = formataddr((self.from_name, self.from_email)) if self.from_name else self.from_email
        mime["To"] = message.to_email
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid()
        mime.set_content(message.html_content, subtype="html", charset="utf-8")
        return mime

    def _send_blocking(self, mime: MIMEMessage) -> None:
        if self.use_ssl:
            server = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with server:
            if not self.use_ssl:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(mime)

    async def send(self, message: EmailMessage) -> SendResult:
        mime = self._build_message(message)
        try:
            await asyncio.to_thread(self._send_blocking, mime)
            return SendResult(success=True, message_id=mime["Message-ID"])
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send to {message.to_email} failed: {type(e).__name__}: {e}")
            return SendResult(success=False, error=str(e))

    async def close(self) -> None:
        return None


class SendGridMailProvider:
    """SendGrid v3 mail/send with inline HTML content."""

    BASE_URL = "https://api.sendgrid.com/v3"

    def __init__(self, api_key: str, from_email: str, from_name: str = "", timeout: float = 10.0):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._http_client

    async def close(self) -> None:
        """Explicit cleanup method."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(self, message: EmailMessage) -> SendResult:
        http = await self._get_http_client()

        payload = {
            "personalizations": [{"to": [{"email": message.to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html_content}],
        }

        try:
            resp = await http.post(f"{self.BASE_URL}/mail/send", json=payload)

            if resp.status_code in (200, 202):
                return SendResult(success=True, message_id=resp.headers.get("X-Message-Id"))
            logger.error(f"SendGrid send failed: {resp.status_code} - {resp.text}")
            return SendResult(success=False, error=f"SendGrid returned {resp.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"SendGrid send exception: {e}")
            return SendResult(success=False, error=str(e))


def build_mail_provider(settings: Settings) -> Optional[MailProvider]:
    """SendGrid when keyed, SMTP when a host is set, otherwise no transport."""
    if settings.SENDGRID_API_KEY:
        return SendGridMailProvider(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.SYSTEM_EMAIL_ADDRESS,
            from_name=settings.SYSTEM_EMAIL_NAME or settings.APP_NAME,
            timeout=settings.MAIL_SEND_TIMEOUT_SECONDS,
        )
    if settings.SMTP_HOST:
        return SMTPMailProvider(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_ssl=settings.SMTP_SSL_TYPE.lower() == "ssl",
            from_email=settings.SYSTEM_EMAIL_ADDRESS,
            from_name=settings.SYSTEM_EMAIL_NAME or settings.APP_NAME,
            timeout=settings.MAIL_SEND_TIMEOUT_SECONDS,
        )
    logger.warning("No mail transport configured (set SENDGRID_API_KEY or SMTP_HOST)")
    return None
