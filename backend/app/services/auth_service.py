"""
Authentication Service

The register, send-code, login, refresh and password-reset flows.

Each flow runs inside the request transaction opened by get_db: code
consumption and account mutation commit together or not at all. The one
deliberate exception is the login failure path, which commits the
failure counter before rejecting so the rejection cannot roll it back.

Ordering inside every flow is validate -> check existence -> mutate.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.account_lockout import AccountLockoutPolicy
from app.core.config import Settings
from app.core.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    AuthenticationError,
    CaptchaRejectedError,
    InvalidTokenError,
    MailDeliveryError,
    MailNotConfiguredError,
    ValidationError,
    VerificationCodeError,
)
from app.core.security import (
    TOKEN_TYPE_REFRESH,
    TokenIssuer,
    TokenPair,
    get_password_hash,
    verify_password,
)
from app.models.user import User, UserRole, UserStatus
from app.models.verification_code import CodePurpose
from app.services.auth_email_service import AuthEmailService
from app.services.captcha import CaptchaChallenge, CaptchaVerifier
from app.services.user_service import UserService, validate_username
from app.services.verification_codes import VerificationCodeService

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    user: User
    tokens: TokenPair


class AuthService:
    """Orchestrates the auth flows over the user directory and code store."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        mailer: AuthEmailService,
        captcha: CaptchaVerifier,
    ):
        self.db = db
        self.settings = settings
        self.mailer = mailer
        self.captcha = captcha
        self.users = UserService(db)
        self.codes = VerificationCodeService(db, settings.SECRET_KEY)
        self.lockout = AccountLockoutPolicy.from_settings(settings)
        self.tokens = TokenIssuer(settings.SECRET_KEY, settings.ALGORITHM)

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.JWT_ACCESS_EXPIRE)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.JWT_REFRESH_EXPIRE)

    async def require_human(self, challenge: Optional[CaptchaChallenge]) -> None:
        """Captcha gate; a no-op when no Geetest credentials are configured."""
        if not self.captcha.enabled:
            return
        if challenge is None or not await self.captcha.verify(challenge):
            raise CaptchaRejectedError()

    async def consume_code(self, email: str, code: str, purpose: str) -> None:
        """
        Verify, claim and clear the codes for (email, purpose).

        All three steps ride the caller's transaction.
        """
        check = await self.codes.verify_code(email, code, purpose)
        if not check.valid:
            logger.info(f"Rejected {purpose} code for {email}")
            raise VerificationCodeError()

        if not await self.codes.mark_used(check.code_id):
            # Another request claimed it between verify and mark
            logger.warning(f"{purpose} code {check.code_id} for {email} was consumed concurrently")
            raise VerificationCodeError()

        await self.codes.delete_all_for(email, purpose)

    # ============================================================
    # Register
    # ============================================================

    async def register(
        self,
        username: str,
        password: str,
        email: str,
        code: str,
        client_ip: Optional[str] = None,
        challenge: Optional[CaptchaChallenge] = None,
    ) -> User:
        await self.require_human(challenge)

        await self.consume_code(email, code, CodePurpose.REGISTER)

        validate_username(username)
        if await self.users.username_taken(username):
            raise ValidationError("Username already exists", code="duplicate_username")
        if await self.users.email_taken(email):
            raise ValidationError("Email already exists", code="duplicate_email")

        hashed = get_password_hash(password)
        user = await self.users.create_user(
            username=username,
            email=email,
            hashed_password=hashed,
            role=UserRole.USER,
            status=UserStatus.ACTIVE,
            join_ip=client_ip,
        )
        logger.info(f"Registered user {user.id} ({username}) from {client_ip}")
        return user

    # ============================================================
    # Send codes
    # ============================================================

    async def send_register_code(self, email: str, lang: str) -> None:
        """
        Issue and mail a registration code.

        The code is committed before mailing, so a delivery failure still
        leaves a valid code behind; the caller is told about the failure.
        """
        ttl = timedelta(minutes=self.settings.REGISTER_CODE_EXPIRE_MINUTES)
        code = await self.codes.issue_code(email, CodePurpose.REGISTER, ttl)
        await self.db.commit()

        if not self.mailer.is_configured:
            if not self.settings.is_production:
                logger.warning(f"Mail not configured; register code for {email} is {code} (dev only)")
            raise MailNotConfiguredError()

        rendered = await self.mailer.render_register_code(code, lang)
        result = await self.mailer.deliver(email, rendered)
        if not result.success:
            raise MailDeliveryError(details={"reason": result.error})

    def send_reset_code(self, email: str, lang: str) -> None:
        """
        Schedule the reset flow and return at once.

        Lookup, code issue and mailing all run detached on their own
        session, so neither the answer nor its timing depends on whether
        the account exists.
        """
        self.mailer.tasks.spawn(self._send_reset_code(email, lang), name="reset-code")

    async def _send_reset_code(self, email: str, lang: str) -> None:
        try:
            async with self.mailer.database.session() as db:
                user = await UserService(db).get_user_by_email(email)
                if user is None:
                    logger.info(f"Password reset requested for unknown email {email}")
                    return

                to_email = user.email
                ttl = timedelta(minutes=self.settings.RESET_CODE_EXPIRE_MINUTES)
                codes = VerificationCodeService(db, self.settings.SECRET_KEY)
                code = await codes.issue_code(to_email, CodePurpose.RESET_PASSWORD, ttl)
                await db.commit()

                rendered = await self.mailer.with_session(db).render_reset_password(to_email, code, lang)
        except SQLAlchemyError as e:
            logger.error(f"Could not issue reset code for {email}: {type(e).__name__}: {e}")
            return

        self.mailer.dispatch(to_email, rendered)

    # ============================================================
    # Login / refresh
    # ============================================================

    async def login(
        self,
        identifier: str,
        password: str,
        client_ip: Optional[str] = None,
        challenge: Optional[CaptchaChallenge] = None,
    ) -> LoginResult:
        await self.require_human(challenge)

        user = await self.users.get_user_by_login(identifier)
        if user is None:
            logger.info(f"Login failed for unknown account '{identifier}' from {client_ip}")
            raise AuthenticationError()

        if self.lockout.is_locked(user):
            remaining = self.lockout.get_remaining_minutes(user)
            logger.info(f"Login refused for locked user {user.id} ({remaining} min left)")
            raise AccountLockedError(remaining_minutes=remaining)
        await self.lockout.clear_expired_lock(self.db, user)

        if user.status != UserStatus.ACTIVE:
            logger.info(f"Login refused for disabled user {user.id}")
            raise AccountDisabledError()

        if not verify_password(password, user.hashed_password):
            outcome = await self.lockout.record_failed_attempt(self.db, user)
            logger.info(
                f"Login failed for user {user.id} from {client_ip} "
                f"(attempt {outcome.attempts}, locked={outcome.locked})"
            )
            raise AuthenticationError()

        await self.lockout.record_successful_login(self.db, user, client_ip)
        tokens = self.tokens.issue_pair(user.id, user.role, self.access_ttl, self.refresh_ttl)
        logger.info(f"User {user.id} logged in from {client_ip}")
        return LoginResult(user=user, tokens=tokens)

    async def refresh(self, refresh_token: str) -> LoginResult:
        """
        Exchange a refresh token for a new pair.

        The account is re-read: deleted, disabled and locked accounts get
        nothing, and the new tokens carry the current role.
        """
        try:
            claims = self.tokens.parse_token(refresh_token)
        except InvalidTokenError:
            raise InvalidTokenError("Invalid or expired refresh token")

        if claims.token_type != TOKEN_TYPE_REFRESH:
            raise InvalidTokenError("Invalid or expired refresh token")

        user = await self.users.get_user_by_id(claims.account_id)
        if user is None or user.status != UserStatus.ACTIVE or self.lockout.is_locked(user):
            logger.info(f"Refresh refused for account {claims.account_id}")
            raise InvalidTokenError("Invalid or expired refresh token")

        tokens = self.tokens.issue_pair(user.id, user.role, self.access_ttl, self.refresh_ttl)
        return LoginResult(user=user, tokens=tokens)

    # ============================================================
    # Password reset / change
    # ============================================================

    async def reset_password(self, email: str, code: str, new_password: str) -> User:
        try:
            await self.consume_code(email, code, CodePurpose.RESET_PASSWORD)
        except VerificationCodeError:
            raise VerificationCodeError("Invalid or expired reset token")

        user = await self.users.get_user_by_email(email)
        if user is None:
            raise ValidationError("User not found", code="user_not_found")

        await self.users.set_password(user, new_password)
        logger.info(f"Password reset for user {user.id}")
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.hashed_password):
            raise AuthenticationError("Current password is incorrect")
        await self.users.set_password(user, new_password)
        logger.info(f"Password changed for user {user.id}")
