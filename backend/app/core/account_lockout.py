"""
Account Lockout policy

Brute force protection for the login flow:
- N consecutive failures lock the account for a fixed duration
- The gate is locked_until alone; the counter only decides when to set it
- An elapsed lock is cleared lazily on the next attempt, counter included
- Successful login or admin unlock resets everything
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.utils import utcnow, as_utc
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class LockoutResult:
    attempts: int
    locked: bool
    locked_until: Optional[datetime]
    remaining_attempts: int


class AccountLockoutPolicy:
    """
    Manages account lockout for brute force protection.

    Features:
    - Fixed-duration lockout once the failure threshold is reached
    - Automatic unlock after duration (lazy, on the next attempt)
    - Admin manual unlock capability
    """

    def __init__(self, max_failed_attempts: int = 5, lockout_minutes: int = 10):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_minutes = lockout_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccountLockoutPolicy":
        return cls(
            max_failed_attempts=settings.LOGIN_MAX_FAILURE_COUNT,
            lockout_minutes=settings.LOGIN_LOCK_DURATION_MINUTES,
        )

    def is_locked(self, user: User, now: Optional[datetime] = None) -> bool:
        """True while locked_until is in the future."""
        locked_until = as_utc(user.locked_until)
        if locked_until is None:
            return False
        return locked_until > (now or utcnow())

    def has_expired_lock(self, user: User, now: Optional[datetime] = None) -> bool:
        locked_until = as_utc(user.locked_until)
        return locked_until is not None and locked_until <= (now or utcnow())

    def get_lockout_remaining(self, user: User) -> Optional[int]:
        """
        Get remaining lockout time in seconds.

        Returns:
            Seconds remaining, or None if not locked
        """
        now = utcnow()
        if not self.is_locked(user, now):
            return None
        remaining = as_utc(user.locked_until) - now
        return max(0, int(remaining.total_seconds()))

    def get_remaining_minutes(self, user: User) -> int:
        """Remaining lock time rounded up, so a locked account never reports 0."""
        seconds = self.get_lockout_remaining(user)
        if seconds is None:
            return 0
        return max(1, math.ceil(seconds / 60))

    async def clear_expired_lock(self, db: AsyncSession, user: User) -> bool:
        """
        Lazy expiry: drop an elapsed lock and start the counter over.

        Committed immediately so the reset survives a failed attempt that
        follows it in the same request.
        """
        if not self.has_expired_lock(user):
            return False

        await db.execute(
            update(User)
            .where(User.id == user.id, User.locked_until <= utcnow())
            .values(locked_until=None, failed_login_attempts=0, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(user)
        logger.info(f"Lock expired for user {user.id}, counter reset")
        return True

    async def record_failed_attempt(self, db: AsyncSession, user: User) -> LockoutResult:
        """
        Count one failed login and lock at the threshold.

        Counter and lock are written by a single UPDATE computed from the
        stored counter, so concurrent failures cannot under- or over-lock.
        """
        now = utcnow()
        lock_until = now + timedelta(minutes=self.lockout_minutes)
        next_attempts = User.failed_login_attempts + 1

        result = await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                failed_login_attempts=next_attempts,
                locked_until=case(
                    (next_attempts >= self.max_failed_attempts, lock_until),
                    else_=User.locked_until,
                ),
                updated_at=now,
            )
            .returning(User.failed_login_attempts, User.locked_until)
            .execution_options(synchronize_session=False)
        )
        attempts, locked_until = result.one()
        await db.commit()
        await db.refresh(user)

        locked = as_utc(locked_until) is not None and as_utc(locked_until) > now
        if locked:
            logger.warning(
                f"User {user.id} locked after {attempts} failed attempts "
                f"for {self.lockout_minutes} minutes"
            )

        return LockoutResult(
            attempts=attempts,
            locked=locked,
            locked_until=as_utc(locked_until) if locked else None,
            remaining_attempts=max(0, self.max_failed_attempts - attempts),
        )

    async def record_successful_login(
        self,
        db: AsyncSession,
        user: User,
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Reset failed attempts on successful login.

        Flushed, not committed: the login transaction commits it.
        """
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = utcnow()
        user.last_login_ip = ip_address
        await db.flush()

    async def unlock_account(self, db: AsyncSession, user: User) -> None:
        """Manually unlock an account (admin)."""
        user.failed_login_attempts = 0
        user.locked_until = None
        await db.flush()

