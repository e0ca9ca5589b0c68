"""
Verification Code Service

Issues, validates and expires one-time numeric codes scoped to an email
address and a purpose (registration / password reset).

Codes are stored as HMAC-SHA256(secret, email:purpose:code). Lookup stays a
plain equality match, so verification is still an exact-string comparison
of the submitted code.

Consumption is two-phase: verify_code() finds the row, mark_used() claims
it with a conditional UPDATE. The caller runs both inside the request
transaction so a failed flow leaves the code untouched.
"""
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update, delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.utils import utcnow, as_utc
from app.models.verification_code import VerificationCode, CodePurpose

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


@dataclass
class CodeCheck:
    valid: bool
    code_id: Optional[int] = None


class VerificationCodeService:
    """Code lifecycle over the verification_codes table."""

    def __init__(self, db: AsyncSession, secret_key: str):
        self.db = db
        self._secret = secret_key.encode("utf-8")

    @staticmethod
    def generate_code() -> str:
        """Uniformly random 6-digit code, leading zeros kept."""
        return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"

    def hash_code(self, email: str, purpose: str, code: str) -> str:
        message = f"{email}:{purpose}:{code}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def issue_code(self, email: str, purpose: str, ttl: timedelta) -> str:
        """
        Issue a new code for (email, purpose).

        Prior active codes for the pair are soft-deleted first, so the new
        code always supersedes them. Returns the plaintext for delivery.
        """
        if purpose not in CodePurpose.ALL:
            raise ValueError(f"Unknown code purpose: {purpose}")

        now = utcnow()
        code = self.generate_code()

        await self.db.execute(
            update(VerificationCode)
            .where(
                VerificationCode.email == email,
                VerificationCode.purpose == purpose,
                VerificationCode.is_used.is_(False),
                VerificationCode.is_deleted.is_(False),
            )
            .values(is_deleted=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        record = VerificationCode(
            email=email,
            code_hash=self.hash_code(email, purpose, code),
            purpose=purpose,
            expires_at=now + ttl,
            is_used=False,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        await self.db.flush()

        logger.info(f"Issued {purpose} code for {email} (id={record.id}, ttl={int(ttl.total_seconds())}s)")
        return code

    async def verify_code(self, email: str, code: str, purpose: str) -> CodeCheck:
        """
        Find the newest live code matching email, code and purpose.

        Does not consume the code. Wrong, expired, used and superseded
        codes are all reported the same way.
        """
        if not code:
            return CodeCheck(valid=False)

        result = await self.db.execute(
            select(VerificationCode)
            .where(
                VerificationCode.email == email,
                VerificationCode.code_hash == self.hash_code(email, purpose, code),
                VerificationCode.purpose == purpose,
                VerificationCode.is_used.is_(False),
                VerificationCode.is_deleted.is_(False),
            )
            .order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return CodeCheck(valid=False)

        if as_utc(record.expires_at) <= utcnow():
            return CodeCheck(valid=False)

        return CodeCheck(valid=True, code_id=record.id)

    async def mark_used(self, code_id: int) -> bool:
        """
        Claim a code. Idempotent.

        Returns True only for the call that flipped the flag, so two
        concurrent consumers cannot both succeed.
        """
        result = await self.db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id, VerificationCode.is_used.is_(False))
            .values(is_used=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_all_for(self, email: str, purpose: Optional[str] = None) -> int:
        """Hard-delete every code for the pair (all purposes when purpose is None)."""
        stmt = delete(VerificationCode).where(VerificationCode.email == email)
        if purpose:
            stmt = stmt.where(VerificationCode.purpose == purpose)
        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0

    async def sweep_expired(self) -> int:
        """Soft-delete every expired code that is not soft-deleted yet."""
        now = utcnow()
        result = await self.db.execute(
            update(VerificationCode)
            .where(
                VerificationCode.expires_at <= now,
                VerificationCode.is_deleted.is_(False),
            )
            .values(is_deleted=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_old(self, retention_days: int) -> int:
        """Hard-delete used or soft-deleted codes untouched for retention_days."""
        cutoff = utcnow() - timedelta(days=retention_days)
        result = await self.db.execute(
            delete(VerificationCode)
            .where(
                and_(
                    or_(
                        VerificationCode.is_deleted.is_(True),
                        VerificationCode.is_used.is_(True),
                    ),
                    VerificationCode.updated_at < cutoff,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
