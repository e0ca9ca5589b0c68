"""
Verification code model

One row per issued code. Codes are scoped to (email, purpose) and stored
as a keyed hash, never as plaintext.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index

from app.core.database import Base


class CodePurpose:
    REGISTER = "register"
    RESET_PASSWORD = "reset_password"

    ALL = (REGISTER, RESET_PASSWORD)


class VerificationCode(Base):
    """
    Issued one-time code.

    Lifecycle: issued -> used, or issued -> soft-deleted (superseded or
    expired) -> purged by the cleanup sweeper after the retention window.
    """
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False)
    code_hash = Column(String(64), nullable=False)
    purpose = Column(String(20), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('ix_verification_codes_email_purpose', 'email', 'purpose'),
        Index('ix_verification_codes_expires', 'expires_at'),
        Index('ix_verification_codes_disposed', 'is_deleted', 'is_used', 'updated_at'),
    )

    def __repr__(self):
        return f"<VerificationCode(id={self.id}, email='{self.email}', purpose='{self.purpose}')>"
