"""
User model

Account identity, credentials and the lockout fields the login flow reads.
Supports soft-delete via deleted_at; username and email are unique only
among rows that are not deleted.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Index

from app.core.database import Base


class UserRole:
    USER = "user"
    ADMIN = "admin"

    ALL = (USER, ADMIN)


class UserStatus:
    ACTIVE = "active"
    DISABLED = "disabled"

    ALL = (ACTIVE, DISABLED)


class User(Base):
    """
    User account model.

    Account lockout fields: failed_login_attempts counts consecutive
    failures, locked_until gates login while it is in the future.
    """
    __tablename__ = "users"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Core fields
    username = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)
    nickname = Column(String(100), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.USER)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE)

    # Account lockout
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    # Login tracking
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(64), nullable=True)
    join_ip = Column(String(64), nullable=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps (UTC-aware); created_at doubles as join time
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index(
            'uq_users_username_active', 'username', unique=True,
            postgresql_where=deleted_at.is_(None), sqlite_where=deleted_at.is_(None),
        ),
        Index(
            'uq_users_email_active', 'email', unique=True,
            postgresql_where=deleted_at.is_(None), sqlite_where=deleted_at.is_(None),
        ),
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
