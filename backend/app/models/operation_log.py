"""
Operation log model

Request metadata for admin operations. Bodies are never stored.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Index

from app.core.database import Base


class OperationAction:
    """Action names derived from the HTTP method."""
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    BY_METHOD = {
        "GET": VIEW,
        "HEAD": VIEW,
        "POST": CREATE,
        "PUT": UPDATE,
        "PATCH": UPDATE,
        "DELETE": DELETE,
    }


class OperationLog(Base):
    __tablename__ = "operation_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)
    username = Column(String(50), nullable=True)
    module = Column(String(50), nullable=False)
    action = Column(String(20), nullable=False)
    method = Column(String(10), nullable=False)
    path = Column(String(500), nullable=False)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    status_code = Column(Integer, nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('ix_operation_logs_user', 'user_id'),
        Index('ix_operation_logs_module', 'module'),
        Index('ix_operation_logs_created', 'created_at'),
    )

    def __repr__(self):
        return f"<OperationLog(id={self.id}, {self.method} {self.path} -> {self.status_code})>"
