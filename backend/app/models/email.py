"""
Email template and delivery log models
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, UniqueConstraint, Index

from app.core.database import Base


class EmailTemplate(Base):
    """Localized subject/body for one template name."""
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    lang = Column(String(10), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint('name', 'lang', name='uq_email_templates_name_lang'),
    )

    def __repr__(self):
        return f"<EmailTemplate(name='{self.name}', lang='{self.lang}')>"


class EmailLog(Base):
    """Outcome of one delivery attempt. Written best-effort."""
    __tablename__ = "email_logs"

    STATUS_SENT = 1
    STATUS_FAILED = 0

    id = Column(Integer, primary_key=True, index=True)
    to_email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    template_name = Column(String(50), nullable=True)
    status = Column(Integer, nullable=False, default=STATUS_SENT)
    error_msg = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index('ix_email_logs_to_email', 'to_email'),
        Index('ix_email_logs_created', 'created_at'),
    )

    def __repr__(self):
        return f"<EmailLog(id={self.id}, to='{self.to_email}', status={self.status})>"
