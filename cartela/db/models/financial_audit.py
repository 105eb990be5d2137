from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import AuditAction


class FinancialAudit(Base):
    """Who did what to which batch, with before/after snapshots."""

    __tablename__ = "financial_audit"
    __table_args__ = (Index("ix_financial_audit_admin_created", "admin_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction, native_enum=False, length=32), index=True, nullable=False)
    batch_number: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False)

    before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # `metadata` is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True, nullable=False
    )
