from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import PaymentStatus, ReportKind


class PayoutReport(Base):
    """One account's line in a payment batch.

    PENDING -> PAID, or deleted by batch cancellation. Rows sharing
    `batch_number` form the batch.
    """

    __tablename__ = "payout_reports"
    __table_args__ = (
        # at most one PENDING report per account
        Index(
            "uq_payout_reports_pending_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_payout_reports_user_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_number: Mapped[str] = mapped_column(String(32), index=True, nullable=False)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[ReportKind] = mapped_column(Enum(ReportKind, native_enum=False, length=16), nullable=False)
    campaign_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True
    )

    # snapshot of available_balance when the batch was generated
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, native_enum=False, length=16),
        default=PaymentStatus.PENDING,
        server_default=PaymentStatus.PENDING.value,
        nullable=False,
    )

    # VENDOR: own sales | MANAGER: subordinates' sales (tracked, never settled here)
    included_sales: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)

    cutoff_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
