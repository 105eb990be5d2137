from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, Numeric,
                        String, func, text)
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import SaleStatus


class SaleSubmission(Base):
    """A vendor's sale record.

    Lifecycle flags:
    - reward_added_to_balance: the tier it counted toward was completed and
      final_value_with_event was credited to the vendor
    - reward_settled: a VENDOR payout report containing it was PAID
    """

    __tablename__ = "sale_submissions"
    __table_args__ = (
        CheckConstraint(
            "(reward_added_to_balance AND final_value_with_event IS NOT NULL)"
            " OR (NOT reward_added_to_balance AND final_value_with_event IS NULL)",
            name="final_value_iff_rewarded",
        ),
        CheckConstraint(
            "card_tier_attained IS NULL OR status = 'VALIDATED'",
            name="tier_only_when_validated",
        ),
        Index("ix_sale_submissions_vendor_campaign_tier", "vendor_id", "campaign_id", "card_tier_attained", "status"),
        Index("ix_sale_submissions_payout_scan", "vendor_id", "reward_added_to_balance", "reward_settled"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), index=True, nullable=False
    )
    requirement_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("requirements.id", ondelete="SET NULL"), index=True, nullable=True
    )
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus, native_enum=False, length=16),
        default=SaleStatus.PENDING_REVIEW,
        server_default=SaleStatus.PENDING_REVIEW.value,
        nullable=False,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    base_reward_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), server_default="0", nullable=False
    )
    applied_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), default=Decimal("1"), server_default="1", nullable=False
    )
    final_value_with_event: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # set on validation; the tier this sale counts toward (spillover may push it past the first)
    card_tier_attained: Mapped[int | None] = mapped_column(Integer, nullable=True)

    reward_added_to_balance: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    reward_settled: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)
