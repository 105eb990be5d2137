from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base


class CompletedCardTier(Base):
    """Ledger row: the reward for (vendor, campaign, tier) has been applied.

    Its existence is the at-most-once lock for the reward applicator.
    """

    __tablename__ = "completed_card_tiers"
    __table_args__ = (
        UniqueConstraint("vendor_id", "campaign_id", "tier_number", name="uq_completed_card_tiers_vendor_campaign_tier"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), index=True, nullable=False
    )
    tier_number: Mapped[int] = mapped_column(Integer, nullable=False)

    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
