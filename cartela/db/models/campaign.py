from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import CampaignStatus


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    # fraction of the vendor's pre-event reward credited to the manager (0.10 = 10%)
    manager_percentage: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), default=Decimal("0"), server_default="0", nullable=False
    )

    status: Mapped[CampaignStatus] = mapped_column(
        Enum(CampaignStatus, native_enum=False, length=16),
        default=CampaignStatus.ACTIVE,
        server_default=CampaignStatus.ACTIVE.value,
        nullable=False,
    )
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
