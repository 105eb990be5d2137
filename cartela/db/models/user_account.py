from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import UserRole


class UserAccount(Base):
    """Vendor, manager or admin.

    `available_balance` is what the next payout batch may reserve;
    `reserved_balance` is what PENDING batches already hold.
    """

    __tablename__ = "user_accounts"
    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="available_balance_non_negative"),
        CheckConstraint("reserved_balance >= 0", name="reserved_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, native_enum=False, length=16), nullable=False)

    # hierarchy: vendors point at their manager
    manager_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("user_accounts.id", ondelete="SET NULL"), index=True, nullable=True
    )

    available_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), server_default="0", nullable=False
    )
    reserved_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
