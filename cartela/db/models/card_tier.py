from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cartela.core.time import utcnow
from cartela.db.base import Base
from cartela.db.models.enums import ConditionField, ConditionOperator, UnitType


class CardTierRule(Base):
    """One numbered card ("cartela") of a campaign.

    Tier N+1 is cloned from tier N the first time someone completes N.
    """

    __tablename__ = "card_tier_rules"
    __table_args__ = (UniqueConstraint("campaign_id", "tier_number", name="uq_card_tier_rules_campaign_tier"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), index=True, nullable=False
    )
    tier_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    requirements: Mapped[list["Requirement"]] = relationship(
        back_populates="card_tier",
        cascade="all, delete-orphan",
        order_by="Requirement.ordinal",
    )


class Requirement(Base):
    __tablename__ = "requirements"
    # ordinal is the join key between a sale and the requirement it satisfies,
    # in whichever tier the sale ends up counting toward
    __table_args__ = (UniqueConstraint("card_tier_id", "ordinal", name="uq_requirements_tier_ordinal"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    card_tier_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("card_tier_rules.id", ondelete="CASCADE"), index=True, nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    required_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_type: Mapped[UnitType] = mapped_column(
        Enum(UnitType, native_enum=False, length=16),
        default=UnitType.UNIT,
        server_default=UnitType.UNIT.value,
        nullable=False,
    )
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)

    card_tier: Mapped[CardTierRule] = relationship(back_populates="requirements")
    conditions: Mapped[list["RequirementCondition"]] = relationship(
        back_populates="requirement",
        cascade="all, delete-orphan",
        order_by="RequirementCondition.id",
    )


class RequirementCondition(Base):
    """Product filter a sale must pass to count for a requirement."""

    __tablename__ = "requirement_conditions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    requirement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("requirements.id", ondelete="CASCADE"), index=True, nullable=False
    )
    field: Mapped[ConditionField] = mapped_column(Enum(ConditionField, native_enum=False, length=32), nullable=False)
    operator: Mapped[ConditionOperator] = mapped_column(
        Enum(ConditionOperator, native_enum=False, length=16), nullable=False
    )
    value: Mapped[str] = mapped_column(String(255), nullable=False)

    requirement: Mapped[Requirement] = relationship(back_populates="conditions")
