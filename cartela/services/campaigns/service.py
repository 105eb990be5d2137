from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.core.errors import BusinessRuleViolation
from cartela.core.time import ensure_tz
from cartela.db.models import (Campaign, CardTierRule, ConditionField, ConditionOperator, Requirement,
                               RequirementCondition, SpecialEvent, UnitType)
from cartela.repo import get_campaign

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionSpec:
    field: ConditionField
    operator: ConditionOperator
    value: str


@dataclass(frozen=True)
class RequirementSpec:
    description: str
    required_quantity: int
    ordinal: int
    unit_type: UnitType = UnitType.UNIT
    conditions: tuple[ConditionSpec, ...] = field(default_factory=tuple)


def _check_ordinals(requirements: Iterable[RequirementSpec]) -> None:
    seen: set[int] = set()
    for req in requirements:
        if req.ordinal in seen:
            raise BusinessRuleViolation("duplicate_ordinal", f"ordinal {req.ordinal} is used twice in one card")
        seen.add(req.ordinal)


class CampaignService:
    async def create_campaign(
        self,
        session: AsyncSession,
        *,
        title: str,
        manager_percentage: Decimal | str | int = 0,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> Campaign:
        pct = Decimal(manager_percentage)
        if pct < 0 or pct > 1:
            raise BusinessRuleViolation("invalid_manager_percentage", "manager percentage must be within 0..1")
        campaign = Campaign(title=title.strip(), manager_percentage=pct, starts_at=starts_at, ends_at=ends_at)
        session.add(campaign)
        await session.flush()
        return campaign

    async def define_card_tier(
        self,
        session: AsyncSession,
        *,
        campaign_id: int,
        tier_number: int,
        requirements: list[RequirementSpec],
        description: str | None = None,
    ) -> CardTierRule:
        """Create a card with its requirements and conditions.

        Ordinals must be unique inside the card: they are the key that ties a
        sale to a requirement across replicated cards.
        """
        await get_campaign(session, campaign_id)
        if tier_number < 1:
            raise BusinessRuleViolation("invalid_tier_number", "tier numbers start at 1")
        for req in requirements:
            if req.required_quantity < 1:
                raise BusinessRuleViolation(
                    "invalid_quantity", f"requirement {req.ordinal} needs a positive quantity"
                )
        _check_ordinals(requirements)

        taken = await session.scalar(
            select(CardTierRule.id)
            .where(CardTierRule.campaign_id == campaign_id, CardTierRule.tier_number == tier_number)
            .limit(1)
        )
        if taken:
            raise BusinessRuleViolation("tier_exists", f"campaign {campaign_id} already has card {tier_number}")

        tier = CardTierRule(
            campaign_id=campaign_id,
            tier_number=tier_number,
            description=description,
            requirements=[
                Requirement(
                    description=r.description,
                    required_quantity=r.required_quantity,
                    unit_type=r.unit_type,
                    ordinal=r.ordinal,
                    conditions=[
                        RequirementCondition(field=c.field, operator=c.operator, value=c.value)
                        for c in r.conditions
                    ],
                )
                for r in requirements
            ],
        )
        session.add(tier)
        await session.flush()
        log.info(
            "card_tier_defined campaign_id=%s tier=%s requirements=%s", campaign_id, tier_number, len(requirements)
        )
        return tier

    async def add_special_event(
        self,
        session: AsyncSession,
        *,
        campaign_id: int,
        name: str,
        multiplier: Decimal | str | int,
        active_from: datetime,
        active_to: datetime,
        enabled: bool = True,
    ) -> SpecialEvent:
        await get_campaign(session, campaign_id)
        mult = Decimal(multiplier)
        if mult <= 0:
            raise BusinessRuleViolation("invalid_multiplier", "multiplier must be positive")
        if ensure_tz(active_to) < ensure_tz(active_from):
            raise BusinessRuleViolation("invalid_event_window", "event ends before it starts")

        ev = SpecialEvent(
            campaign_id=campaign_id,
            name=name.strip(),
            multiplier=mult,
            active_from=ensure_tz(active_from),
            active_to=ensure_tz(active_to),
            enabled=enabled,
        )
        session.add(ev)
        await session.flush()
        return ev


campaign_service = CampaignService()
