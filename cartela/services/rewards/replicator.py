from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cartela.db.models import CardTierRule, Requirement, RequirementCondition

log = logging.getLogger(__name__)

REPLICA_SUFFIX = " (auto-replicated)"


def _replica_description(source: CardTierRule, tier_number: int) -> str:
    if not source.description:
        return f"Card {tier_number}{REPLICA_SUFFIX}"
    base = source.description
    if base.endswith(REPLICA_SUFFIX):
        base = base[: -len(REPLICA_SUFFIX)]
    return f"{base}{REPLICA_SUFFIX}"


class TierReplicator:
    async def ensure_next_tier_exists(
        self, session: AsyncSession, *, campaign_id: int, completed_tier_number: int
    ) -> CardTierRule | None:
        """Clone tier N into N+1 unless N+1 already exists.

        Returns the new tier, or None when nothing was created. Ordinals are
        copied as-is: sales are matched to requirements by ordinal.
        """
        next_number = completed_tier_number + 1

        existing_id = await session.scalar(
            select(CardTierRule.id)
            .where(CardTierRule.campaign_id == campaign_id, CardTierRule.tier_number == next_number)
            .limit(1)
        )
        if existing_id:
            log.info("replicate_tier_exists campaign_id=%s tier=%s id=%s", campaign_id, next_number, existing_id)
            return None

        source = await session.scalar(
            select(CardTierRule)
            .where(CardTierRule.campaign_id == campaign_id, CardTierRule.tier_number == completed_tier_number)
            .options(selectinload(CardTierRule.requirements).selectinload(Requirement.conditions))
            .limit(1)
        )
        if source is None:
            log.error(
                "replicate_source_missing campaign_id=%s tier=%s", campaign_id, completed_tier_number
            )
            return None
        if not source.requirements:
            log.warning(
                "replicate_source_empty campaign_id=%s tier=%s", campaign_id, completed_tier_number
            )
            return None

        replica = CardTierRule(
            campaign_id=campaign_id,
            tier_number=next_number,
            description=_replica_description(source, next_number),
            requirements=[
                Requirement(
                    description=req.description,
                    required_quantity=req.required_quantity,
                    unit_type=req.unit_type,
                    ordinal=req.ordinal,
                    conditions=[
                        RequirementCondition(field=c.field, operator=c.operator, value=c.value)
                        for c in req.conditions
                    ],
                )
                for req in source.requirements
            ],
        )
        session.add(replica)
        await session.flush()

        log.info(
            "replicate_tier_created campaign_id=%s tier=%s requirements=%s conditions=%s",
            campaign_id,
            next_number,
            len(replica.requirements),
            sum(len(r.conditions) for r in replica.requirements),
        )
        return replica


tier_replicator = TierReplicator()
