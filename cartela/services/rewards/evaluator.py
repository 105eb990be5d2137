from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cartela.db.models import CardTierRule, Requirement, SaleStatus, SaleSubmission

log = logging.getLogger(__name__)


class CardEvaluator:
    async def load_tier(self, session: AsyncSession, *, campaign_id: int, tier_number: int) -> CardTierRule | None:
        q = (
            select(CardTierRule)
            .where(CardTierRule.campaign_id == campaign_id, CardTierRule.tier_number == tier_number)
            .options(selectinload(CardTierRule.requirements))
            .limit(1)
        )
        return await session.scalar(q)

    async def count_by_ordinal(
        self, session: AsyncSession, *, tier_number: int, vendor_id: int, campaign_id: int
    ) -> Counter[int]:
        """VALIDATED sales of this vendor counted toward `tier_number`, keyed by requirement ordinal.

        The sale's requirement may belong to an earlier tier (spillover), so the
        ordinal, not the requirement id, is what matches it to this tier.
        """
        q = (
            select(SaleSubmission.id, Requirement.ordinal)
            .outerjoin(Requirement, Requirement.id == SaleSubmission.requirement_id)
            .where(
                SaleSubmission.vendor_id == vendor_id,
                SaleSubmission.campaign_id == campaign_id,
                SaleSubmission.status == SaleStatus.VALIDATED,
                SaleSubmission.card_tier_attained == tier_number,
            )
        )
        counts: Counter[int] = Counter()
        for sale_id, ordinal in (await session.execute(q)).all():
            if ordinal is None:
                log.warning(
                    "tier_check_sale_without_ordinal sale_id=%s tier=%s vendor_id=%s",
                    sale_id,
                    tier_number,
                    vendor_id,
                )
                continue
            counts[int(ordinal)] += 1
        return counts

    async def is_tier_complete(
        self, session: AsyncSession, *, tier_number: int, vendor_id: int, campaign_id: int
    ) -> bool:
        tier = await self.load_tier(session, campaign_id=campaign_id, tier_number=tier_number)
        if tier is None:
            log.warning("tier_check_tier_missing campaign_id=%s tier=%s", campaign_id, tier_number)
            return False
        # an empty tier is never complete, otherwise it would pay out for nothing
        if not tier.requirements:
            log.warning("tier_check_tier_empty campaign_id=%s tier=%s", campaign_id, tier_number)
            return False

        counts = await self.count_by_ordinal(
            session, tier_number=tier_number, vendor_id=vendor_id, campaign_id=campaign_id
        )

        complete = True
        for req in tier.requirements:
            have = counts.get(req.ordinal, 0)
            if have < req.required_quantity:
                log.info(
                    "tier_check_requirement_open tier=%s ordinal=%s have=%s need=%s vendor_id=%s",
                    tier_number,
                    req.ordinal,
                    have,
                    req.required_quantity,
                    vendor_id,
                )
                complete = False

        if complete:
            log.info("tier_check_complete tier=%s vendor_id=%s campaign_id=%s", tier_number, vendor_id, campaign_id)
        return complete


card_evaluator = CardEvaluator()
