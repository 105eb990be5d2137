from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.core.config import settings
from cartela.core.errors import BusinessRuleViolation
from cartela.db.models import Campaign, CompletedCardTier, SaleStatus, UserAccount
from cartela.repo import get_account, get_campaign, get_sale
from cartela.services.notifications.service import notification_service
from cartela.services.rewards.applicator import RewardOutcome, reward_applicator
from cartela.services.rewards.evaluator import card_evaluator
from cartela.services.rewards.replicator import tier_replicator

log = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    start_tier: int
    halted_at: int | None = None
    # tiers completed and paid during this walk
    rewarded_tiers: list[int] = field(default_factory=list)
    # complete tiers whose ledger row already existed (walk went on past them)
    already_processed_tiers: list[int] = field(default_factory=list)
    outcomes: list[RewardOutcome] = field(default_factory=list)


class RewardService:
    """Cascading card completion.

    Entry point after a sale is validated. Runs inside the caller's
    transaction: any failure rolls back every credit made by the cascade.
    """

    async def on_sale_validated(self, session: AsyncSession, *, sale_id: int) -> CascadeResult:
        sale = await get_sale(session, sale_id)
        if sale.status != SaleStatus.VALIDATED or sale.card_tier_attained is None:
            raise BusinessRuleViolation(
                "sale_not_validated", f"sale {sale_id} is {sale.status.value} without a card tier"
            )
        campaign = await get_campaign(session, sale.campaign_id)
        vendor = await get_account(session, sale.vendor_id)

        await notification_service.notify(
            session,
            user_id=vendor.id,
            message=f"Your sale '{sale.order_number}' was APPROVED.",
        )
        return await self.walk(session, campaign=campaign, vendor=vendor, tier_number=sale.card_tier_attained)

    async def walk(
        self,
        session: AsyncSession,
        *,
        campaign: Campaign,
        vendor: UserAccount,
        tier_number: int,
    ) -> CascadeResult:
        """Evaluate tier N, pay it once, make sure N+1 exists, move to N+1.

        The only stop is an incomplete tier. A tier that was already paid is
        skipped for rewards but still replicated and walked past, so tiers
        completed by spillover further up are never stranded.
        """
        result = CascadeResult(start_tier=tier_number)
        tier = tier_number
        ctx = {"vendor_id": vendor.id, "campaign_id": campaign.id}

        while True:
            if tier - tier_number >= settings.max_cascade_tiers:
                raise BusinessRuleViolation(
                    "cascade_limit_exceeded",
                    f"cascade for vendor {vendor.id} passed {settings.max_cascade_tiers} tiers",
                )

            complete = await card_evaluator.is_tier_complete(
                session, tier_number=tier, vendor_id=vendor.id, campaign_id=campaign.id
            )
            if not complete:
                log.info("cascade_halt tier=%s", tier, extra={**ctx, "tier": tier})
                result.halted_at = tier
                return result

            newly_completed = await self._record_completion(
                session, vendor_id=vendor.id, campaign_id=campaign.id, tier_number=tier
            )
            if newly_completed:
                outcome = await reward_applicator.apply_rewards(
                    session, campaign=campaign, vendor=vendor, tier_number=tier
                )
                result.rewarded_tiers.append(tier)
                if outcome is not None:
                    result.outcomes.append(outcome)
            else:
                log.info("cascade_tier_already_processed tier=%s", tier, extra={**ctx, "tier": tier})
                result.already_processed_tiers.append(tier)

            await tier_replicator.ensure_next_tier_exists(
                session, campaign_id=campaign.id, completed_tier_number=tier
            )
            tier += 1

    async def _record_completion(
        self, session: AsyncSession, *, vendor_id: int, campaign_id: int, tier_number: int
    ) -> bool:
        """Create the ledger row. False when it already existed."""
        existing = await session.scalar(
            select(CompletedCardTier.id)
            .where(
                CompletedCardTier.vendor_id == vendor_id,
                CompletedCardTier.campaign_id == campaign_id,
                CompletedCardTier.tier_number == tier_number,
            )
            .limit(1)
        )
        if existing:
            return False

        # a concurrent validation may insert between our read and write;
        # the unique constraint turns that into "already processed"
        try:
            async with session.begin_nested():
                session.add(CompletedCardTier(vendor_id=vendor_id, campaign_id=campaign_id, tier_number=tier_number))
                await session.flush()
        except IntegrityError:
            log.info(
                "cascade_completion_race vendor_id=%s campaign_id=%s tier=%s",
                vendor_id,
                campaign_id,
                tier_number,
            )
            return False
        return True


reward_service = RewardService()
