from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.core.config import settings
from cartela.core.time import fmt_money
from cartela.db.models import Campaign, SaleStatus, SaleSubmission, SpecialEvent, UserAccount
from cartela.repo import credit_available, get_balances, to_money
from cartela.services.notifications.service import notification_service

log = logging.getLogger(__name__)

ONE = Decimal("1")


@dataclass(frozen=True)
class SaleReward:
    sale_id: int
    order_number: str
    base_value: Decimal
    multiplier: Decimal
    final_value: Decimal
    event_name: str | None


@dataclass(frozen=True)
class RewardOutcome:
    tier_number: int
    vendor_id: int
    total_original: Decimal
    total_final: Decimal
    manager_id: int | None = None
    manager_commission: Decimal = Decimal("0")
    sales: tuple[SaleReward, ...] = field(default_factory=tuple)

    @property
    def event_names(self) -> tuple[str, ...]:
        seen: list[str] = []
        for s in self.sales:
            if s.event_name and s.event_name not in seen:
                seen.append(s.event_name)
        return tuple(seen)


def resolve_event(events: Sequence[SpecialEvent], submitted_at: datetime) -> SpecialEvent | None:
    """Enabled event whose window contains the submission time.

    The submission time decides, not the validation time: a sale made during a
    promotion keeps the bonus even if staff validate it after the promotion
    ends. Overlapping events resolve to the highest multiplier.
    """
    best: SpecialEvent | None = None
    for ev in events:
        if not ev.enabled or not ev.covers(submitted_at):
            continue
        if best is None or Decimal(ev.multiplier) > Decimal(best.multiplier):
            best = ev
    return best


class RewardApplicator:
    async def _campaign_events(self, session: AsyncSession, campaign_id: int) -> list[SpecialEvent]:
        q = (
            select(SpecialEvent)
            .where(SpecialEvent.campaign_id == campaign_id, SpecialEvent.enabled.is_(True))
            .order_by(SpecialEvent.id.asc())
        )
        return list((await session.scalars(q)).all())

    async def apply_rewards(
        self,
        session: AsyncSession,
        *,
        campaign: Campaign,
        vendor: UserAccount,
        tier_number: int,
    ) -> RewardOutcome | None:
        """Credit the vendor (and manager commission) for one completed tier.

        Only sales not yet added to the balance are touched, so a second call
        for the same tier credits nothing.
        """
        q = (
            select(SaleSubmission)
            .where(
                SaleSubmission.vendor_id == vendor.id,
                SaleSubmission.campaign_id == campaign.id,
                SaleSubmission.card_tier_attained == tier_number,
                SaleSubmission.status == SaleStatus.VALIDATED,
                SaleSubmission.reward_added_to_balance.is_(False),
            )
            .order_by(SaleSubmission.id.asc())
            .execution_options(populate_existing=True)
        )
        sales = list((await session.scalars(q)).all())
        if not sales:
            log.warning(
                "reward_nothing_to_apply vendor_id=%s campaign_id=%s tier=%s",
                vendor.id,
                campaign.id,
                tier_number,
            )
            return None

        events = await self._campaign_events(session, campaign.id)

        rewards: list[SaleReward] = []
        for sale in sales:
            ev = resolve_event(events, sale.submitted_at)
            multiplier = Decimal(ev.multiplier) if ev else ONE
            base = to_money(sale.base_reward_value)
            final = to_money(base * multiplier)

            sale.applied_multiplier = multiplier
            sale.final_value_with_event = final
            sale.reward_added_to_balance = True

            rewards.append(
                SaleReward(
                    sale_id=sale.id,
                    order_number=sale.order_number,
                    base_value=base,
                    multiplier=multiplier,
                    final_value=final,
                    event_name=ev.name if ev else None,
                )
            )
            if settings.reward_verbose_log:
                log.debug(
                    "reward_sale order=%s submitted_at=%s base=%s multiplier=%s final=%s event=%s",
                    sale.order_number,
                    sale.submitted_at,
                    base,
                    multiplier,
                    final,
                    ev.name if ev else None,
                )
        await session.flush()

        total_original = sum((r.base_value for r in rewards), Decimal("0"))
        total_final = sum((r.final_value for r in rewards), Decimal("0"))

        if settings.reward_verbose_log:
            before, _ = await get_balances(session, vendor.id)
            log.debug("reward_vendor_balance vendor_id=%s before=%s increment=%s", vendor.id, before, total_final)
        await credit_available(session, vendor.id, total_final)

        # commission on the pre-event total: event bonuses are the vendor's alone
        manager_id = vendor.manager_id
        commission = Decimal("0")
        pct = Decimal(campaign.manager_percentage or 0)
        if manager_id and pct > 0:
            commission = to_money(total_original * pct)
            await credit_available(session, manager_id, commission)
            log.info(
                "reward_manager_commission manager_id=%s vendor_id=%s base=%s pct=%s commission=%s",
                manager_id,
                vendor.id,
                total_original,
                pct,
                commission,
            )

        outcome = RewardOutcome(
            tier_number=tier_number,
            vendor_id=vendor.id,
            total_original=total_original,
            total_final=total_final,
            manager_id=manager_id if commission > 0 else None,
            manager_commission=commission,
            sales=tuple(rewards),
        )

        events_note = ""
        if outcome.event_names:
            events_note = f" Events applied: {', '.join(outcome.event_names)}."
        await notification_service.notify(
            session,
            user_id=vendor.id,
            message=(
                f"Congratulations! You completed card {tier_number} of campaign '{campaign.title}'. "
                f"{fmt_money(total_final)} added to your balance!{events_note}"
            ),
        )

        log.info(
            "reward_applied vendor_id=%s campaign_id=%s tier=%s sales=%s original=%s final=%s",
            vendor.id,
            campaign.id,
            tier_number,
            len(rewards),
            total_original,
            total_final,
            extra={"vendor_id": vendor.id, "campaign_id": campaign.id, "tier": tier_number},
        )
        return outcome


reward_applicator = RewardApplicator()
