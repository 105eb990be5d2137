import dataclasses
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from cartela.core.errors import BusinessRuleViolation
from cartela.db.models import CompletedCardTier, Notification, SaleStatus, UserRole
from cartela.repo import get_balances
from cartela.services.rewards import service as reward_module
from cartela.services.rewards.evaluator import card_evaluator
from cartela.services.rewards.service import reward_service


async def _completed_tiers(session, vendor_id):
    return (
        await session.scalars(
            select(CompletedCardTier.tier_number)
            .where(CompletedCardTier.vendor_id == vendor_id)
            .order_by(CompletedCardTier.tier_number)
        )
    ).all()


@pytest.mark.asyncio
async def test_one_validation_completes_three_tiers_and_halts_on_the_fourth(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    # tiers 2 and 3 are already satisfied by earlier spillover sales
    await factory.fill_tier(vendor, campaign, tier1, tier=2, base=50)
    await factory.fill_tier(vendor, campaign, tier1, tier=3, base=50)
    await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)

    result = await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    assert result.rewarded_tiers == [1, 2, 3]
    assert result.halted_at == 4
    assert await _completed_tiers(session, vendor.id) == [1, 2, 3]
    assert await get_balances(session, vendor.id) == (Decimal("300"), Decimal("0"))

    tier4 = await card_evaluator.load_tier(session, campaign_id=campaign.id, tier_number=4)
    assert tier4 is not None
    assert [r.ordinal for r in tier4.requirements] == [1, 2]
    assert await card_evaluator.load_tier(session, campaign_id=campaign.id, tier_number=5) is None


@pytest.mark.asyncio
async def test_rerunning_the_cascade_pays_nothing_but_still_walks(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)
    await factory.fill_tier(vendor, campaign, tier1, tier=2, base=50)
    await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    again = await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    assert again.rewarded_tiers == []
    assert again.already_processed_tiers == [1, 2]
    assert again.halted_at == 3
    assert await get_balances(session, vendor.id) == (Decimal("200"), Decimal("0"))
    count = await session.scalar(select(func.count(CompletedCardTier.id)))
    assert count == 2


@pytest.mark.asyncio
async def test_already_processed_tier_still_lets_later_tiers_complete(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)
    await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    # tier 2 gets filled afterwards; walking from tier 1 must still reach it
    await factory.fill_tier(vendor, campaign, tier1, tier=2, base=25)
    result = await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    assert result.already_processed_tiers == [1]
    assert result.rewarded_tiers == [2]
    assert await get_balances(session, vendor.id) == (Decimal("150"), Decimal("0"))


@pytest.mark.asyncio
async def test_manager_is_credited_once_per_completed_tier(session, factory):
    manager = await factory.account("Carla", UserRole.MANAGER)
    vendor = await factory.account("Ana", manager=manager)
    campaign, tier1 = await factory.campaign(manager_percentage="0.25")
    await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)
    await factory.fill_tier(vendor, campaign, tier1, tier=2, base=50)

    await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)
    await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=2)

    assert await get_balances(session, manager.id) == (Decimal("50"), Decimal("0"))


@pytest.mark.asyncio
async def test_on_sale_validated_notifies_and_cascades(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    sales = await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)

    result = await reward_service.on_sale_validated(session, sale_id=sales[-1].id)

    assert result.rewarded_tiers == [1]
    messages = (
        await session.scalars(
            select(Notification.message).where(Notification.user_id == vendor.id).order_by(Notification.id)
        )
    ).all()
    assert messages[0] == f"Your sale '{sales[-1].order_number}' was APPROVED."
    assert messages[1].startswith("Congratulations! You completed card 1")


@pytest.mark.asyncio
async def test_on_sale_validated_rejects_unvalidated_sales(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    sale = await factory.sale(vendor, campaign, tier1.requirements[0], status=SaleStatus.PENDING_REVIEW)

    with pytest.raises(BusinessRuleViolation) as exc:
        await reward_service.on_sale_validated(session, sale_id=sale.id)
    assert exc.value.code == "sale_not_validated"


@pytest.mark.asyncio
async def test_runaway_cascade_is_stopped(session, factory, monkeypatch):
    monkeypatch.setattr(reward_module, "settings", dataclasses.replace(reward_module.settings, max_cascade_tiers=2))
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    for tier in (1, 2, 3, 4):
        await factory.fill_tier(vendor, campaign, tier1, tier=tier, base=10)

    with pytest.raises(BusinessRuleViolation) as exc:
        await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)
    assert exc.value.code == "cascade_limit_exceeded"


@pytest.mark.asyncio
async def test_concurrent_completion_counts_as_already_processed(session, factory, monkeypatch):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    await factory.fill_tier(vendor, campaign, tier1, tier=1, base=50)
    # another validation committed the ledger row after our existence check
    session.add(CompletedCardTier(vendor_id=vendor.id, campaign_id=campaign.id, tier_number=1))
    await session.flush()

    real_scalar = session.scalar
    missed = []

    async def scalar_missing_the_ledger_row(statement, *args, **kw):
        if not missed and "completed_card_tiers" in str(statement):
            missed.append(statement)
            return None
        return await real_scalar(statement, *args, **kw)

    monkeypatch.setattr(session, "scalar", scalar_missing_the_ledger_row)

    result = await reward_service.walk(session, campaign=campaign, vendor=vendor, tier_number=1)

    assert len(missed) == 1
    assert result.rewarded_tiers == []
    assert result.already_processed_tiers == [1]
    assert await get_balances(session, vendor.id) == (Decimal("0"), Decimal("0"))
    count = await session.scalar(select(func.count(CompletedCardTier.id)))
    assert count == 1
