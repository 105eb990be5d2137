import pytest

from cartela.db.models import SaleStatus
from cartela.services.campaigns.service import campaign_service
from cartela.services.rewards.evaluator import card_evaluator


@pytest.mark.asyncio
async def test_tier_complete_when_every_requirement_is_met(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign()
    await factory.fill_tier(vendor, campaign, tier1, tier=1)

    assert await card_evaluator.is_tier_complete(session, tier_number=1, vendor_id=vendor.id, campaign_id=campaign.id)


@pytest.mark.asyncio
async def test_tier_incomplete_when_one_requirement_is_short(session, factory):
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign(quantity=2)
    sneakers, socks = tier1.requirements
    await factory.sale(vendor, campaign, sneakers, tier=1)
    await factory.sale(vendor, campaign, sneakers, tier=1)
    await factory.sale(vendor, campaign, socks, tier=1)

    assert not await card_evaluator.is_tier_complete(
        session, tier_number=1, vendor_id=vendor.id, campaign_id=campaign.id
    )


@pytest.mark.asyncio
async def test_spillover_sales_match_by_ordinal(session, factory):
    """Sales point at tier 1's requirements but count toward tier 2."""
    vendor = await factory.account("Ana")
    campaign, tier1 = await factory.campaign(tiers=2)
    await factory.fill_tier(vendor, campaign, tier1, tier=2)

    assert await card_evaluator.is_tier_complete(session, tier_number=2, vendor_id=vendor.id, campaign_id=campaign.id)
    assert not await card_evaluator.is_tier_complete(
        session, tier_number=1, vendor_id=vendor.id, campaign_id=campaign.id
    )


@pytest.mark.asyncio
async def test_only_validated_sales_of_the_vendor_count(session, factory):
    vendor = await factory.account("Ana")
    other = await factory.account("Bruno")
    campaign, tier1 = await factory.campaign()
    sneakers, socks = tier1.requirements
    await factory.sale(vendor, campaign, sneakers, tier=1)
    await factory.sale(vendor, campaign, socks, status=SaleStatus.PENDING_REVIEW)
    await factory.sale(other, campaign, socks, tier=1)

    counts = await card_evaluator.count_by_ordinal(session, tier_number=1, vendor_id=vendor.id, campaign_id=campaign.id)
    assert dict(counts) == {1: 1}
    assert not await card_evaluator.is_tier_complete(
        session, tier_number=1, vendor_id=vendor.id, campaign_id=campaign.id
    )


@pytest.mark.asyncio
async def test_missing_or_empty_tier_is_never_complete(session, factory):
    vendor = await factory.account("Ana")
    campaign, _ = await factory.campaign()
    await campaign_service.define_card_tier(session, campaign_id=campaign.id, tier_number=2, requirements=[])

    assert not await card_evaluator.is_tier_complete(
        session, tier_number=2, vendor_id=vendor.id, campaign_id=campaign.id
    )
    assert not await card_evaluator.is_tier_complete(
        session, tier_number=9, vendor_id=vendor.id, campaign_id=campaign.id
    )
