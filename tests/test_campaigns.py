from datetime import datetime, timezone
from decimal import Decimal

import pytest

from cartela.core.errors import BusinessRuleViolation, NotFound
from cartela.services.campaigns.service import RequirementSpec, campaign_service


def _req(ordinal, quantity=1):
    return RequirementSpec(description=f"Item {ordinal}", required_quantity=quantity, ordinal=ordinal)


@pytest.mark.asyncio
async def test_define_card_tier_orders_requirements_by_ordinal(session):
    campaign = await campaign_service.create_campaign(session, title="  Spring  ", manager_percentage="0.05")

    tier = await campaign_service.define_card_tier(
        session, campaign_id=campaign.id, tier_number=1, requirements=[_req(3), _req(1, 4)]
    )

    assert campaign.title == "Spring"
    assert campaign.manager_percentage == Decimal("0.05")
    assert {(r.ordinal, r.required_quantity) for r in tier.requirements} == {(1, 4), (3, 1)}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tier_number, requirements, code",
    [
        (1, [_req(1), _req(1)], "duplicate_ordinal"),
        (1, [_req(1, 0)], "invalid_quantity"),
        (0, [_req(1)], "invalid_tier_number"),
    ],
)
async def test_define_card_tier_rejects_bad_input(session, tier_number, requirements, code):
    campaign = await campaign_service.create_campaign(session, title="Spring")

    with pytest.raises(BusinessRuleViolation) as exc:
        await campaign_service.define_card_tier(
            session, campaign_id=campaign.id, tier_number=tier_number, requirements=requirements
        )
    assert exc.value.code == code


@pytest.mark.asyncio
async def test_tier_numbers_are_unique_per_campaign(session):
    campaign = await campaign_service.create_campaign(session, title="Spring")
    other = await campaign_service.create_campaign(session, title="Autumn")
    await campaign_service.define_card_tier(session, campaign_id=campaign.id, tier_number=1, requirements=[_req(1)])
    await campaign_service.define_card_tier(session, campaign_id=other.id, tier_number=1, requirements=[_req(1)])

    with pytest.raises(BusinessRuleViolation) as exc:
        await campaign_service.define_card_tier(
            session, campaign_id=campaign.id, tier_number=1, requirements=[_req(2)]
        )
    assert exc.value.code == "tier_exists"


@pytest.mark.asyncio
async def test_unknown_campaign(session):
    with pytest.raises(NotFound) as exc:
        await campaign_service.define_card_tier(session, campaign_id=404, tier_number=1, requirements=[_req(1)])
    assert exc.value.code == "campaign_not_found"


@pytest.mark.asyncio
async def test_manager_percentage_must_be_a_fraction(session):
    with pytest.raises(BusinessRuleViolation) as exc:
        await campaign_service.create_campaign(session, title="Spring", manager_percentage="1.5")
    assert exc.value.code == "invalid_manager_percentage"


@pytest.mark.asyncio
async def test_special_event_validation(session):
    campaign = await campaign_service.create_campaign(session, title="Spring")
    start = datetime(2025, 11, 1, tzinfo=timezone.utc)
    end = datetime(2025, 11, 30, tzinfo=timezone.utc)

    with pytest.raises(BusinessRuleViolation) as exc:
        await campaign_service.add_special_event(
            session, campaign_id=campaign.id, name="Zero", multiplier="0", active_from=start, active_to=end
        )
    assert exc.value.code == "invalid_multiplier"

    with pytest.raises(BusinessRuleViolation) as exc:
        await campaign_service.add_special_event(
            session, campaign_id=campaign.id, name="Backwards", multiplier="2", active_from=end, active_to=start
        )
    assert exc.value.code == "invalid_event_window"

    ev = await campaign_service.add_special_event(
        session, campaign_id=campaign.id, name=" Launch ", multiplier="1.5", active_from=start, active_to=end
    )
    assert ev.name == "Launch"
    assert ev.covers(start) and ev.covers(end)
    assert not ev.covers(datetime(2025, 12, 1, tzinfo=timezone.utc))
