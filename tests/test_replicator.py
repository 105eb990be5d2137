import pytest

from cartela.db.models import ConditionField, ConditionOperator, UnitType
from cartela.services.campaigns.service import ConditionSpec, RequirementSpec, campaign_service
from cartela.services.rewards.evaluator import card_evaluator
from cartela.services.rewards.replicator import REPLICA_SUFFIX, tier_replicator


async def _campaign_with_gapped_ordinals(session):
    campaign = await campaign_service.create_campaign(session, title="Winter")
    await campaign_service.define_card_tier(
        session,
        campaign_id=campaign.id,
        tier_number=1,
        description="Winter card",
        requirements=[
            RequirementSpec(
                description="Boots",
                required_quantity=3,
                ordinal=4,
                conditions=(ConditionSpec(ConditionField.PRODUCT_CATEGORY, ConditionOperator.EQUALS, "boots"),),
            ),
            RequirementSpec(description="Gloves", required_quantity=2, ordinal=7, unit_type=UnitType.PAIR),
        ],
    )
    return campaign


@pytest.mark.asyncio
async def test_replica_keeps_ordinals_quantities_and_conditions(session):
    campaign = await _campaign_with_gapped_ordinals(session)

    replica = await tier_replicator.ensure_next_tier_exists(session, campaign_id=campaign.id, completed_tier_number=1)

    assert replica is not None
    assert replica.tier_number == 2
    assert [(r.ordinal, r.required_quantity, r.unit_type) for r in replica.requirements] == [
        (4, 3, UnitType.UNIT),
        (7, 2, UnitType.PAIR),
    ]
    boots = replica.requirements[0]
    assert [(c.field, c.operator, c.value) for c in boots.conditions] == [
        (ConditionField.PRODUCT_CATEGORY, ConditionOperator.EQUALS, "boots")
    ]
    assert replica.description == "Winter card" + REPLICA_SUFFIX


@pytest.mark.asyncio
async def test_replicating_a_replica_does_not_stack_suffixes(session):
    campaign = await _campaign_with_gapped_ordinals(session)
    await tier_replicator.ensure_next_tier_exists(session, campaign_id=campaign.id, completed_tier_number=1)

    third = await tier_replicator.ensure_next_tier_exists(session, campaign_id=campaign.id, completed_tier_number=2)

    assert third.description == "Winter card" + REPLICA_SUFFIX
    assert [r.ordinal for r in third.requirements] == [4, 7]


@pytest.mark.asyncio
async def test_existing_next_tier_is_left_alone(session):
    campaign = await _campaign_with_gapped_ordinals(session)
    await campaign_service.define_card_tier(
        session,
        campaign_id=campaign.id,
        tier_number=2,
        requirements=[RequirementSpec(description="Scarf", required_quantity=1, ordinal=1)],
    )

    assert await tier_replicator.ensure_next_tier_exists(
        session, campaign_id=campaign.id, completed_tier_number=1
    ) is None
    tier2 = await card_evaluator.load_tier(session, campaign_id=campaign.id, tier_number=2)
    assert [r.description for r in tier2.requirements] == ["Scarf"]


@pytest.mark.asyncio
async def test_missing_or_empty_source_creates_nothing(session):
    campaign = await campaign_service.create_campaign(session, title="Empty")
    await campaign_service.define_card_tier(session, campaign_id=campaign.id, tier_number=1, requirements=[])

    assert await tier_replicator.ensure_next_tier_exists(
        session, campaign_id=campaign.id, completed_tier_number=1
    ) is None
    assert await tier_replicator.ensure_next_tier_exists(
        session, campaign_id=campaign.id, completed_tier_number=5
    ) is None
    assert await card_evaluator.load_tier(session, campaign_id=campaign.id, tier_number=2) is None
