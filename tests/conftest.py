"""
Pytest configuration.

Settings are loaded on import of cartela.core.config, so the environment has
to be prepared before anything from cartela is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PAYOUT_TIMEZONE", "America/Sao_Paulo")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cartela.db.base import Base
from cartela.db import models  # noqa: F401
from cartela.db.models import SaleStatus, SaleSubmission, UnitType, UserAccount, UserRole
from cartela.services.campaigns.service import RequirementSpec, campaign_service

NOV_10 = datetime(2025, 11, 10, 15, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(eng.sync_engine, "connect")
    def _no_autobegin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    sm = async_sessionmaker(engine, expire_on_commit=False)
    async with sm() as s:
        yield s


class Factory:
    """Builders for the rows the tests need."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._orders = 0

    async def account(
        self,
        name: str,
        role: UserRole = UserRole.VENDOR,
        *,
        manager: UserAccount | None = None,
        available: Decimal | int = 0,
    ) -> UserAccount:
        user = UserAccount(
            name=name,
            role=role,
            manager_id=manager.id if manager else None,
            available_balance=Decimal(available),
            reserved_balance=Decimal("0"),
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def campaign(self, title: str = "Summer", *, manager_percentage: str = "0", tiers: int = 1, quantity: int = 1):
        campaign = await campaign_service.create_campaign(
            self.session, title=title, manager_percentage=Decimal(manager_percentage)
        )
        first = None
        for n in range(1, tiers + 1):
            tier = await campaign_service.define_card_tier(
                self.session,
                campaign_id=campaign.id,
                tier_number=n,
                description=f"Card {n}",
                requirements=[
                    RequirementSpec(description="Sneakers", required_quantity=quantity, ordinal=1),
                    RequirementSpec(
                        description="Socks", required_quantity=quantity, ordinal=2, unit_type=UnitType.PAIR
                    ),
                ],
            )
            first = first or tier
        return campaign, first

    async def sale(
        self,
        vendor: UserAccount,
        campaign,
        requirement,
        *,
        tier: int | None = 1,
        base: Decimal | int = 50,
        submitted_at: datetime = NOV_10,
        validated_at: datetime | None = None,
        status: SaleStatus = SaleStatus.VALIDATED,
        rewarded: bool = False,
    ) -> SaleSubmission:
        self._orders += 1
        sale = SaleSubmission(
            vendor_id=vendor.id,
            campaign_id=campaign.id,
            requirement_id=requirement.id,
            order_number=f"ORD-{self._orders:04d}",
            status=status,
            submitted_at=submitted_at,
            validated_at=(validated_at or submitted_at + timedelta(hours=1)) if status == SaleStatus.VALIDATED else None,
            base_reward_value=Decimal(base),
            applied_multiplier=Decimal("1"),
            final_value_with_event=Decimal(base) if rewarded else None,
            card_tier_attained=tier if status == SaleStatus.VALIDATED else None,
            reward_added_to_balance=rewarded,
            reward_settled=False,
        )
        self.session.add(sale)
        await self.session.flush()
        return sale

    async def fill_tier(self, vendor, campaign, first_tier, *, tier: int, base: Decimal | int = 50, **kw):
        """One sale per requirement of the campaign's first card, counted toward `tier`."""
        return [
            await self.sale(vendor, campaign, req, tier=tier, base=base, **kw) for req in first_tier.requirements
        ]


@pytest.fixture
def factory(session):
    return Factory(session)
