from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.core.errors import BusinessRuleViolation, NotFound
from cartela.db.models import Campaign, SaleSubmission, UserAccount

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize to cents, half-up, the way the store's NUMERIC(12, 2) keeps it."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ---- Lookups -----------------------------------------------------------------
async def get_campaign(session: AsyncSession, campaign_id: int) -> Campaign:
    campaign = await session.get(Campaign, campaign_id)
    if not campaign:
        raise NotFound("campaign_not_found", f"campaign {campaign_id} not found")
    return campaign


async def get_account(session: AsyncSession, user_id: int) -> UserAccount:
    user = await session.get(UserAccount, user_id)
    if not user:
        raise NotFound("account_not_found", f"account {user_id} not found")
    return user


async def get_sale(session: AsyncSession, sale_id: int) -> SaleSubmission:
    sale = await session.get(SaleSubmission, sale_id)
    if not sale:
        raise NotFound("sale_not_found", f"sale {sale_id} not found")
    return sale


async def get_balances(session: AsyncSession, user_id: int) -> tuple[Decimal, Decimal]:
    """Returns (available, reserved) straight from the store."""
    row = (
        await session.execute(
            select(UserAccount.available_balance, UserAccount.reserved_balance).where(UserAccount.id == user_id)
        )
    ).one_or_none()
    if row is None:
        raise NotFound("account_not_found", f"account {user_id} not found")
    return Decimal(row[0]), Decimal(row[1])


# ---- Balance movements -------------------------------------------------------
# All movements are single UPDATE statements evaluated by the store, never
# read-modify-write in Python. In-memory UserAccount objects are not
# synchronized; re-read balances with get_balances() or populate_existing.
async def credit_available(session: AsyncSession, user_id: int, amount: Decimal) -> None:
    if amount <= 0:
        return
    res = await session.execute(
        update(UserAccount)
        .where(UserAccount.id == user_id)
        .values(available_balance=UserAccount.available_balance + amount)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise NotFound("account_not_found", f"account {user_id} not found")


async def reserve(session: AsyncSession, user_id: int, amount: Decimal) -> None:
    """available -> reserved."""
    res = await session.execute(
        update(UserAccount)
        .where(UserAccount.id == user_id, UserAccount.available_balance >= amount)
        .values(
            available_balance=UserAccount.available_balance - amount,
            reserved_balance=UserAccount.reserved_balance + amount,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise BusinessRuleViolation("insufficient_balance", f"account {user_id} cannot reserve {amount}")


async def release_reserved(session: AsyncSession, user_id: int, amount: Decimal) -> None:
    """reserved -> available (batch cancellation)."""
    res = await session.execute(
        update(UserAccount)
        .where(UserAccount.id == user_id, UserAccount.reserved_balance >= amount)
        .values(
            available_balance=UserAccount.available_balance + amount,
            reserved_balance=UserAccount.reserved_balance - amount,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise BusinessRuleViolation(
            "insufficient_reserved_balance", f"account {user_id} has less than {amount} reserved"
        )


async def settle_reserved(session: AsyncSession, user_id: int, amount: Decimal) -> None:
    """reserved -> paid out (leaves the ledger)."""
    res = await session.execute(
        update(UserAccount)
        .where(UserAccount.id == user_id, UserAccount.reserved_balance >= amount)
        .values(reserved_balance=UserAccount.reserved_balance - amount)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise BusinessRuleViolation(
            "insufficient_reserved_balance", f"account {user_id} has less than {amount} reserved"
        )
