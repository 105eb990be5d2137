import dataclasses
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from cartela.core.errors import BusinessRuleViolation
from cartela.db.models import PaymentStatus, PayoutReport, ReportKind
from cartela.services.payouts import batch_number as batch_module
from cartela.services.payouts.batch_number import (BatchNumber, format_batch_number, next_batch_number,
                                                   parse_batch_number)

NOV_20 = datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)


def test_format_and_parse():
    assert format_batch_number(2025, 11, 1) == "LOTE-2025-11-001"
    assert format_batch_number(2025, 1, 1234) == "LOTE-2025-01-1234"
    assert parse_batch_number("LOTE-2025-11-042") == BatchNumber("LOTE", 2025, 11, 42)
    assert str(parse_batch_number(" LOTE-2025-11-042 ")) == "LOTE-2025-11-042"


@pytest.mark.parametrize("value", ["", "LOTE-2025-11-1", "LOTE-2025-13-001", "lote-2025-11-001", "LOTE-25-11-001"])
def test_parse_rejects_malformed_numbers(value):
    with pytest.raises(BusinessRuleViolation) as exc:
        parse_batch_number(value)
    assert exc.value.code == "invalid_batch_number"


def test_format_rejects_bad_parts():
    with pytest.raises(BusinessRuleViolation):
        format_batch_number(2025, 0, 1)
    with pytest.raises(BusinessRuleViolation):
        format_batch_number(2025, 11, 0)


def _report(user_id, batch_number):
    return PayoutReport(
        batch_number=batch_number,
        user_id=user_id,
        kind=ReportKind.VENDOR,
        value=Decimal("1"),
        status=PaymentStatus.PAID,
        included_sales=[],
        cutoff_date=NOV_20,
        created_by="admin",
    )


@pytest.mark.asyncio
async def test_first_batch_of_the_month(session):
    assert await next_batch_number(session, now=NOV_20) == "LOTE-2025-11-001"


@pytest.mark.asyncio
async def test_sequence_continues_after_the_highest_suffix(session):
    session.add_all(
        [
            _report(1, "LOTE-2025-11-001"),
            _report(2, "LOTE-2025-11-001"),
            _report(3, "LOTE-2025-11-003"),
            _report(4, "LOTE-2025-10-007"),
            _report(5, "LOTE-2025-11-manual"),
        ]
    )
    await session.flush()

    assert await next_batch_number(session, now=NOV_20) == "LOTE-2025-11-004"


@pytest.mark.asyncio
async def test_month_follows_the_payout_timezone(session):
    session.add(_report(1, "LOTE-2025-11-001"))
    await session.flush()

    # 01:00 UTC on Dec 1st is still November 30th in Sao Paulo
    late_november = datetime(2025, 12, 1, 1, 0, tzinfo=timezone.utc)
    assert await next_batch_number(session, now=late_november) == "LOTE-2025-11-002"
    assert await next_batch_number(session, now=datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc)) == "LOTE-2025-12-001"


@pytest.mark.asyncio
async def test_sequence_advances_with_a_custom_prefix(session, monkeypatch):
    monkeypatch.setattr(batch_module, "settings", dataclasses.replace(batch_module.settings, batch_prefix="PAY2"))
    session.add_all([_report(1, "PAY2-2025-11-001"), _report(2, "LOTE-2025-11-005")])
    await session.flush()

    assert await next_batch_number(session, now=NOV_20) == "PAY2-2025-11-002"
    assert parse_batch_number("PAY2-2025-11-002") == BatchNumber("PAY2", 2025, 11, 2)


def test_format_rejects_a_prefix_with_a_dash():
    with pytest.raises(BusinessRuleViolation) as exc:
        format_batch_number(2025, 11, 1, prefix="LOTE-X")
    assert exc.value.code == "invalid_batch_number"
