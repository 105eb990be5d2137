"""Payment batch numbers: ``LOTE-YYYY-MM-NNN``.

The sequence restarts every calendar month (in the payout timezone) and is
one above the highest suffix already used that month. Past 999 the suffix
simply grows wider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.core.config import BATCH_PREFIX_RE, settings
from cartela.core.errors import BusinessRuleViolation
from cartela.core.time import local_year_month, utcnow
from cartela.db.models import PayoutReport

_BATCH_RE = re.compile(r"^(?P<prefix>[A-Z][A-Z0-9]*)-(?P<year>\d{4})-(?P<month>\d{2})-(?P<seq>\d{3,})$")


@dataclass(frozen=True)
class BatchNumber:
    prefix: str
    year: int
    month: int
    seq: int

    def __str__(self) -> str:
        return format_batch_number(self.year, self.month, self.seq, prefix=self.prefix)


def month_prefix(year: int, month: int, *, prefix: str | None = None) -> str:
    prefix = prefix or settings.batch_prefix
    if not BATCH_PREFIX_RE.fullmatch(prefix):
        raise BusinessRuleViolation("invalid_batch_number", f"prefix {prefix!r} is not allowed")
    return f"{prefix}-{year:04d}-{month:02d}-"


def format_batch_number(year: int, month: int, seq: int, *, prefix: str | None = None) -> str:
    if not 1 <= month <= 12:
        raise BusinessRuleViolation("invalid_batch_number", f"month {month} out of range")
    if seq < 1:
        raise BusinessRuleViolation("invalid_batch_number", f"sequence {seq} must be positive")
    return f"{month_prefix(year, month, prefix=prefix)}{seq:03d}"


def parse_batch_number(value: str) -> BatchNumber:
    m = _BATCH_RE.match((value or "").strip())
    if not m:
        raise BusinessRuleViolation("invalid_batch_number", f"{value!r} is not a batch number")
    month = int(m.group("month"))
    if not 1 <= month <= 12:
        raise BusinessRuleViolation("invalid_batch_number", f"{value!r} has month {month}")
    return BatchNumber(
        prefix=m.group("prefix"),
        year=int(m.group("year")),
        month=month,
        seq=int(m.group("seq")),
    )


async def next_batch_number(session: AsyncSession, *, now: datetime | None = None) -> str:
    """Allocate the next number for the current month.

    Callers must hold the batch-numbering lock (see cartela.db.locks) for the
    rest of the transaction.
    """
    year, month = local_year_month(now or utcnow(), settings.payout_timezone)
    prefix = month_prefix(year, month)

    used = (
        await session.scalars(
            select(PayoutReport.batch_number).where(PayoutReport.batch_number.startswith(prefix)).distinct()
        )
    ).all()

    highest = 0
    for number in used:
        try:
            highest = max(highest, parse_batch_number(number).seq)
        except BusinessRuleViolation:
            # foreign rows sharing the prefix do not take part in numbering
            continue
    return format_batch_number(year, month, highest + 1)
