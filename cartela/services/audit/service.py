from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cartela.db.models import AuditAction, FinancialAudit

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditPage:
    items: list[FinancialAudit]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.per_page else 0


class AuditService:
    async def record(
        self,
        session: AsyncSession,
        *,
        action: AuditAction,
        admin_id: str,
        batch_number: str | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> FinancialAudit | None:
        """Write an audit row; a failure here never fails the audited operation."""
        try:
            async with session.begin_nested():
                row = FinancialAudit(
                    action=action,
                    admin_id=str(admin_id),
                    batch_number=batch_number,
                    before=before,
                    after=after,
                    meta=meta,
                )
                session.add(row)
                await session.flush()
            return row
        except Exception:
            log.exception("financial_audit_write_failed action=%s batch=%s", action.value, batch_number)
            return None

    async def list_entries(
        self,
        session: AsyncSession,
        *,
        action: AuditAction | None = None,
        admin_id: str | None = None,
        batch_number: str | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> AuditPage:
        page = max(1, int(page))
        per_page = max(1, int(per_page))

        conds = []
        if action is not None:
            conds.append(FinancialAudit.action == action)
        if admin_id:
            conds.append(FinancialAudit.admin_id == str(admin_id))
        if batch_number:
            conds.append(FinancialAudit.batch_number == batch_number)

        total = await session.scalar(select(func.count(FinancialAudit.id)).where(*conds))
        q = (
            select(FinancialAudit)
            .where(*conds)
            .order_by(FinancialAudit.created_at.desc(), FinancialAudit.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        items = list((await session.scalars(q)).all())
        return AuditPage(items=items, page=page, per_page=per_page, total=int(total or 0))


audit_service = AuditService()
