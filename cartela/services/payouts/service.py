from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from cartela.core.config import settings
from cartela.core.errors import BusinessRuleViolation, NotFound
from cartela.core.time import end_of_day, fmt_money, utcnow
from cartela.db.locks import lock_batch_numbering
from cartela.db.models import (AuditAction, Campaign, CampaignStatus, PaymentStatus, PayoutReport, ReportKind,
                               SaleSubmission, UserAccount, UserRole)
from cartela.repo import release_reserved, reserve, settle_reserved, to_money
from cartela.services.audit.service import AuditPage, audit_service
from cartela.services.notifications.service import notification_service
from cartela.services.payouts.batch_number import next_batch_number

log = logging.getLogger(__name__)

PAYABLE_ROLES = (UserRole.VENDOR, UserRole.MANAGER)
ZERO = Decimal("0")


@dataclass(frozen=True)
class AccountBalance:
    user_id: int
    name: str
    role: UserRole
    manager_id: int | None
    available: Decimal
    reserved: Decimal


@dataclass(frozen=True)
class BalancePreview:
    accounts: list[AccountBalance]
    total_available: Decimal
    total_reserved: Decimal


@dataclass(frozen=True)
class BatchSummary:
    batch_number: str
    cutoff_date: datetime
    created_by: str
    reports: list[PayoutReport] = field(default_factory=list)
    total_value: Decimal = ZERO
    # accounts left out: a PENDING report already exists / no sales back the balance
    skipped_pending: list[int] = field(default_factory=list)
    skipped_unbacked: list[int] = field(default_factory=list)

    @property
    def created(self) -> bool:
        return bool(self.reports)


@dataclass(frozen=True)
class ProcessResult:
    batch_number: str
    processed: int
    skipped_paid: int
    total_value: Decimal
    processed_by: str

    @property
    def nothing_to_process(self) -> bool:
        return self.processed == 0


@dataclass(frozen=True)
class CancelResult:
    batch_number: str
    cancelled: int
    total_returned: Decimal
    cancelled_by: str


@dataclass(frozen=True)
class BatchInfo:
    batch_number: str
    status: PaymentStatus
    report_count: int
    pending_count: int
    total_value: Decimal
    created_at: datetime | None
    paid_at: datetime | None


@dataclass(frozen=True)
class BatchDetail:
    batch_number: str
    status: PaymentStatus
    reports: list[PayoutReport]
    total_value: Decimal


@dataclass(frozen=True)
class BatchPage:
    items: list[BatchInfo]
    page: int
    per_page: int
    total: int


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class PayoutService:
    """Three-phase payout: preview -> generate (reserve) -> process (settle) / cancel.

    Generation moves each account's available balance into reserved_balance,
    so a second generation or a concurrent reward credit can never reserve the
    same money twice. Settlement only ever debits reserved_balance.
    """

    # ---- Phase 1 -------------------------------------------------------------
    async def preview_balances(
        self, session: AsyncSession, *, admin_id: str, role: UserRole | None = None
    ) -> BalancePreview:
        roles = (role,) if role else PAYABLE_ROLES
        q = (
            select(UserAccount)
            .where(UserAccount.available_balance > 0, UserAccount.role.in_(roles))
            .order_by(UserAccount.role.asc(), UserAccount.name.asc(), UserAccount.id.asc())
            .execution_options(populate_existing=True)
        )
        users = (await session.scalars(q)).all()
        accounts = [
            AccountBalance(
                user_id=u.id,
                name=u.name,
                role=u.role,
                manager_id=u.manager_id,
                available=to_money(u.available_balance),
                reserved=to_money(u.reserved_balance),
            )
            for u in users
        ]
        preview = BalancePreview(
            accounts=accounts,
            total_available=sum((a.available for a in accounts), ZERO),
            total_reserved=sum((a.reserved for a in accounts), ZERO),
        )
        log.info("payout_preview accounts=%s total=%s", len(accounts), preview.total_available)
        await audit_service.record(
            session,
            action=AuditAction.PREVIEW_BALANCES,
            admin_id=admin_id,
            meta={"accounts": len(accounts), "total_available": str(preview.total_available)},
        )
        return preview

    # ---- Phase 2 -------------------------------------------------------------
    async def _unsettled_sales(
        self,
        session: AsyncSession,
        *,
        vendor_ids: list[int],
        manager_ids: list[int],
        cutoff: datetime,
    ) -> dict[int, list[tuple[int, int]]]:
        """One query for every account in the batch.

        Returns user_id -> [(sale_id, campaign_id)]: vendors get their own
        sales, managers the sales of their subordinates.
        """
        if not vendor_ids and not manager_ids:
            return {}

        seller = aliased(UserAccount)
        owners = []
        if vendor_ids:
            owners.append(SaleSubmission.vendor_id.in_(vendor_ids))
        if manager_ids:
            owners.append(seller.manager_id.in_(manager_ids))

        q = (
            select(SaleSubmission.id, SaleSubmission.campaign_id, SaleSubmission.vendor_id, seller.manager_id)
            .join(seller, seller.id == SaleSubmission.vendor_id)
            .where(
                SaleSubmission.reward_added_to_balance.is_(True),
                SaleSubmission.reward_settled.is_(False),
                SaleSubmission.validated_at <= cutoff,
                or_(*owners),
            )
            .order_by(SaleSubmission.id.asc())
        )
        vendors = set(vendor_ids)
        managers = set(manager_ids)
        by_user: dict[int, list[tuple[int, int]]] = defaultdict(list)
        rows = (await session.execute(q)).all()
        for sale_id, campaign_id, vendor_id, manager_id in rows:
            if vendor_id in vendors:
                by_user[vendor_id].append((sale_id, campaign_id))
            if manager_id is not None and manager_id in managers:
                by_user[manager_id].append((sale_id, campaign_id))
        log.info("payout_sales_loaded rows=%s accounts=%s", len(rows), len(by_user))
        return by_user

    async def _fallback_campaign_id(self, session: AsyncSession) -> int | None:
        """Latest ACTIVE campaign, else the latest campaign of any status."""
        active = await session.scalar(
            select(Campaign.id)
            .where(Campaign.status == CampaignStatus.ACTIVE)
            .order_by(
                Campaign.starts_at.is_(None),
                Campaign.starts_at.desc(),
                Campaign.created_at.desc(),
                Campaign.id.desc(),
            )
            .limit(1)
        )
        if active is not None:
            return active
        return await session.scalar(
            select(Campaign.id).order_by(Campaign.created_at.desc(), Campaign.id.desc()).limit(1)
        )

    async def generate_batch(
        self,
        session: AsyncSession,
        *,
        cutoff_date: date | datetime,
        admin_id: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> BatchSummary:
        started = time.monotonic()
        cutoff = end_of_day(cutoff_date, settings.payout_timezone)

        await lock_batch_numbering(session)
        batch_number = await next_batch_number(session, now=now)
        ctx = {"batch_number": batch_number, "admin_id": admin_id}
        log.info("payout_generate_start cutoff=%s", cutoff.isoformat(), extra=ctx)

        users = (
            await session.scalars(
                select(UserAccount)
                .where(UserAccount.available_balance > 0, UserAccount.role.in_(PAYABLE_ROLES))
                .order_by(UserAccount.name.asc(), UserAccount.id.asc())
                .execution_options(populate_existing=True)
            )
        ).all()

        user_ids = [u.id for u in users]
        pending_owners: set[int] = set()
        if user_ids:
            pending_owners = set(
                (
                    await session.scalars(
                        select(PayoutReport.user_id).where(
                            PayoutReport.user_id.in_(user_ids), PayoutReport.status == PaymentStatus.PENDING
                        )
                    )
                ).all()
            )

        sales_by_user = await self._unsettled_sales(
            session,
            vendor_ids=[u.id for u in users if u.role == UserRole.VENDOR and u.id not in pending_owners],
            manager_ids=[u.id for u in users if u.role == UserRole.MANAGER and u.id not in pending_owners],
            cutoff=cutoff,
        )

        reports: list[PayoutReport] = []
        skipped_pending: list[int] = []
        skipped_unbacked: list[int] = []
        total = ZERO
        fallback_campaign: int | None = None
        fallback_loaded = False

        for user in users:
            if user.id in pending_owners:
                log.warning("payout_skip_pending_report user_id=%s", user.id, extra=ctx)
                skipped_pending.append(user.id)
                continue

            value = to_money(user.available_balance)
            if value <= 0:
                continue

            sales = sales_by_user.get(user.id, [])
            campaign_id = sales[0][1] if sales else None
            if not sales and user.role == UserRole.MANAGER:
                # the vendors' own reports already settled these subordinate sales
                if not fallback_loaded:
                    fallback_campaign = await self._fallback_campaign_id(session)
                    fallback_loaded = True
                campaign_id = fallback_campaign
                log.warning(
                    "payout_manager_commission_without_sales user_id=%s balance=%s campaign_id=%s",
                    user.id,
                    value,
                    campaign_id,
                    extra=ctx,
                )
            if not sales and campaign_id is None:
                log.warning(
                    "payout_skip_unbacked_balance user_id=%s role=%s balance=%s",
                    user.id,
                    user.role.value,
                    value,
                    extra=ctx,
                )
                skipped_unbacked.append(user.id)
                continue

            report = PayoutReport(
                batch_number=batch_number,
                user_id=user.id,
                kind=ReportKind.for_role(user.role),
                campaign_id=campaign_id,
                value=value,
                status=PaymentStatus.PENDING,
                included_sales=[sale_id for sale_id, _ in sales],
                cutoff_date=cutoff,
                notes=(notes or "").strip() or None,
                created_by=str(admin_id),
            )
            session.add(report)
            await session.flush()
            await reserve(session, user.id, value)

            log.info(
                "payout_report_created user_id=%s kind=%s value=%s sales=%s",
                user.id,
                report.kind.value,
                value,
                len(report.included_sales),
                extra=ctx,
            )
            reports.append(report)
            total += value

        summary = BatchSummary(
            batch_number=batch_number,
            cutoff_date=cutoff,
            created_by=str(admin_id),
            reports=reports,
            total_value=total,
            skipped_pending=skipped_pending,
            skipped_unbacked=skipped_unbacked,
        )
        log.info(
            "payout_generate_done reports=%s total=%s skipped_pending=%s skipped_unbacked=%s",
            len(reports),
            total,
            len(skipped_pending),
            len(skipped_unbacked),
            extra=ctx,
        )
        await audit_service.record(
            session,
            action=AuditAction.GENERATE_BATCH,
            admin_id=admin_id,
            batch_number=batch_number if reports else None,
            after={
                "reports": len(reports),
                "total_value": str(total),
                "users": [r.user_id for r in reports],
            },
            meta={
                "cutoff": cutoff.isoformat(),
                "skipped_pending": skipped_pending,
                "skipped_unbacked": skipped_unbacked,
                "elapsed_ms": _elapsed_ms(started),
            },
        )
        return summary

    # ---- Phase 3 -------------------------------------------------------------
    async def _batch_reports(self, session: AsyncSession, batch_number: str) -> list[PayoutReport]:
        q = (
            select(PayoutReport)
            .where(PayoutReport.batch_number == batch_number)
            .order_by(PayoutReport.id.asc())
            .execution_options(populate_existing=True)
        )
        reports = list((await session.scalars(q)).all())
        if not reports:
            raise NotFound("batch_not_found", f"batch {batch_number} not found")
        return reports

    async def process_batch(
        self,
        session: AsyncSession,
        *,
        batch_number: str,
        admin_id: str,
        notes: str | None = None,
    ) -> ProcessResult:
        """Settle every PENDING report of the batch. Safe to call again."""
        started = time.monotonic()
        ctx = {"batch_number": batch_number, "admin_id": admin_id}
        reports = await self._batch_reports(session, batch_number)

        pending = [r for r in reports if r.status == PaymentStatus.PENDING]
        skipped_paid = len(reports) - len(pending)
        if skipped_paid:
            log.info("payout_process_skip_paid count=%s", skipped_paid, extra=ctx)

        if not pending:
            log.info("payout_process_nothing_pending", extra=ctx)
            await audit_service.record(
                session,
                action=AuditAction.PROCESS_BATCH,
                admin_id=admin_id,
                batch_number=batch_number,
                meta={"processed": 0, "skipped_paid": skipped_paid, "elapsed_ms": _elapsed_ms(started)},
            )
            return ProcessResult(
                batch_number=batch_number,
                processed=0,
                skipped_paid=skipped_paid,
                total_value=ZERO,
                processed_by=str(admin_id),
            )

        before = {"pending": [{"user_id": r.user_id, "value": str(r.value)} for r in pending]}
        paid_at = utcnow()
        extra_notes = (notes or "").strip()
        total = ZERO

        for report in pending:
            value = to_money(report.value)
            await settle_reserved(session, report.user_id, value)

            sale_ids = list(report.included_sales or [])
            if report.kind.settles_sales and sale_ids:
                await session.execute(
                    update(SaleSubmission)
                    .where(SaleSubmission.id.in_(sale_ids))
                    .values(reward_settled=True)
                    .execution_options(synchronize_session=False)
                )
                log.info("payout_sales_settled user_id=%s sales=%s", report.user_id, len(sale_ids), extra=ctx)
            elif sale_ids:
                log.info(
                    "payout_sales_tracked_only user_id=%s kind=%s sales=%s",
                    report.user_id,
                    report.kind.value,
                    len(sale_ids),
                    extra=ctx,
                )

            report.status = PaymentStatus.PAID
            report.paid_at = paid_at
            if extra_notes:
                report.notes = f"{report.notes or ''}\n{extra_notes}".strip()

            await notification_service.notify(
                session,
                user_id=report.user_id,
                message=f"Payment processed! {fmt_money(value)} was transferred to your account.",
            )
            total += value

        await session.flush()
        log.info("payout_process_done processed=%s total=%s", len(pending), total, extra=ctx)

        await audit_service.record(
            session,
            action=AuditAction.PROCESS_BATCH,
            admin_id=admin_id,
            batch_number=batch_number,
            before=before,
            after={"paid": len(pending), "total_value": str(total)},
            meta={"skipped_paid": skipped_paid, "elapsed_ms": _elapsed_ms(started)},
        )
        return ProcessResult(
            batch_number=batch_number,
            processed=len(pending),
            skipped_paid=skipped_paid,
            total_value=total,
            processed_by=str(admin_id),
        )

    async def cancel_batch(self, session: AsyncSession, *, batch_number: str, admin_id: str) -> CancelResult:
        """Return every reservation to available balance and drop the batch."""
        started = time.monotonic()
        ctx = {"batch_number": batch_number, "admin_id": admin_id}
        reports = await self._batch_reports(session, batch_number)

        if any(r.status == PaymentStatus.PAID for r in reports):
            raise BusinessRuleViolation(
                "batch_already_paid", f"batch {batch_number} was already processed and cannot be cancelled"
            )

        before = {"reports": [{"user_id": r.user_id, "value": str(r.value)} for r in reports]}
        total = ZERO
        for report in reports:
            value = to_money(report.value)
            await release_reserved(session, report.user_id, value)
            total += value

        await session.execute(
            delete(PayoutReport)
            .where(PayoutReport.batch_number == batch_number)
            .execution_options(synchronize_session="evaluate")
        )
        await session.flush()
        log.info("payout_cancel_done reports=%s returned=%s", len(reports), total, extra=ctx)

        await audit_service.record(
            session,
            action=AuditAction.CANCEL_BATCH,
            admin_id=admin_id,
            batch_number=batch_number,
            before=before,
            after={"cancelled": len(reports), "total_returned": str(total)},
            meta={"elapsed_ms": _elapsed_ms(started)},
        )
        return CancelResult(
            batch_number=batch_number,
            cancelled=len(reports),
            total_returned=total,
            cancelled_by=str(admin_id),
        )

    # ---- Queries ---------------------------------------------------------------
    async def get_batch(
        self, session: AsyncSession, *, batch_number: str, admin_id: str | None = None
    ) -> BatchDetail:
        reports = await self._batch_reports(session, batch_number)
        status = (
            PaymentStatus.PENDING
            if any(r.status == PaymentStatus.PENDING for r in reports)
            else PaymentStatus.PAID
        )
        detail = BatchDetail(
            batch_number=batch_number,
            status=status,
            reports=reports,
            total_value=sum((to_money(r.value) for r in reports), ZERO),
        )
        if admin_id:
            await audit_service.record(
                session, action=AuditAction.GET_BATCH, admin_id=admin_id, batch_number=batch_number
            )
        return detail

    async def list_batches(
        self,
        session: AsyncSession,
        *,
        status: PaymentStatus | None = None,
        page: int = 1,
        per_page: int = 20,
        admin_id: str | None = None,
    ) -> BatchPage:
        page = max(1, int(page))
        per_page = max(1, int(per_page))

        pending_count = func.sum(case((PayoutReport.status == PaymentStatus.PENDING, 1), else_=0))
        grouped = (
            select(
                PayoutReport.batch_number.label("batch_number"),
                func.count(PayoutReport.id).label("report_count"),
                pending_count.label("pending_count"),
                func.coalesce(func.sum(PayoutReport.value), 0).label("total_value"),
                func.min(PayoutReport.created_at).label("created_at"),
                func.max(PayoutReport.paid_at).label("paid_at"),
            )
            .group_by(PayoutReport.batch_number)
        )
        if status == PaymentStatus.PENDING:
            grouped = grouped.having(pending_count > 0)
        elif status == PaymentStatus.PAID:
            grouped = grouped.having(pending_count == 0)

        sub = grouped.subquery()
        total = await session.scalar(select(func.count()).select_from(sub))
        rows = (
            await session.execute(
                select(sub)
                .order_by(sub.c.created_at.desc(), sub.c.batch_number.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
        ).all()

        items = [
            BatchInfo(
                batch_number=row.batch_number,
                status=PaymentStatus.PENDING if int(row.pending_count or 0) > 0 else PaymentStatus.PAID,
                report_count=int(row.report_count),
                pending_count=int(row.pending_count or 0),
                total_value=to_money(row.total_value),
                created_at=row.created_at,
                paid_at=row.paid_at,
            )
            for row in rows
        ]
        if admin_id:
            await audit_service.record(
                session,
                action=AuditAction.LIST_BATCHES,
                admin_id=admin_id,
                meta={"status": status.value if status else None, "page": page},
            )
        return BatchPage(items=items, page=page, per_page=per_page, total=int(total or 0))

    async def list_audit(
        self,
        session: AsyncSession,
        *,
        action: AuditAction | None = None,
        admin_id: str | None = None,
        batch_number: str | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> AuditPage:
        return await audit_service.list_entries(
            session, action=action, admin_id=admin_id, batch_number=batch_number, page=page, per_page=per_page
        )


payout_service = PayoutService()
