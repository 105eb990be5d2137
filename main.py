from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from cartela.core.config import settings
from cartela.core.errors import LedgerError
from cartela.core.logging import setup_logging
from cartela.db.models import PaymentStatus, UserRole
from cartela.db.session import dispose_engine, init_engine, transaction_scope
from cartela.services.payouts.service import payout_service

log = logging.getLogger("cartela.cli")


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def cmd_preview(args: argparse.Namespace) -> None:
    role = UserRole(args.role) if args.role else None
    async with transaction_scope() as session:
        preview = await payout_service.preview_balances(session, admin_id=args.admin, role=role)
    _print(
        {
            "accounts": [
                {
                    "user_id": a.user_id,
                    "name": a.name,
                    "role": a.role.value,
                    "available": a.available,
                    "reserved": a.reserved,
                }
                for a in preview.accounts
            ],
            "total_available": preview.total_available,
            "total_reserved": preview.total_reserved,
        }
    )


async def cmd_generate(args: argparse.Namespace) -> None:
    async with transaction_scope() as session:
        summary = await payout_service.generate_batch(
            session,
            cutoff_date=date.fromisoformat(args.cutoff),
            notes=args.notes,
            admin_id=args.admin,
        )
    _print(
        {
            "batch_number": summary.batch_number if summary.created else None,
            "reports": [{"user_id": r.user_id, "kind": r.kind.value, "value": r.value} for r in summary.reports],
            "total_value": summary.total_value,
            "skipped_pending": summary.skipped_pending,
            "skipped_unbacked": summary.skipped_unbacked,
        }
    )


async def cmd_process(args: argparse.Namespace) -> None:
    async with transaction_scope() as session:
        result = await payout_service.process_batch(
            session, batch_number=args.batch, notes=args.notes, admin_id=args.admin
        )
    _print(
        {
            "batch_number": result.batch_number,
            "processed": result.processed,
            "skipped_paid": result.skipped_paid,
            "total_value": result.total_value,
        }
    )


async def cmd_cancel(args: argparse.Namespace) -> None:
    async with transaction_scope() as session:
        result = await payout_service.cancel_batch(session, batch_number=args.batch, admin_id=args.admin)
    _print(
        {
            "batch_number": result.batch_number,
            "cancelled": result.cancelled,
            "total_returned": result.total_returned,
        }
    )


async def cmd_batches(args: argparse.Namespace) -> None:
    status = PaymentStatus(args.status) if args.status else None
    async with transaction_scope() as session:
        page = await payout_service.list_batches(
            session, status=status, page=args.page, per_page=args.per_page, admin_id=args.admin
        )
    _print(
        {
            "page": page.page,
            "total": page.total,
            "items": [
                {
                    "batch_number": b.batch_number,
                    "status": b.status.value,
                    "reports": b.report_count,
                    "total_value": b.total_value,
                    "created_at": b.created_at,
                    "paid_at": b.paid_at,
                }
                for b in page.items
            ],
        }
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reward payout administration")
    parser.add_argument("--admin", required=True, help="identifier recorded on reports and audit rows")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("preview", help="list payable balances")
    p.add_argument("--role", choices=[UserRole.VENDOR.value, UserRole.MANAGER.value], default=None)
    p.set_defaults(func=cmd_preview)

    p = sub.add_parser("generate", help="create a payment batch and reserve balances")
    p.add_argument("--cutoff", required=True, help="YYYY-MM-DD, inclusive")
    p.add_argument("--notes", default=None)
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("process", help="mark a batch PAID")
    p.add_argument("batch")
    p.add_argument("--notes", default=None)
    p.set_defaults(func=cmd_process)

    p = sub.add_parser("cancel", help="cancel a PENDING batch and release reservations")
    p.add_argument("batch")
    p.set_defaults(func=cmd_cancel)

    p = sub.add_parser("batches", help="list batches")
    p.add_argument("--status", choices=[s.value for s in PaymentStatus], default=None)
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--per-page", type=int, default=20)
    p.set_defaults(func=cmd_batches)
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.log_level)
    init_engine(settings.database_url)
    try:
        await args.func(args)
    except LedgerError as e:
        log.warning("cli_rejected command=%s code=%s", args.command, e.code)
        _print({"error": e.code, "message": e.message})
        return 1
    finally:
        await dispose_engine()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
