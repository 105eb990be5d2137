from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cartela.db.models import Notification

log = logging.getLogger(__name__)


class NotificationService:
    async def notify(self, session: AsyncSession, *, user_id: int, message: str) -> Notification | None:
        """Queue an in-app notification inside the caller's transaction.

        Best-effort: the insert runs in a SAVEPOINT so a failure is rolled back
        alone and never aborts the balance/ledger writes around it.
        """
        try:
            async with session.begin_nested():
                n = Notification(user_id=user_id, message=message)
                session.add(n)
                await session.flush()
            return n
        except Exception:
            log.exception("notification_create_failed user_id=%s", user_id)
            return None


notification_service = NotificationService()
