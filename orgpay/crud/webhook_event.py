from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, and_
from pydantic import BaseModel

from orgpay.crud.base import CRUDBase
from orgpay.models.webhook_event import WebhookEvent, WebhookOutcome
from orgpay.schemas.ledger import WebhookEventCreate


class CRUDWebhookEvent(CRUDBase[WebhookEvent, WebhookEventCreate, BaseModel]):
    async def get_by_event_id(self, db: AsyncSession, event_id: str) -> Optional[WebhookEvent]:
        return await self.get_one_by_field(db, field="event_id", value=event_id)

    async def create_if_absent(self, db: AsyncSession, *, obj_in: WebhookEventCreate) -> Optional[WebhookEvent]:
        """
        Insert the event, relying on the unique event_id constraint.
        Returns None when another delivery already stored the same event id.
        """
        try:
            return await self.create(db, obj_in=obj_in)
        except IntegrityError:
            await db.rollback()
            return None

    async def record_outcome(
        self,
        db: AsyncSession,
        db_obj: WebhookEvent,
        outcome: WebhookOutcome,
        error: Optional[str] = None
    ) -> WebhookEvent:
        processed = outcome in (WebhookOutcome.SUCCESS, WebhookOutcome.IGNORED)
        return await self.update(
            db,
            db_obj=db_obj,
            obj_in={
                "outcome": outcome.value,
                "processed": processed,
                "attempts": (db_obj.attempts or 0) + 1,
                "last_error": error,
            }
        )

    async def get_retryable(self, db: AsyncSession, *, max_attempts: int, limit: int = 50) -> List[WebhookEvent]:
        """Unprocessed events that still have attempts left, oldest first"""
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.processed == False,
                    self.model.attempts < max_attempts
                )
            )
            .order_by(self.model.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


webhook_event = CRUDWebhookEvent(WebhookEvent)
