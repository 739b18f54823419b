from typing import Optional, List, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
import logging

from orgpay.crud.base import CRUDBase
from orgpay.models.subscription import Subscription
from orgpay.schemas.ledger import SubscriptionCreate, SubscriptionUpdate
from orgpay.schemas.paypal import SubscriptionSnapshot

logger = logging.getLogger(__name__)


class CRUDSubscription(CRUDBase[Subscription, SubscriptionCreate, SubscriptionUpdate]):
    async def get_by_subscription_id(self, db: AsyncSession, subscription_id: str) -> Optional[Subscription]:
        return await self.get_one_by_field(db, field="subscription_id", value=subscription_id)

    async def get_by_org_id(self, db: AsyncSession, org_id: str) -> List[Subscription]:
        """Known subscriptions of an organization, newest first"""
        result = await db.execute(
            select(self.model)
            .where(self.model.org_id == org_id)
            .order_by(self.model.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_recent(self, db: AsyncSession, *, org_id: Optional[str] = None, limit: int = 10) -> List[Subscription]:
        query = select(self.model)
        if org_id:
            query = query.where(self.model.org_id == org_id)
        result = await db.execute(query.order_by(self.model.created_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def upsert_snapshot(
        self,
        db: AsyncSession,
        *,
        snapshot: SubscriptionSnapshot,
        org_id: str,
        paypal_account_id: Optional[UUID]
    ) -> Tuple[Subscription, bool]:
        """
        Insert or update the row for snapshot.subscription_id.
        Returns (subscription, created).
        """
        # Fields missing from the snapshot keep their stored values
        update_data = SubscriptionUpdate(
            status=snapshot.status,
            next_billing_date=snapshot.next_billing_date,
            last_payment_date=snapshot.last_payment_date,
            last_payment_amount=snapshot.last_payment_amount,
            currency=snapshot.currency,
            buyer_email=snapshot.buyer_email,
            meta_data=snapshot.raw,
        ).model_dump(exclude_none=True)

        existing = await self.get_by_subscription_id(db, snapshot.subscription_id)
        if existing:
            return await self.update(db, db_obj=existing, obj_in=update_data), False

        try:
            created = await self.create(
                db,
                obj_in=SubscriptionCreate(
                    paypal_account_id=paypal_account_id,
                    org_id=org_id,
                    subscription_id=snapshot.subscription_id,
                    plan_id=snapshot.plan_id,
                    status=snapshot.status or "UNKNOWN",
                    start_date=snapshot.effective_start_date,
                    next_billing_date=snapshot.next_billing_date,
                    last_payment_date=snapshot.last_payment_date,
                    last_payment_amount=snapshot.last_payment_amount,
                    currency=snapshot.currency,
                    buyer_email=snapshot.buyer_email,
                    meta_data=snapshot.raw,
                )
            )
            return created, True
        except IntegrityError:
            # A concurrent request inserted the same subscription id first
            await db.rollback()
            logger.info(f"Subscription {snapshot.subscription_id} inserted concurrently, updating instead")
            existing = await self.get_by_subscription_id(db, snapshot.subscription_id)
            if existing is None:
                raise
            return await self.update(db, db_obj=existing, obj_in=update_data), False

    async def update_status(self, db: AsyncSession, db_obj: Subscription, status: str) -> Subscription:
        return await self.update(db, db_obj=db_obj, obj_in={"status": status})


subscription = CRUDSubscription(Subscription)
