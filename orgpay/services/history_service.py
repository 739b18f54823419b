from typing import Optional, List, Dict
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orgpay.crud.merchant_account import merchant_account
from orgpay.crud.transaction import transaction
from orgpay.crud.subscription import subscription as subscription_crud
from orgpay.models.merchant_account import MerchantAccount
from orgpay.models.transaction import Transaction
from orgpay.schemas.paypal import SubscriptionSnapshot, PlanSnapshot, describe_payment
from orgpay.schemas.payments import TransactionView, SubscriptionView
from orgpay.services.paypal_service import paypal_service
from orgpay.services.account_service import account_service
from orgpay.services.subscription_service import subscription_service
from orgpay.services.plan_service import plan_service
from orgpay.core.config import settings
from orgpay.core.exceptions import handle_database_errors

logger = logging.getLogger(__name__)


class HistoryService:
    """
    Read side of the ledger. An organization without an active account
    has no history: these calls return [] rather than an error.
    """

    async def _active_account(self, db: AsyncSession, org_id: str) -> Optional[MerchantAccount]:
        account = await merchant_account.get_by_org_id(db, org_id)
        if account is None or not account.is_active:
            logger.info(f"No active PayPal account for org {org_id}, returning empty history")
            return None
        return account

    @staticmethod
    def format_transaction(row: Transaction) -> TransactionView:
        return TransactionView(
            id=str(row.id),
            order_id=row.order_id,
            amount=row.amount,
            currency=row.currency,
            status=row.status,
            platform_fee=row.platform_fee or "0.00",
            created_at=row.created_at,
            buyer_email=row.buyer_email,
            description=describe_payment(row.payment_details),
        )

    @staticmethod
    def format_subscription(snapshot: SubscriptionSnapshot, plan: Optional[PlanSnapshot]) -> SubscriptionView:
        """Subscriptions shown alongside one-time payments"""
        return SubscriptionView(
            id=snapshot.subscription_id,
            order_id=snapshot.subscription_id,
            amount=snapshot.last_payment_amount,
            currency=snapshot.currency,
            status=snapshot.status,
            created_at=snapshot.raw.get("create_time") or snapshot.raw.get("start_time"),
            buyer_email=snapshot.buyer_email or "-",
            description=(plan.name if plan and plan.name else "Subscription"),
            plan_id=snapshot.plan_id,
            plan_price=plan.price if plan else None,
            plan_interval=plan.interval if plan else None,
        )

    @handle_database_errors
    async def get_transaction_history(self, db: AsyncSession, org_id: str) -> List[TransactionView]:
        account = await self._active_account(db, org_id)
        if account is None:
            return []

        rows = await transaction.get_recent_for_account(db, account.id, limit=settings.transaction_history_limit)
        return [self.format_transaction(row) for row in rows]

    async def _refetch(self, ids: List[str], access_token: Optional[str]) -> List[SubscriptionSnapshot]:
        snapshots = []
        for subscription_id in ids:
            payload = await paypal_service.find_subscription(subscription_id, access_token=access_token)
            if payload:
                snapshots.append(SubscriptionSnapshot.from_payload(payload))
        return snapshots

    async def _persist_new(
        self,
        db: AsyncSession,
        org_id: str,
        account: MerchantAccount,
        snapshots: List[SubscriptionSnapshot]
    ) -> None:
        account_id = account.id
        for snapshot in snapshots:
            try:
                if await subscription_crud.get_by_subscription_id(db, snapshot.subscription_id):
                    continue
                await subscription_crud.upsert_snapshot(
                    db, snapshot=snapshot, org_id=org_id, paypal_account_id=account_id
                )
                logger.info(f"Saved discovered subscription {snapshot.subscription_id} for org {org_id}")
            except Exception as e:
                logger.error(f"❌ Error storing subscription {snapshot.subscription_id}: {e}")
                await db.rollback()

    @handle_database_errors
    async def get_subscription_history(
        self,
        db: AsyncSession,
        org_id: str,
        subscription_id: Optional[str] = None
    ) -> List[SubscriptionView]:
        """
        Resolve subscriptions in three steps: the requested id, else the ids
        the ledger knows (re-fetched from PayPal), else the bulk fetch chain.
        """
        account = await self._active_account(db, org_id)
        if account is None:
            return []
        access_token = account_service.access_token_for(account)

        snapshots: List[SubscriptionSnapshot] = []
        if subscription_id:
            stored = await subscription_crud.get_by_subscription_id(db, subscription_id)
            if stored and stored.org_id != org_id:
                logger.warning(f"⚠️ Subscription {subscription_id} belongs to another org")
                return []
            snapshots = await self._refetch([subscription_id], access_token)

        if not snapshots and not subscription_id:
            known = await subscription_crud.get_by_org_id(db, org_id)
            snapshots = await self._refetch([row.subscription_id for row in known], access_token)

        if not snapshots and not subscription_id:
            snapshots = await subscription_service.fetch_all_subscriptions(db, org_id)
            await self._persist_new(db, org_id, account, snapshots)

        plans: Dict[str, Optional[PlanSnapshot]] = {}
        views = []
        for snapshot in snapshots:
            if snapshot.plan_id and snapshot.plan_id not in plans:
                plans[snapshot.plan_id] = await plan_service.get_plan_details(snapshot.plan_id, access_token=access_token)
            views.append(self.format_subscription(snapshot, plans.get(snapshot.plan_id) if snapshot.plan_id else None))

        logger.info(f"Returning {len(views)} subscription transactions for org {org_id}")
        return views


# Create a singleton instance
history_service = HistoryService()
