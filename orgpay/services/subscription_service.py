from typing import Optional, Dict, Any, List, Callable, Awaitable
from urllib.parse import quote, urlencode
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from orgpay.crud.subscription import subscription as subscription_crud
from orgpay.crud.merchant_account import merchant_account
from orgpay.models.merchant_account import MerchantAccount
from orgpay.models.subscription import Subscription, SubscriptionStatus
from orgpay.schemas.paypal import SubscriptionSnapshot
from orgpay.services.paypal_service import paypal_service
from orgpay.services.account_service import account_service
from orgpay.core.config import settings
from orgpay.core.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    PayPalAPIError,
    SubscriptionNotActiveError,
    SubscriptionNotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

VALID_SUBSCRIPTION_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.APPROVED.value}

# (db, org_id, access_token) -> raw PayPal subscription payloads
FetchStrategy = Callable[[AsyncSession, str, Optional[str]], Awaitable[List[Dict[str, Any]]]]


class SubscriptionService:
    """
    Recurring payments. PayPal owns the subscription lifecycle; the ledger
    only stores whatever state PayPal reports each time we look.
    """

    def __init__(self):
        # Bulk reconciliation, tried in order until one returns something
        self.fetch_strategies: List[FetchStrategy] = [
            self.list_by_status,
            self.list_all_fields,
            self.replay_known_ids,
        ]

    @staticmethod
    def callback_urls(org_id: str) -> Dict[str, str]:
        org = quote(org_id, safe="")
        return {
            "return_url": f"{settings.app_url}/api/paypal/return/subscription?orgId={org}",
            "cancel_url": f"{settings.app_url}/api/paypal/cancel/subscription?orgId={org}",
        }

    async def create_subscription(self, db: AsyncSession, org_id: str, plan_id: str) -> SubscriptionSnapshot:
        """Start a PayPal subscription; the buyer still has to approve it"""
        if not plan_id:
            raise ValidationError("Plan ID is required")

        account = await account_service.require_account(db, org_id)

        body = {
            "plan_id": plan_id,
            "custom_id": org_id,
            "application_context": {
                "brand_name": account.business_name or "Organization",
                "user_action": "SUBSCRIBE_NOW",
                "payment_method": {
                    "payer_selected": "PAYPAL",
                    "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED",
                },
                **self.callback_urls(org_id),
            },
        }

        payload = await paypal_service.create_subscription(body)
        snapshot = SubscriptionSnapshot.from_payload(payload)
        logger.info(f"Created subscription {snapshot.subscription_id} on plan {plan_id} for org {org_id}")
        return snapshot

    async def record_snapshot(
        self,
        db: AsyncSession,
        org_id: str,
        account: Optional[MerchantAccount],
        snapshot: SubscriptionSnapshot
    ) -> Subscription:
        """Upsert the ledger row for a subscription as PayPal currently reports it"""
        row, created = await subscription_crud.upsert_snapshot(
            db,
            snapshot=snapshot,
            org_id=org_id,
            paypal_account_id=account.id if account else None,
        )
        logger.info(f"{'Saved' if created else 'Updated'} subscription {snapshot.subscription_id} ({row.status})")
        return row

    async def validate_subscription(self, db: AsyncSession, org_id: str, subscription_id: str) -> Subscription:
        """Confirm with PayPal that a subscription is live and store it"""
        if not subscription_id:
            raise ValidationError("Subscription ID is required")

        account = await account_service.require_account(db, org_id)
        payload = await paypal_service.get_subscription(
            subscription_id, access_token=account_service.access_token_for(account)
        )
        snapshot = SubscriptionSnapshot.from_payload(payload)
        if not snapshot.subscription_id:
            snapshot.subscription_id = subscription_id

        if snapshot.status not in VALID_SUBSCRIPTION_STATUSES:
            # A row we already track still gets the status PayPal reports now
            if await subscription_crud.get_by_subscription_id(db, snapshot.subscription_id):
                await self.record_snapshot(db, org_id, account, snapshot)
            raise SubscriptionNotActiveError(snapshot.status)

        return await self.record_snapshot(db, org_id, account, snapshot)

    async def cancel_subscription(
        self,
        db: AsyncSession,
        org_id: str,
        subscription_id: str,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Cancel at PayPal, then mark the row CANCELLED.
        The caller's organization must own the subscription.
        """
        if not subscription_id:
            raise ValidationError("Subscription ID is required")

        row = await subscription_crud.get_by_subscription_id(db, subscription_id)
        if not row:
            raise SubscriptionNotFoundError(subscription_id)

        if row.org_id != org_id:
            logger.warning(f"⚠️ Org {org_id} tried to cancel subscription {subscription_id} owned by {row.org_id}")
            raise ForbiddenError("Not authorized to cancel this subscription")

        account = await merchant_account.get_by_org_id(db, org_id)
        await paypal_service.cancel_subscription(
            subscription_id,
            reason=reason or "Merchant initiated cancellation",
            access_token=account_service.access_token_for(account),
        )

        await subscription_crud.update_status(db, row, SubscriptionStatus.CANCELLED.value)
        logger.info(f"Cancelled subscription {subscription_id} for org {org_id}")
        return {"success": True}

    # Bulk reconciliation strategies

    async def list_by_status(self, db: AsyncSession, org_id: str, access_token: Optional[str]) -> List[Dict[str, Any]]:
        return await paypal_service.list_subscriptions(
            params=[
                ("status", "ACTIVE"),
                ("status", "SUSPENDED"),
                ("status", "CANCELLED"),
                ("total_required", "true"),
            ],
            access_token=access_token,
        )

    async def list_all_fields(self, db: AsyncSession, org_id: str, access_token: Optional[str]) -> List[Dict[str, Any]]:
        return await paypal_service.list_subscriptions(
            params=[("fields", "all")],
            headers={"PayPal-Request-Id": str(uuid.uuid4())},
            access_token=access_token,
        )

    async def replay_known_ids(self, db: AsyncSession, org_id: str, access_token: Optional[str]) -> List[Dict[str, Any]]:
        """Re-fetch the subscriptions the ledger already knows, one by one"""
        known = await subscription_crud.get_recent(db, org_id=org_id, limit=settings.subscription_replay_limit)
        results = []
        for row in known:
            payload = await paypal_service.find_subscription(row.subscription_id, access_token=access_token)
            if payload:
                results.append(payload)
        return results

    async def fetch_all_subscriptions(
        self,
        db: AsyncSession,
        org_id: str,
        strategies: Optional[List[FetchStrategy]] = None
    ) -> List[SubscriptionSnapshot]:
        """Run the strategy chain; the first strategy with results wins"""
        account = await merchant_account.get_by_org_id(db, org_id)
        access_token = account_service.access_token_for(account)

        for strategy in strategies or self.fetch_strategies:
            name = getattr(strategy, "__name__", repr(strategy))
            try:
                payloads = await strategy(db, org_id, access_token)
            except (PayPalAPIError, UpstreamUnavailableError) as e:
                logger.warning(f"⚠️ Subscription fetch strategy {name} failed: {e.detail}")
                continue

            snapshots = [
                SubscriptionSnapshot.from_payload(p)
                for p in payloads
                if isinstance(p, dict) and p.get("id")
            ]
            # Platform-wide listings can include other organizations' subscriptions
            snapshots = [s for s in snapshots if not s.custom_id or s.custom_id == org_id]
            if snapshots:
                logger.info(f"Subscription fetch strategy {name} returned {len(snapshots)} subscriptions")
                return snapshots
            logger.info(f"Subscription fetch strategy {name} returned nothing, trying next")

        return []

    # Browser redirects and manual entry

    async def handle_subscription_return(
        self,
        db: AsyncSession,
        org_id: Optional[str],
        subscription_id: Optional[str]
    ) -> str:
        """
        Buyer came back from PayPal approval. Record the subscription if we
        can and return the frontend URL to redirect to; never raises.
        """
        logger.info(f"Subscription successful for org {org_id}, ID: {subscription_id}")

        if org_id and subscription_id:
            try:
                account = await merchant_account.get_by_org_id(db, org_id)
                if account:
                    payload = await paypal_service.find_subscription(
                        subscription_id, access_token=account_service.access_token_for(account)
                    )
                    if payload:
                        await self.record_snapshot(db, org_id, account, SubscriptionSnapshot.from_payload(payload))
            except Exception as e:
                # The redirect still goes through
                logger.error(f"❌ Error saving subscription {subscription_id} on return: {e}")
                await db.rollback()

        query = urlencode({"subscription_id": subscription_id or ""})
        return f"{settings.frontend_url}/subscription-success?{query}"

    def handle_subscription_cancel(self, org_id: Optional[str]) -> str:
        logger.info(f"Subscription cancelled for org {org_id}")
        return f"{settings.frontend_url}/subscription-cancelled"

    async def manually_add_subscription(self, db: AsyncSession, org_id: str, subscription_id: str) -> Subscription:
        """Record a subscription by id whatever its status"""
        if not org_id or not subscription_id:
            raise ValidationError("Organization ID and Subscription ID are required")

        account = await merchant_account.get_by_org_id(db, org_id)
        if not account:
            raise AccountNotFoundError(org_id)

        payload = await paypal_service.get_subscription(
            subscription_id, access_token=account_service.access_token_for(account)
        )
        return await self.record_snapshot(db, org_id, account, SubscriptionSnapshot.from_payload(payload))


# Create a singleton instance
subscription_service = SubscriptionService()
