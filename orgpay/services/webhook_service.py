from typing import Optional, Dict, Any, Mapping, Tuple, Callable, Awaitable
from urllib.parse import urlparse
from decimal import Decimal, InvalidOperation
from sqlalchemy.ext.asyncio import AsyncSession
import json
import logging

from orgpay.crud.webhook_event import webhook_event
from orgpay.crud.merchant_account import merchant_account
from orgpay.crud.transaction import transaction
from orgpay.models.merchant_account import MerchantAccount
from orgpay.models.transaction import Transaction
from orgpay.models.webhook_event import WebhookEvent, WebhookOutcome
from orgpay.schemas.ledger import WebhookEventCreate, TransactionCreate
from orgpay.schemas.paypal import WebhookEventSnapshot
from orgpay.schemas.payments import WebhookRetryResponse
from orgpay.services.paypal_service import paypal_service, CAPTURE_EVENT_TYPES
from orgpay.core.config import settings
from orgpay.core.exceptions import (
    AccountNotFoundError,
    InvalidSignatureError,
    PayPalAPIError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TRANSMISSION_HEADERS = {
    "transmission_id": "paypal-transmission-id",
    "transmission_time": "paypal-transmission-time",
    "transmission_sig": "paypal-transmission-sig",
    "cert_url": "paypal-cert-url",
    "auth_algo": "paypal-auth-algo",
}

HandlerResult = Tuple[WebhookOutcome, Optional[str]]
Handler = Callable[[AsyncSession, WebhookEventSnapshot, Optional[MerchantAccount]], Awaitable[HandlerResult]]


def to_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def is_paypal_cert_url(cert_url: str) -> bool:
    parsed = urlparse(cert_url)
    host = (parsed.hostname or "").lower()
    return parsed.scheme == "https" and (host == "paypal.com" or host.endswith(".paypal.com"))


class WebhookService:
    """
    Inbound PayPal notifications: authenticate, store once, dispatch.

    Every event row carries an outcome. success and ignored events are
    processed; partial and failed ones stay in the retry queue until
    WEBHOOK_MAX_ATTEMPTS is reached.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {
            "PAYMENT.CAPTURE.COMPLETED": self.handle_capture_completed,
            "PAYMENT.CAPTURE.DENIED": self.handle_capture_denied,
            "PAYMENT.CAPTURE.REFUNDED": self.handle_capture_refunded,
        }

    async def verify_delivery(self, headers: Mapping[str, str], payload: Dict[str, Any]) -> None:
        """Raise InvalidSignatureError unless PayPal confirms the delivery signature"""
        lowered = {k.lower(): v for k, v in headers.items()}
        transmission = {name: lowered.get(header) for name, header in TRANSMISSION_HEADERS.items()}

        missing = [TRANSMISSION_HEADERS[name] for name, value in transmission.items() if not value]
        if missing:
            logger.warning(f"⚠️ Webhook rejected, missing headers: {', '.join(missing)}")
            raise InvalidSignatureError("Missing PayPal signature headers")

        if not is_paypal_cert_url(transmission["cert_url"]):
            logger.warning(f"⚠️ Webhook rejected, untrusted cert url: {transmission['cert_url']}")
            raise InvalidSignatureError("Untrusted certificate URL")

        if not settings.paypal_webhook_id:
            logger.error("❌ PAYPAL_WEBHOOK_ID is not configured, rejecting webhook")
            raise InvalidSignatureError("Webhook verification is not configured")

        try:
            verified = await paypal_service.verify_webhook_signature(
                webhook_id=settings.paypal_webhook_id,
                webhook_event=payload,
                **transmission,
            )
        except PayPalAPIError as e:
            logger.warning(f"⚠️ PayPal refused to verify webhook signature: {e.message}")
            raise InvalidSignatureError()

        if not verified:
            logger.warning(f"⚠️ Webhook signature verification failed for transmission {transmission['transmission_id']}")
            raise InvalidSignatureError()

    async def receive_webhook(self, db: AsyncSession, raw_body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """
        Verify, deduplicate, store and dispatch one delivery.
        Returns {"status": "ok"} or {"status": "ok", "duplicate": True}.
        """
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            payload = None

        # Signature headers are checked before anything in the body is trusted
        await self.verify_delivery(headers, payload if isinstance(payload, dict) else {})

        if not isinstance(payload, dict):
            raise ValidationError("Invalid webhook payload")

        event = WebhookEventSnapshot.from_payload(payload)
        if not event.event_id or not event.event_type:
            raise ValidationError("Webhook event id and type are required")

        if await webhook_event.get_by_event_id(db, event.event_id):
            logger.info(f"Webhook {event.event_id} already received, skipping")
            return {"status": "ok", "duplicate": True}

        account = None
        if event.merchant_id:
            account = await merchant_account.get_by_merchant_id(db, event.merchant_id)
        if account is None:
            logger.info(f"Webhook {event.event_id}: no merchant account for merchant id {event.merchant_id}")

        record = await webhook_event.create_if_absent(
            db,
            obj_in=WebhookEventCreate(
                paypal_account_id=account.id if account else None,
                event_id=event.event_id,
                event_type=event.event_type,
                resource_type=event.resource_type,
                resource_id=event.resource_id,
                payload=payload,
            )
        )
        if record is None:
            # A concurrent delivery of the same event won the insert
            logger.info(f"Webhook {event.event_id} stored concurrently, treating as duplicate")
            return {"status": "ok", "duplicate": True}

        await self.process_event(db, record, event, account)
        return {"status": "ok"}

    async def process_event(
        self,
        db: AsyncSession,
        record: WebhookEvent,
        event: WebhookEventSnapshot,
        account: Optional[MerchantAccount]
    ) -> WebhookOutcome:
        handler = self.handlers.get(event.event_type)
        if handler is None:
            await webhook_event.record_outcome(db, record, WebhookOutcome.IGNORED)
            logger.info(f"Webhook {event.event_id} ({event.event_type}) stored and ignored")
            return WebhookOutcome.IGNORED

        try:
            outcome, error = await handler(db, event, account)
        except Exception as e:
            logger.error(f"❌ Webhook {event.event_id} handler failed: {e}")
            await db.rollback()
            await db.refresh(record)
            outcome, error = WebhookOutcome.FAILED, str(e)

        await webhook_event.record_outcome(db, record, outcome, error)
        if outcome == WebhookOutcome.SUCCESS:
            logger.info(f"✅ Webhook {event.event_id} ({event.event_type}) processed")
        else:
            logger.warning(f"⚠️ Webhook {event.event_id} ({event.event_type}) {outcome.value}: {error}")
        return outcome

    async def _find_transaction(self, db: AsyncSession, event: WebhookEventSnapshot) -> Optional[Transaction]:
        found = None
        if event.capture_id:
            found = await transaction.get_by_capture_id(db, event.capture_id)
        if found is None and event.order_id:
            found = await transaction.get_by_order_id(db, event.order_id)
        return found

    async def handle_capture_completed(
        self,
        db: AsyncSession,
        event: WebhookEventSnapshot,
        account: Optional[MerchantAccount]
    ) -> HandlerResult:
        """Confirm the ledger row, or re-derive it when the capture response never got recorded"""
        existing = await self._find_transaction(db, event)
        if existing:
            # A late COMPLETED never undoes a refund or denial
            await transaction.update_status(
                db,
                existing,
                event.status or "COMPLETED",
                fill={"capture_id": event.capture_id, "platform_fee": event.platform_fee},
            )
            return WebhookOutcome.SUCCESS, None

        if account is None or not event.order_id:
            return WebhookOutcome.PARTIAL, "No transaction recorded and it cannot be derived from this event"

        # The capture response may be recording the same order right now
        _, created = await transaction.upsert_by_order_id(
            db,
            obj_in=TransactionCreate(
                paypal_account_id=account.id,
                order_id=event.order_id,
                capture_id=event.capture_id,
                amount=event.amount or "0.00",
                currency=event.currency or "USD",
                status=event.status or "COMPLETED",
                platform_fee=event.platform_fee,
                payment_details=event.resource,
                meta_data={"source": "webhook", "event_id": event.event_id},
            )
        )
        if created:
            logger.info(f"Re-derived transaction for order {event.order_id} from webhook {event.event_id}")
        return WebhookOutcome.SUCCESS, None

    async def handle_capture_denied(self, db: AsyncSession, event: WebhookEventSnapshot, account: Optional[MerchantAccount]) -> HandlerResult:
        existing = await self._find_transaction(db, event)
        if existing is None:
            logger.info(f"Webhook {event.event_id}: no transaction for capture {event.capture_id}, nothing to update")
            return WebhookOutcome.SUCCESS, None
        await transaction.update_status(db, existing, "DENIED")
        return WebhookOutcome.SUCCESS, None

    async def handle_capture_refunded(self, db: AsyncSession, event: WebhookEventSnapshot, account: Optional[MerchantAccount]) -> HandlerResult:
        """Mark the capture refunded, or partially refunded while less than the captured amount has gone back"""
        existing = await self._find_transaction(db, event)
        if existing is None:
            logger.info(f"Webhook {event.event_id}: no transaction for capture {event.capture_id}, nothing to update")
            return WebhookOutcome.SUCCESS, None

        meta = dict(existing.meta_data or {})
        refunded = to_decimal(event.total_refunded)
        if refunded is None:
            # No running total on the refund, so add this refund to what we have seen
            this_refund = to_decimal(event.amount)
            if this_refund is not None:
                refunded = (to_decimal(meta.get("refunded_amount")) or Decimal("0")) + this_refund

        captured = to_decimal(existing.amount)
        if refunded is not None and captured is not None and refunded < captured:
            status = "PARTIALLY_REFUNDED"
        else:
            status = "REFUNDED"

        extra = None
        if refunded is not None:
            meta["refunded_amount"] = f"{refunded:.2f}"
            extra = {"meta_data": meta}
        await transaction.update_status(db, existing, status, extra=extra)
        logger.info(f"💸 Transaction {existing.order_id} now {existing.status} ({meta.get('refunded_amount', '?')} of {existing.amount})")
        return WebhookOutcome.SUCCESS, None

    async def retry_pending_events(self, db: AsyncSession, limit: int = 50) -> WebhookRetryResponse:
        """Re-dispatch stored events whose handlers did not succeed"""
        pending = await webhook_event.get_retryable(db, max_attempts=settings.webhook_max_attempts, limit=limit)

        succeeded = 0
        for record in pending:
            # an earlier failed handler may have rolled the session back
            await db.refresh(record)
            event = WebhookEventSnapshot.from_payload(record.payload or {})

            account = None
            if record.paypal_account_id:
                account = await merchant_account.get(db, record.paypal_account_id, raise_if_not_found=False)
            elif event.merchant_id:
                account = await merchant_account.get_by_merchant_id(db, event.merchant_id)
                if account:
                    await webhook_event.update(db, db_obj=record, obj_in={"paypal_account_id": account.id})

            outcome = await self.process_event(db, record, event, account)
            if outcome in (WebhookOutcome.SUCCESS, WebhookOutcome.IGNORED):
                succeeded += 1

        if pending:
            logger.info(f"Retried {len(pending)} webhook events, {succeeded} succeeded")
        return WebhookRetryResponse(retried=len(pending), succeeded=succeeded, failed=len(pending) - succeeded)

    async def register_webhook(self, db: AsyncSession, org_id: str, notification_url: str) -> Dict[str, Any]:
        """Subscribe a notification URL to the capture events and remember its id on the account"""
        if not org_id or not notification_url:
            raise ValidationError("Missing required parameters: orgId and notificationUrl")
        if urlparse(notification_url).scheme != "https":
            raise ValidationError("Notification URL must use https")

        account = await merchant_account.get_by_org_id(db, org_id)
        if not account:
            raise AccountNotFoundError(org_id)

        data = await paypal_service.create_webhook(notification_url, CAPTURE_EVENT_TYPES)
        webhook_id = data.get("id")
        await merchant_account.update(db, db_obj=account, obj_in={"webhook_id": webhook_id})
        logger.info(f"Registered webhook {webhook_id} for org {org_id} at {notification_url}")
        return {"id": webhook_id, "url": data.get("url") or notification_url}


# Create a singleton instance
webhook_service = WebhookService()
