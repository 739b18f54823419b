from typing import Optional, Dict, Any
from decimal import Decimal, InvalidOperation
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orgpay.crud.transaction import transaction
from orgpay.models.merchant_account import MerchantAccount
from orgpay.models.transaction import Transaction
from orgpay.schemas.ledger import TransactionCreate
from orgpay.schemas.paypal import OrderSnapshot, CaptureSnapshot
from orgpay.services.paypal_service import paypal_service
from orgpay.services.account_service import account_service
from orgpay.core.exceptions import PayPalAPIError, CaptureFailedError, ValidationError

logger = logging.getLogger(__name__)


def format_amount(value: Any, field: str = "amount") -> str:
    """Money as a two-decimal string, the way PayPal expects it"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}: {value}")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"Invalid {field}: {value}")
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"Invalid {field}: {value} has more than two decimal places")
    return f"{amount:.2f}"


class OrderService:
    """One-time payments: create an order for a merchant, capture it, record it"""

    @staticmethod
    def build_order_request(
        account: MerchantAccount,
        amount: str,
        platform_fee: str,
        currency: str,
        description: Optional[str]
    ) -> Dict[str, Any]:
        return {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {"currency_code": currency, "value": amount},
                    "payee": {"merchant_id": account.merchant_id},
                    "description": description or "Purchase",
                    "payment_instruction": {
                        "disbursement_mode": "INSTANT",
                        "platform_fees": [
                            {"amount": {"currency_code": currency, "value": platform_fee}}
                        ],
                    },
                }
            ],
        }

    async def create_order(
        self,
        db: AsyncSession,
        org_id: str,
        amount: Any,
        platform_fee: Any,
        currency: str = "USD",
        description: Optional[str] = None
    ) -> OrderSnapshot:
        """
        Create a PayPal order paying the organization's merchant, with the
        platform fee routed to the platform. Nothing is written locally until
        the order is captured.
        """
        account = await account_service.require_account(db, org_id)
        currency = (currency or "USD").upper()

        # PayPal enforces platform_fee <= amount
        body = self.build_order_request(
            account,
            format_amount(amount),
            format_amount(platform_fee, "platform fee"),
            currency,
            description,
        )

        payload = await paypal_service.create_order(body)
        order = OrderSnapshot.from_payload(payload)
        logger.info(f"🧾 Created PayPal order {order.id} for org {org_id} ({body['purchase_units'][0]['amount']['value']} {currency})")
        return order

    async def capture_order(self, db: AsyncSession, org_id: str, order_id: str) -> Dict[str, Any]:
        """
        Capture an approved order and record one Transaction for it.
        Returns PayPal's capture payload.
        """
        if not order_id:
            raise ValidationError("Order ID is required")

        account = await account_service.require_account(db, org_id)

        try:
            payload = await paypal_service.capture_order(
                order_id, access_token=account_service.access_token_for(account)
            )
        except PayPalAPIError as e:
            logger.error(f"❌ Capture of order {order_id} failed: {e.message}")
            raise CaptureFailedError(e.status_code, e.message, details=e.details, debug_id=e.debug_id)

        capture = CaptureSnapshot.from_payload(payload)
        if not capture.order_id:
            capture.order_id = order_id

        # The payment already succeeded at PayPal, so a bookkeeping failure is not fatal
        await self.record_capture(db, account, capture)
        return payload

    async def record_capture(
        self,
        db: AsyncSession,
        account: MerchantAccount,
        capture: CaptureSnapshot
    ) -> Optional[Transaction]:
        """Insert the Transaction for a captured order, or refresh the existing one"""
        try:
            record, created = await transaction.upsert_by_order_id(
                db,
                obj_in=TransactionCreate(
                    paypal_account_id=account.id,
                    order_id=capture.order_id,
                    capture_id=capture.capture_id,
                    amount=capture.amount or "0.00",
                    currency=capture.currency,
                    status=capture.status or "UNKNOWN",
                    platform_fee=capture.platform_fee,
                    buyer_email=capture.buyer_email,
                    payment_details=capture.raw,
                )
            )
            if created:
                logger.info(f"✅ Recorded transaction for order {capture.order_id}: {record.amount} {record.currency} {record.status}")
            else:
                logger.info(f"Transaction for order {capture.order_id} already recorded, now {record.status}")
            return record
        except Exception as e:
            logger.error(f"❌ Failed to record transaction for order {capture.order_id}: {e}")
            await db.rollback()
            return None

    async def get_order(self, db: AsyncSession, org_id: str, order_id: str) -> OrderSnapshot:
        """Current state of an order at PayPal"""
        if not order_id:
            raise ValidationError("Order ID is required")

        account = await account_service.require_account(db, org_id)
        payload = await paypal_service.get_order(order_id, access_token=account_service.access_token_for(account))
        return OrderSnapshot.from_payload(payload)


# Create a singleton instance
order_service = OrderService()
