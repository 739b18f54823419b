"""
Typed snapshots of PayPal resources.

PayPal payloads are deeply nested and almost every field is optional. Each
resource gets exactly one defensive parser (``from_payload``) so call sites
work with plain attributes instead of chained ``.get()`` lookups. The raw
payload is kept on every snapshot for audit storage.
"""
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from dateutil import parser as date_parser


def dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing"""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def parse_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None


def find_link(links: Any, rel: str) -> Optional[str]:
    if not isinstance(links, list):
        return None
    for link in links:
        if isinstance(link, dict) and link.get("rel") == rel:
            return link.get("href")
    return None


def describe_payment(details: Any, default: str = "Payment") -> str:
    """Human readable description of a stored order/capture payload"""
    description = dig(details, "purchase_units", 0, "description")
    if description:
        return description
    item_name = dig(details, "purchase_units", 0, "items", 0, "name")
    if item_name:
        return item_name
    return default


class OrderSnapshot(BaseModel):
    id: str
    status: Optional[str] = None
    intent: Optional[str] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None
    approve_url: Optional[str] = None
    links: List[Dict[str, Any]] = []
    raw: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "OrderSnapshot":
        links = payload.get("links") if isinstance(payload.get("links"), list) else []
        return cls(
            id=str(payload.get("id") or ""),
            status=payload.get("status"),
            intent=payload.get("intent"),
            create_time=payload.get("create_time"),
            update_time=payload.get("update_time"),
            approve_url=find_link(links, "approve") or find_link(links, "payer-action"),
            links=links,
            raw=payload,
        )


class CaptureSnapshot(BaseModel):
    """A captured order: first purchase unit, first capture record"""
    order_id: str
    order_status: Optional[str] = None
    capture_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[str] = None
    currency: str = "USD"
    platform_fee: Optional[str] = None
    buyer_email: Optional[str] = None
    description: Optional[str] = None
    raw: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CaptureSnapshot":
        unit = dig(payload, "purchase_units", 0) or {}
        capture = dig(unit, "payments", "captures", 0) or {}

        # Buyer email lives in different places depending on the funding source
        buyer_email = (
            dig(payload, "payer", "email_address")
            or dig(payload, "payment_source", "paypal", "email_address")
            or dig(capture, "payer", "email_address")
        )

        platform_fee = (
            dig(capture, "seller_receivable_breakdown", "platform_fees", 0, "amount", "value")
            or dig(unit, "payment_instruction", "platform_fees", 0, "amount", "value")
        )

        return cls(
            order_id=str(payload.get("id") or ""),
            order_status=payload.get("status"),
            capture_id=capture.get("id"),
            status=capture.get("status") or payload.get("status"),
            amount=dig(capture, "amount", "value") or dig(unit, "amount", "value"),
            currency=(
                dig(capture, "amount", "currency_code")
                or dig(unit, "amount", "currency_code")
                or "USD"
            ),
            platform_fee=platform_fee,
            buyer_email=buyer_email,
            description=describe_payment(payload, default=None) if unit else None,
            raw=payload,
        )


class SubscriptionSnapshot(BaseModel):
    subscription_id: str
    plan_id: Optional[str] = None
    status: Optional[str] = None
    custom_id: Optional[str] = None
    start_date: Optional[datetime] = None
    create_time: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    last_payment_amount: str = "0.00"
    currency: str = "USD"
    buyer_email: Optional[str] = None
    approve_url: Optional[str] = None
    raw: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SubscriptionSnapshot":
        last_payment = dig(payload, "billing_info", "last_payment") or {}
        return cls(
            subscription_id=str(payload.get("id") or ""),
            plan_id=payload.get("plan_id"),
            status=payload.get("status"),
            custom_id=payload.get("custom_id"),
            start_date=parse_time(payload.get("start_time")),
            create_time=parse_time(payload.get("create_time")),
            next_billing_date=parse_time(dig(payload, "billing_info", "next_billing_time")),
            last_payment_date=parse_time(last_payment.get("time")),
            last_payment_amount=dig(last_payment, "amount", "value") or "0.00",
            currency=dig(last_payment, "amount", "currency_code") or "USD",
            buyer_email=dig(payload, "subscriber", "email_address"),
            approve_url=find_link(payload.get("links"), "approve"),
            raw=payload,
        )

    @property
    def effective_start_date(self) -> Optional[datetime]:
        return self.start_date or self.create_time


class PlanSnapshot(BaseModel):
    plan_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    interval: Optional[str] = None
    raw: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PlanSnapshot":
        cycles = payload.get("billing_cycles") if isinstance(payload.get("billing_cycles"), list) else []
        regular = next(
            (c for c in cycles if isinstance(c, dict) and c.get("tenure_type") == "REGULAR"),
            cycles[0] if cycles else {}
        )
        interval = dig(regular, "frequency", "interval_unit")
        return cls(
            plan_id=str(payload.get("id") or ""),
            name=payload.get("name"),
            description=payload.get("description"),
            status=payload.get("status"),
            price=dig(regular, "pricing_scheme", "fixed_price", "value"),
            currency=dig(regular, "pricing_scheme", "fixed_price", "currency_code"),
            interval=interval.lower() if isinstance(interval, str) else None,
            raw=payload,
        )


class WebhookEventSnapshot(BaseModel):
    """Envelope of a PayPal webhook notification plus the capture/refund fields we act on"""
    event_id: str
    event_type: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    merchant_id: Optional[str] = None
    capture_id: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    platform_fee: Optional[str] = None
    total_refunded: Optional[str] = None
    resource: Dict[str, Any] = {}
    raw: Dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebhookEventSnapshot":
        resource = payload.get("resource") if isinstance(payload.get("resource"), dict) else {}
        resource_type = payload.get("resource_type")

        if resource_type == "refund":
            # Refunds point back at their capture through the "up" link
            up = find_link(resource.get("links"), "up") or ""
            capture_id = up.rstrip("/").rsplit("/", 1)[-1] if "/captures/" in up else None
        else:
            capture_id = resource.get("id")

        return cls(
            event_id=str(payload.get("id") or ""),
            event_type=str(payload.get("event_type") or ""),
            resource_type=resource_type,
            resource_id=resource.get("id"),
            merchant_id=(
                dig(resource, "payee", "merchant_id")
                or resource.get("merchant_id")
                or dig(resource, "purchase_units", 0, "payee", "merchant_id")
            ),
            capture_id=capture_id,
            order_id=dig(resource, "supplementary_data", "related_ids", "order_id"),
            status=resource.get("status"),
            amount=dig(resource, "amount", "value"),
            currency=dig(resource, "amount", "currency_code"),
            platform_fee=dig(resource, "seller_receivable_breakdown", "platform_fees", 0, "amount", "value"),
            total_refunded=dig(resource, "seller_payable_breakdown", "total_refunded_amount", "value"),
            resource=resource,
            raw=payload,
        )
