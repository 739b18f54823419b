from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
import uuid
import enum
from .base import Base, TimestampMixin, JSONType


class SubscriptionStatus(str, enum.Enum):
    """PayPal subscription lifecycle. Observed, never driven locally."""
    APPROVAL_PENDING = "APPROVAL_PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Subscription(Base, TimestampMixin):
    """Latest known snapshot of a PayPal subscription, upserted by subscription_id"""
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paypal_account_id = Column(Uuid(as_uuid=True), ForeignKey("merchant_accounts.id"), nullable=True, index=True)
    org_id = Column(String(255), nullable=False, index=True)
    subscription_id = Column(String(255), nullable=False, unique=True)
    plan_id = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False)

    start_date = Column(DateTime(timezone=True), nullable=True)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_amount = Column(String(50), nullable=True)
    currency = Column(String(3), default="USD", nullable=True)
    buyer_email = Column(String(255), nullable=True)

    meta_data = Column(JSONType, nullable=True)  # Raw subscription payload
