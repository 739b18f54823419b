from sqlalchemy import Column, String, Boolean, Integer, Text, ForeignKey, Uuid
import uuid
import enum
from .base import Base, TimestampMixin, JSONType


class WebhookOutcome(str, enum.Enum):
    """Result of dispatching a webhook event to its handler"""
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    IGNORED = "ignored"


class WebhookEvent(Base, TimestampMixin):
    __tablename__ = "webhook_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paypal_account_id = Column(Uuid(as_uuid=True), ForeignKey("merchant_accounts.id"), nullable=True, index=True)
    # PayPal event id, deduplication key
    event_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(255), nullable=True)
    payload = Column(JSONType, nullable=True)

    processed = Column(Boolean, default=False, nullable=False)
    outcome = Column(String(20), default=WebhookOutcome.PENDING.value, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
