from sqlalchemy import Column, String, ForeignKey, Uuid
import uuid
from .base import Base, TimestampMixin, JSONType


class Transaction(Base, TimestampMixin):
    """One-time payment, written when an order is captured"""
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paypal_account_id = Column(Uuid(as_uuid=True), ForeignKey("merchant_accounts.id"), nullable=False, index=True)
    order_id = Column(String(255), nullable=False, unique=True, index=True)  # One row per captured order
    capture_id = Column(String(255), nullable=True, index=True)
    amount = Column(String(50), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    status = Column(String(50), nullable=False)  # COMPLETED, PARTIALLY_REFUNDED, REFUNDED, DENIED, ...
    platform_fee = Column(String(50), nullable=True)
    buyer_email = Column(String(255), nullable=True)

    payment_details = Column(JSONType, nullable=True)  # Raw capture payload
    meta_data = Column(JSONType, nullable=True)
