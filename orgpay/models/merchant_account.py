from sqlalchemy import Column, String, Boolean, Uuid
import uuid
import enum
from .base import Base, TimestampMixin, JSONType


class AccountStatus(str, enum.Enum):
    """Merchant account link status"""
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class MerchantAccount(Base, TimestampMixin):
    """A tenant's linked PayPal merchant identity. At most one active per org."""
    __tablename__ = "merchant_accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    org_id = Column(String(255), nullable=False, index=True)  # Organization id from the identity provider
    merchant_id = Column(String(255), nullable=False, unique=True)  # Assigned by PayPal
    email = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    status = Column(String(20), default=AccountStatus.PENDING.value, nullable=False)
    is_live = Column(Boolean, default=False, nullable=False)  # Live vs sandbox environment

    # Optional merchant credentials (e.g. an access_token). Absent means platform credentials.
    credentials = Column(JSONType, nullable=True)
    webhook_id = Column(String(255), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value
