from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class CamelModel(BaseModel):
    """Accepts both camelCase (frontend) and snake_case field names"""
    class Config:
        populate_by_name = True


# Orders
class CreateOrderRequest(CamelModel):
    # Presence is checked in the router so missing fields answer 400, not 422
    org_id: Optional[str] = Field(None, alias="orgId")
    amount: Optional[str] = None
    platform_fee: Optional[str] = Field(None, alias="platformFee")
    currency: Optional[str] = "USD"
    description: Optional[str] = None

class CaptureOrderRequest(CamelModel):
    org_id: Optional[str] = Field(None, alias="orgId")
    order_id: Optional[str] = Field(None, alias="orderId")

class OrderResponse(BaseModel):
    id: str
    status: Optional[str] = None
    intent: Optional[str] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None
    links: List[Dict[str, Any]] = []


# Subscriptions
class CreateSubscriptionRequest(CamelModel):
    plan_id: Optional[str] = Field(None, alias="planId")

class SubscriptionIdRequest(CamelModel):
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")

class CancelSubscriptionRequest(SubscriptionIdRequest):
    reason: Optional[str] = None

class ManualSubscriptionRequest(CamelModel):
    org_id: Optional[str] = Field(None, alias="orgId")
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")

class CreateSubscriptionResponse(BaseModel):
    id: str
    status: Optional[str] = None
    approve_url: Optional[str] = None


# Plans
class CreatePlanRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    interval: Optional[str] = None
    trial_price: Optional[str] = Field(None, alias="trialPrice")
    trial_duration: Optional[int] = Field(None, alias="trialDuration")

class PlanView(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    price: Optional[str] = None
    interval: Optional[str] = None


# Accounts
class ConnectAccountRequest(CamelModel):
    org_id: Optional[str] = Field(None, alias="orgId")
    merchant_id: Optional[str] = Field(None, alias="merchantId")
    email: Optional[str] = None
    business_name: Optional[str] = Field(None, alias="businessName")
    is_live: bool = Field(False, alias="isLive")

class CreateWebhookRequest(CamelModel):
    org_id: Optional[str] = Field(None, alias="orgId")
    notification_url: Optional[str] = Field(None, alias="notificationUrl")


# Webhooks
class WebhookAck(BaseModel):
    status: str = "ok"
    duplicate: Optional[bool] = None

class WebhookRetryResponse(BaseModel):
    retried: int
    succeeded: int
    failed: int


# History views
class TransactionView(BaseModel):
    id: str
    order_id: str = Field(..., serialization_alias="orderId")
    amount: str
    currency: str
    status: str
    platform_fee: str = Field("0.00", serialization_alias="platformFee")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    buyer_email: Optional[str] = Field(None, serialization_alias="buyerEmail")
    payment_type: str = Field("ONE_TIME", serialization_alias="paymentType")
    description: str = "Payment"

class SubscriptionView(BaseModel):
    id: str
    order_id: str = Field(..., serialization_alias="orderId")
    amount: str = "0.00"
    currency: str = "USD"
    status: Optional[str] = None
    platform_fee: str = Field("0.00", serialization_alias="platformFee")
    created_at: Optional[str] = Field(None, serialization_alias="createdAt")
    buyer_email: str = Field("-", serialization_alias="buyerEmail")
    payment_type: str = Field("SUBSCRIPTION", serialization_alias="paymentType")
    description: str = "Subscription"
    plan_id: Optional[str] = Field(None, serialization_alias="planId")
    plan_price: Optional[str] = Field(None, serialization_alias="planPrice")
    plan_interval: Optional[str] = Field(None, serialization_alias="planInterval")
