from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from uuid import UUID


# Merchant Account Schemas
class MerchantAccountCreate(BaseModel):
    org_id: str
    merchant_id: str
    email: Optional[str] = None
    business_name: Optional[str] = None
    status: str = "pending"
    is_live: bool = False
    credentials: Optional[Dict[str, Any]] = None

class MerchantAccountUpdate(BaseModel):
    merchant_id: Optional[str] = None
    email: Optional[str] = None
    business_name: Optional[str] = None
    status: Optional[str] = None
    is_live: Optional[bool] = None
    webhook_id: Optional[str] = None

class MerchantAccountResponse(BaseModel):
    """Account as exposed over HTTP. Credentials are never included."""
    id: UUID
    org_id: str = Field(..., serialization_alias="orgId")
    merchant_id: str = Field(..., serialization_alias="merchantId")
    email: Optional[str] = None
    business_name: Optional[str] = Field(None, serialization_alias="businessName")
    status: str
    is_live: bool = Field(..., serialization_alias="isLive")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    class Config:
        from_attributes = True


# Transaction Schemas
class TransactionCreate(BaseModel):
    paypal_account_id: UUID
    order_id: str
    capture_id: Optional[str] = None
    amount: str
    currency: str = "USD"
    status: str
    platform_fee: Optional[str] = None
    buyer_email: Optional[str] = None
    payment_details: Optional[Dict[str, Any]] = None
    meta_data: Optional[Dict[str, Any]] = None


# Subscription Schemas
class SubscriptionCreate(BaseModel):
    paypal_account_id: Optional[UUID] = None
    org_id: str
    subscription_id: str
    plan_id: Optional[str] = None
    status: str
    start_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    last_payment_amount: Optional[str] = None
    currency: Optional[str] = "USD"
    buyer_email: Optional[str] = None
    meta_data: Optional[Dict[str, Any]] = None

class SubscriptionUpdate(BaseModel):
    status: Optional[str] = None
    next_billing_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    last_payment_amount: Optional[str] = None
    currency: Optional[str] = None
    buyer_email: Optional[str] = None
    meta_data: Optional[Dict[str, Any]] = None

class SubscriptionResponse(BaseModel):
    id: UUID
    org_id: str = Field(..., serialization_alias="orgId")
    subscription_id: str = Field(..., serialization_alias="subscriptionId")
    plan_id: Optional[str] = Field(None, serialization_alias="planId")
    status: str
    start_date: Optional[datetime] = Field(None, serialization_alias="startDate")
    next_billing_date: Optional[datetime] = Field(None, serialization_alias="nextBillingDate")
    last_payment_date: Optional[datetime] = Field(None, serialization_alias="lastPaymentDate")
    last_payment_amount: Optional[str] = Field(None, serialization_alias="lastPaymentAmount")
    currency: Optional[str] = None
    buyer_email: Optional[str] = Field(None, serialization_alias="buyerEmail")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    class Config:
        from_attributes = True


# Webhook Event Schemas
class WebhookEventCreate(BaseModel):
    paypal_account_id: Optional[UUID] = None
    event_id: str
    event_type: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
