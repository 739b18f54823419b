from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from orgpay.schemas.payments import TransactionView, SubscriptionView
from orgpay.core.database import get_db
from orgpay.core.exceptions import ValidationError
from orgpay.services.history_service import history_service

router = APIRouter()


@router.get("/transactions", response_model=List[TransactionView])
async def get_transactions(
    org_id: Optional[str] = Query(None, alias="orgId"),
    db: AsyncSession = Depends(get_db)
):
    """Latest one-time payments of the organization, newest first"""
    if not org_id:
        raise ValidationError("Organization ID is required")
    return await history_service.get_transaction_history(db, org_id)


@router.get("/subscription-transactions", response_model=List[SubscriptionView])
async def get_subscription_transactions(
    org_id: Optional[str] = Query(None, alias="orgId"),
    subscription_id: Optional[str] = Query(None, alias="subscriptionId"),
    db: AsyncSession = Depends(get_db)
):
    """Subscriptions of the organization, formatted like transactions"""
    if not org_id:
        raise ValidationError("Organization ID is required")
    return await history_service.get_subscription_history(db, org_id, subscription_id=subscription_id)
