from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from orgpay.schemas.auth import TokenData
from orgpay.schemas.ledger import SubscriptionResponse
from orgpay.schemas.payments import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SubscriptionIdRequest,
    CancelSubscriptionRequest,
    ManualSubscriptionRequest,
)
from orgpay.core.auth import get_current_org_user
from orgpay.core.database import get_db
from orgpay.core.exceptions import ValidationError
from orgpay.services.subscription_service import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-subscription", response_model=CreateSubscriptionResponse)
async def create_subscription(
    request: CreateSubscriptionRequest,
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a subscription for the caller's organization.
    The buyer is sent to approve_url to approve it at PayPal.
    """
    if not request.plan_id:
        raise ValidationError("Plan ID is required")

    try:
        snapshot = await subscription_service.create_subscription(db, current_user.org_id, request.plan_id)
        return CreateSubscriptionResponse(
            id=snapshot.subscription_id,
            status=snapshot.status,
            approve_url=snapshot.approve_url,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating subscription: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create subscription: {str(e)}"
        )


@router.post("/validate-subscription", response_model=SubscriptionResponse)
async def validate_subscription(
    request: SubscriptionIdRequest,
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    if not request.subscription_id:
        raise ValidationError("Subscription ID is required")

    return await subscription_service.validate_subscription(db, current_user.org_id, request.subscription_id)


@router.post("/cancel-subscription")
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a subscription owned by the caller's organization"""
    if not request.subscription_id:
        raise ValidationError("Subscription ID is required")

    try:
        return await subscription_service.cancel_subscription(
            db, current_user.org_id, request.subscription_id, reason=request.reason
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error cancelling subscription: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to cancel subscription: {str(e)}"
        )


@router.post("/manually-add-subscription")
async def manually_add_subscription(
    request: ManualSubscriptionRequest,
    db: AsyncSession = Depends(get_db)
):
    if not request.org_id or not request.subscription_id:
        raise ValidationError("Organization ID and Subscription ID are required")

    row = await subscription_service.manually_add_subscription(db, request.org_id, request.subscription_id)
    return {
        "success": True,
        "subscription": SubscriptionResponse.model_validate(row).model_dump(mode="json", by_alias=True),
    }


@router.get("/return/subscription")
async def subscription_return(
    org_id: Optional[str] = Query(None, alias="orgId"),
    subscription_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """PayPal sends the buyer here after approving a subscription"""
    url = await subscription_service.handle_subscription_return(db, org_id, subscription_id)
    return RedirectResponse(url)


@router.get("/cancel/subscription")
async def subscription_cancel(org_id: Optional[str] = Query(None, alias="orgId")):
    """PayPal sends the buyer here after backing out of approval"""
    return RedirectResponse(subscription_service.handle_subscription_cancel(org_id))
