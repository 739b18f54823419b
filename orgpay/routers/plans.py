from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional
import logging

from orgpay.schemas.auth import TokenData
from orgpay.schemas.payments import CreatePlanRequest
from orgpay.core.auth import get_current_org_user
from orgpay.core.exceptions import ValidationError
from orgpay.services.plan_service import plan_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-plan")
async def create_plan(
    request: CreatePlanRequest,
    current_user: TokenData = Depends(get_current_org_user)
):
    """Create a subscription plan (and its catalog product)"""
    if not request.name or not request.description or not request.price or not request.interval:
        raise ValidationError("Required fields missing")

    try:
        plan = await plan_service.create_plan(
            name=request.name,
            description=request.description,
            price=request.price,
            interval=request.interval,
            trial_price=request.trial_price,
            trial_duration=request.trial_duration,
        )
        return {"success": True, "plan": plan.model_dump()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating plan: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create plan: {str(e)}"
        )


@router.get("/get-plans")
async def get_plans(current_user: TokenData = Depends(get_current_org_user)):
    plans = await plan_service.list_plans()
    return {"success": True, "plans": [plan.model_dump() for plan in plans]}


@router.get("/plan-details")
async def plan_details(plan_id: Optional[str] = Query(None, alias="planId")):
    """Raw PayPal plan details"""
    if not plan_id:
        raise ValidationError("Plan ID is required")
    return await plan_service.get_plan(plan_id)
