from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from orgpay.schemas.payments import CreateOrderRequest, CaptureOrderRequest, OrderResponse
from orgpay.core.database import get_db
from orgpay.core.exceptions import ValidationError
from orgpay.services.order_service import order_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-order", response_model=OrderResponse)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db)
):
    """Create a PayPal order paying the organization's merchant account"""
    if not request.org_id or not request.amount or not request.platform_fee:
        raise ValidationError("Missing required parameters: orgId, amount, platformFee")

    try:
        order = await order_service.create_order(
            db,
            org_id=request.org_id,
            amount=request.amount,
            platform_fee=request.platform_fee,
            currency=request.currency or "USD",
            description=request.description,
        )
        return OrderResponse(**order.model_dump(include={"id", "status", "intent", "create_time", "update_time", "links"}))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating PayPal order: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create PayPal order: {str(e)}"
        )


@router.post("/capture-order")
async def capture_order(
    request: CaptureOrderRequest,
    db: AsyncSession = Depends(get_db)
):
    """Capture an approved order; returns PayPal's capture payload"""
    if not request.org_id or not request.order_id:
        raise ValidationError("Missing required parameters: orgId, orderId")

    try:
        return await order_service.capture_order(db, org_id=request.org_id, order_id=request.order_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error capturing PayPal order: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to capture PayPal order: {str(e)}"
        )


@router.get("/verify-order", response_model=OrderResponse)
async def verify_order(
    order_id: Optional[str] = Query(None, alias="orderId"),
    org_id: Optional[str] = Query(None, alias="orgId"),
    db: AsyncSession = Depends(get_db)
):
    """Minimal order status straight from PayPal"""
    if not order_id or not org_id:
        raise ValidationError("Required parameters: orderId, orgId")

    order = await order_service.get_order(db, org_id=org_id, order_id=order_id)
    return OrderResponse(
        id=order.id,
        status=order.status,
        intent=order.intent,
        create_time=order.create_time,
        update_time=order.update_time,
    )
