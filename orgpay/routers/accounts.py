from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from orgpay.schemas.auth import TokenData
from orgpay.schemas.ledger import MerchantAccountResponse
from orgpay.schemas.payments import ConnectAccountRequest
from orgpay.core.auth import get_current_org_user
from orgpay.core.database import get_db
from orgpay.core.exceptions import ValidationError, ForbiddenError
from orgpay.services.account_service import account_service

router = APIRouter()


@router.get("/connected-account", response_model=MerchantAccountResponse)
async def get_connected_account(
    org_id: Optional[str] = Query(None, alias="orgId"),
    db: AsyncSession = Depends(get_db)
):
    """The organization's active PayPal account; 404 when none is connected"""
    if not org_id:
        raise ValidationError("Organization ID is required")
    return await account_service.get_connected_account(db, org_id)


@router.post("/connected-account", response_model=MerchantAccountResponse)
async def connect_account(
    request: ConnectAccountRequest,
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    org_id = request.org_id or current_user.org_id
    if org_id != current_user.org_id:
        raise ForbiddenError("Cannot connect an account for another organization")
    if not request.merchant_id:
        raise ValidationError("Merchant ID is required")

    return await account_service.connect_account(
        db,
        org_id=org_id,
        merchant_id=request.merchant_id,
        email=request.email,
        business_name=request.business_name,
        is_live=request.is_live,
    )


@router.delete("/connected-account", response_model=MerchantAccountResponse)
async def disconnect_account(
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    """Disconnect the caller's PayPal account. The row is kept, marked inactive."""
    return await account_service.disconnect_account(db, current_user.org_id)
