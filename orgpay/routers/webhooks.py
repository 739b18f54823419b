from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orgpay.schemas.payments import WebhookAck, WebhookRetryResponse, CreateWebhookRequest
from orgpay.schemas.auth import TokenData
from orgpay.core.database import get_db
from orgpay.core.auth import get_current_org_user
from orgpay.core.exceptions import ValidationError
from orgpay.services.webhook_service import webhook_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def paypal_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Handle PayPal webhook deliveries.
    The raw body is needed as-is for signature verification.
    """
    try:
        payload = await request.body()
        return await webhook_service.receive_webhook(db, payload, request.headers)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Webhook processing error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Webhook processing error: {str(e)}"
        )


@router.post("/webhook/retry", response_model=WebhookRetryResponse)
async def retry_webhooks(
    limit: int = Query(50, ge=1, le=500),
    current_user: TokenData = Depends(get_current_org_user),
    db: AsyncSession = Depends(get_db)
):
    """Re-dispatch stored webhook events that have not been processed yet"""
    logger.info(f"Webhook retry requested by user {current_user.user_id} of org {current_user.org_id}")
    return await webhook_service.retry_pending_events(db, limit=limit)


@router.post("/create-webhook")
async def create_webhook(
    request: CreateWebhookRequest,
    db: AsyncSession = Depends(get_db)
):
    if not request.org_id or not request.notification_url:
        raise ValidationError("Missing required parameters: orgId and notificationUrl")

    webhook = await webhook_service.register_webhook(db, request.org_id, request.notification_url)
    return {"success": True, "webhook": webhook}
