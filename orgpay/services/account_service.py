from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orgpay.crud.merchant_account import merchant_account
from orgpay.models.merchant_account import MerchantAccount, AccountStatus
from orgpay.schemas.ledger import MerchantAccountCreate
from orgpay.core.exceptions import AccountNotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AccountService:
    """Links organizations to their PayPal merchant identity"""

    async def require_account(self, db: AsyncSession, org_id: Optional[str]) -> MerchantAccount:
        """The organization's active merchant account, or AccountNotFoundError"""
        if not org_id:
            raise ValidationError("Organization ID is required")

        account = await merchant_account.get_active_by_org_id(db, org_id)
        if not account:
            logger.warning(f"No active PayPal account for org {org_id}")
            raise AccountNotFoundError(org_id)
        return account

    @staticmethod
    def access_token_for(account: Optional[MerchantAccount]) -> Optional[str]:
        """Merchant-scoped token from the credential blob, None means platform credentials"""
        if account is None or not isinstance(account.credentials, dict):
            return None
        return account.credentials.get("access_token") or None

    async def connect_account(
        self,
        db: AsyncSession,
        org_id: str,
        merchant_id: str,
        email: Optional[str] = None,
        business_name: Optional[str] = None,
        is_live: bool = False
    ) -> MerchantAccount:
        """
        Create or reactivate the organization's merchant account.
        A merchant id already linked to another organization is rejected.
        """
        if not org_id or not merchant_id:
            raise ValidationError("Organization ID and merchant ID are required")

        by_merchant = await merchant_account.get_by_merchant_id(db, merchant_id)
        if by_merchant and by_merchant.org_id != org_id:
            raise ValidationError("Merchant ID is already linked to another organization")

        existing = by_merchant or await merchant_account.get_by_org_id(db, org_id)
        if existing:
            account = await merchant_account.update(
                db,
                db_obj=existing,
                obj_in={
                    "merchant_id": merchant_id,
                    "email": email or existing.email,
                    "business_name": business_name or existing.business_name,
                    "is_live": is_live,
                    "status": AccountStatus.ACTIVE.value,
                }
            )
            logger.info(f"🔗 Reactivated PayPal account {merchant_id} for org {org_id}")
            return account

        account = await merchant_account.create(
            db,
            obj_in=MerchantAccountCreate(
                org_id=org_id,
                merchant_id=merchant_id,
                email=email,
                business_name=business_name,
                status=AccountStatus.ACTIVE.value,
                is_live=is_live,
            )
        )
        logger.info(f"🔗 Connected PayPal account {merchant_id} for org {org_id}")
        return account

    async def disconnect_account(self, db: AsyncSession, org_id: str) -> MerchantAccount:
        """Mark the account inactive. Rows are never deleted."""
        account = await merchant_account.get_by_org_id(db, org_id)
        if not account:
            raise AccountNotFoundError(org_id)

        account = await merchant_account.set_status(db, account, AccountStatus.INACTIVE)
        logger.info(f"PayPal account {account.merchant_id} disconnected for org {org_id}")
        return account

    async def get_connected_account(self, db: AsyncSession, org_id: str) -> MerchantAccount:
        return await self.require_account(db, org_id)


# Create a singleton instance
account_service = AccountService()
