from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from orgpay.crud.base import CRUDBase
from orgpay.models.merchant_account import MerchantAccount, AccountStatus
from orgpay.schemas.ledger import MerchantAccountCreate, MerchantAccountUpdate


class CRUDMerchantAccount(CRUDBase[MerchantAccount, MerchantAccountCreate, MerchantAccountUpdate]):
    async def get_by_org_id(self, db: AsyncSession, org_id: str) -> Optional[MerchantAccount]:
        """Get the organization's account, preferring the active one"""
        active = await self.get_active_by_org_id(db, org_id)
        if active:
            return active

        result = await db.execute(
            select(self.model)
            .where(self.model.org_id == org_id)
            .order_by(self.model.updated_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_active_by_org_id(self, db: AsyncSession, org_id: str) -> Optional[MerchantAccount]:
        result = await db.execute(
            select(self.model)
            .where(
                and_(
                    self.model.org_id == org_id,
                    self.model.status == AccountStatus.ACTIVE.value
                )
            )
            .order_by(self.model.updated_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_by_merchant_id(self, db: AsyncSession, merchant_id: str) -> Optional[MerchantAccount]:
        return await self.get_one_by_field(db, field="merchant_id", value=merchant_id)

    async def set_status(self, db: AsyncSession, db_obj: MerchantAccount, status: AccountStatus) -> MerchantAccount:
        return await self.update(db, db_obj=db_obj, obj_in={"status": status.value})


merchant_account = CRUDMerchantAccount(MerchantAccount)
