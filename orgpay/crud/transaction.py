from typing import Optional, List, Dict, Any, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from pydantic import BaseModel
import logging

from orgpay.crud.base import CRUDBase
from orgpay.models.transaction import Transaction
from orgpay.schemas.ledger import TransactionCreate

logger = logging.getLogger(__name__)

# Capture lifecycle order. A status never moves back to a lower rank.
STATUS_RANK = {
    "PENDING": 0,
    "COMPLETED": 1,
    "PARTIALLY_REFUNDED": 2,
    "REFUNDED": 3,
    "DENIED": 3,
}

# Filled from a later write only while still empty
FILLABLE_FIELDS = ("capture_id", "platform_fee", "buyer_email", "payment_details")


def merge_status(current: Optional[str], incoming: Optional[str]) -> Optional[str]:
    """The status to store when `incoming` arrives for a row already at `current`"""
    if not incoming:
        return current
    if not current:
        return incoming
    if STATUS_RANK.get(incoming, 1) < STATUS_RANK.get(current, 1):
        return current
    return incoming


class CRUDTransaction(CRUDBase[Transaction, TransactionCreate, BaseModel]):
    async def get_recent_for_account(
        self,
        db: AsyncSession,
        paypal_account_id: UUID,
        limit: int = 50
    ) -> List[Transaction]:
        """Newest-first transactions of a merchant account"""
        result = await db.execute(
            select(self.model)
            .where(self.model.paypal_account_id == paypal_account_id)
            .order_by(self.model.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_order_id(self, db: AsyncSession, order_id: str) -> Optional[Transaction]:
        return await self.get_one_by_field(db, field="order_id", value=order_id)

    async def get_by_capture_id(self, db: AsyncSession, capture_id: str) -> Optional[Transaction]:
        return await self.get_one_by_field(db, field="capture_id", value=capture_id)

    async def update_status(
        self,
        db: AsyncSession,
        db_obj: Transaction,
        status: Optional[str],
        fill: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Transaction:
        """
        Move the row to `status` unless it is already further along, fill
        fields that are still empty from `fill`, and overwrite with `extra`.
        """
        data: Dict[str, Any] = {"status": merge_status(db_obj.status, status)}
        for field, value in (fill or {}).items():
            if value is not None and getattr(db_obj, field, None) in (None, ""):
                data[field] = value
        if extra:
            data.update(extra)

        if data["status"] != status and status:
            logger.info(f"Transaction {db_obj.order_id} stays {db_obj.status}, ignoring older status {status}")
        return await self.update(db, db_obj=db_obj, obj_in=data)

    async def upsert_by_order_id(self, db: AsyncSession, *, obj_in: TransactionCreate) -> Tuple[Transaction, bool]:
        """
        Insert the row for obj_in.order_id, or merge into the existing one.
        Returns (transaction, created).
        """
        fill = obj_in.model_dump(include=set(FILLABLE_FIELDS))

        existing = await self.get_by_order_id(db, obj_in.order_id)
        if existing:
            return await self.update_status(db, existing, obj_in.status, fill=fill), False

        try:
            return await self.create(db, obj_in=obj_in), True
        except IntegrityError:
            # The capture response and its webhook raced for the same order
            await db.rollback()
            logger.info(f"Transaction for order {obj_in.order_id} inserted concurrently, merging instead")
            existing = await self.get_by_order_id(db, obj_in.order_id)
            if existing is None:
                raise
            return await self.update_status(db, existing, obj_in.status, fill=fill), False


transaction = CRUDTransaction(Transaction)
