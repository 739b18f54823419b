from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from orgpay.models.base import Base
from orgpay.core.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)

class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _build_conditions(self, filters: Optional[Dict[str, Any]]) -> List[Any]:
        conditions = []
        for field, value in (filters or {}).items():
            if not hasattr(self.model, field):
                continue
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple)):
                conditions.append(column.in_(value))
            elif isinstance(value, dict):
                # Range queries like {"gte": 10, "lte": 20}
                for op, val in value.items():
                    if op == "gte":
                        conditions.append(column >= val)
                    elif op == "lte":
                        conditions.append(column <= val)
                    elif op == "gt":
                        conditions.append(column > val)
                    elif op == "lt":
                        conditions.append(column < val)
                    elif op == "ne":
                        conditions.append(column != val)
            else:
                conditions.append(column == value)
        return conditions

    async def get(self, db: AsyncSession, id: Any, *, raise_if_not_found: bool = True) -> Optional[ModelType]:
        """Get a single record by primary key"""
        result = await db.execute(select(self.model).where(self.model.id == id))
        obj = result.scalar_one_or_none()

        if raise_if_not_found and obj is None:
            raise NotFoundError(f"{self.model.__name__}")

        return obj

    async def get_one_by_field(self, db: AsyncSession, *, field: str, value: Any) -> Optional[ModelType]:
        """Get the first record matching a field value"""
        if not hasattr(self.model, field):
            raise ValueError(f"Field '{field}' does not exist on model {self.model.__name__}")

        result = await db.execute(
            select(self.model).where(getattr(self.model, field) == value).limit(1)
        )
        return result.scalars().first()

    async def create(self, db: AsyncSession, *, obj_in: CreateSchemaType) -> ModelType:
        """Create a new record"""
        # model_dump() preserves Python types (datetime, UUID, ...)
        obj_in_data = obj_in.model_dump(exclude_unset=True)

        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def create_with_extra(self, db: AsyncSession, *, obj_in: CreateSchemaType, extra_data: Dict[str, Any]) -> ModelType:
        """Create a new record with additional fields"""
        obj_in_data = obj_in.model_dump(exclude_unset=True)
        obj_in_data.update(extra_data)

        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """Update a record"""
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        columns = {column.key for column in self.model.__table__.columns}
        for field, value in update_data.items():
            if field in columns:
                setattr(db_obj, field, value)

        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def count(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """Count records with optional filters"""
        query = select(func.count()).select_from(self.model)
        conditions = self._build_conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))

        result = await db.execute(query)
        return result.scalar()
