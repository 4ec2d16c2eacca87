from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, and_
from case_versions.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """Query helpers shared by the stores.

    Writes only add/flush; the calling service owns the transaction and
    decides when to commit, so a multi-row unit lands atomically.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _conditions(self, filters: Optional[Dict[str, Any]], include_deleted: bool) -> List[Any]:
        conditions = []
        if not include_deleted and hasattr(self.model, "is_deleted"):
            conditions.append(self.model.is_deleted == False)

        if filters:
            for field, value in filters.items():
                if not hasattr(self.model, field):
                    raise ValueError(f"Field '{field}' does not exist on model {self.model.__name__}")
                field_obj = getattr(self.model, field)
                if isinstance(value, (list, tuple, set)):
                    conditions.append(field_obj.in_(list(value)))
                elif isinstance(value, dict):
                    # Handle range queries like {"gte": 10, "lte": 20}
                    for op, val in value.items():
                        if op == "gte":
                            conditions.append(field_obj >= val)
                        elif op == "lte":
                            conditions.append(field_obj <= val)
                        elif op == "gt":
                            conditions.append(field_obj > val)
                        elif op == "lt":
                            conditions.append(field_obj < val)
                        else:
                            raise ValueError(f"Unsupported filter operator '{op}'")
                elif value is None:
                    conditions.append(field_obj.is_(None))
                else:
                    conditions.append(field_obj == value)
        return conditions

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
        order_desc: bool = True,
        limit: Optional[int] = None,
        include_deleted: bool = False
    ) -> List[ModelType]:
        """Get records matching the filters, ordered and optionally limited"""
        query = select(self.model)
        conditions = self._conditions(filters, include_deleted)
        if conditions:
            query = query.where(and_(*conditions))

        for name in order_by or ():
            order_field = getattr(self.model, name)
            query = query.order_by(order_field.desc() if order_desc else order_field.asc())

        if limit is not None:
            query = query.limit(limit)

        # Rows may have moved through bulk UPDATEs since they were first loaded
        query = query.execution_options(populate_existing=True)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_one(
        self,
        db: AsyncSession,
        *,
        filters: Dict[str, Any],
        include_deleted: bool = False
    ) -> Optional[ModelType]:
        items = await self.get_multi(db, filters=filters, limit=1, include_deleted=include_deleted)
        return items[0] if items else None

    async def count(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,
        include_deleted: bool = False
    ) -> int:
        """Count records with optional filters"""
        query = select(func.count()).select_from(self.model)
        conditions = self._conditions(filters, include_deleted)
        if conditions:
            query = query.where(and_(*conditions))
        result = await db.execute(query)
        return result.scalar() or 0

    async def add(self, db: AsyncSession, db_obj: ModelType) -> ModelType:
        """Stage a new record and flush it so constraint errors surface here"""
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def remove_by_filters(self, db: AsyncSession, *, filters: Dict[str, Any]) -> int:
        """Hard delete records matching the filters"""
        conditions = self._conditions(filters, include_deleted=True)
        if not conditions:
            raise ValueError("Refusing to delete without filters")
        result = await db.execute(
            delete(self.model).where(and_(*conditions)).execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def aggregate(
        self,
        db: AsyncSession,
        *columns: Any,
        filters: Optional[Dict[str, Any]] = None,
        include_deleted: bool = False
    ) -> Tuple[Any, ...]:
        """Run aggregate expressions (func.count(...), func.min(...)) over the filtered rows"""
        query = select(*columns).select_from(self.model)
        conditions = self._conditions(filters, include_deleted)
        if conditions:
            query = query.where(and_(*conditions))
        result = await db.execute(query)
        return tuple(result.one())
