# src/services/base_service.py
from typing import Type, TypeVar, List, Optional, Dict, Any, Generic
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func
from sqlalchemy.exc import SQLAlchemyError
from utils.clock import Clock, utcnow
from utils.logger import setup_logger
from utils.exceptions import NotFoundException, handle_db_exception

ModelType = TypeVar("ModelType")


class BaseService(Generic[ModelType]):
    """Lookups shared by every service keyed on a single-column id"""

    def __init__(self, model: Type[ModelType], clock: Optional[Clock] = None):
        self.model = model
        self.clock: Clock = clock or utcnow
        self.logger = setup_logger(f"SERVICE_{model.__name__}")

    def now(self):
        return self.clock()

    def _conditions(self, filters: Optional[Dict[str, Any]]) -> list:
        conditions = []
        for field, value in (filters or {}).items():
            if hasattr(self.model, field):
                conditions.append(getattr(self.model, field) == value)
        return conditions

    async def get(self, db: AsyncSession, id: str) -> Optional[ModelType]:
        """Get a single item by ID"""
        try:
            result = await db.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await handle_db_exception(db, self.logger, f"get {self.model.__name__}", e)

    async def get_or_404(
        self, db: AsyncSession, id: str, detail: Optional[str] = None
    ) -> ModelType:
        item = await self.get(db, id)
        if item is None:
            raise NotFoundException(detail or f"{self.model.__name__} not found")
        return item

    async def get_multi(
        self,
        db: AsyncSession,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ModelType]:
        """Get multiple items with pagination and filtering"""
        try:
            query = select(self.model)
            conditions = self._conditions(filters)
            if conditions:
                query = query.where(and_(*conditions))

            query = query.offset(skip).limit(limit)
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await handle_db_exception(
                db, self.logger, f"get_multi {self.model.__name__}", e
            )

    async def count(
        self, db: AsyncSession, filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """Count items with optional filters"""
        try:
            query = select(func.count()).select_from(self.model)
            conditions = self._conditions(filters)
            if conditions:
                query = query.where(and_(*conditions))

            result = await db.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            await handle_db_exception(
                db, self.logger, f"count {self.model.__name__}", e
            )
