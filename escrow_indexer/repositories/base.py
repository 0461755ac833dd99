"""
Base repository.

Generic data access shared by all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)

# Dialects with INSERT ... ON CONFLICT support
_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic read operations.

    Provides async database operations for any SQLAlchemy model.
    Writes are model-specific and live in subclasses, because every
    write in the indexer is an upsert or a conditional update.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class EscrowRepository(BaseRepository[Escrow]):
            def __init__(self, session: AsyncSession):
                super().__init__(Escrow, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get(self, pk: Any) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            pk: Primary key value (tuple for composite keys)

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, pk)

    async def find_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find all entities matching filters.

        Args:
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = select(self.model).filter_by(**filters)

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    def insert(self):
        """
        Build a dialect-specific INSERT supporting ON CONFLICT.

        Returns:
            Insert statement for the repository model

        Raises:
            RuntimeError: If the bound dialect has no ON CONFLICT support
        """
        dialect = self.session.get_bind().dialect.name
        try:
            insert_fn = _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise RuntimeError(f"Unsupported database dialect: {dialect!r}")
        return insert_fn(self.model)
