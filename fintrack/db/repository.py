"""Base repository class with common CRUD operations."""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common CRUD operations for all models.

    This class implements the repository pattern, providing a clean
    abstraction over database operations. Repositories never commit;
    the surrounding UnitOfWork owns the transaction.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def create(self, **kwargs) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Field values for the new record

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """
        Get a record by primary key.

        Args:
            id: Primary key value (a tuple for composite keys)

        Returns:
            Model instance or None if not found
        """
        return await self.session.get(self.model, id)

    async def get_all(
        self, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> List[ModelType]:
        """
        Get all records with optional pagination.

        Args:
            limit: Maximum number of records to return
            offset: Number of records to skip

        Returns:
            List of model instances
        """
        query = select(self.model)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def filter(self, **filters) -> List[ModelType]:
        """
        Filter records by field values.

        Supports comparison operators using double underscore syntax:
        - field__gte: greater than or equal
        - field__in: member of a collection
        - field (no suffix): equal

        Examples:
            # Transactions of one account since a cutoff
            await repo.filter(account_id="acc-1", timestamp__gte=cutoff)
        """
        query = self._apply_filters(select(self.model), filters)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, **filters) -> int:
        """Count records matching the given filters."""
        query = self._apply_filters(
            select(func.count()).select_from(self.model), filters
        )
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def exists(self, **filters) -> bool:
        """Check if any record matches the given filters."""
        query = self._apply_filters(select(self.model), filters).limit(1)
        result = await self.session.execute(query)
        return result.first() is not None

    async def delete_where(self, **filters) -> int:
        """
        Delete all records matching the given filters.

        Refuses to run without filters so a typo cannot empty a table.

        Returns:
            Number of records deleted
        """
        if not filters:
            raise ValueError("delete_where requires at least one filter")

        query = self._apply_filters(delete(self.model), filters)
        result = await self.session.execute(query)
        await self.session.flush()
        return result.rowcount or 0  # type: ignore

    def _apply_filters(self, query, filters: dict):
        """
        Apply filters to a select or delete statement.

        Args:
            query: SQLAlchemy statement
            filters: Field name and value pairs with optional comparison operators

        Returns:
            Modified statement
        """
        for filter_key, value in filters.items():
            if "__" in filter_key:
                field_name, operator = filter_key.rsplit("__", 1)
            else:
                field_name = filter_key
                operator = "eq"

            field = getattr(self.model, field_name)

            if operator == "eq":
                query = query.where(field == value)
            elif operator == "gte":
                query = query.where(field >= value)
            elif operator == "in":
                query = query.where(field.in_(value))
            else:
                raise ValueError(f"unknown filter operator: {operator}")

        return query
