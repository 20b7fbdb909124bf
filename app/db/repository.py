"""Base repository class with common CRUD operations."""

from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import Base
from app.db.query_guard import with_query_guard

ModelType = TypeVar("ModelType", bound=Base)

_OPERATORS = {
    "eq": lambda field, value: field == value,
    "ne": lambda field, value: field != value,
    "lt": lambda field, value: field < value,
    "lte": lambda field, value: field <= value,
    "gt": lambda field, value: field > value,
    "gte": lambda field, value: field >= value,
    "in": lambda field, value: field.in_(value),
}


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common CRUD operations for all models.

    Every statement goes through the query guard so slow or hung queries
    are logged and bounded.
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

    async def _execute(self, statement, context: Optional[str] = None):
        return await with_query_guard(
            self.session.execute(statement),
            context=context or self.model.__tablename__,
        )

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
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a record by primary key."""
        result = await self._execute(
            select(self.model).where(self.model.id == id)  # type: ignore
        )
        return result.scalar_one_or_none()

    async def get_by_field(self, field_name: str, value: Any) -> Optional[ModelType]:
        """Get a single record by a specific field value."""
        field = getattr(self.model, field_name)
        result = await self._execute(select(self.model).where(field == value))
        return result.scalar_one_or_none()

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

        result = await self._execute(query)
        return list(result.scalars().all())

    async def filter(self, **filters) -> List[ModelType]:
        """
        Filter records by field values.

        Supports comparison operators using double underscore syntax
        (``field__lt``, ``field__lte``, ``field__gt``, ``field__gte``,
        ``field__ne``, ``field__in``); a bare field name means equality.

        Examples:
            await repo.filter(amount__gte=10)
            await repo.filter(firm_id="fundingpips", timestamp__lt=cutoff)
        """
        query = self._apply_filters(select(self.model), filters)
        result = await self._execute(query)
        return list(result.scalars().all())

    def _apply_filters(self, query, filters: Dict[str, Any]):
        """Apply ``field__op=value`` filters to a select or delete statement."""
        for filter_key, value in filters.items():
            if "__" in filter_key:
                field_name, operator = filter_key.rsplit("__", 1)
            else:
                field_name, operator = filter_key, "eq"

            field = getattr(self.model, field_name)
            build = _OPERATORS.get(operator, _OPERATORS["eq"])
            query = query.where(build(field, value))

        return query

    async def update(self, id: Any, **kwargs) -> Optional[ModelType]:
        """Update a record by primary key and return the fresh instance."""
        await self._execute(
            update(self.model).where(self.model.id == id).values(**kwargs)  # type: ignore
        )
        await self.session.flush()
        instance = await self.get_by_id(id)
        if instance is not None:
            await self.session.refresh(instance)
        return instance

    async def delete(self, id: Any) -> bool:
        """Delete a record by primary key. Returns False if not found."""
        result = await self._execute(
            delete(self.model).where(self.model.id == id)  # type: ignore
        )
        await self.session.flush()
        return (result.rowcount or 0) > 0  # type: ignore

    async def delete_all(self, **filters) -> int:
        """
        Delete all records matching the given filters.
        If no filters provided, deletes ALL records.

        Returns:
            Number of records deleted
        """
        query = delete(self.model)
        if filters:
            query = self._apply_filters(query, filters)

        result = await self._execute(query)
        await self.session.flush()
        return result.rowcount or 0  # type: ignore

    async def count(self, **filters) -> int:
        """Count records matching the given filters (same syntax as filter)."""
        query = select(func.count()).select_from(self.model)
        query = self._apply_filters(query, filters)

        result = await self._execute(query)
        return result.scalar() or 0

    async def exists(self, **filters) -> bool:
        """Check if any records exist matching the given filters."""
        return await self.count(**filters) > 0

    async def upsert_many(
        self,
        rows: Sequence[Dict[str, Any]],
        conflict_column: str,
        update_columns: Optional[Sequence[str]] = None,
    ) -> int:
        """
        Insert rows, updating existing ones that collide on a unique column.

        Uses the dialect's native ``INSERT .. ON CONFLICT DO UPDATE``
        (PostgreSQL and SQLite).

        Args:
            rows: Column dictionaries to write
            conflict_column: Unique column that identifies an existing row
            update_columns: Columns refreshed on conflict (defaults to all
                supplied columns except the conflict column)

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_stmt = postgresql.insert(self.model)
        elif dialect == "sqlite":
            insert_stmt = sqlite.insert(self.model)
        else:
            raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

        if update_columns is None:
            update_columns = [c for c in rows[0].keys() if c != conflict_column]

        stmt = insert_stmt.values(list(rows))
        stmt = stmt.on_conflict_do_update(
            index_elements=[conflict_column],
            set_={col: getattr(stmt.excluded, col) for col in update_columns},
        )

        await self._execute(stmt, context=f"{self.model.__tablename__}.upsert")
        await self.session.flush()
        return len(rows)
