"""
Base repository with common CRUD operations.
"""
from typing import Any, Dict, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from crashtrack.database.connection import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with common database operations."""

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """
        Initialize repository with session and model class.

        Args:
            session: SQLAlchemy async session
            model: SQLAlchemy model class
        """
        self.session = session
        self.model = model

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    async def insert_ignore(
        self, values: Dict[str, Any], conflict_columns: Sequence[str]
    ) -> bool:
        """
        Insert a row unless it conflicts on ``conflict_columns``.

        Uses ``INSERT ... ON CONFLICT DO NOTHING`` so concurrent writers
        racing on the same key never see an integrity error.

        Args:
            values: Column values for the new row
            conflict_columns: Columns of the unique constraint to check

        Returns:
            True if a row was inserted, False if it already existed
        """
        # Attribute names may differ from column names (e.g. "metadata")
        mapper = sa_inspect(self.model)
        row = {mapper.get_property(key).columns[0].name: value for key, value in values.items()}

        dialect = postgresql if self.dialect_name == "postgresql" else sqlite
        stmt = (
            dialect.insert(self.model.__table__)
            .values(**row)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """
        Get a single record by ID.

        Args:
            id: Record id

        Returns:
            Model instance or None if not found
        """
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, obj: ModelType) -> ModelType:
        """
        Create a new record.

        Args:
            obj: Model instance to create

        Returns:
            Created model instance
        """
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def update(self, obj: ModelType) -> ModelType:
        """
        Update an existing record.

        Args:
            obj: Model instance with updated values

        Returns:
            Updated model instance
        """
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def delete(self, obj: ModelType) -> None:
        """
        Delete a record.

        Args:
            obj: Model instance to delete
        """
        await self.session.delete(obj)
        await self.session.flush()
