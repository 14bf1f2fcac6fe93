"""
Shared repository helpers for UUID-keyed models.

Insert, primary-key lookup, filtered counting and an UPDATE ... RETURNING
helper. Model repositories add their own scoped reads, deletes and guarded
transitions on top.

Dependencies: sqlalchemy
System role: Foundation for the job repository
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mediajobs.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """
    Repository base bound to one model class.

    Nothing here commits: callers own the transaction and commit once their
    unit of work is done.
    """

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        """
        Insert a row and return it with server-side defaults loaded.

        Args:
            session: Async database session
            **values: Column values

        Returns:
            The flushed instance (id and timestamps populated)
        """
        instance = self.model(**values)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def get_by_id(self, session: AsyncSession, record_id: UUID) -> ModelT | None:
        result = await session.execute(select(self.model).where(self.model.id == record_id))
        return result.scalar_one_or_none()

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Number of rows matching all conditions (every row when none given)."""
        stmt = select(func.count()).select_from(self.model).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())

    async def update_by_id(
        self,
        session: AsyncSession,
        record_id: UUID,
        **values: Any,
    ) -> ModelT | None:
        """
        Set columns on one row and return the updated row.

        Returns:
            The updated instance, or None when no row has this id
        """
        stmt = (
            update(self.model)
            .where(self.model.id == record_id)
            .values(**values)
            .returning(self.model)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
