"""Generic async repository over one artifact table."""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.utils.logging import get_logger

# Mapped record class managed by a repository
RecordType = TypeVar("RecordType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[RecordType]):
    """Lookup, insert and delete helpers shared by the artifact repositories.

    Repositories only flush; the caller owns the transaction, so several
    writes can be committed or rolled back together.
    """

    def __init__(self, session: AsyncSession, model: Type[RecordType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session owned by the caller
            model: Record class stored in this repository's table
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _filtered(self, statement, filters: Dict[str, Any]):
        for column, value in filters.items():
            statement = statement.where(getattr(self.model, column) == value)
        return statement

    async def _execute(self, statement, action: str):
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to {action} {self.model.__name__}: {str(e)}", exc_info=True)
            raise

    async def get_by_id(self, id: UUID) -> Optional[RecordType]:
        """Return the record with primary key ``id``, or None."""
        return await self.get_one_by(id=id)

    async def get_one_by(self, **filters: Any) -> Optional[RecordType]:
        """Return the single record whose columns equal ``filters``, or None."""
        result = await self._execute(self._filtered(select(self.model), filters), f"load by {filters}")
        return result.scalar_one_or_none()

    async def get_all(self, limit: int = 200, filters: Optional[Dict[str, Any]] = None) -> List[RecordType]:
        """Return up to ``limit`` records matching ``filters``.

        Args:
            limit: Maximum number of records to return
            filters: Column name to value; every pair must match

        Returns:
            Matching records in table order
        """
        statement = self._filtered(select(self.model), filters or {}).limit(limit)
        result = await self._execute(statement, "list")
        return list(result.scalars().all())

    async def create(self, **columns: Any) -> RecordType:
        """Add a record and flush it so constraint errors surface here."""
        record = self.model(**columns)
        self.session.add(record)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to insert {self.model.__name__}: {str(e)}", exc_info=True)
            raise
        return record

    async def delete_where(self, **filters: Any) -> int:
        """Delete every record whose columns equal ``filters`` and return the row count."""
        result = await self._execute(self._filtered(delete(self.model), filters), f"delete by {filters}")
        return result.rowcount or 0
