"""Unit tests for the generic repository with a mocked session."""

import pytest
from uuid import uuid4
from unittest.mock import AsyncMock, Mock

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.database.models import SOPRecord
from sopforge.repositories.base_repository import BaseRepository


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    session = AsyncMock(spec=AsyncSession)
    session.add = Mock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def repository(mock_session):
    return BaseRepository(mock_session, SOPRecord)


@pytest.mark.asyncio
async def test_create_flushes_without_commit(repository, mock_session):
    record = await repository.create(id=uuid4(), process_name="P", department="D", status="GENERATED", payload={})

    mock_session.add.assert_called_once_with(record)
    mock_session.flush.assert_awaited_once()
    mock_session.commit.assert_not_awaited()
    assert record.process_name == "P"


@pytest.mark.asyncio
async def test_get_by_id_returns_scalar(repository, mock_session):
    record = SOPRecord(id=uuid4(), process_name="P", department="D", status="GENERATED", payload={})
    result = Mock()
    result.scalar_one_or_none.return_value = record
    mock_session.execute.return_value = result

    assert await repository.get_by_id(record.id) is record


@pytest.mark.asyncio
async def test_delete_where_returns_rowcount(repository, mock_session):
    result = Mock()
    result.rowcount = 2
    mock_session.execute.return_value = result

    assert await repository.delete_where(status="GENERATED") == 2


@pytest.mark.asyncio
async def test_database_errors_propagate(repository, mock_session):
    mock_session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))

    with pytest.raises(OperationalError):
        await repository.get_one_by(status="GENERATED")


@pytest.mark.asyncio
async def test_get_all_returns_list(repository, mock_session):
    record = SOPRecord(id=uuid4(), process_name="P", department="D", status="GENERATED", payload={})
    result = Mock()
    result.scalars.return_value.all.return_value = [record]
    mock_session.execute.return_value = result

    assert await repository.get_all(limit=5, filters={"status": "GENERATED"}) == [record]
