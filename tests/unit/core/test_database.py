"""Tests for the async database client."""

import asyncio

import pytest
from sqlalchemy.pool import StaticPool

from sopforge.core.config import DatabaseSettings, PipelineSettings, Settings
from sopforge.core.database import DatabaseClient, create_engine_from_settings
from sopforge.pipeline.controller import PipelineController
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.enums import SOPStatus


def test_in_memory_sqlite_shares_one_connection():
    engine = create_engine_from_settings(DatabaseSettings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))

    assert isinstance(engine.pool, StaticPool)


def test_file_sqlite_uses_regular_pool(tmp_path):
    engine = create_engine_from_settings(DatabaseSettings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/a.db"))

    assert not isinstance(engine.pool, StaticPool)


@pytest.mark.asyncio
async def test_connect_and_disconnect(database):
    assert database.is_connected is True

    await database.disconnect()

    assert database.is_connected is False


@pytest.mark.asyncio
async def test_pipelines_for_different_sops_run_concurrently(tmp_path, narrative_fields, transcript):
    database = DatabaseClient.from_settings(DatabaseSettings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/store.db"))
    await database.connect()
    await database.init_schema()
    store = ArtifactStore.from_database(database)
    controller = PipelineController(
        store,
        app_settings=Settings(pipeline=PipelineSettings(AUDIT_MAX_STEPS=None, STAGE_TIMEOUT_SECONDS=None)),
    )
    try:
        first, second = await asyncio.gather(
            controller.run_pipeline(narrative_fields, transcript),
            controller.run_pipeline(narrative_fields, "Przygotuj ofertę"),
        )

        assert first[0].sop_id != second[0].sop_id
        assert len(first[2].artifact.agents) == 3
        assert len(second[2].artifact.agents) == 1
        assert len(await store.list_sops(SOPStatus.PROMPT_GENERATED)) == 2
    finally:
        await database.disconnect()
