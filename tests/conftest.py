"""Pytest configuration and shared fixtures."""

from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from sopforge.core.config import DatabaseSettings, PipelineSettings, Settings
from sopforge.core.database import DatabaseClient
from sopforge.core.llm_client import ChatCompletionClient
from sopforge.pipeline.controller import PipelineController
from sopforge.repositories.artifact_store import ArtifactStore


@pytest_asyncio.fixture
async def database() -> DatabaseClient:
    """Create an in-memory SQLite artifact store database.

    Returns:
        DatabaseClient: Connected client with the schema created
    """
    client = DatabaseClient.from_settings(DatabaseSettings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))
    await client.connect()
    await client.init_schema()
    yield client
    await client.disconnect()


@pytest.fixture
def store(database) -> ArtifactStore:
    """Artifact store backed by the in-memory database."""
    return ArtifactStore.from_database(database)


@pytest.fixture
def app_settings() -> Settings:
    """Settings with default pipeline behaviour regardless of the environment."""
    return Settings(
        pipeline=PipelineSettings(
            AUDIT_MAX_STEPS=None,
            STAGE_TIMEOUT_SECONDS=None,
            PROMPT_WORKERS=2,
        )
    )


@pytest.fixture
def controller(store, app_settings) -> PipelineController:
    """Controller without a text-generation client (rule-based generation)."""
    return PipelineController(store, llm_client=None, app_settings=app_settings)


@pytest.fixture
def mock_llm_client() -> AsyncMock:
    """Create mock text-generation client.

    Returns:
        AsyncMock: Client whose ``generate_content`` is awaited by the stages
    """
    client = AsyncMock(spec=ChatCompletionClient)
    client.generate_content = AsyncMock()
    return client


@pytest.fixture
def narrative_fields() -> Dict[str, Any]:
    """Pre-questions of the B2B offer process."""
    return {
        "process_name": "Ofertowanie B2B",
        "department": "Sprzedaż",
        "role": "Handlowiec",
        "trigger": "Otrzymanie zapytania ofertowego",
        "outcome": "Oferta wysłana do klienta",
        "description": "Przygotowanie i wysłanie oferty dla klienta biznesowego",
    }


@pytest.fixture
def transcript() -> str:
    """Three-line transcript of the B2B offer process."""
    return "Otwórz CRM\nPrzygotuj ofertę\nWyślij do klienta"
