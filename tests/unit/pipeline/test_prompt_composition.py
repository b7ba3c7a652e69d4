"""Tests for Stage 4 master prompt composition."""

import json
from uuid import uuid4

import pytest

from sopforge.core.exceptions import ArtifactNotFoundError, PreconditionError
from sopforge.pipeline.agent_decomposition import AgentDecomposer
from sopforge.pipeline.ingestion import NarrativeIngestor
from sopforge.pipeline.prompt_composition import PromptComposer
from sopforge.pipeline.waste_audit import WasteAuditor
from sopforge.schemas.enums import GenerationSource, SOPStatus
from sopforge.schemas.prompt_set import SECTION_NAMES, render_full_prompt


async def _specified_sop(store, fields, transcript):
    sop = (await NarrativeIngestor(store).execute(uuid4(), fields, transcript)).artifact
    await WasteAuditor(store).execute(sop.id)
    spec = (await AgentDecomposer(store).execute(sop.id)).artifact
    return sop, spec


@pytest.fixture
def composer(store):
    return PromptComposer(store, workers=2, author="Tester", version="2.0")


@pytest.mark.asyncio
async def test_two_agents_give_two_prompts_with_fixed_sections(composer, store, narrative_fields):
    sop, spec = await _specified_sop(store, narrative_fields, "Przygotuj ofertę\nWyślij do klienta")
    assert len(spec.agents) == 2

    result = await composer.execute(sop.id, spec.id)

    prompt_set = result.artifact
    assert result.status == SOPStatus.PROMPT_GENERATED
    assert prompt_set.generation_source == GenerationSource.DETERMINISTIC
    assert [p.meta.agent_name for p in prompt_set.prompts] == [a.name for a in spec.agents]
    for prompt in prompt_set.prompts:
        assert tuple(s.name for s in prompt.sections) == SECTION_NAMES
        assert [s.id for s in prompt.sections] == ["role", "objective", "context", "workflow", "output", "guardrails"]
        assert prompt.meta.author == "Tester"
        assert prompt.meta.version == "2.0"
    assert (await store.get_sop(sop.id)).status == SOPStatus.PROMPT_GENERATED


@pytest.mark.asyncio
async def test_stored_full_prompt_regenerates_byte_for_byte(composer, store, narrative_fields, transcript):
    sop, spec = await _specified_sop(store, narrative_fields, transcript)
    await composer.execute(sop.id, spec.id)

    stored = await store.get_prompt_set(spec.id)

    for prompt in stored.prompts:
        assert render_full_prompt(prompt.sections) == prompt.full_prompt


@pytest.mark.asyncio
async def test_section_contents(composer, store, narrative_fields, transcript):
    sop, spec = await _specified_sop(store, narrative_fields, transcript)
    agent = spec.agents[2]

    prompt = composer.compose_prompt(sop, agent)

    assert agent.name in prompt.section("role").content
    assert "Ofertowanie B2B" in prompt.section("role").content
    assert "escalate" in prompt.section("objective").content
    assert "Step 3: Wyślij do klienta" in prompt.section("context_knowledge").content
    assert prompt.section("workflow").content.startswith("1. Validate input")
    assert "SendGrid" in prompt.section("workflow").content
    assert json.loads(prompt.section("output_schema").content) == agent.output_schema
    assert f"Max retries: {agent.guardrails.max_retries}" in prompt.section("guardrails").content
    assert prompt.full_prompt.startswith("<role>\n")


@pytest.mark.asyncio
async def test_progress_is_reported_per_agent(composer, store, narrative_fields, transcript):
    sop, spec = await _specified_sop(store, narrative_fields, transcript)
    calls = []

    await composer.execute(sop.id, spec.id, progress=lambda stage, done, total: calls.append((stage, done, total)))

    assert sorted(calls) == [("compose_prompts", 1, 3), ("compose_prompts", 2, 3), ("compose_prompts", 3, 3)]


@pytest.mark.asyncio
async def test_composition_is_deterministic(composer, store, narrative_fields, transcript):
    sop, spec = await _specified_sop(store, narrative_fields, transcript)

    first = await composer.compose_all(sop, spec)
    second = await composer.compose_all(sop, spec)

    assert [p.full_prompt for p in first] == [p.full_prompt for p in second]


@pytest.mark.asyncio
async def test_zero_agents_give_empty_set(composer, store, narrative_fields):
    sop, spec = await _specified_sop(store, narrative_fields, "")

    result = await composer.execute(sop.id, spec.id)

    assert result.artifact.prompts == []
    assert result.status == SOPStatus.PROMPT_GENERATED


@pytest.mark.asyncio
async def test_unknown_specification_raises(composer, store, narrative_fields, transcript):
    sop, _ = await _specified_sop(store, narrative_fields, transcript)

    with pytest.raises(ArtifactNotFoundError):
        await composer.execute(sop.id, uuid4())


@pytest.mark.asyncio
async def test_requires_spec_generated_status(composer, store, narrative_fields, transcript):
    sop = (await NarrativeIngestor(store).execute(uuid4(), narrative_fields, transcript)).artifact

    with pytest.raises(PreconditionError):
        await composer.execute(sop.id, uuid4())
