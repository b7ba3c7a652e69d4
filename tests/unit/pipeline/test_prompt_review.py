"""Tests for the Prompt Judge review."""

from uuid import uuid4

import pytest

from sopforge.core.exceptions import PreconditionError
from sopforge.pipeline.agent_decomposition import AgentDecomposer
from sopforge.pipeline.ingestion import NarrativeIngestor
from sopforge.pipeline.prompt_composition import PromptComposer
from sopforge.pipeline.prompt_review import PromptJudge
from sopforge.pipeline.waste_audit import WasteAuditor
from sopforge.schemas.agent_spec import Guardrails
from sopforge.schemas.enums import ReviewVerdict, SOPStatus


async def _composed(store, fields, transcript):
    sop = (await NarrativeIngestor(store).execute(uuid4(), fields, transcript)).artifact
    await WasteAuditor(store).execute(sop.id)
    spec = (await AgentDecomposer(store).execute(sop.id)).artifact
    prompt_set = (await PromptComposer(store).execute(sop.id, spec.id)).artifact
    return sop, spec, prompt_set


@pytest.fixture
def judge(store):
    return PromptJudge(store)


@pytest.mark.asyncio
async def test_composed_prompts_pass(judge, store, narrative_fields, transcript):
    sop, spec, _ = await _composed(store, narrative_fields, transcript)

    result = await judge.execute(sop.id, spec.id)

    reviews = result.artifact.reviews
    assert [r.agent_name for r in reviews] == [a.name for a in spec.agents]
    assert all(r.verdict == ReviewVerdict.PASS for r in reviews)
    assert all(r.scores.overall == 100 for r in reviews)
    assert result.status == SOPStatus.PROMPT_GENERATED
    assert (await store.get_prompt_set(spec.id)).reviews == reviews


@pytest.mark.asyncio
async def test_weak_guardrails_lower_the_score(judge, store, narrative_fields, transcript):
    sop, spec, prompt_set = await _composed(store, narrative_fields, transcript)
    agent = spec.agents[0]
    agent.guardrails = Guardrails(banned_actions=[], max_retries=0, timeout_sec=0)
    agent.escalation_triggers = []

    review = judge.review_prompt(prompt_set.prompts[0], agent)

    assert review.scores.guardrails == 0
    # (100 + 100 + 100 + 0) / 4
    assert review.scores.overall == 75
    assert review.verdict == ReviewVerdict.NEEDS_REVISION
    assert "No banned actions defined" in review.issues
    assert len(review.suggestions) == len(review.issues)


@pytest.mark.asyncio
async def test_prompt_without_agent_fails(judge, store, narrative_fields, transcript):
    _, _, prompt_set = await _composed(store, narrative_fields, transcript)

    review = judge.review_prompt(prompt_set.prompts[0], None)

    assert review.scores.guardrails == 0
    assert review.verdict == ReviewVerdict.FAIL


def test_verdict_thresholds(store):
    judge = PromptJudge(store, pass_threshold=85, revision_threshold=70)

    assert judge.verdict_for(85) == ReviewVerdict.PASS
    assert judge.verdict_for(84) == ReviewVerdict.NEEDS_REVISION
    assert judge.verdict_for(70) == ReviewVerdict.NEEDS_REVISION
    assert judge.verdict_for(69) == ReviewVerdict.FAIL


@pytest.mark.asyncio
async def test_review_requires_prompts(judge, store, narrative_fields, transcript):
    sop = (await NarrativeIngestor(store).execute(uuid4(), narrative_fields, transcript)).artifact
    await WasteAuditor(store).execute(sop.id)
    spec = (await AgentDecomposer(store).execute(sop.id)).artifact

    with pytest.raises(PreconditionError):
        await judge.execute(sop.id, spec.id)
