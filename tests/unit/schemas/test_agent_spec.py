"""Unit tests for the agent specification and architecture derivation."""

from uuid import uuid4

from sopforge.schemas.agent_spec import AgentSpecification, Architecture, MicroAgent, compute_architecture
from sopforge.schemas.enums import AgentType


def _agent(name, steps, agent_type=AgentType.AGENT):
    return MicroAgent(name=name, type=agent_type, responsibility="r", automated_steps=steps)


def test_automated_steps_are_sorted_and_unique():
    assert _agent("A", [3, 1, 3]).automated_steps == [1, 3]


def test_architecture_from_distinct_automated_steps():
    agents = [_agent("A", [1, 2]), _agent("B", [2, 4])]

    architecture = compute_architecture(agents, [1, 2, 3, 4, 5, 6, 7, 8], hybrid_step_ids=[4])

    assert architecture.ai_steps == [1, 2]
    assert architecture.hybrid_steps == [4]
    assert architecture.human_steps == [3, 5, 6, 7, 8]
    # 3 of 8 steps: 37.5 rounds half up
    assert architecture.automation_level == 38


def test_architecture_for_zero_steps():
    architecture = compute_architecture([], [])
    assert architecture == Architecture()
    assert architecture.automation_level == 0


def test_architecture_serializes_with_exchange_keys():
    architecture = compute_architecture([_agent("A", [1])], [1, 2])
    dumped = architecture.model_dump(by_alias=True)

    assert dumped == {"humanSteps": [2], "aiSteps": [1], "hybridSteps": [], "automationLevel": 50}
    assert Architecture.model_validate(dumped) == architecture


def test_automated_step_ids_union():
    spec = AgentSpecification(sop_id=uuid4(), agents=[_agent("A", [2]), _agent("B", [1, 2])])
    assert spec.automated_step_ids == [1, 2]


def test_referenced_step_ids_include_context_steps():
    agent = _agent("A", [2])
    agent.context_required.sop_steps = [1, 2, 5]
    spec = AgentSpecification(sop_id=uuid4(), agents=[agent, _agent("B", [3])])

    assert spec.automated_step_ids == [2, 3]
    assert spec.referenced_step_ids == [1, 2, 3, 5]
