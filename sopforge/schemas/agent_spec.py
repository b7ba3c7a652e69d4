"""Pydantic schemas for the microagent decomposition."""

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sopforge.schemas.enums import AgentType, GenerationSource
from sopforge.schemas.sop import ArtifactBaseModel
from sopforge.utils.rounding import percentage


class Guardrails(ArtifactBaseModel):
    banned_actions: List[str] = Field(default_factory=list)
    max_retries: int = Field(default=3, ge=0)
    timeout_sec: int = Field(default=30, ge=0)


class ContextRequired(ArtifactBaseModel):
    sylabus_terms: List[str] = Field(default_factory=list)
    sop_steps: List[int] = Field(default_factory=list)


class EstimatedROI(ArtifactBaseModel):
    time_saved_sec_per_run: int = 0
    hours_saved_per_month: float = 0.0
    summary: str = ""


class MicroAgent(ArtifactBaseModel):
    """One scoped AI/automation responsibility."""
    name: str
    type: AgentType
    responsibility: str
    input_spec: str = ""
    output_spec: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)
    output_schema: Dict[str, Any] = Field(default_factory=dict)
    tools: List[str] = Field(default_factory=list)
    integrations: List[str] = Field(default_factory=list)
    automated_steps: List[int] = Field(default_factory=list)
    escalation_triggers: List[str] = Field(default_factory=list)
    guardrails: Guardrails = Field(default_factory=Guardrails)
    context_required: ContextRequired = Field(default_factory=ContextRequired)
    estimated_roi: EstimatedROI = Field(default_factory=EstimatedROI)

    @field_validator("automated_steps")
    @classmethod
    def dedupe_steps(cls, steps: List[int]) -> List[int]:
        return sorted(set(steps))


class Architecture(BaseModel):
    """Human/AI split of the SOP steps. Keys follow the exchanged JSON shape."""
    model_config = ConfigDict(populate_by_name=True)

    human_steps: List[int] = Field(default_factory=list, alias="humanSteps")
    ai_steps: List[int] = Field(default_factory=list, alias="aiSteps")
    hybrid_steps: List[int] = Field(default_factory=list, alias="hybridSteps")
    automation_level: int = Field(default=0, alias="automationLevel")


def compute_architecture(
    agents: Iterable[MicroAgent],
    step_ids: List[int],
    hybrid_step_ids: Iterable[int] = (),
) -> Architecture:
    """Derive the architecture summary from the agents' automated steps.

    A covered step is hybrid when listed in ``hybrid_step_ids``, otherwise it
    is an AI step; uncovered steps stay human.
    """
    covered = set()
    for agent in agents:
        covered.update(agent.automated_steps)
    covered &= set(step_ids)
    hybrid = covered & set(hybrid_step_ids)

    return Architecture(
        human_steps=[s for s in step_ids if s not in covered],
        ai_steps=[s for s in step_ids if s in covered and s not in hybrid],
        hybrid_steps=[s for s in step_ids if s in hybrid],
        automation_level=percentage(len(covered), len(step_ids)),
    )


class AgentSpecMeta(ArtifactBaseModel):
    sop_name: str = ""
    sop_version: str = ""
    architect: str = "AI Architect"
    created_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())


class GeneratorRequirements(ArtifactBaseModel):
    templates: List[str] = Field(default_factory=list)
    access_needed: List[str] = Field(default_factory=list)
    knowledge_base: List[str] = Field(default_factory=list)


class AgentSpecification(ArtifactBaseModel):
    """Stage 3 output."""
    id: UUID = Field(default_factory=uuid4)
    sop_id: UUID
    meta: AgentSpecMeta = Field(default_factory=AgentSpecMeta)
    agents: List[MicroAgent] = Field(default_factory=list)
    architecture: Architecture = Field(default_factory=Architecture)
    flow_mermaid: str = ""
    requirements_for_generator: GeneratorRequirements = Field(default_factory=GeneratorRequirements)
    generation_source: GenerationSource = GenerationSource.FALLBACK

    @property
    def automated_step_ids(self) -> List[int]:
        steps = set()
        for agent in self.agents:
            steps.update(agent.automated_steps)
        return sorted(steps)

    @property
    def referenced_step_ids(self) -> List[int]:
        """Every SOP step id the agents point at, automated or given as context."""
        steps = set(self.automated_step_ids)
        for agent in self.agents:
            steps.update(agent.context_required.sop_steps)
        return sorted(steps)
