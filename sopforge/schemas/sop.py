"""Pydantic schemas for the SOP root artifact."""

from datetime import date, datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sopforge.schemas.enums import SOPStatus


class ArtifactBaseModel(BaseModel):
    """Base model for stored artifacts; unknown keys are kept for round-trip."""
    model_config = ConfigDict(from_attributes=True, extra="allow")


class NarrativeFields(BaseModel):
    """Pre-questions answered before a transcript is ingested."""
    model_config = ConfigDict(str_strip_whitespace=True)

    process_name: str = ""
    department: str = ""
    role: str = ""
    trigger: str = ""
    outcome: str = ""
    description: str = ""
    owner: str = ""

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("process_name", "department", "role", "trigger", "outcome")

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]


class SOPMeta(ArtifactBaseModel):
    process_name: str
    department: str
    role: str
    owner: str = ""
    version: str = "1.0"
    created_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    updated_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    estimated_time: str = ""


class SOPScope(ArtifactBaseModel):
    trigger: str
    outcome: str


class Prerequisites(ArtifactBaseModel):
    systems: List[str] = Field(default_factory=list)
    data_required: List[str] = Field(default_factory=list)


class KnowledgeBase(ArtifactBaseModel):
    documents: List[Any] = Field(default_factory=list)
    quality_checklist: List[str] = Field(default_factory=list)
    golden_standard: str = ""
    warnings: List[str] = Field(default_factory=list)
    naming_convention: str = ""


class SOPStep(ArtifactBaseModel):
    """One step of the procedure. ``id`` is the 1-based position."""
    id: int = Field(..., ge=1)
    name: str
    actions: List[str] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Name and actions joined, used for vocabulary matching."""
        return " ".join([self.name, *self.actions])


class SOPMetrics(ArtifactBaseModel):
    frequency_per_day: float = 0
    avg_time_min: float = 0
    people_count: int = 1


class SOP(ArtifactBaseModel):
    """Standard Operating Procedure produced by Stage 1."""
    id: UUID = Field(default_factory=uuid4)
    meta: SOPMeta
    purpose: str = ""
    scope: SOPScope
    prerequisites: Prerequisites = Field(default_factory=Prerequisites)
    knowledge_base: KnowledgeBase = Field(default_factory=KnowledgeBase)
    steps: List[SOPStep] = Field(default_factory=list)
    troubleshooting: List[Any] = Field(default_factory=list)
    definition_of_done: List[Any] = Field(default_factory=list)
    metrics: SOPMetrics = Field(default_factory=SOPMetrics)
    dictionary_candidates: List[Any] = Field(default_factory=list)
    exceptions: List[Any] = Field(default_factory=list)
    status: SOPStatus = SOPStatus.GENERATED

    @field_validator("steps")
    @classmethod
    def steps_are_sequential(cls, steps: List[SOPStep]) -> List[SOPStep]:
        for position, step in enumerate(steps, start=1):
            if step.id != position:
                raise ValueError(f"step ids must be 1..n in order, got {step.id} at position {position}")
        return steps

    @property
    def step_ids(self) -> List[int]:
        return [step.id for step in self.steps]

    def get_step(self, step_id: int) -> Optional[SOPStep]:
        if 1 <= step_id <= len(self.steps):
            return self.steps[step_id - 1]
        return None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
