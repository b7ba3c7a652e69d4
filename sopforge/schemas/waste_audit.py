"""Pydantic schemas for the MUDA waste audit."""

from datetime import date, datetime, timezone
from typing import Any, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from sopforge.schemas.enums import AutomationPotential, GenerationSource, MudaType
from sopforge.schemas.sop import ArtifactBaseModel
from sopforge.utils.rounding import percentage, round_half_up


class WasteFinding(ArtifactBaseModel):
    """A waste observed in one SOP step together with its Kaizen proposal."""
    step_id: int = Field(..., ge=1)
    muda_type: MudaType
    problem: str
    kaizen_proposal: str
    time_saving_sec: int = Field(default=0, ge=0)
    automation_potential: AutomationPotential = AutomationPotential.NONE


class WasteAuditSummary(BaseModel):
    total_muda_count: int = 0
    total_potential_saving_min: int = 0
    automation_score: int = 0


class WasteAuditMeta(ArtifactBaseModel):
    sop_name: str = ""
    sop_version: str = ""
    analyzed_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    analyst: str = "MUDA Auditor"


def summarize_findings(findings: List[WasteFinding]) -> WasteAuditSummary:
    """Aggregate findings into the audit summary."""
    automatable = sum(1 for f in findings if f.automation_potential != AutomationPotential.NONE)
    return WasteAuditSummary(
        total_muda_count=len(findings),
        total_potential_saving_min=round_half_up(sum(f.time_saving_sec for f in findings) / 60),
        automation_score=percentage(automatable, len(findings)),
    )


class WasteAudit(ArtifactBaseModel):
    """Stage 2 output. ``summary`` is always derived from ``waste_identified``."""
    id: UUID = Field(default_factory=uuid4)
    sop_id: UUID
    meta: WasteAuditMeta = Field(default_factory=WasteAuditMeta)
    waste_identified: List[WasteFinding] = Field(default_factory=list)
    summary: WasteAuditSummary = Field(default_factory=WasteAuditSummary)
    optimizations_applied: List[Any] = Field(default_factory=list)
    escalations: List[Any] = Field(default_factory=list)
    generation_source: GenerationSource = GenerationSource.FALLBACK
    analyzed_step_count: Optional[int] = None

    @model_validator(mode="after")
    def recompute_summary(self) -> "WasteAudit":
        # Never trust a supplied summary
        self.summary = summarize_findings(self.waste_identified)
        return self

    @property
    def referenced_step_ids(self) -> List[int]:
        return sorted({f.step_id for f in self.waste_identified})

    def findings_for_step(self, step_id: int) -> List[WasteFinding]:
        return [f for f in self.waste_identified if f.step_id == step_id]
