"""Stage 2: MUDA waste audit of the SOP steps."""

import json
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from sopforge.core.base_stage import BaseStage, StageResult
from sopforge.core.exceptions import APIClientError, UpstreamServiceError
from sopforge.core.llm_client import ChatCompletionClient
from sopforge.pipeline.step_classifier import StepClassifier
from sopforge.prompts.system_prompts import MUDA_AUDITOR_PROMPT
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.enums import AutomationPotential, GenerationSource, MudaType, SOPStatus
from sopforge.schemas.sop import SOP, SOPStep
from sopforge.schemas.waste_audit import WasteAudit, WasteAuditMeta, WasteFinding
from sopforge.utils.json_parser import parse_json_safely
from sopforge.utils.logging import get_logger
from sopforge.utils.rounding import round_half_up

LOGGER = get_logger(__name__)


class WasteAuditor(BaseStage):
    """Finds waste in SOP steps and proposes Kaizen improvements.

    With a text-generation client the findings come from the model; when the
    client is missing or its answer is unusable, a rule-based audit that
    produces one finding per analysed step is used instead.
    """

    # Seconds saved per run by fixing the waste, before the potential factor
    BASE_SAVING_SEC: Dict[MudaType, int] = {
        MudaType.TRANSPORT: 180,
        MudaType.INVENTORY: 120,
        MudaType.MOTION: 90,
        MudaType.WAITING: 300,
        MudaType.OVERPRODUCTION: 120,
        MudaType.OVERPROCESSING: 240,
        MudaType.DEFECTS: 180,
    }

    POTENTIAL_FACTOR: Dict[AutomationPotential, float] = {
        AutomationPotential.HIGH: 1.0,
        AutomationPotential.MEDIUM: 0.75,
        AutomationPotential.LOW: 0.5,
        AutomationPotential.NONE: 0.25,
    }

    PROBLEM_TEMPLATES: Dict[MudaType, str] = {
        MudaType.TRANSPORT: "Data in step '{step}' is moved by hand between systems",
        MudaType.INVENTORY: "Step '{step}' lets unprocessed items pile up before they are handled",
        MudaType.MOTION: "Step '{step}' requires manual searching and switching between tools",
        MudaType.WAITING: "Step '{step}' waits on another person before work can continue",
        MudaType.OVERPRODUCTION: "Step '{step}' produces output nobody downstream uses",
        MudaType.OVERPROCESSING: "Step '{step}' is rebuilt from scratch on every run",
        MudaType.DEFECTS: "Step '{step}' is error-prone and often needs rework",
    }

    KAIZEN_TEMPLATES: Dict[MudaType, str] = {
        MudaType.TRANSPORT: "Connect the systems used in '{step}' so data flows automatically",
        MudaType.INVENTORY: "Process items of '{step}' as they arrive instead of in batches",
        MudaType.MOTION: "Give '{step}' a single entry point with the needed data pre-filled",
        MudaType.WAITING: "Set a response deadline and automatic reminders for '{step}'",
        MudaType.OVERPRODUCTION: "Produce the output of '{step}' only on request",
        MudaType.OVERPROCESSING: "Start '{step}' from an approved template and let an agent draft it",
        MudaType.DEFECTS: "Add a validation checklist to '{step}' before handing the result over",
    }

    def __init__(
        self,
        store: ArtifactStore,
        llm_client: Optional[ChatCompletionClient] = None,
        max_steps: Optional[int] = None,
    ):
        super().__init__(store)
        self.llm_client = llm_client
        self.max_steps = max_steps

    @property
    def name(self) -> str:
        return "audit"

    @property
    def dependencies(self) -> List[str]:
        return ["ingest"]

    async def is_complete(self, sop_id: UUID) -> bool:
        return await self.store.get_waste_audit(sop_id) is not None

    def analyzed_steps(self, sop: SOP, max_steps: Optional[int] = None) -> List[SOPStep]:
        """Steps covered by the audit: all of them unless a sampling limit is set."""
        limit = max_steps if max_steps is not None else self.max_steps
        if limit is None:
            return list(sop.steps)
        return list(sop.steps[:max(limit, 0)])

    async def run(
        self,
        sop_id: UUID,
        max_steps: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> StageResult:
        sop = await self.load_sop(sop_id, SOPStatus.GENERATED)
        audit = await self.within_deadline(self.build_audit(sop, max_steps), timeout, sop_id)
        status = await self.store.save_waste_audit(audit)

        LOGGER.info(
            f"Audited SOP {sop_id}: {audit.summary.total_muda_count} findings, "
            f"automation score {audit.summary.automation_score}"
        )
        return StageResult(
            stage=self.name,
            sop_id=sop_id,
            status=status,
            artifact=audit,
            generation_source=audit.generation_source,
        )

    async def build_audit(self, sop: SOP, max_steps: Optional[int] = None) -> WasteAudit:
        """Compute the audit for ``sop`` without storing it."""
        steps = self.analyzed_steps(sop, max_steps)
        meta = WasteAuditMeta(sop_name=sop.meta.process_name, sop_version=sop.meta.version)

        if not steps:
            return WasteAudit(
                sop_id=sop.id,
                meta=meta,
                generation_source=GenerationSource.DETERMINISTIC,
                analyzed_step_count=0,
            )

        findings: Optional[List[WasteFinding]] = None
        source = GenerationSource.FALLBACK
        if self.llm_client is not None:
            try:
                findings = await self._generate_findings(sop, steps)
                source = GenerationSource.AI
            except UpstreamServiceError as e:
                LOGGER.warning(f"AI audit unusable, using rule-based audit: {e}")

        if findings is None:
            findings = self.rule_based_findings(steps)

        return WasteAudit(
            sop_id=sop.id,
            meta=meta,
            waste_identified=findings,
            generation_source=source,
            analyzed_step_count=len(steps),
        )

    def rule_based_findings(self, steps: List[SOPStep]) -> List[WasteFinding]:
        """One finding per step, derived from the nature of the work."""
        findings = []
        for step in steps:
            nature = StepClassifier.classify(step.text)
            muda = StepClassifier.MUDA_BY_NATURE[nature]
            potential = StepClassifier.automation_potential(nature)
            findings.append(
                WasteFinding(
                    step_id=step.id,
                    muda_type=muda,
                    problem=self.PROBLEM_TEMPLATES[muda].format(step=step.name),
                    kaizen_proposal=self.KAIZEN_TEMPLATES[muda].format(step=step.name),
                    time_saving_sec=round_half_up(self.BASE_SAVING_SEC[muda] * self.POTENTIAL_FACTOR[potential]),
                    automation_potential=potential,
                )
            )
        return findings

    async def _generate_findings(self, sop: SOP, steps: List[SOPStep]) -> List[WasteFinding]:
        """Ask the text-generation service for findings.

        Raises:
            UpstreamServiceError: If the call fails or the answer does not fit the schema
        """
        contents = json.dumps(
            {
                "process_name": sop.meta.process_name,
                "department": sop.meta.department,
                "role": sop.meta.role,
                "steps": [{"id": s.id, "name": s.name, "actions": s.actions} for s in steps],
            },
            ensure_ascii=False,
            indent=2,
        )
        try:
            response = await self.llm_client.generate_content(
                contents=contents,
                system_instruction=MUDA_AUDITOR_PROMPT,
            )
        except APIClientError as e:
            raise UpstreamServiceError(
                f"Text-generation call failed: {e}", stage=self.name, sop_id=sop.id, original_error=e
            ) from e

        parsed = parse_json_safely(response)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("waste_identified"), list):
            raise UpstreamServiceError("Response has no 'waste_identified' list", stage=self.name, sop_id=sop.id)

        try:
            findings = [WasteFinding.model_validate(self._normalize(raw)) for raw in parsed["waste_identified"]]
        except (PydanticValidationError, TypeError) as e:
            raise UpstreamServiceError(
                f"Response findings do not match the schema: {e}", stage=self.name, sop_id=sop.id, original_error=e
            ) from e

        allowed = {s.id for s in steps}
        stray = sorted({f.step_id for f in findings} - allowed)
        if stray:
            raise UpstreamServiceError(f"Response references unknown steps {stray}", stage=self.name, sop_id=sop.id)
        return findings

    @staticmethod
    def _normalize(raw: Any) -> Any:
        """Fix the casing models commonly get wrong in enum fields."""
        if not isinstance(raw, dict):
            return raw
        normalized = dict(raw)
        muda = normalized.get("muda_type")
        if isinstance(muda, str):
            normalized["muda_type"] = muda.strip().capitalize()
        potential = normalized.get("automation_potential")
        if isinstance(potential, str):
            normalized["automation_potential"] = potential.strip().lower()
        return normalized
