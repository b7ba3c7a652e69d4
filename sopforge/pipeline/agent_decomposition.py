"""Stage 3: decompose the SOP into AI/automation microagents."""

import copy
import json
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from sopforge.core.base_stage import BaseStage, StageResult
from sopforge.core.exceptions import APIClientError, PreconditionError, UpstreamServiceError
from sopforge.core.llm_client import ChatCompletionClient
from sopforge.pipeline.step_classifier import StepClassifier, WorkNature
from sopforge.prompts.system_prompts import AI_ARCHITECT_PROMPT
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.agent_spec import (
    AgentSpecification,
    AgentSpecMeta,
    ContextRequired,
    EstimatedROI,
    GeneratorRequirements,
    Guardrails,
    MicroAgent,
    compute_architecture,
)
from sopforge.schemas.enums import (
    SUPPORTED_INTEGRATIONS,
    AgentType,
    AutomationPotential,
    GenerationSource,
    SOPStatus,
)
from sopforge.schemas.sop import SOP, SOPStep
from sopforge.schemas.waste_audit import WasteAudit
from sopforge.utils.json_parser import parse_json_safely
from sopforge.utils.logging import get_logger
from sopforge.utils.rounding import round_half_up_to

LOGGER = get_logger(__name__)


class AgentDecomposer(BaseStage):
    """Splits SOP steps between people and microagents.

    The architecture summary (human/AI/hybrid steps and the automation level)
    is always derived from the agents' automated steps, whichever generator
    produced the agents.
    """

    NAME_SUFFIX: Dict[AgentType, str] = {
        AgentType.AUTOMATION: "Automation",
        AgentType.AGENT: "Agent",
        AgentType.ASSISTANT: "Assistant",
    }

    RESPONSIBILITY_VERB: Dict[AgentType, str] = {
        AgentType.AUTOMATION: "Automates",
        AgentType.AGENT: "Carries out",
        AgentType.ASSISTANT: "Supports the employee in",
    }

    IO_SPECS: Dict[AgentType, Tuple[str, str]] = {
        AgentType.AUTOMATION: (
            "Structured record produced by the previous step",
            "The same record transferred or transformed in the target system",
        ),
        AgentType.AGENT: (
            "Case data and the relevant knowledge base documents",
            "Draft result ready for human acceptance",
        ),
        AgentType.ASSISTANT: (
            "Question or lookup request from the employee",
            "Answer with references to the sources used",
        ),
    }

    TOOLS: Dict[AgentType, List[str]] = {
        AgentType.AUTOMATION: ["http_request", "data_mapper"],
        AgentType.AGENT: ["knowledge_search", "document_drafter", "calculator"],
        AgentType.ASSISTANT: ["knowledge_search"],
    }

    GUARDRAILS: Dict[AgentType, Dict[str, Any]] = {
        AgentType.AUTOMATION: {
            "banned_actions": ["delete records", "change data outside the mapped fields"],
            "max_retries": 3,
            "timeout_sec": 30,
        },
        AgentType.AGENT: {
            "banned_actions": ["send anything to the customer without approval", "invent prices or terms"],
            "max_retries": 2,
            "timeout_sec": 120,
        },
        AgentType.ASSISTANT: {
            "banned_actions": ["answer without a source", "modify records"],
            "max_retries": 1,
            "timeout_sec": 30,
        },
    }

    OUTPUT_SCHEMAS: Dict[AgentType, Dict[str, Any]] = {
        AgentType.AUTOMATION: {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": ["done", "escalated"]},
                "record_id": {"type": "string"},
                "details": {"type": "string"},
            },
            "required": ["status"],
        },
        AgentType.AGENT: {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": ["draft_ready", "escalated"]},
                "draft": {"type": "string"},
                "assumptions": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["status", "draft"],
        },
        AgentType.ASSISTANT: {
            "type": "object",
            "properties": {
                "answer": {"type": "string"},
                "sources": {"type": "array", "items": {"type": "string"}},
                "confidence": {"type": "number"},
            },
            "required": ["answer"],
        },
    }

    ESCALATION_TRIGGERS: Dict[AgentType, List[str]] = {
        AgentType.AUTOMATION: ["Target system rejects the record", "Required input field is missing"],
        AgentType.AGENT: ["Case falls outside the documented procedure", "Confidence in the result is low"],
        AgentType.ASSISTANT: ["No source answers the question"],
    }

    # Per-run saving assumed for a step without audit findings
    DEFAULT_SAVING_SEC: Dict[AgentType, int] = {
        AgentType.AUTOMATION: 120,
        AgentType.AGENT: 300,
        AgentType.ASSISTANT: 90,
    }

    POTENTIAL_RANK: Dict[AutomationPotential, int] = {
        AutomationPotential.NONE: 0,
        AutomationPotential.LOW: 1,
        AutomationPotential.MEDIUM: 2,
        AutomationPotential.HIGH: 3,
    }

    def __init__(
        self,
        store: ArtifactStore,
        llm_client: Optional[ChatCompletionClient] = None,
        working_days_per_month: int = 21,
    ):
        super().__init__(store)
        self.llm_client = llm_client
        self.working_days_per_month = working_days_per_month

    @property
    def name(self) -> str:
        return "decompose"

    @property
    def dependencies(self) -> List[str]:
        return ["audit"]

    async def is_complete(self, sop_id: UUID) -> bool:
        return await self.store.get_agent_specification(sop_id) is not None

    async def run(self, sop_id: UUID, timeout: Optional[float] = None) -> StageResult:
        sop = await self.load_sop(sop_id, SOPStatus.AUDITED)
        audit = await self.store.get_waste_audit(sop_id)
        if audit is None:
            raise PreconditionError("WasteAudit is missing; run the audit first", stage=self.name, sop_id=sop_id)

        spec = await self.within_deadline(self.build_specification(sop, audit), timeout, sop_id)
        status = await self.store.save_agent_specification(spec)

        LOGGER.info(
            f"Decomposed SOP {sop_id} into {len(spec.agents)} agents, "
            f"automation level {spec.architecture.automation_level}%"
        )
        return StageResult(
            stage=self.name,
            sop_id=sop_id,
            status=status,
            artifact=spec,
            generation_source=spec.generation_source,
        )

    async def build_specification(self, sop: SOP, audit: WasteAudit) -> AgentSpecification:
        """Compute the specification for ``sop`` without storing it."""
        meta = AgentSpecMeta(sop_name=sop.meta.process_name, sop_version=sop.meta.version)
        if not sop.steps:
            return AgentSpecification(
                sop_id=sop.id,
                meta=meta,
                architecture=compute_architecture([], []),
                generation_source=GenerationSource.DETERMINISTIC,
            )

        agents: Optional[List[MicroAgent]] = None
        hybrid: List[int] = []
        source = GenerationSource.FALLBACK
        if self.llm_client is not None:
            try:
                agents, hybrid = await self._generate_agents(sop, audit)
                source = GenerationSource.AI
            except UpstreamServiceError as e:
                LOGGER.warning(f"AI decomposition unusable, using rule-based decomposition: {e}")

        if agents is None:
            agents, hybrid = self.rule_based_agents(sop, audit)

        for agent in agents:
            agent.estimated_roi = self.estimate_roi(agent, sop, audit)
            if not agent.context_required.sop_steps:
                agent.context_required.sop_steps = list(agent.automated_steps)

        return AgentSpecification(
            sop_id=sop.id,
            meta=meta,
            agents=agents,
            architecture=compute_architecture(agents, sop.step_ids, hybrid),
            flow_mermaid=self.render_flow(sop, agents),
            requirements_for_generator=self.generator_requirements(sop, agents),
            generation_source=source,
        )

    def _audit_potential(self, audit: WasteAudit, step_id: int) -> AutomationPotential:
        best = AutomationPotential.NONE
        for finding in audit.findings_for_step(step_id):
            if self.POTENTIAL_RANK[finding.automation_potential] > self.POTENTIAL_RANK[best]:
                best = finding.automation_potential
        return best

    def rule_based_agents(self, sop: SOP, audit: WasteAudit) -> Tuple[List[MicroAgent], List[int]]:
        """Group consecutive automatable steps of the same agent type into one agent.

        Returns:
            Tuple of (agents, hybrid step ids)
        """
        groups: List[Tuple[Optional[AgentType], List[SOPStep]]] = []
        hybrid: List[int] = []
        for step in sop.steps:
            nature = StepClassifier.classify(step.text)
            if nature == WorkNature.HUMAN:
                potential = self._audit_potential(audit, step.id)
                if self.POTENTIAL_RANK[potential] < self.POTENTIAL_RANK[AutomationPotential.MEDIUM]:
                    groups.append((None, [step]))
                    continue
                hybrid.append(step.id)

            agent_type = StepClassifier.agent_type(nature)
            if groups and groups[-1][0] == agent_type:
                groups[-1][1].append(step)
            else:
                groups.append((agent_type, [step]))

        agents: List[MicroAgent] = []
        used_names: Dict[str, int] = {}
        for agent_type, steps in groups:
            if agent_type is None:
                continue
            agents.append(self._build_agent(sop, agent_type, steps, hybrid, used_names))
        return agents, hybrid

    def _build_agent(
        self,
        sop: SOP,
        agent_type: AgentType,
        steps: List[SOPStep],
        hybrid: List[int],
        used_names: Dict[str, int],
    ) -> MicroAgent:
        step_ids = [s.id for s in steps]
        name = self._agent_name(steps[0], agent_type, used_names)

        integrations: List[str] = []
        for step in steps:
            for integration in StepClassifier.integrations(step.text):
                if integration not in integrations:
                    integrations.append(integration)
        if not integrations:
            integrations.append(StepClassifier.DEFAULT_INTEGRATION)

        label = "step" if len(step_ids) == 1 else "steps"
        responsibility = (
            f"{self.RESPONSIBILITY_VERB[agent_type]} {label} {', '.join(map(str, step_ids))} "
            f"of '{sop.meta.process_name}': {'; '.join(s.name for s in steps)}"
        )
        input_spec, output_spec = self.IO_SPECS[agent_type]
        triggers = list(self.ESCALATION_TRIGGERS[agent_type])
        triggers.extend(f"Step {sid} requires a human decision" for sid in step_ids if sid in hybrid)

        return MicroAgent(
            name=name,
            type=agent_type,
            responsibility=responsibility,
            input_spec=input_spec,
            output_spec=output_spec,
            input_schema={
                "type": "object",
                "properties": {
                    "sop_step": {"type": "integer", "enum": step_ids},
                    "payload": {"type": "object"},
                },
                "required": ["payload"],
            },
            output_schema=copy.deepcopy(self.OUTPUT_SCHEMAS[agent_type]),
            tools=list(self.TOOLS[agent_type]),
            integrations=integrations,
            automated_steps=step_ids,
            escalation_triggers=triggers,
            guardrails=Guardrails(**self.GUARDRAILS[agent_type]),
            context_required=ContextRequired(
                sylabus_terms=self._domain_terms(sop),
                sop_steps=step_ids,
            ),
        )

    def _agent_name(self, step: SOPStep, agent_type: AgentType, used_names: Dict[str, int]) -> str:
        words = StepClassifier.words(step.name)[:3] or ["step", str(step.id)]
        name = "".join(word.capitalize() for word in words) + self.NAME_SUFFIX[agent_type]
        used_names[name] = used_names.get(name, 0) + 1
        if used_names[name] > 1:
            name = f"{name}{used_names[name]}"
        return name

    @staticmethod
    def _domain_terms(sop: SOP) -> List[str]:
        terms = [sop.meta.process_name]
        for candidate in sop.dictionary_candidates:
            term = candidate.get("term") if isinstance(candidate, dict) else candidate
            if isinstance(term, str) and term and term not in terms:
                terms.append(term)
        return terms

    def estimate_roi(self, agent: MicroAgent, sop: SOP, audit: WasteAudit) -> EstimatedROI:
        """Savings of the agent's steps per run, scaled to a working month."""
        seconds = 0
        for step_id in agent.automated_steps:
            findings = audit.findings_for_step(step_id)
            if findings:
                seconds += sum(f.time_saving_sec for f in findings)
            else:
                seconds += self.DEFAULT_SAVING_SEC[agent.type]

        runs_per_month = sop.metrics.frequency_per_day * self.working_days_per_month
        hours = round_half_up_to(seconds * runs_per_month / 3600, 1)
        if runs_per_month:
            summary = f"~{hours}h/month saved ({seconds}s per run, {sop.metrics.frequency_per_day:g} runs/day)"
        else:
            summary = f"{seconds}s saved per run; set metrics.frequency_per_day for a monthly estimate"
        return EstimatedROI(time_saved_sec_per_run=seconds, hours_saved_per_month=hours, summary=summary)

    @staticmethod
    def _label(text: str) -> str:
        return text.replace('"', "'")

    def render_flow(self, sop: SOP, agents: List[MicroAgent]) -> str:
        """Left-to-right flow of the agents between trigger and outcome."""
        lines = ["flowchart LR", f'    trigger(["{self._label(sop.scope.trigger)}"])']
        for index, agent in enumerate(agents, start=1):
            lines.append(f'    a{index}["{self._label(agent.name)} ({agent.type.value})"]')
        lines.append(f'    outcome(["{self._label(sop.scope.outcome)}"])')
        lines.append('    human{{"Human review"}}')

        chain = ["trigger"] + [f"a{i}" for i in range(1, len(agents) + 1)] + ["outcome"]
        lines.append("    " + " --> ".join(chain))
        for index, agent in enumerate(agents, start=1):
            if agent.escalation_triggers:
                lines.append(f"    a{index} -. escalation .-> human")
        return "\n".join(lines)

    @staticmethod
    def generator_requirements(sop: SOP, agents: List[MicroAgent]) -> GeneratorRequirements:
        access: List[str] = []
        for agent in agents:
            for integration in agent.integrations:
                if integration not in access:
                    access.append(integration)

        templates = sorted({f"{agent.type.value.lower()}-master-prompt" for agent in agents})
        knowledge = [doc if isinstance(doc, str) else json.dumps(doc, ensure_ascii=False)
                     for doc in sop.knowledge_base.documents]
        if sop.knowledge_base.golden_standard:
            knowledge.append(sop.knowledge_base.golden_standard)
        return GeneratorRequirements(templates=templates, access_needed=access, knowledge_base=knowledge)

    async def _generate_agents(self, sop: SOP, audit: WasteAudit) -> Tuple[List[MicroAgent], List[int]]:
        """Ask the text-generation service for the agents.

        Raises:
            UpstreamServiceError: If the call fails or the answer does not fit the schema
        """
        contents = json.dumps(
            {
                "process_name": sop.meta.process_name,
                "department": sop.meta.department,
                "steps": [{"id": s.id, "name": s.name} for s in sop.steps],
                "waste_findings": [f.model_dump(mode="json") for f in audit.waste_identified],
            },
            ensure_ascii=False,
            indent=2,
        )
        instruction = AI_ARCHITECT_PROMPT.format(integrations=", ".join(SUPPORTED_INTEGRATIONS))
        try:
            response = await self.llm_client.generate_content(contents=contents, system_instruction=instruction)
        except APIClientError as e:
            raise UpstreamServiceError(
                f"Text-generation call failed: {e}", stage=self.name, sop_id=sop.id, original_error=e
            ) from e

        parsed = parse_json_safely(response)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("agents"), list):
            raise UpstreamServiceError("Response has no 'agents' list", stage=self.name, sop_id=sop.id)

        try:
            agents = [MicroAgent.model_validate(self._normalize(raw)) for raw in parsed["agents"]]
        except (PydanticValidationError, TypeError) as e:
            raise UpstreamServiceError(
                f"Response agents do not match the schema: {e}", stage=self.name, sop_id=sop.id, original_error=e
            ) from e

        names = [agent.name for agent in agents]
        if len(set(names)) != len(names):
            raise UpstreamServiceError("Response contains duplicate agent names", stage=self.name, sop_id=sop.id)

        known = set(sop.step_ids)
        referenced = {s for agent in agents for s in agent.automated_steps + agent.context_required.sop_steps}
        stray = sorted(referenced - known)
        if stray:
            raise UpstreamServiceError(f"Response references unknown steps {stray}", stage=self.name, sop_id=sop.id)

        hybrid = [s for s in parsed.get("hybrid_steps") or [] if isinstance(s, int) and s in known]
        return agents, hybrid

    @staticmethod
    def _normalize(raw: Any) -> Any:
        if not isinstance(raw, dict):
            return raw
        normalized = dict(raw)
        if isinstance(normalized.get("type"), str):
            normalized["type"] = normalized["type"].strip().upper()
        # The exchanged format may still carry the ROI as prose
        if not isinstance(normalized.get("estimated_roi"), dict):
            normalized.pop("estimated_roi", None)
        return normalized
