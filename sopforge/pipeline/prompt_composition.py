"""Stage 4: compose a six-section master prompt for every microagent."""

import asyncio
import json
from typing import Callable, List, Optional
from uuid import UUID

from sopforge.core.base_stage import BaseStage, ProgressCallback, StageResult
from sopforge.core.exceptions import ArtifactNotFoundError, PreconditionError
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.agent_spec import AgentSpecification, MicroAgent
from sopforge.schemas.enums import GenerationSource, SOPStatus
from sopforge.schemas.prompt_set import SECTION_ORDER, MasterPrompt, PromptMeta, PromptSection, PromptSet
from sopforge.schemas.sop import SOP
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _bullets(items: List[str], empty: str = "- (none)") -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


class PromptComposer(BaseStage):
    """Builds master prompts from fixed templates.

    Composition is deterministic, so the same specification always yields the
    same sections. Agents are composed concurrently in worker threads; the set
    keeps the specification's agent order.
    """

    def __init__(
        self,
        store: ArtifactStore,
        workers: int = 4,
        author: str = "Prompt Composer",
        version: str = "1.0",
    ):
        super().__init__(store)
        self.workers = max(workers, 1)
        self.author = author
        self.version = version

    @property
    def name(self) -> str:
        return "compose_prompts"

    @property
    def dependencies(self) -> List[str]:
        return ["decompose"]

    async def is_complete(self, sop_id: UUID) -> bool:
        spec = await self.store.get_agent_specification(sop_id)
        if spec is None:
            return False
        return await self.store.get_prompt_set(spec.id) is not None

    async def run(
        self,
        sop_id: UUID,
        agent_spec_id: UUID,
        progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> StageResult:
        sop = await self.load_sop(sop_id, SOPStatus.SPEC_GENERATED)
        spec = await self.store.get_agent_specification_by_id(agent_spec_id)
        if spec is None:
            raise ArtifactNotFoundError(
                f"AgentSpecification {agent_spec_id} does not exist", stage=self.name, sop_id=sop_id
            )
        if spec.sop_id != sop.id:
            raise PreconditionError(
                f"AgentSpecification {agent_spec_id} belongs to SOP {spec.sop_id}", stage=self.name, sop_id=sop_id
            )

        prompts = await self.within_deadline(self.compose_all(sop, spec, progress), timeout, sop_id)
        prompt_set = PromptSet(
            agent_spec_id=spec.id,
            sop_id=sop.id,
            prompts=prompts,
            generation_source=GenerationSource.DETERMINISTIC,
        )
        status = await self.store.save_prompt_set(prompt_set)

        LOGGER.info(f"Composed {len(prompts)} master prompts for SOP {sop_id}")
        return StageResult(
            stage=self.name,
            sop_id=sop_id,
            status=status,
            artifact=prompt_set,
            generation_source=prompt_set.generation_source,
        )

    async def compose_all(
        self,
        sop: SOP,
        spec: AgentSpecification,
        progress: Optional[ProgressCallback] = None,
    ) -> List[MasterPrompt]:
        """Compose every agent's prompt, at most ``workers`` at a time."""
        semaphore = asyncio.Semaphore(self.workers)
        total = len(spec.agents)
        done = 0

        async def compose_one(agent: MicroAgent) -> MasterPrompt:
            nonlocal done
            async with semaphore:
                prompt = await asyncio.to_thread(self.compose_prompt, sop, agent)
            done += 1
            if progress:
                progress(self.name, done, total)
            return prompt

        return list(await asyncio.gather(*(compose_one(agent) for agent in spec.agents)))

    def compose_prompt(self, sop: SOP, agent: MicroAgent) -> MasterPrompt:
        builders: List[Callable[[SOP, MicroAgent], str]] = [
            self._role,
            self._objective,
            self._context_knowledge,
            self._workflow,
            self._output_schema,
            self._guardrails,
        ]
        sections = [
            PromptSection(id=section_id, name=name, content=build(sop, agent))
            for (section_id, name), build in zip(SECTION_ORDER, builders)
        ]
        return MasterPrompt(
            meta=PromptMeta(agent_name=agent.name, version=self.version, author=self.author),
            sections=sections,
        )

    @staticmethod
    def _role(sop: SOP, agent: MicroAgent) -> str:
        return (
            f"You are {agent.name}, a {agent.type.value} microagent in the process "
            f"'{sop.meta.process_name}' ({sop.meta.department}).\n"
            f"Responsibility: {agent.responsibility}"
        )

    @staticmethod
    def _objective(sop: SOP, agent: MicroAgent) -> str:
        escalate_to = sop.meta.owner or sop.meta.role
        return (
            f"Input: {agent.input_spec or 'as provided by the previous step'}\n"
            f"Output: {agent.output_spec or 'as defined in output_schema'}\n"
            f"If you cannot complete the task within these rules, stop and escalate to {escalate_to} "
            f"instead of guessing.\n"
            f"Escalate when:\n{_bullets(agent.escalation_triggers)}"
        )

    @staticmethod
    def _context_knowledge(sop: SOP, agent: MicroAgent) -> str:
        step_lines = []
        for step_id in agent.context_required.sop_steps or agent.automated_steps:
            step = sop.get_step(step_id)
            step_lines.append(f"Step {step_id}: {step.name}" if step else f"Step {step_id}")
        return (
            f"Domain terms:\n{_bullets(agent.context_required.sylabus_terms)}\n"
            f"SOP steps:\n{_bullets(step_lines)}"
        )

    @staticmethod
    def _workflow(sop: SOP, agent: MicroAgent) -> str:
        integrations = ", ".join(agent.integrations) if agent.integrations else "no external systems"
        return (
            "1. Validate input: check the request against the input contract and reject incomplete data.\n"
            f"2. Apply business logic: {agent.responsibility}, using {integrations}.\n"
            "3. Emit output or escalate: return JSON matching output_schema, or escalate with the reason."
        )

    @staticmethod
    def _output_schema(sop: SOP, agent: MicroAgent) -> str:
        return json.dumps(agent.output_schema, indent=2, ensure_ascii=False)

    @staticmethod
    def _guardrails(sop: SOP, agent: MicroAgent) -> str:
        return (
            f"Never:\n{_bullets(agent.guardrails.banned_actions)}\n"
            f"Max retries: {agent.guardrails.max_retries}\n"
            f"Timeout: {agent.guardrails.timeout_sec}s"
        )
