"""Stage 5: Prompt Judge review of the composed master prompts."""

import json
from dataclasses import dataclass
from statistics import mean
from typing import List, Optional
from uuid import UUID

from sopforge.core.base_stage import BaseStage, StageResult
from sopforge.core.exceptions import ArtifactNotFoundError, PreconditionError
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.agent_spec import MicroAgent
from sopforge.schemas.enums import GenerationSource, ReviewVerdict, SOPStatus
from sopforge.schemas.prompt_set import MasterPrompt, PromptReview, PromptScores, render_full_prompt
from sopforge.utils.logging import get_logger
from sopforge.utils.rounding import percentage, round_half_up

LOGGER = get_logger(__name__)


@dataclass
class Check:
    passed: bool
    issue: str
    suggestion: str


def _score(checks: List[Check]) -> int:
    return percentage(sum(1 for c in checks if c.passed), len(checks))


class PromptJudge(BaseStage):
    """Scores master prompts on completeness, clarity, consistency and guardrails.

    Reviews are attached to the prompt set and replace earlier ones; they do
    not move the SOP status. Finalizing is a separate, explicit action.
    """

    MIN_SECTION_CHARS = 20
    MAX_SECTION_CHARS = 4000

    def __init__(
        self,
        store: ArtifactStore,
        pass_threshold: int = 85,
        revision_threshold: int = 70,
    ):
        super().__init__(store)
        self.pass_threshold = pass_threshold
        self.revision_threshold = revision_threshold

    @property
    def name(self) -> str:
        return "review"

    @property
    def dependencies(self) -> List[str]:
        return ["compose_prompts"]

    async def is_complete(self, sop_id: UUID) -> bool:
        spec = await self.store.get_agent_specification(sop_id)
        if spec is None:
            return False
        prompt_set = await self.store.get_prompt_set(spec.id)
        return bool(prompt_set and prompt_set.reviews)

    async def run(self, sop_id: UUID, agent_spec_id: UUID, timeout: Optional[float] = None) -> StageResult:
        sop = await self.load_sop(sop_id, SOPStatus.PROMPT_GENERATED)
        spec = await self.store.get_agent_specification_by_id(agent_spec_id)
        if spec is None:
            raise ArtifactNotFoundError(
                f"AgentSpecification {agent_spec_id} does not exist", stage=self.name, sop_id=sop_id
            )
        prompt_set = await self.store.get_prompt_set(agent_spec_id)
        if prompt_set is None:
            raise PreconditionError("PromptSet is missing; compose prompts first", stage=self.name, sop_id=sop_id)

        reviews = []
        for prompt in prompt_set.prompts:
            agent = next((a for a in spec.agents if a.name == prompt.meta.agent_name), None)
            reviews.append(self.review_prompt(prompt, agent))
        prompt_set.reviews = reviews
        await self.store.save_prompt_reviews(prompt_set)

        LOGGER.info(f"Reviewed {len(reviews)} prompts for SOP {sop_id}: {[r.verdict.value for r in reviews]}")
        return StageResult(
            stage=self.name,
            sop_id=sop_id,
            status=sop.status,
            artifact=prompt_set,
            generation_source=GenerationSource.DETERMINISTIC,
        )

    def verdict_for(self, overall: int) -> ReviewVerdict:
        if overall >= self.pass_threshold:
            return ReviewVerdict.PASS
        if overall >= self.revision_threshold:
            return ReviewVerdict.NEEDS_REVISION
        return ReviewVerdict.FAIL

    def review_prompt(self, prompt: MasterPrompt, agent: Optional[MicroAgent]) -> PromptReview:
        """Score one prompt against the agent it was composed for."""
        groups = {
            "completeness": self._completeness(prompt),
            "clarity": self._clarity(prompt),
            "consistency": self._consistency(prompt, agent),
            "guardrails": self._guardrails(agent),
        }
        scores = {name: _score(checks) for name, checks in groups.items()}
        overall = round_half_up(mean(scores.values()))
        failed = [check for checks in groups.values() for check in checks if not check.passed]

        return PromptReview(
            prompt_id=prompt.id,
            agent_name=prompt.meta.agent_name,
            scores=PromptScores(overall=overall, **scores),
            issues=[check.issue for check in failed],
            suggestions=[check.suggestion for check in failed],
            verdict=self.verdict_for(overall),
        )

    def _completeness(self, prompt: MasterPrompt) -> List[Check]:
        checks = [
            Check(
                bool(section.content.strip()),
                f"Section '{section.name}' is empty",
                f"Fill in the '{section.name}' section",
            )
            for section in prompt.sections
        ]
        objective = prompt.section("objective").content.lower()
        checks.append(Check(
            "escalate" in objective,
            "Objective does not state when to escalate",
            "Add the escalation obligation to the objective",
        ))
        checks.append(Check(
            "step" in prompt.section("context_knowledge").content.lower(),
            "Context does not reference any SOP step",
            "List the SOP steps the agent covers",
        ))
        return checks

    def _clarity(self, prompt: MasterPrompt) -> List[Check]:
        checks = []
        for section in prompt.sections:
            length = len(section.content.strip())
            checks.append(Check(
                self.MIN_SECTION_CHARS <= length <= self.MAX_SECTION_CHARS,
                f"Section '{section.name}' has {length} characters",
                f"Keep '{section.name}' between {self.MIN_SECTION_CHARS} and {self.MAX_SECTION_CHARS} characters",
            ))
        return checks

    def _consistency(self, prompt: MasterPrompt, agent: Optional[MicroAgent]) -> List[Check]:
        checks = [Check(
            prompt.full_prompt == render_full_prompt(prompt.sections),
            "full_prompt does not match its sections",
            "Regenerate full_prompt from the sections",
        )]
        if agent is None:
            checks.append(Check(False, "Prompt has no matching agent", "Recompose prompts for the current agents"))
            return checks

        checks.append(Check(
            agent.name in prompt.section("role").content,
            "Role does not name the agent",
            f"Mention {agent.name} in the role section",
        ))
        try:
            schema = json.loads(prompt.section("output_schema").content)
        except ValueError:
            schema = None
        checks.append(Check(
            schema == agent.output_schema,
            "Output schema differs from the agent specification",
            "Copy output_schema verbatim from the agent",
        ))
        workflow = prompt.section("workflow").content
        missing = [i for i in agent.integrations if i not in workflow]
        checks.append(Check(
            not missing,
            f"Workflow omits integrations {missing}",
            "Name every integration in the workflow",
        ))
        return checks

    @staticmethod
    def _guardrails(agent: Optional[MicroAgent]) -> List[Check]:
        if agent is None:
            return [Check(False, "Guardrails cannot be checked without the agent", "Recompose prompts")]
        return [
            Check(
                bool(agent.guardrails.banned_actions),
                "No banned actions defined",
                "List the actions the agent must never take",
            ),
            Check(
                bool(agent.escalation_triggers),
                "No escalation triggers defined",
                "Define when the agent hands over to a human",
            ),
            Check(
                agent.guardrails.max_retries > 0,
                "max_retries is 0",
                "Allow at least one retry",
            ),
            Check(
                agent.guardrails.timeout_sec > 0,
                "timeout_sec is 0",
                "Set a positive timeout",
            ),
        ]
