"""Pipeline Controller: stage gating for the transformation pipeline.

The controller is the only entry point callers need. It serialises stage
runs per SOP, applies the default caller deadline and exposes the explicit
actions (finalize, step editing, reset) that sit outside automatic stage
execution.
"""

import asyncio
import weakref
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import UUID, uuid4

from sopforge.core.base_stage import BaseStage, ProgressCallback, StageResult, StageStatus
from sopforge.core.config import Settings, settings as default_settings
from sopforge.core.database import DatabaseClient
from sopforge.core.exceptions import ArtifactNotFoundError, PreconditionError, ValidationError
from sopforge.core.llm_client import ChatCompletionClient, create_llm_client_from_settings
from sopforge.pipeline.agent_decomposition import AgentDecomposer
from sopforge.pipeline.ingestion import NarrativeIngestor, build_steps, split_transcript
from sopforge.pipeline.prompt_composition import PromptComposer
from sopforge.pipeline.prompt_review import PromptJudge
from sopforge.pipeline.waste_audit import WasteAuditor
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.enums import ReviewVerdict, SOPStatus
from sopforge.schemas.sop import NarrativeFields, SOPStep
from sopforge.utils.logging import get_logger, set_log_level

LOGGER = get_logger(__name__)

StepsInput = Union[str, Sequence[str], Sequence[SOPStep], Sequence[Dict[str, Any]]]


def bump_minor_version(version: str) -> str:
    """'1.0' -> '1.1'; versions without a numeric minor part get '.1' appended."""
    major, _, minor = (version or "1").partition(".")
    if minor.isdigit():
        return f"{major}.{int(minor) + 1}"
    return f"{version or '1'}.1"


class PipelineController:
    """Runs pipeline stages for explicitly identified SOPs.

    Different SOPs are processed concurrently without coordination; stages
    of one SOP never overlap.
    """

    def __init__(
        self,
        store: ArtifactStore,
        llm_client: Optional[ChatCompletionClient] = None,
        app_settings: Optional[Settings] = None,
    ):
        config = (app_settings or default_settings).pipeline
        self.store = store
        self.llm_client = llm_client
        self.default_timeout = config.stage_timeout_seconds
        self.database: Optional[DatabaseClient] = None

        self.ingestor = NarrativeIngestor(store)
        self.auditor = WasteAuditor(store, llm_client, max_steps=config.audit_max_steps)
        self.decomposer = AgentDecomposer(store, llm_client, working_days_per_month=config.working_days_per_month)
        self.composer = PromptComposer(
            store,
            workers=config.prompt_workers,
            author=config.prompt_author,
            version=config.prompt_version,
        )
        self.judge = PromptJudge(
            store,
            pass_threshold=config.review_pass_threshold,
            revision_threshold=config.review_revision_threshold,
        )
        # Entries disappear once no stage holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    @classmethod
    async def from_settings(cls, app_settings: Optional[Settings] = None) -> "PipelineController":
        """Connect the database, create the schema and build the text-generation client."""
        app_settings = app_settings or default_settings
        set_log_level(app_settings.log_level)
        database = DatabaseClient.from_settings(app_settings.db)
        await database.connect()
        await database.init_schema()

        controller = cls(
            ArtifactStore.from_database(database),
            llm_client=create_llm_client_from_settings(app_settings.llm),
            app_settings=app_settings,
        )
        controller.database = database
        return controller

    async def close(self) -> None:
        if self.database is not None:
            await self.database.disconnect()

    @property
    def stages(self) -> List[BaseStage]:
        return [self.ingestor, self.auditor, self.decomposer, self.composer, self.judge]

    def _lock(self, sop_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(sop_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[sop_id] = lock
        return lock

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.default_timeout

    async def _spec_owner(self, agent_spec_id: UUID, stage: str) -> UUID:
        spec = await self.store.get_agent_specification_by_id(agent_spec_id)
        if spec is None:
            raise ArtifactNotFoundError(f"AgentSpecification {agent_spec_id} does not exist", stage=stage)
        return spec.sop_id

    # Automated stages

    async def ingest(
        self,
        fields: Union[NarrativeFields, Dict[str, Any]],
        transcript: Optional[str] = None,
    ) -> StageResult:
        """Stage 1: create a SOP from the narrative. Returns the SOP with status GENERATED."""
        return await self.ingestor.execute(uuid4(), fields, transcript)

    async def audit(
        self,
        sop_id: UUID,
        max_steps: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> StageResult:
        """Stage 2: (re)build the WasteAudit of the SOP."""
        async with self._lock(sop_id):
            return await self.auditor.execute(sop_id, max_steps=max_steps, timeout=self._timeout(timeout))

    async def decompose(self, sop_id: UUID, timeout: Optional[float] = None) -> StageResult:
        """Stage 3: (re)build the AgentSpecification; requires an audited SOP."""
        async with self._lock(sop_id):
            return await self.decomposer.execute(sop_id, timeout=self._timeout(timeout))

    async def compose_prompts(
        self,
        agent_spec_id: UUID,
        progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> StageResult:
        """Stage 4: (re)build the PromptSet of an agent specification."""
        sop_id = await self._spec_owner(agent_spec_id, self.composer.name)
        async with self._lock(sop_id):
            return await self.composer.execute(
                sop_id, agent_spec_id, progress=progress, timeout=self._timeout(timeout)
            )

    async def review_prompts(self, agent_spec_id: UUID, timeout: Optional[float] = None) -> StageResult:
        """Stage 5: score the prompts of an agent specification."""
        sop_id = await self._spec_owner(agent_spec_id, self.judge.name)
        async with self._lock(sop_id):
            return await self.judge.execute(sop_id, agent_spec_id, timeout=self._timeout(timeout))

    async def run_pipeline(
        self,
        fields: Union[NarrativeFields, Dict[str, Any]],
        transcript: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> List[StageResult]:
        """Run every automated stage for a new SOP and return the results in stage order."""
        results = [await self.ingest(fields, transcript)]
        sop_id = results[0].sop_id
        results.append(await self.audit(sop_id, timeout=timeout))
        results.append(await self.decompose(sop_id, timeout=timeout))
        agent_spec_id = results[-1].artifact.id
        results.append(await self.compose_prompts(agent_spec_id, progress=progress, timeout=timeout))
        results.append(await self.review_prompts(agent_spec_id, timeout=timeout))
        return results

    # Explicit actions

    async def finalize(self, sop_id: UUID, force: bool = False) -> StageResult:
        """Mark reviewed prompts as accepted, moving the SOP to FINALIZED.

        Raises:
            PreconditionError: If prompts are missing, or a review failed and ``force`` is False
        """
        stage = "finalize"
        async with self._lock(sop_id):
            sop = await self.store.require_sop(sop_id, stage)
            if not sop.status.at_least(SOPStatus.PROMPT_GENERATED):
                raise PreconditionError(
                    f"SOP status {sop.status.value} is before {SOPStatus.PROMPT_GENERATED.value}",
                    stage=stage,
                    sop_id=sop_id,
                )
            spec = await self.store.get_agent_specification(sop_id)
            prompt_set = await self.store.get_prompt_set(spec.id) if spec else None
            if prompt_set is None:
                raise PreconditionError("PromptSet is missing", stage=stage, sop_id=sop_id)

            failed = [name for name, verdict in prompt_set.verdicts.items() if verdict == ReviewVerdict.FAIL]
            if failed and not force:
                raise PreconditionError(f"Prompts failed review: {failed}", stage=stage, sop_id=sop_id)
            if failed:
                LOGGER.warning(f"Finalizing SOP {sop_id} despite failed reviews: {failed}")

            status = await self.store.set_status(sop_id, SOPStatus.FINALIZED, stage)
        return StageResult(stage=stage, sop_id=sop_id, status=status, artifact=prompt_set)

    async def update_steps(self, sop_id: UUID, steps: StepsInput) -> StageResult:
        """Replace the SOP steps, renumbering them 1..n and bumping the minor version.

        Status is kept. Downstream artifacts are left as they are, so the edit
        is refused when they reference steps that would no longer exist.
        """
        stage = "update_steps"
        async with self._lock(sop_id):
            sop = await self.store.require_sop(sop_id, stage)
            if sop.status == SOPStatus.FINALIZED:
                raise PreconditionError("SOP is finalized; reset it before editing steps", stage=stage, sop_id=sop_id)

            sop.steps = self._coerce_steps(steps, sop_id)
            sop.meta.version = bump_minor_version(sop.meta.version)
            sop.meta.updated_date = datetime.now(timezone.utc).date()
            await self.store.replace_sop_steps(sop)

        LOGGER.info(f"Updated SOP {sop_id} to {len(sop.steps)} steps, version {sop.meta.version}")
        return StageResult(stage=stage, sop_id=sop_id, status=sop.status, artifact=sop)

    @staticmethod
    def _coerce_steps(steps: StepsInput, sop_id: UUID) -> List[SOPStep]:
        if isinstance(steps, str):
            return build_steps(split_transcript(steps))

        coerced: List[SOPStep] = []
        for item in steps:
            if isinstance(item, str):
                if item.strip():
                    coerced.append(SOPStep(id=len(coerced) + 1, name=item.strip(), actions=[item]))
                continue
            if isinstance(item, dict):
                try:
                    item = SOPStep.model_validate({**item, "id": len(coerced) + 1})
                except ValueError as e:
                    # pydantic's ValidationError is a ValueError
                    raise ValidationError(f"Invalid step {item!r}: {e}", stage="update_steps", sop_id=sop_id) from e
            if not isinstance(item, SOPStep):
                raise ValidationError(f"Unsupported step value {item!r}", stage="update_steps", sop_id=sop_id)
            coerced.append(item.model_copy(update={"id": len(coerced) + 1}))
        return coerced

    async def reset_status(self, sop_id: UUID, target: SOPStatus) -> StageResult:
        """Move the SOP back to ``target`` and drop the artifacts of later stages."""
        stage = "reset"
        async with self._lock(sop_id):
            sop = await self.store.require_sop(sop_id, stage)
            if target.rank > sop.status.rank:
                raise PreconditionError(
                    f"Cannot reset forward from {sop.status.value} to {target.value}",
                    stage=stage,
                    sop_id=sop_id,
                )
            status = await self.store.reset_status(sop_id, target)
        return StageResult(stage=stage, sop_id=sop_id, status=status, artifact=None)

    async def describe_stages(self, sop_id: Optional[UUID] = None) -> List[Dict[str, Any]]:
        """List the stages with their dependencies and, for ``sop_id``, completion."""
        described = []
        for stage in self.stages:
            entry: Dict[str, Any] = {"name": stage.name, "dependencies": stage.dependencies}
            if sop_id is not None:
                done = await stage.is_complete(sop_id)
                entry["status"] = (StageStatus.COMPLETED if done else StageStatus.NOT_STARTED).value
            described.append(entry)
        return described
