"""Artifact Store: keyed, transactional persistence for the pipeline artifacts.

Every write runs in its own transaction, so an artifact is either fully
replaced together with the SOP status change or left exactly as it was.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sopforge.core.database import DatabaseClient
from sopforge.core.exceptions import ArtifactNotFoundError, PersistenceError, PreconditionError
from sopforge.repositories.agent_spec_repository import AgentSpecificationRepository
from sopforge.repositories.prompt_set_repository import PromptSetRepository
from sopforge.repositories.sop_repository import SOPRepository
from sopforge.repositories.waste_audit_repository import WasteAuditRepository
from sopforge.schemas.agent_spec import AgentSpecification
from sopforge.schemas.enums import SOPStatus
from sopforge.schemas.prompt_set import PromptSet
from sopforge.schemas.sop import SOP
from sopforge.schemas.waste_audit import WasteAudit
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def check_step_references(
    sop: SOP,
    referenced: Iterable[int],
    stage: str,
) -> None:
    """Raise PreconditionError if any referenced step id is not a step of ``sop``."""
    known = set(sop.step_ids)
    unknown = sorted(set(referenced) - known)
    if unknown:
        raise PreconditionError(
            f"Step ids {unknown} are outside the SOP step range 1..{len(known)}",
            stage=stage,
            sop_id=sop.id,
        )


class ArtifactStore:
    """Create/read/replace access to SOPs and their descendant artifacts."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @classmethod
    def from_database(cls, client: DatabaseClient) -> "ArtifactStore":
        return cls(client.session_maker)

    @asynccontextmanager
    async def _transaction(self, stage: str, sop_id: Optional[UUID] = None) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                LOGGER.error(f"Artifact store write failed during {stage} for SOP {sop_id}: {e}", exc_info=True)
                raise PersistenceError(
                    f"Failed to persist {stage} artifact", stage=stage, sop_id=sop_id, original_error=e
                ) from e

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    @staticmethod
    async def _load_sop(session: AsyncSession, sop_id: UUID, stage: str) -> SOP:
        sop = await SOPRepository(session).get_sop(sop_id)
        if sop is None:
            raise ArtifactNotFoundError(f"SOP {sop_id} does not exist", stage=stage, sop_id=sop_id)
        return sop

    @staticmethod
    async def _advance_status(session: AsyncSession, sop: SOP, target: SOPStatus) -> SOPStatus:
        """Move the SOP status forward to ``target``; never backward."""
        if sop.status.at_least(target):
            return sop.status
        await SOPRepository(session).set_status(sop.id, target)
        LOGGER.info(f"SOP {sop.id} status {sop.status.value} -> {target.value}")
        return target

    # SOP

    async def create_sop(self, sop: SOP) -> SOP:
        async with self._transaction("ingest", sop.id) as session:
            await SOPRepository(session).add_sop(sop)
        return sop

    async def get_sop(self, sop_id: UUID) -> Optional[SOP]:
        async with self._reader() as session:
            return await SOPRepository(session).get_sop(sop_id)

    async def require_sop(self, sop_id: UUID, stage: str) -> SOP:
        async with self._reader() as session:
            return await self._load_sop(session, sop_id, stage)

    async def replace_sop_steps(self, sop: SOP) -> SOP:
        """Store edited steps, refusing edits that orphan downstream references."""
        async with self._transaction("update_steps", sop.id) as session:
            stored = await self._load_sop(session, sop.id, "update_steps")
            audit = await WasteAuditRepository(session).get_for_sop(sop.id)
            if audit:
                check_step_references(sop, audit.referenced_step_ids, "update_steps")
            spec = await AgentSpecificationRepository(session).get_for_sop(sop.id)
            if spec:
                check_step_references(sop, spec.referenced_step_ids, "update_steps")
            sop.status = stored.status
            await SOPRepository(session).replace_sop(sop)
        return sop

    async def list_sops(self, status: SOPStatus, limit: int = 200) -> List[SOP]:
        async with self._reader() as session:
            return await SOPRepository(session).list_by_status(status, limit=limit)

    async def set_status(self, sop_id: UUID, status: SOPStatus, stage: str) -> SOPStatus:
        """Advance the status (used by the explicit finalize action)."""
        async with self._transaction(stage, sop_id) as session:
            sop = await self._load_sop(session, sop_id, stage)
            return await self._advance_status(session, sop, status)

    async def reset_status(self, sop_id: UUID, target: SOPStatus) -> SOPStatus:
        """Move the status backward and delete artifacts of the stages after ``target``."""
        async with self._transaction("reset", sop_id) as session:
            sop = await self._load_sop(session, sop_id, "reset")
            if target.rank < SOPStatus.PROMPT_GENERATED.rank:
                await PromptSetRepository(session).delete_where(sop_id=sop_id)
            if target.rank < SOPStatus.SPEC_GENERATED.rank:
                await AgentSpecificationRepository(session).delete_where(sop_id=sop_id)
            if target.rank < SOPStatus.AUDITED.rank:
                await WasteAuditRepository(session).delete_where(sop_id=sop_id)
            await SOPRepository(session).set_status(sop_id, target)
            LOGGER.info(f"SOP {sop_id} reset {sop.status.value} -> {target.value}")
        return target

    # WasteAudit

    async def get_waste_audit(self, sop_id: UUID) -> Optional[WasteAudit]:
        async with self._reader() as session:
            return await WasteAuditRepository(session).get_for_sop(sop_id)

    async def save_waste_audit(self, audit: WasteAudit) -> SOPStatus:
        """Replace the SOP's audit and advance it to AUDITED."""
        async with self._transaction("audit", audit.sop_id) as session:
            sop = await self._load_sop(session, audit.sop_id, "audit")
            check_step_references(sop, audit.referenced_step_ids, "audit")
            await WasteAuditRepository(session).replace_for_sop(audit)
            return await self._advance_status(session, sop, SOPStatus.AUDITED)

    # AgentSpecification

    async def get_agent_specification(self, sop_id: UUID) -> Optional[AgentSpecification]:
        async with self._reader() as session:
            return await AgentSpecificationRepository(session).get_for_sop(sop_id)

    async def get_agent_specification_by_id(self, agent_spec_id: UUID) -> Optional[AgentSpecification]:
        async with self._reader() as session:
            return await AgentSpecificationRepository(session).get_spec(agent_spec_id)

    async def save_agent_specification(self, spec: AgentSpecification) -> SOPStatus:
        """Replace the SOP's specification (and its stale prompts), advance to SPEC_GENERATED."""
        async with self._transaction("decompose", spec.sop_id) as session:
            sop = await self._load_sop(session, spec.sop_id, "decompose")
            check_step_references(sop, spec.referenced_step_ids, "decompose")
            await PromptSetRepository(session).delete_where(sop_id=spec.sop_id)
            await AgentSpecificationRepository(session).replace_for_sop(spec)
            return await self._advance_status(session, sop, SOPStatus.SPEC_GENERATED)

    # PromptSet

    async def get_prompt_set(self, agent_spec_id: UUID) -> Optional[PromptSet]:
        async with self._reader() as session:
            return await PromptSetRepository(session).get_for_agent_spec(agent_spec_id)

    async def save_prompt_set(self, prompt_set: PromptSet) -> SOPStatus:
        """Replace the prompt set of the specification and advance to PROMPT_GENERATED."""
        async with self._transaction("compose_prompts", prompt_set.sop_id) as session:
            sop = await self._load_sop(session, prompt_set.sop_id, "compose_prompts")
            spec = await AgentSpecificationRepository(session).get_spec(prompt_set.agent_spec_id)
            if spec is None:
                raise ArtifactNotFoundError(
                    f"AgentSpecification {prompt_set.agent_spec_id} does not exist",
                    stage="compose_prompts",
                    sop_id=sop.id,
                )
            await PromptSetRepository(session).replace_for_agent_spec(prompt_set)
            return await self._advance_status(session, sop, SOPStatus.PROMPT_GENERATED)

    async def save_prompt_reviews(self, prompt_set: PromptSet) -> PromptSet:
        async with self._transaction("review", prompt_set.sop_id) as session:
            record = await PromptSetRepository(session).update_payload(prompt_set)
            if record is None:
                raise ArtifactNotFoundError(
                    f"PromptSet {prompt_set.id} does not exist", stage="review", sop_id=prompt_set.sop_id
                )
        return prompt_set
