"""Repository for master prompt sets."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.database.models import PromptSetRecord
from sopforge.repositories.base_repository import BaseRepository
from sopforge.schemas.prompt_set import PromptSet


class PromptSetRepository(BaseRepository[PromptSetRecord]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, PromptSetRecord)

    async def get_for_agent_spec(self, agent_spec_id: UUID) -> Optional[PromptSet]:
        record = await self.get_one_by(agent_spec_id=agent_spec_id)
        return PromptSet.model_validate(record.payload) if record else None

    async def replace_for_agent_spec(self, prompt_set: PromptSet) -> PromptSetRecord:
        """Drop every prompt set of the SOP and insert ``prompt_set``.

        Sets built for an earlier specification of the same SOP are stale
        once a new one exists, so they go too.
        """
        await self.delete_where(sop_id=prompt_set.sop_id)
        return await self.create(
            id=prompt_set.id,
            agent_spec_id=prompt_set.agent_spec_id,
            sop_id=prompt_set.sop_id,
            payload=prompt_set.model_dump(mode="json"),
        )

    async def update_payload(self, prompt_set: PromptSet) -> Optional[PromptSetRecord]:
        """Overwrite the body of an existing set (used when attaching reviews)."""
        record = await self.get_by_id(prompt_set.id)
        if record is None:
            return None
        record.payload = prompt_set.model_dump(mode="json")
        await self.session.flush()
        return record
