"""Repository for agent specifications."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.database.models import AgentSpecificationRecord
from sopforge.repositories.base_repository import BaseRepository
from sopforge.schemas.agent_spec import AgentSpecification


class AgentSpecificationRepository(BaseRepository[AgentSpecificationRecord]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, AgentSpecificationRecord)

    @staticmethod
    def to_schema(record: AgentSpecificationRecord) -> AgentSpecification:
        return AgentSpecification.model_validate(record.payload)

    async def get_spec(self, spec_id: UUID) -> Optional[AgentSpecification]:
        record = await self.get_by_id(spec_id)
        return self.to_schema(record) if record else None

    async def get_for_sop(self, sop_id: UUID) -> Optional[AgentSpecification]:
        record = await self.get_one_by(sop_id=sop_id)
        return self.to_schema(record) if record else None

    async def replace_for_sop(self, spec: AgentSpecification) -> AgentSpecificationRecord:
        """Drop any previous specification of the SOP and insert ``spec``."""
        await self.delete_where(sop_id=spec.sop_id)
        return await self.create(
            id=spec.id,
            sop_id=spec.sop_id,
            generation_source=spec.generation_source.value,
            payload=spec.model_dump(mode="json", by_alias=True),
        )
