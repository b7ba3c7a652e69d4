"""Repository for SOP records."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.database.models import SOPRecord
from sopforge.repositories.base_repository import BaseRepository
from sopforge.schemas.enums import SOPStatus
from sopforge.schemas.sop import SOP


class SOPRepository(BaseRepository[SOPRecord]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, SOPRecord)

    @staticmethod
    def to_schema(record: SOPRecord) -> SOP:
        sop = SOP.model_validate(record.payload)
        # The status column is authoritative over the payload copy
        sop.status = SOPStatus(record.status)
        return sop

    async def get_sop(self, sop_id: UUID) -> Optional[SOP]:
        record = await self.get_by_id(sop_id)
        return self.to_schema(record) if record else None

    async def add_sop(self, sop: SOP) -> SOPRecord:
        return await self.create(
            id=sop.id,
            process_name=sop.meta.process_name,
            department=sop.meta.department,
            status=sop.status.value,
            payload=sop.to_payload(),
        )

    async def replace_sop(self, sop: SOP) -> Optional[SOPRecord]:
        """Overwrite the stored SOP body and status."""
        record = await self.get_by_id(sop.id)
        if record is None:
            return None
        record.process_name = sop.meta.process_name
        record.department = sop.meta.department
        record.status = sop.status.value
        record.payload = sop.to_payload()
        await self.session.flush()
        return record

    async def set_status(self, sop_id: UUID, status: SOPStatus) -> Optional[SOPRecord]:
        record = await self.get_by_id(sop_id)
        if record is None:
            return None
        record.status = status.value
        payload = dict(record.payload)
        payload["status"] = status.value
        record.payload = payload
        await self.session.flush()
        return record

    async def list_by_status(self, status: SOPStatus, limit: int = 200) -> List[SOP]:
        records = await self.get_all(limit=limit, filters={"status": status.value})
        return [self.to_schema(record) for record in records]
