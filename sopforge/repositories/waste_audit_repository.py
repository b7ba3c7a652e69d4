"""Repository for MUDA waste audits."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sopforge.database.models import WasteAuditRecord
from sopforge.repositories.base_repository import BaseRepository
from sopforge.schemas.waste_audit import WasteAudit


class WasteAuditRepository(BaseRepository[WasteAuditRecord]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, WasteAuditRecord)

    async def get_for_sop(self, sop_id: UUID) -> Optional[WasteAudit]:
        record = await self.get_one_by(sop_id=sop_id)
        return WasteAudit.model_validate(record.payload) if record else None

    async def replace_for_sop(self, audit: WasteAudit) -> WasteAuditRecord:
        """Drop any previous audit of the SOP and insert ``audit`` in its place."""
        await self.delete_where(sop_id=audit.sop_id)
        return await self.create(
            id=audit.id,
            sop_id=audit.sop_id,
            generation_source=audit.generation_source.value,
            payload=audit.model_dump(mode="json"),
        )
