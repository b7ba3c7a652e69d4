"""Repository layer modules."""

from sopforge.repositories.agent_spec_repository import AgentSpecificationRepository
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.repositories.prompt_set_repository import PromptSetRepository
from sopforge.repositories.sop_repository import SOPRepository
from sopforge.repositories.waste_audit_repository import WasteAuditRepository

__all__ = [
    "AgentSpecificationRepository",
    "ArtifactStore",
    "PromptSetRepository",
    "SOPRepository",
    "WasteAuditRepository",
]
