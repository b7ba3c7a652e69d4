"""Base stage interface for all transformation pipeline stages."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar
from uuid import UUID

from sopforge.core.exceptions import AppError, PipelineError, PreconditionError, StageTimeoutError
from sopforge.repositories.artifact_store import ArtifactStore
from sopforge.schemas.enums import GenerationSource, SOPStatus
from sopforge.schemas.sop import SOP
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

# (stage name, completed units, total units)
ProgressCallback = Callable[[str, int, int], None]


class StageStatus(Enum):
    NOT_STARTED = "not_started"
    COMPLETED = "completed"


@dataclass
class StageResult:
    """Standard result from stage execution: the artifact plus the SOP status after it."""
    stage: str
    sop_id: UUID
    status: SOPStatus
    artifact: Any
    generation_source: Optional[GenerationSource] = None


class BaseStage(ABC):
    """Base class for pipeline stages.

    ``execute`` is the template: it runs the stage-specific ``run`` and turns
    anything that is not already an ``AppError`` into a ``PipelineError``
    carrying the stage name and SOP id.
    """

    def __init__(self, store: ArtifactStore):
        self.store = store
        self.logger = LOGGER

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage name (ingest, audit, etc.)."""
        pass

    @property
    @abstractmethod
    def dependencies(self) -> List[str]:
        """Stages that must complete before this one."""
        pass

    @abstractmethod
    async def is_complete(self, sop_id: UUID) -> bool:
        """Check if the stage artifact exists for the SOP."""
        pass

    @abstractmethod
    async def run(self, sop_id: UUID, *args, **kwargs) -> StageResult:
        """Compute and persist the stage artifact."""
        pass

    async def execute(self, sop_id: UUID, *args, **kwargs) -> StageResult:
        """Execute the stage with standardized logging and error wrapping.

        Raises:
            PipelineError: If the stage fails; subclasses identify the cause
        """
        self.logger.info(f"Stage '{self.name}' started for SOP {sop_id}")
        try:
            result = await self.run(sop_id, *args, **kwargs)
        except AppError as e:
            self.logger.warning(f"Stage '{self.name}' failed for SOP {sop_id}: {e}")
            raise
        except Exception as e:
            self.logger.error(
                f"Stage '{self.name}' crashed for SOP {sop_id}: {str(e)}",
                exc_info=True,
                extra={"stage": self.name},
            )
            raise PipelineError(
                f"Stage execution failed: {str(e)}", stage=self.name, sop_id=sop_id, original_error=e
            ) from e

        self.logger.info(
            f"Stage '{self.name}' finished for SOP {sop_id} "
            f"(status={result.status.value}, source={getattr(result.generation_source, 'value', None)})"
        )
        return result

    async def load_sop(self, sop_id: UUID, min_status: SOPStatus = SOPStatus.GENERATED) -> SOP:
        """Load the SOP and check it is ready for this stage.

        Raises:
            ArtifactNotFoundError: If the SOP does not exist
            PreconditionError: If the SOP is behind ``min_status`` or already finalized
        """
        sop = await self.store.require_sop(sop_id, self.name)
        if sop.status == SOPStatus.FINALIZED:
            raise PreconditionError(
                "SOP is finalized; reset it before re-running automated stages",
                stage=self.name,
                sop_id=sop_id,
            )
        if not sop.status.at_least(min_status):
            raise PreconditionError(
                f"SOP status {sop.status.value} is before required {min_status.value}",
                stage=self.name,
                sop_id=sop_id,
            )
        return sop

    async def within_deadline(self, work: Awaitable[T], timeout: Optional[float], sop_id: UUID) -> T:
        """Await ``work``, aborting it when the caller deadline expires."""
        if timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=timeout)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Stage '{self.name}' exceeded {timeout}s deadline for SOP {sop_id}")
            raise StageTimeoutError(
                f"Stage did not finish within {timeout}s", stage=self.name, sop_id=sop_id, original_error=e
            ) from e
