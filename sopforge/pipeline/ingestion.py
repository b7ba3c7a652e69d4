"""Stage 1: turn pre-questions and a transcript into an initial SOP."""

import re
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sopforge.core.base_stage import BaseStage, StageResult
from sopforge.core.exceptions import ValidationError
from sopforge.schemas.enums import GenerationSource, SOPStatus
from sopforge.schemas.sop import SOP, NarrativeFields, SOPMeta, SOPScope, SOPStep
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Control characters other than tab, CR and LF mark a binary or corrupted paste
_MALFORMED_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_transcript(transcript: Optional[str]) -> List[str]:
    """Split a transcript into its non-blank lines, exactly as authored."""
    if not transcript:
        return []
    return [line for line in _LINE_BREAK.split(transcript) if line.strip()]


def build_steps(lines: List[str]) -> List[SOPStep]:
    return [
        SOPStep(id=position, name=line.strip(), actions=[line])
        for position, line in enumerate(lines, start=1)
    ]


class NarrativeIngestor(BaseStage):
    """Creates the root SOP artifact.

    Each non-blank transcript line becomes one step, in authored order. An
    empty transcript produces a SOP without steps, which later stages treat
    as a no-op.
    """

    @property
    def name(self) -> str:
        return "ingest"

    @property
    def dependencies(self) -> List[str]:
        return []

    async def is_complete(self, sop_id: UUID) -> bool:
        return await self.store.get_sop(sop_id) is not None

    @staticmethod
    def coerce_fields(fields: Union[NarrativeFields, Dict[str, Any]]) -> NarrativeFields:
        if isinstance(fields, NarrativeFields):
            return fields
        return NarrativeFields.model_validate(fields)

    def build_sop(
        self,
        sop_id: UUID,
        fields: NarrativeFields,
        transcript: Optional[str] = None,
    ) -> SOP:
        """Validate the narrative and build the SOP without storing it.

        Raises:
            ValidationError: If a required field is empty or the transcript is malformed
        """
        missing = fields.missing_fields()
        if missing:
            raise ValidationError(
                f"Missing required narrative fields: {', '.join(missing)}",
                stage=self.name,
                sop_id=sop_id,
            )
        if transcript is not None and not isinstance(transcript, str):
            raise ValidationError(
                f"Transcript must be text, got {type(transcript).__name__}",
                stage=self.name,
                sop_id=sop_id,
            )
        if transcript and _MALFORMED_CHARS.search(transcript):
            raise ValidationError("Transcript contains control characters", stage=self.name, sop_id=sop_id)

        steps = build_steps(split_transcript(transcript))
        return SOP(
            id=sop_id,
            meta=SOPMeta(
                process_name=fields.process_name,
                department=fields.department,
                role=fields.role,
                owner=fields.owner or fields.role,
            ),
            purpose=fields.description,
            scope=SOPScope(trigger=fields.trigger, outcome=fields.outcome),
            steps=steps,
            status=SOPStatus.GENERATED,
        )

    async def run(
        self,
        sop_id: UUID,
        fields: Union[NarrativeFields, Dict[str, Any]],
        transcript: Optional[str] = None,
    ) -> StageResult:
        try:
            narrative = self.coerce_fields(fields)
        except ValueError as e:
            # pydantic's ValidationError is a ValueError
            raise ValidationError(f"Invalid narrative fields: {e}", stage=self.name, sop_id=sop_id) from e

        sop = self.build_sop(sop_id, narrative, transcript)
        await self.store.create_sop(sop)
        LOGGER.info(f"Ingested SOP {sop.id} '{sop.meta.process_name}' with {len(sop.steps)} steps")

        return StageResult(
            stage=self.name,
            sop_id=sop.id,
            status=sop.status,
            artifact=sop,
            generation_source=GenerationSource.DETERMINISTIC,
        )
