"""Pydantic schemas for master prompts and their reviews."""

from datetime import date, datetime, timezone
from typing import Dict, List, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from sopforge.schemas.enums import GenerationSource, ReviewVerdict
from sopforge.schemas.sop import ArtifactBaseModel

# (id, name) pairs in the only order sections may appear
SECTION_ORDER: Tuple[Tuple[str, str], ...] = (
    ("role", "role"),
    ("objective", "objective"),
    ("context", "context_knowledge"),
    ("workflow", "workflow"),
    ("output", "output_schema"),
    ("guardrails", "guardrails"),
)
SECTION_NAMES: Tuple[str, ...] = tuple(name for _, name in SECTION_ORDER)


class PromptSection(BaseModel):
    id: str
    name: str
    content: str


def render_full_prompt(sections: List[PromptSection]) -> str:
    """Wrap every section in a name-delimited block and join with a blank line."""
    return "\n\n".join(f"<{s.name}>\n{s.content}\n</{s.name}>" for s in sections)


class PromptMeta(ArtifactBaseModel):
    agent_name: str
    version: str = "1.0"
    created_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    author: str = "Prompt Composer"


class MasterPrompt(ArtifactBaseModel):
    """Six-section instruction document for one microagent."""
    id: UUID = Field(default_factory=uuid4)
    meta: PromptMeta
    sections: List[PromptSection]
    full_prompt: str = ""

    @model_validator(mode="after")
    def check_sections(self) -> "MasterPrompt":
        names = tuple(s.name for s in self.sections)
        if names != SECTION_NAMES:
            raise ValueError(f"sections must be {list(SECTION_NAMES)}, got {list(names)}")

        rendered = render_full_prompt(self.sections)
        if not self.full_prompt:
            self.full_prompt = rendered
        elif self.full_prompt != rendered:
            raise ValueError("full_prompt must be derived from sections")
        return self

    def section(self, name: str) -> PromptSection:
        return self.sections[SECTION_NAMES.index(name)]


class PromptScores(BaseModel):
    completeness: int = 0
    clarity: int = 0
    consistency: int = 0
    guardrails: int = 0
    overall: int = 0


class PromptReview(BaseModel):
    """Prompt Judge outcome for one master prompt."""
    prompt_id: UUID
    agent_name: str
    scores: PromptScores
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    verdict: ReviewVerdict
    reviewed_date: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())


class PromptSet(ArtifactBaseModel):
    """Stage 4 output: one master prompt per microagent, in agent order."""
    id: UUID = Field(default_factory=uuid4)
    agent_spec_id: UUID
    sop_id: UUID
    prompts: List[MasterPrompt] = Field(default_factory=list)
    reviews: List[PromptReview] = Field(default_factory=list)
    generation_source: GenerationSource = GenerationSource.DETERMINISTIC

    @property
    def verdicts(self) -> Dict[str, ReviewVerdict]:
        return {review.agent_name: review.verdict for review in self.reviews}
