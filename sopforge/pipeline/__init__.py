"""Transformation pipeline - narrative to SOP, audit, microagents and master prompts."""

from .controller import PipelineController
from .ingestion import NarrativeIngestor
from .waste_audit import WasteAuditor
from .agent_decomposition import AgentDecomposer
from .prompt_composition import PromptComposer
from .prompt_review import PromptJudge

__all__ = [
    "PipelineController",
    "NarrativeIngestor",
    "WasteAuditor",
    "AgentDecomposer",
    "PromptComposer",
    "PromptJudge",
]
