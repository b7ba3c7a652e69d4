from .enums import (
    AgentType,
    AutomationPotential,
    GenerationSource,
    MudaType,
    ReviewVerdict,
    SOPStatus,
)
from .sop import SOP, NarrativeFields, SOPStep
from .waste_audit import WasteAudit, WasteFinding
from .agent_spec import AgentSpecification, Architecture, MicroAgent
from .prompt_set import MasterPrompt, PromptReview, PromptSection, PromptSet

__all__ = [
    "AgentType",
    "AutomationPotential",
    "GenerationSource",
    "MudaType",
    "ReviewVerdict",
    "SOPStatus",
    "SOP",
    "NarrativeFields",
    "SOPStep",
    "WasteAudit",
    "WasteFinding",
    "AgentSpecification",
    "Architecture",
    "MicroAgent",
    "MasterPrompt",
    "PromptReview",
    "PromptSection",
    "PromptSet",
]
