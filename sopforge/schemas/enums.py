"""Enumerations shared by the pipeline artifacts."""

from enum import Enum
from typing import List


class SOPStatus(str, Enum):
    """Pipeline stage marker stored on the SOP. Declaration order is stage order."""
    GENERATED = "GENERATED"
    AUDITED = "AUDITED"
    SPEC_GENERATED = "SPEC_GENERATED"
    PROMPT_GENERATED = "PROMPT_GENERATED"
    FINALIZED = "FINALIZED"

    @property
    def rank(self) -> int:
        return list(SOPStatus).index(self)

    def at_least(self, other: "SOPStatus") -> bool:
        return self.rank >= other.rank

    @classmethod
    def ordered(cls) -> List["SOPStatus"]:
        return list(cls)


class MudaType(str, Enum):
    """The seven canonical categories of process waste."""
    TRANSPORT = "Transport"
    INVENTORY = "Inventory"
    MOTION = "Motion"
    WAITING = "Waiting"
    OVERPRODUCTION = "Overproduction"
    OVERPROCESSING = "Overprocessing"
    DEFECTS = "Defects"


class AutomationPotential(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentType(str, Enum):
    """Microagent kind, chosen by the nature of the work it takes over."""
    ASSISTANT = "ASSISTANT"
    AGENT = "AGENT"
    AUTOMATION = "AUTOMATION"


class GenerationSource(str, Enum):
    """Where an artifact's content came from."""
    AI = "ai"
    FALLBACK = "fallback"
    DETERMINISTIC = "deterministic"


class ReviewVerdict(str, Enum):
    PASS = "PASS"
    NEEDS_REVISION = "NEEDS_REVISION"
    FAIL = "FAIL"


SUPPORTED_INTEGRATIONS = (
    "Coda",
    "Google Workspace",
    "Fireflies",
    "Railway",
    "Komodo",
    "SendGrid",
    "Stripe",
)
