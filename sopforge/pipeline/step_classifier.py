"""Keyword classifier for the nature of work in a SOP step.

Shared by the rule-based waste audit and agent decomposition. Step text is
folded to lowercase ASCII first, so Polish and English vocabulary match the
same stems ("Wyślij" and "wyslij" are the same word here).
"""

import re
import unicodedata
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sopforge.schemas.enums import AgentType, AutomationPotential, MudaType


class WorkNature(str, Enum):
    TRANSFORM = "transform"
    REASONING = "reasoning"
    RETRIEVAL = "retrieval"
    HUMAN = "human"


class StepClassifier:
    """Maps step wording onto work nature, agent type and integrations."""

    # Checked in this order; the first nature with a matching stem wins
    NATURE_KEYWORDS: Tuple[Tuple[WorkNature, Tuple[str, ...]], ...] = (
        (WorkNature.HUMAN, (
            "negocj", "negotiat", "zatwierdz", "approv", "podpis", "sign",
            "spotkan", "meeting", "rozmow", "call", "decyz", "decid", "akceptuj",
        )),
        (WorkNature.TRANSFORM, (
            "otworz", "open", "wyslij", "send", "kopiuj", "copy", "przepisz",
            "export", "eksport", "import", "zapisz", "save", "upload", "wgraj",
            "pobierz", "download", "wprowadz", "enter", "archiwiz", "archive",
            "zaktualizuj", "update", "przenies", "move", "wystaw", "generuj", "generate",
        )),
        (WorkNature.RETRIEVAL, (
            "znajdz", "find", "szukaj", "search", "wyszukaj", "odpowiedz", "answer",
            "sprawdz", "check", "zweryfikuj", "verify", "przejrzyj", "review", "lookup",
        )),
        (WorkNature.REASONING, (
            "przygotuj", "prepare", "analizuj", "analyz", "analys", "ocen", "assess",
            "draft", "napisz", "write", "oblicz", "calculat", "zaplanuj", "plan",
            "porownaj", "compare", "wycen", "price", "ofert", "quote",
        )),
    )

    AGENT_TYPE_BY_NATURE: Dict[WorkNature, AgentType] = {
        WorkNature.TRANSFORM: AgentType.AUTOMATION,
        WorkNature.REASONING: AgentType.AGENT,
        WorkNature.RETRIEVAL: AgentType.ASSISTANT,
        # Human steps handed over anyway are supported by an assistant
        WorkNature.HUMAN: AgentType.ASSISTANT,
    }

    POTENTIAL_BY_NATURE: Dict[WorkNature, AutomationPotential] = {
        WorkNature.TRANSFORM: AutomationPotential.HIGH,
        WorkNature.REASONING: AutomationPotential.MEDIUM,
        WorkNature.RETRIEVAL: AutomationPotential.MEDIUM,
        WorkNature.HUMAN: AutomationPotential.LOW,
    }

    # Most likely waste per nature of work
    MUDA_BY_NATURE: Dict[WorkNature, MudaType] = {
        WorkNature.TRANSFORM: MudaType.TRANSPORT,
        WorkNature.REASONING: MudaType.OVERPROCESSING,
        WorkNature.RETRIEVAL: MudaType.MOTION,
        WorkNature.HUMAN: MudaType.WAITING,
    }

    # Stem -> integration from the supported catalogue
    INTEGRATION_KEYWORDS: Tuple[Tuple[str, str], ...] = (
        ("mail", "SendGrid"),
        ("wyslij", "SendGrid"),
        ("send", "SendGrid"),
        ("faktur", "Stripe"),
        ("invoice", "Stripe"),
        ("platnos", "Stripe"),
        ("payment", "Stripe"),
        ("spotkan", "Fireflies"),
        ("meeting", "Fireflies"),
        ("nagran", "Fireflies"),
        ("recording", "Fireflies"),
        ("dokument", "Google Workspace"),
        ("document", "Google Workspace"),
        ("arkusz", "Google Workspace"),
        ("sheet", "Google Workspace"),
        ("kalendarz", "Google Workspace"),
        ("calendar", "Google Workspace"),
        ("crm", "Coda"),
        ("tabel", "Coda"),
        ("table", "Coda"),
        ("baza", "Coda"),
        ("deploy", "Railway"),
        ("wdroz", "Railway"),
        ("serwer", "Komodo"),
        ("server", "Komodo"),
    )
    DEFAULT_INTEGRATION = "Coda"

    _FOLD_TABLE = str.maketrans({"ł": "l", "Ł": "l"})

    @classmethod
    def fold(cls, text: str) -> str:
        """Lowercase and strip diacritics."""
        if not text:
            return ""
        decomposed = unicodedata.normalize("NFKD", text.translate(cls._FOLD_TABLE))
        stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
        return re.sub(r"\s+", " ", stripped.lower()).strip()

    @classmethod
    def words(cls, text: str) -> List[str]:
        return re.findall(r"[a-z0-9]+", cls.fold(text))

    @classmethod
    def _match(cls, text: str, stems: Tuple[str, ...]) -> Optional[str]:
        for word in cls.words(text):
            for stem in stems:
                if word.startswith(stem):
                    return stem
        return None

    @classmethod
    def classify(cls, text: str) -> WorkNature:
        """Return the nature of work described by ``text``.

        Unrecognised wording is treated as reasoning work.
        """
        for nature, stems in cls.NATURE_KEYWORDS:
            if cls._match(text, stems):
                return nature
        return WorkNature.REASONING

    @classmethod
    def agent_type(cls, nature: WorkNature) -> AgentType:
        return cls.AGENT_TYPE_BY_NATURE[nature]

    @classmethod
    def automation_potential(cls, nature: WorkNature) -> AutomationPotential:
        return cls.POTENTIAL_BY_NATURE[nature]

    @classmethod
    def integrations(cls, text: str) -> List[str]:
        """Integrations suggested by the step wording, in catalogue match order."""
        found: List[str] = []
        words = cls.words(text)
        for stem, integration in cls.INTEGRATION_KEYWORDS:
            if integration not in found and any(word.startswith(stem) for word in words):
                found.append(integration)
        return found
