from sopforge.pipeline.step_classifier import StepClassifier, WorkNature
from sopforge.schemas.enums import AgentType, AutomationPotential


class TestStepClassifier:

    def test_fold_strips_polish_diacritics(self):
        assert StepClassifier.fold("Wyślij ZAŁĄCZNIK  do klienta") == "wyslij zalacznik do klienta"
        assert StepClassifier.fold("") == ""

    def test_classify_polish_and_english(self):
        assert StepClassifier.classify("Otwórz CRM") == WorkNature.TRANSFORM
        assert StepClassifier.classify("Send the invoice") == WorkNature.TRANSFORM
        assert StepClassifier.classify("Przygotuj ofertę") == WorkNature.REASONING
        assert StepClassifier.classify("Sprawdź stan magazynu") == WorkNature.RETRIEVAL
        assert StepClassifier.classify("Negocjuj warunki z klientem") == WorkNature.HUMAN

    def test_human_wording_wins_over_transform(self):
        assert StepClassifier.classify("Approve and send the contract") == WorkNature.HUMAN

    def test_unknown_wording_is_reasoning(self):
        assert StepClassifier.classify("Lorem ipsum") == WorkNature.REASONING

    def test_agent_type_and_potential(self):
        assert StepClassifier.agent_type(WorkNature.TRANSFORM) == AgentType.AUTOMATION
        assert StepClassifier.agent_type(WorkNature.REASONING) == AgentType.AGENT
        assert StepClassifier.agent_type(WorkNature.RETRIEVAL) == AgentType.ASSISTANT
        assert StepClassifier.automation_potential(WorkNature.TRANSFORM) == AutomationPotential.HIGH
        assert StepClassifier.automation_potential(WorkNature.HUMAN) == AutomationPotential.LOW

    def test_integrations(self):
        assert StepClassifier.integrations("Otwórz CRM") == ["Coda"]
        assert StepClassifier.integrations("Wyślij fakturę mailem") == ["SendGrid", "Stripe"]
        assert StepClassifier.integrations("Przygotuj ofertę") == []
