"""Unit tests for the waste audit summary derivation."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from sopforge.schemas.enums import AutomationPotential, MudaType
from sopforge.schemas.waste_audit import WasteAudit, WasteAuditSummary, WasteFinding


def _finding(step_id, seconds, potential):
    return WasteFinding(
        step_id=step_id,
        muda_type=MudaType.MOTION,
        problem="p",
        kaizen_proposal="k",
        time_saving_sec=seconds,
        automation_potential=potential,
    )


def test_summary_is_derived_from_findings():
    audit = WasteAudit(
        sop_id=uuid4(),
        waste_identified=[
            _finding(1, 90, AutomationPotential.HIGH),
            _finding(2, 60, AutomationPotential.NONE),
            _finding(2, 0, AutomationPotential.LOW),
        ],
    )

    assert audit.summary.total_muda_count == 3
    # 150 s -> 2.5 min rounds half up
    assert audit.summary.total_potential_saving_min == 3
    assert audit.summary.automation_score == 67
    assert audit.referenced_step_ids == [1, 2]
    assert len(audit.findings_for_step(2)) == 2


def test_supplied_summary_is_replaced():
    audit = WasteAudit.model_validate({
        "sop_id": str(uuid4()),
        "waste_identified": [],
        "summary": {"total_muda_count": 9, "total_potential_saving_min": 9, "automation_score": 90},
    })
    assert audit.summary == WasteAuditSummary()


def test_negative_saving_is_rejected():
    with pytest.raises(ValidationError):
        _finding(1, -5, AutomationPotential.LOW)


def test_unknown_muda_type_is_rejected():
    with pytest.raises(ValidationError):
        WasteFinding(step_id=1, muda_type="Talent", problem="p", kaizen_proposal="k")
