"""Shared fixtures: stores on throwaway databases and a Flask test client."""

import pytest

from dashboard.app import create_app
from periop.escalation import EscalationEngine, EscalationStore
from periop.prescription_gate import PrescriptionStore
from periop.readiness import RiskProfileStore
from periop.review_workflow import ReviewWorkflow
from periop.roles import Actor, StaffRole


@pytest.fixture
def workflow_db(tmp_path):
    return str(tmp_path / "workflow.db")


@pytest.fixture
def workflow(workflow_db):
    return ReviewWorkflow(db_path=workflow_db)


@pytest.fixture
def prescriptions(workflow_db, workflow):
    return PrescriptionStore(db_path=workflow_db)


@pytest.fixture
def risk_store(tmp_path):
    return RiskProfileStore(db_path=str(tmp_path / "risk.db"))


@pytest.fixture
def escalations(tmp_path):
    return EscalationEngine(EscalationStore(db_path=str(tmp_path / "escalations.db")))


@pytest.fixture
def anaesthetist():
    return Actor(id="U-ANA", role=StaffRole.ANAESTHETIST, name="Dr Ade")


@pytest.fixture
def consultant():
    return Actor(id="U-CON", role=StaffRole.CONSULTANT_ANAESTHETIST, name="Dr Bello")


@pytest.fixture
def pharmacist():
    return Actor(id="U-PHA", role=StaffRole.PHARMACIST, name="Pharm Chika")


@pytest.fixture
def nurse():
    return Actor(id="U-RRN", role=StaffRole.RECOVERY_ROOM_NURSE, name="Nurse Dayo")


@pytest.fixture
def theatre_manager():
    return Actor(id="U-TM", role=StaffRole.THEATRE_MANAGER, name="Mr Eze")


@pytest.fixture
def surgeon():
    return Actor(id="U-SUR", role=StaffRole.SURGEON, name="Dr Femi")


@pytest.fixture
def submit_review(workflow, anaesthetist):
    """Submit a review with a one-line prescription."""
    def _submit(surgery_id="S-100", medications=None, **kwargs):
        if medications is None:
            medications = [{"name": "Midazolam", "dose": "2mg", "route": "IV"}]
        return workflow.submit(
            anaesthetist,
            surgery_id=surgery_id,
            patient_id=kwargs.pop("patient_id", "P-100"),
            medications=medications,
            **kwargs,
        )
    return _submit


@pytest.fixture
def app(tmp_path):
    return create_app({
        "TESTING": True,
        "WORKFLOW_DB_PATH": str(tmp_path / "api_workflow.db"),
        "RISK_DB_PATH": str(tmp_path / "api_risk.db"),
        "ESCALATION_DB_PATH": str(tmp_path / "api_escalations.db"),
    })


@pytest.fixture
def client(app):
    return app.test_client()
