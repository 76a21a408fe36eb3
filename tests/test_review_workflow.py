"""Tests for the pre-anesthetic review state machine."""

import threading
from datetime import date, timedelta

import pytest

from periop.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from periop.prescription_gate import PrescriptionStatus, is_visible
from periop.review_workflow import AuditAction, ReviewStatus
from periop.roles import Actor, StaffRole

ATROPINE = {
    "medications": [{"name": "Atropine", "dose": "0.5mg", "route": "IV"}],
    "urgency": "urgent",
}


def test_submit_creates_review_and_pending_prescription(workflow, prescriptions, submit_review):
    submission = submit_review()

    assert submission.review.status == ReviewStatus.SUBMITTED.value
    assert submission.prescription.status == PrescriptionStatus.PENDING_APPROVAL.value
    assert not is_visible(submission.prescription)
    assert prescriptions.list_visible() == []
    assert workflow.get_decision(submission.review.id) is None


def test_submit_requires_surgery_and_patient(workflow, anaesthetist):
    with pytest.raises(ValidationError):
        workflow.submit(anaesthetist, surgery_id="", patient_id="P-1")
    with pytest.raises(ValidationError):
        workflow.submit(anaesthetist, surgery_id="S-1", patient_id=None)
    assert workflow.list_reviews() == []


def test_submit_role_gate(workflow, pharmacist):
    with pytest.raises(AuthorizationError):
        workflow.submit(pharmacist, surgery_id="S-1", patient_id="P-1")


def test_approve_opens_gate(workflow, prescriptions, consultant, submit_review):
    submission = submit_review()

    result = workflow.approve(submission.review.id, consultant, notes="Proceed")

    assert result.review.status == ReviewStatus.APPROVED.value
    assert result.review.decided_by == consultant.id
    assert result.opened_prescription_ids == [submission.prescription.id]
    assert result.decision.decision == ReviewStatus.APPROVED.value
    assert result.decision.actor_role == StaffRole.CONSULTANT_ANAESTHETIST.value

    visible = prescriptions.list_visible()
    assert [p.id for p in visible] == [submission.prescription.id]
    assert visible[0].approved_by == consultant.id


def test_approve_role_gate(workflow, anaesthetist, surgeon, submit_review):
    """Only consultants, admins and theatre managers may approve."""
    submission = submit_review()

    for actor in (anaesthetist, surgeon):
        with pytest.raises(AuthorizationError):
            workflow.approve(submission.review.id, actor)
    assert workflow.get_review(submission.review.id).status == ReviewStatus.SUBMITTED.value


def test_theatre_manager_may_approve(workflow, theatre_manager, submit_review):
    submission = submit_review()
    result = workflow.approve(submission.review.id, theatre_manager)
    assert result.review.status == ReviewStatus.APPROVED.value


def test_second_approve_conflicts(workflow, prescriptions, consultant, submit_review):
    submission = submit_review()
    workflow.approve(submission.review.id, consultant)

    with pytest.raises(ConflictError):
        workflow.approve(submission.review.id, consultant)
    assert len(prescriptions.list_visible()) == 1


def test_reject_after_approve_conflicts(workflow, prescriptions, consultant, submit_review):
    submission = submit_review()
    workflow.approve(submission.review.id, consultant)

    with pytest.raises(ConflictError):
        workflow.reject(submission.review.id, consultant, "Wrong dose", ATROPINE)
    assert len(prescriptions.list_for_review(submission.review.id)) == 1


def test_unknown_review(workflow, consultant):
    with pytest.raises(NotFoundError):
        workflow.approve("REV-NOPE", consultant)
    with pytest.raises(NotFoundError):
        workflow.get_review("REV-NOPE")


def test_concurrent_approvals_exactly_one_wins(workflow, prescriptions, submit_review):
    """Two consultants approving at once: one succeeds, one conflicts."""
    submission = submit_review()
    approvers = [
        Actor(id="U-C1", role=StaffRole.CONSULTANT_ANAESTHETIST),
        Actor(id="U-C2", role=StaffRole.CONSULTANT_ANAESTHETIST),
    ]
    barrier = threading.Barrier(len(approvers))
    outcomes = []

    def approve(actor):
        barrier.wait()
        try:
            workflow.approve(submission.review.id, actor)
            outcomes.append("approved")
        except ConflictError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=approve, args=(a,)) for a in approvers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["approved", "conflict"]
    assert len(prescriptions.list_visible()) == 1
    decision = workflow.get_decision(submission.review.id)
    assert decision.actor_id == workflow.get_review(submission.review.id).decided_by


def test_reject_with_replacement(workflow, prescriptions, consultant, submit_review):
    submission = submit_review()
    original_id = submission.prescription.id

    result = workflow.reject(submission.review.id, consultant, "Dose too high", ATROPINE)

    assert result.review.status == ReviewStatus.REJECTED_WITH_CORRECTION.value
    assert result.decision.reason == "Dose too high"
    assert result.decision.replacement_prescription_id == result.new_prescription.id
    assert result.superseded_ids == [original_id]

    visible = prescriptions.list_visible()
    assert [p.id for p in visible] == [result.new_prescription.id]
    assert visible[0].medications[0].name == "Atropine"
    assert visible[0].urgency == "urgent"
    assert visible[0].replaces_id == original_id

    original = prescriptions.get_prescription(original_id)
    assert original.superseded_by == result.new_prescription.id
    assert original.status == PrescriptionStatus.PENDING_APPROVAL.value
    assert not is_visible(original)


@pytest.mark.parametrize("reason,corrected", [
    ("", ATROPINE),
    ("   ", ATROPINE),
    ("Dose too high", {"medications": []}),
    ("Dose too high", None),
    ("Dose too high", {"medications": [{"name": "Atropine"}]}),
    ("Dose too high", {"medications": [{"name": "", "dose": "0.5mg"}]}),
    ("Dose too high", {"medications": [{"name": "", "dose": ""}, {"name": "Atropine", "dose": " "}]}),
    ("Dose too high", {"medications": [{"name": "Atropine", "dose": "0.5mg", "quantity": "two"}]}),
    ("Dose too high", {"medications": [{"name": 42, "dose": "0.5mg"}]}),
    ("Dose too high", {"medications": "Atropine 0.5mg"}),
    ("Dose too high", {"medications": ATROPINE["medications"], "urgency": "whenever"}),
])
def test_reject_validation_writes_nothing(workflow, prescriptions, consultant, submit_review,
                                          reason, corrected):
    submission = submit_review()
    audit_before = workflow.get_audit_log(submission.review.id)

    with pytest.raises(ValidationError):
        workflow.reject(submission.review.id, consultant, reason, corrected)

    assert workflow.get_review(submission.review.id).status == ReviewStatus.SUBMITTED.value
    assert workflow.get_decision(submission.review.id) is None
    assert len(prescriptions.list_for_review(submission.review.id)) == 1
    assert workflow.get_audit_log(submission.review.id) == audit_before


def test_reject_without_original_prescription(workflow, prescriptions, consultant, anaesthetist):
    submission = workflow.submit(anaesthetist, surgery_id="S-9", patient_id="P-9")
    assert submission.prescription is None

    result = workflow.reject(submission.review.id, consultant, "Needs premed", ATROPINE)
    assert result.superseded_ids == []
    assert result.new_prescription.replaces_id is None
    assert [p.id for p in prescriptions.list_visible()] == [result.new_prescription.id]


def test_reject_accepts_dosage_key(workflow, prescriptions, consultant, submit_review):
    submission = submit_review()

    result = workflow.reject(
        submission.review.id, consultant, "dosage error",
        {"medications": [{"name": "Atropine", "dosage": "0.5mg"}]},
    )

    assert result.review.status == ReviewStatus.REJECTED_WITH_CORRECTION.value
    assert result.new_prescription.medications[0].dose == "0.5mg"
    assert [p.id for p in prescriptions.list_visible()] == [result.new_prescription.id]


def test_reject_drops_incomplete_medication_rows(workflow, consultant, submit_review):
    """Blank form rows are ignored as long as one complete line remains."""
    submission = submit_review()

    result = workflow.reject(
        submission.review.id, consultant, "Dose too high",
        {"medications": [
            {"name": "Atropine", "dose": "0.5mg"},
            {"name": "", "dose": ""},
            {"name": "Glycopyrrolate", "dose": ""},
        ]},
    )

    assert [m.name for m in result.new_prescription.medications] == ["Atropine"]


def test_submit_rejects_malformed_quantity(workflow, submit_review):
    with pytest.raises(ValidationError):
        submit_review(medications=[{"name": "Midazolam", "dose": "2mg", "quantity": "two"}])
    assert workflow.list_reviews() == []


def test_concurrent_approve_and_reject_exactly_one_wins(workflow, prescriptions, submit_review):
    """An approve racing a reject leaves one decision and one terminal state."""
    submission = submit_review()
    review_id = submission.review.id
    approver = Actor(id="U-C1", role=StaffRole.CONSULTANT_ANAESTHETIST)
    rejecter = Actor(id="U-C2", role=StaffRole.CONSULTANT_ANAESTHETIST)
    barrier = threading.Barrier(2)
    outcomes = []

    def approve():
        barrier.wait()
        try:
            workflow.approve(review_id, approver)
            outcomes.append("approved")
        except ConflictError:
            outcomes.append("conflict")

    def reject():
        barrier.wait()
        try:
            workflow.reject(review_id, rejecter, "Dose too high", ATROPINE)
            outcomes.append("rejected")
        except ConflictError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=approve), threading.Thread(target=reject)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("conflict") == 1
    winner = next(o for o in outcomes if o != "conflict")

    review = workflow.get_review(review_id)
    decision = workflow.get_decision(review_id)
    visible = prescriptions.list_visible()
    assert len(visible) == 1
    if winner == "approved":
        assert review.status == ReviewStatus.APPROVED.value
        assert decision.actor_id == approver.id
        assert visible[0].id == submission.prescription.id
        assert len(prescriptions.list_for_review(review_id)) == 1
    else:
        assert review.status == ReviewStatus.REJECTED_WITH_CORRECTION.value
        assert decision.actor_id == rejecter.id
        assert visible[0].replaces_id == submission.prescription.id
        assert len(prescriptions.list_for_review(review_id)) == 2


def test_failed_approve_rolls_back(workflow, prescriptions, consultant, submit_review, monkeypatch):
    """A failure after the status claim leaves no approved review with a closed gate."""
    submission = submit_review()
    audit_before = workflow.get_audit_log(submission.review.id)

    def broken_open_gate(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("periop.review_workflow.workflow.open_gate", broken_open_gate)
    with pytest.raises(RuntimeError):
        workflow.approve(submission.review.id, consultant)

    assert workflow.get_review(submission.review.id).status == ReviewStatus.SUBMITTED.value
    assert workflow.get_decision(submission.review.id) is None
    assert prescriptions.list_visible() == []
    assert workflow.get_audit_log(submission.review.id) == audit_before

    monkeypatch.undo()
    result = workflow.approve(submission.review.id, consultant)
    assert result.opened_prescription_ids == [submission.prescription.id]


def test_failed_reject_rolls_back(workflow, prescriptions, consultant, submit_review, monkeypatch):
    submission = submit_review()

    def broken_supersede(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr("periop.review_workflow.workflow.supersede", broken_supersede)
    with pytest.raises(RuntimeError):
        workflow.reject(submission.review.id, consultant, "Dose too high", ATROPINE)

    assert workflow.get_review(submission.review.id).status == ReviewStatus.SUBMITTED.value
    assert workflow.get_decision(submission.review.id) is None
    assert [p.id for p in prescriptions.list_for_review(submission.review.id)] == [
        submission.prescription.id
    ]
    assert prescriptions.list_visible() == []


def test_late_arrival_flagged_after_deadline(workflow, prescriptions, consultant, submit_review):
    """Approving after 18:00 the day before surgery marks the prescription late."""
    submission = submit_review(scheduled_surgery_date=date.today() - timedelta(days=1))
    workflow.approve(submission.review.id, consultant)

    prescription = prescriptions.get_prescription(submission.prescription.id)
    assert prescription.is_late_arrival is True
    assert prescription.approval_deadline is not None


def test_timely_approval_not_late(workflow, prescriptions, consultant, submit_review):
    submission = submit_review(scheduled_surgery_date=(date.today() + timedelta(days=7)).isoformat())
    workflow.approve(submission.review.id, consultant)

    prescription = prescriptions.get_prescription(submission.prescription.id)
    assert prescription.is_late_arrival is False


def test_audit_log_records_each_step(workflow, consultant, submit_review):
    submission = submit_review()
    workflow.reject(submission.review.id, consultant, "Dose too high", ATROPINE)

    actions = [entry.action for entry in workflow.get_audit_log(submission.review.id)]
    assert actions[:2] == [AuditAction.REVIEW_SUBMITTED.value, AuditAction.PRESCRIPTION_CREATED.value]
    assert AuditAction.SUPERSEDED.value in actions
    assert actions[-1] == AuditAction.REVIEW_REJECTED.value


def test_list_reviews_filters(workflow, consultant, submit_review):
    a = submit_review(surgery_id="S-A")
    submit_review(surgery_id="S-B")
    workflow.approve(a.review.id, consultant)

    assert [r.id for r in workflow.list_reviews(status="approved")] == [a.review.id]
    assert [r.id for r in workflow.list_reviews(status="APPROVED")] == [a.review.id]
    assert len(workflow.list_reviews(status=ReviewStatus.SUBMITTED)) == 1
    assert [r.surgery_id for r in workflow.list_reviews(surgery_id="S-B")] == ["S-B"]
    with pytest.raises(ValidationError):
        workflow.list_reviews(status="pending")
