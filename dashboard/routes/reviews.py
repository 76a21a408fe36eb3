"""Pre-anesthetic review routes for the dashboard."""

import logging

from flask import Blueprint, current_app, request

from periop.review_workflow import ReviewWorkflow
from dashboard.services.actor import get_actor_from_request
from dashboard.utils.api_response import api_success

logger = logging.getLogger(__name__)

reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")


def _get_review_workflow():
    """Get the review workflow, initializing if needed."""
    if not hasattr(current_app, "review_workflow"):
        current_app.review_workflow = ReviewWorkflow(
            db_path=current_app.config.get("WORKFLOW_DB_PATH")
        )
    return current_app.review_workflow


@reviews_bp.route("", methods=["POST"])
def api_submit():
    """Submit a review, with its proposed prescription if any."""
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    prescription = data.get("prescription") or {}

    submission = _get_review_workflow().submit(
        actor,
        surgery_id=data.get("surgery_id"),
        patient_id=data.get("patient_id"),
        patient_name=data.get("patient_name"),
        folder_number=data.get("folder_number"),
        scheduled_surgery_date=data.get("scheduled_surgery_date"),
        asa_class=data.get("asa_class"),
        proposed_anesthesia_type=data.get("proposed_anesthesia_type"),
        risk_profile_id=data.get("risk_profile_id"),
        assessment=data.get("assessment"),
        medications=prescription.get("medications"),
        urgency=prescription.get("urgency"),
        special_instructions=prescription.get("special_instructions"),
    )
    return api_success(data=submission.to_dict(), status_code=201)


@reviews_bp.route("")
def api_list():
    """List reviews, filtered by status and/or surgery."""
    reviews = _get_review_workflow().list_reviews(
        status=request.args.get("status"),
        surgery_id=request.args.get("surgery_id"),
        limit=request.args.get("limit", 100, type=int),
    )
    return api_success(data=[r.to_dict() for r in reviews])


@reviews_bp.route("/<review_id>")
def api_get(review_id):
    """A review together with its decision, if decided."""
    workflow = _get_review_workflow()
    review = workflow.get_review(review_id)
    decision = workflow.get_decision(review_id)
    return api_success(data={
        "review": review.to_dict(),
        "decision": decision.to_dict() if decision else None,
    })


@reviews_bp.route("/<review_id>/audit")
def api_audit(review_id):
    workflow = _get_review_workflow()
    workflow.get_review(review_id)
    return api_success(data=[e.to_dict() for e in workflow.get_audit_log(review_id)])


@reviews_bp.route("/<review_id>/approve", methods=["POST"])
def api_approve(review_id):
    """Approve a submitted review. 409 if it was already decided."""
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    result = _get_review_workflow().approve(review_id, actor, notes=data.get("notes"))
    return api_success(data=result.to_dict(), message="Review approved")


@reviews_bp.route("/<review_id>/reject", methods=["POST"])
def api_reject(review_id):
    """Reject with a corrected prescription.

    Body: {"reason": ..., "corrected_prescription": {"medications": [...], "urgency": ...}}
    """
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    result = _get_review_workflow().reject(
        review_id,
        actor,
        reason=data.get("reason"),
        corrected_prescription=data.get("corrected_prescription"),
    )
    return api_success(data=result.to_dict(), message="Review rejected with correction")
