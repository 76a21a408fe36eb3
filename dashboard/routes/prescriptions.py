"""Pharmacy routes for the dashboard.

Only approved_for_packing prescriptions are listed; the remaining routes
drive the packing and dispensing state machine.
"""

import logging

from flask import Blueprint, current_app, request

from periop.prescription_gate import PrescriptionStore
from dashboard.services.actor import get_actor_from_request
from dashboard.utils.api_response import api_success

logger = logging.getLogger(__name__)

prescriptions_bp = Blueprint("prescriptions", __name__, url_prefix="/api/prescriptions")


def _get_prescription_store():
    """Get the prescription store, initializing if needed."""
    if not hasattr(current_app, "prescription_store"):
        current_app.prescription_store = PrescriptionStore(
            db_path=current_app.config.get("WORKFLOW_DB_PATH")
        )
    return current_app.prescription_store


@prescriptions_bp.route("/visible")
def api_visible():
    """The pharmacy work queue."""
    prescriptions = _get_prescription_store().list_visible(
        surgery_id=request.args.get("surgery_id"),
        urgency=request.args.get("urgency"),
    )
    return api_success(data=[p.to_dict() for p in prescriptions])


@prescriptions_bp.route("/<prescription_id>")
def api_get(prescription_id):
    return api_success(data=_get_prescription_store().get_prescription(prescription_id).to_dict())


@prescriptions_bp.route("/<prescription_id>/pack", methods=["POST"])
def api_pack(prescription_id):
    """Body: {"medication_statuses": [...], "packing_notes": ...}"""
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    prescription = _get_prescription_store().pack(
        prescription_id,
        actor,
        medication_statuses=data.get("medication_statuses"),
        packing_notes=data.get("packing_notes"),
    )
    return api_success(data=prescription.to_dict())


@prescriptions_bp.route("/<prescription_id>/dispense", methods=["POST"])
def api_dispense(prescription_id):
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    prescription = _get_prescription_store().dispense(prescription_id, actor)
    return api_success(data=prescription.to_dict())


@prescriptions_bp.route("/<prescription_id>/out-of-stock", methods=["POST"])
def api_out_of_stock(prescription_id):
    """Body: {"items": ["Drug A", ...], "notes": ...}"""
    data = request.get_json(silent=True) or {}
    actor = get_actor_from_request(data)
    prescription = _get_prescription_store().flag_out_of_stock(
        prescription_id, actor, items=data.get("items"), notes=data.get("notes")
    )
    return api_success(data=prescription.to_dict())
