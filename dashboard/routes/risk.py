"""Risk scoring routes for the dashboard.

Scores a factor set, and optionally stores the result against a surgery.
"""

import logging

from flask import Blueprint, current_app, request

from periop.errors import INCOMPLETE_INPUT_WARNING, NotFoundError
from periop.readiness import RiskProfileStore, assess
from periop.risk_scoring import RiskFactorInput
from dashboard.utils.api_response import api_success

logger = logging.getLogger(__name__)

risk_bp = Blueprint("risk", __name__, url_prefix="/api/risk")


def _get_risk_profile_store():
    """Get the risk profile store, initializing if needed."""
    if not hasattr(current_app, "risk_profile_store"):
        current_app.risk_profile_store = RiskProfileStore(
            db_path=current_app.config.get("RISK_DB_PATH")
        )
    return current_app.risk_profile_store


@risk_bp.route("/assess", methods=["POST"])
def api_assess():
    """Score all four scales and the composite.

    Body: {"factors": {...}, "fitness_category": ..., "asa_class": ...,
           "surgery_id": ..., "patient_id": ..., "assessed_by": ...}

    The profile is stored only when surgery_id is given.
    """
    data = request.get_json(silent=True) or {}

    factors = RiskFactorInput.from_dict(data.get("factors") or {})
    assessment = assess(
        factors,
        fitness_category=data.get("fitness_category"),
        asa_class=data.get("asa_class"),
    )
    result = assessment.to_dict()

    if data.get("surgery_id"):
        profile = _get_risk_profile_store().save_profile(
            surgery_id=data["surgery_id"],
            patient_id=data.get("patient_id"),
            assessment=assessment,
            assessed_by=data.get("assessed_by"),
        )
        result["profile_id"] = profile.id

    warnings = [INCOMPLETE_INPUT_WARNING] if assessment.composite.incomplete else None
    return api_success(data=result, warnings=warnings)


@risk_bp.route("/surgery/<surgery_id>/latest")
def api_latest_profile(surgery_id):
    """Most recent stored profile for a surgery."""
    profile = _get_risk_profile_store().latest_for_surgery(surgery_id)
    if profile is None:
        raise NotFoundError(f"No risk profile for surgery {surgery_id}")
    return api_success(data=profile.to_dict())


@risk_bp.route("/surgery/<surgery_id>/history")
def api_profile_history(surgery_id):
    """All stored profiles for a surgery, oldest first."""
    profiles = _get_risk_profile_store().list_for_surgery(surgery_id)
    return api_success(data=[p.to_dict() for p in profiles])
