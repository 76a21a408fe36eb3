"""Standardized API response helpers for the perioperative dashboard.

All JSON API endpoints return responses in a unified envelope format:

    Success: {"success": true, "data": ..., "message": ..., "warnings": [...]}
    Error:   {"success": false, "error": ..., "code": ..., "details": ...}

Usage:
    from dashboard.utils.api_response import api_success, api_error

    @bp.route("/api/reviews/<review_id>")
    def api_get_review(review_id):
        review = workflow.get_review(review_id)
        return api_success(data=review.to_dict())

Engine errors (PeriopError subclasses) are turned into api_error responses
by the handler registered in dashboard.app, so routes simply let them raise.
"""

from flask import jsonify


def api_success(data=None, message=None, warnings=None, status_code=200):
    """Return a standardized success response.

    Returns: {"success": true, "data": ..., "message": ...}
    """
    response = {"success": True}
    if data is not None:
        response["data"] = data
    if message is not None:
        response["message"] = message
    if warnings:
        response["warnings"] = warnings
    return jsonify(response), status_code


def api_error(error, status_code=400, code=None, details=None):
    """Return a standardized error response.

    Returns: {"success": false, "error": ..., "code": ...}
    """
    response = {"success": False, "error": str(error)}
    if code is not None:
        response["code"] = code
    if details:
        response["details"] = details
    return jsonify(response), status_code
