"""
Derivative registration API blueprint.

Endpoints:
- GET  /derivatives/types: valid derivative types
- POST /derivatives/register: register one derivative work
- POST /derivatives/bulk: register many derivatives in batches
- GET  /derivatives/tree/<ip_id>: derivative lineage of an IP asset
- GET  /derivatives/license-inheritance/<ip_id>: inheritance analysis
"""

from flask import Blueprint, jsonify, request

from derivative_registration import DERIVATIVE_TYPES, DerivativeRegistrationRequest
from derivative_tree import DEFAULT_TREE_DEPTH
from errors import EngineError, ValidationError

from .utils import (
    MAX_BULK_REQUESTS,
    error_response,
    get_engine,
    get_json_body,
    require_api_key,
    result_response,
)

derivatives_bp = Blueprint("derivatives", __name__, url_prefix="/derivatives")


def _parse_registration(data) -> DerivativeRegistrationRequest:
    try:
        return DerivativeRegistrationRequest.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Malformed registration request: {e}") from e


@derivatives_bp.route("/types", methods=["GET"])
def get_derivative_types():
    return jsonify({"types": list(DERIVATIVE_TYPES)})


@derivatives_bp.route("/register", methods=["POST"])
@require_api_key
def register_derivative():
    """
    Register a derivative work against a parent IP asset.

    Request body:
    {
        "parentIpId": "0x...",
        "parentChapterId": "story-1-3",
        "derivativeContent": {ChapterContent fields},
        "derivativeType": "remix" | "sequel" | "adaptation" | "translation" | "other",
        "similarityScore": 0.8,            (optional, 0..1)
        "inheritParentLicense": true,      (optional)
        "parentLicenseTermsId": "...",     (optional)
        "customLicenseTermsId": "...",     (optional)
        "attributionText": "...",
        "creatorNotes": "..."
    }

    Returns:
        Registration result; 201 on success
    """
    try:
        registration = _parse_registration(get_json_body())
    except EngineError as e:
        return error_response(e)

    result = get_engine().derivatives.register_derivative(registration)
    return result_response(result, success_status=201)


@derivatives_bp.route("/bulk", methods=["POST"])
@require_api_key
def bulk_register():
    """
    Register many derivatives.

    Request body:
    {
        "requests": [registration request, ...]
    }

    Returns:
        One result per request in request order, plus a summary. Item
        failures do not fail the call.
    """
    try:
        data = get_json_body()
        items = data.get("requests")
        if not isinstance(items, list) or not items:
            raise ValidationError("requests must be a non-empty list")
        if len(items) > MAX_BULK_REQUESTS:
            raise ValidationError(f"At most {MAX_BULK_REQUESTS} requests per call")
        registrations = [_parse_registration(item) for item in items]
    except EngineError as e:
        return error_response(e)

    results = get_engine().derivatives.bulk_register_derivatives(registrations)
    successful = sum(1 for r in results if r.success)
    return jsonify({
        "results": [r.to_dict() for r in results],
        "summary": {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
        },
    })


@derivatives_bp.route("/tree/<ip_id>", methods=["GET"])
@require_api_key
def get_derivative_tree(ip_id: str):
    """
    Get the derivative tree rooted at an IP asset.

    Query params:
        depth: Levels below the root to include (default: 3, max: 10)
    """
    depth = request.args.get("depth", DEFAULT_TREE_DEPTH, type=int)
    result = get_engine().trees.query_derivative_tree(ip_id, depth)
    return result_response(result)


@derivatives_bp.route("/license-inheritance/<ip_id>", methods=["GET"])
@require_api_key
def license_inheritance(ip_id: str):
    """
    Analyze whether a derivative can inherit the parent's license.

    Query params:
        creator: Address of the prospective derivative creator
    """
    creator = request.args.get("creator", "")
    result = get_engine().derivatives.analyze_license_inheritance(ip_id, creator)
    return result_response(result)
