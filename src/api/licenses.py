"""
License tier API blueprint.

Endpoints:
- GET  /licenses/tiers: the tier catalog
- GET  /licenses/tiers/<tier>: one tier with its licensing costs
- POST /licenses/validate: validate a tier definition
- POST /licenses/pricing: suggest a tier and project revenue for a chapter
"""

from flask import Blueprint, jsonify

from economics import ChapterContent, calculate_chapter_economics, calculate_optimal_pricing
from errors import EngineError

from .utils import error_response, get_engine, get_json_body, require_api_key, validate_json_schema

licenses_bp = Blueprint("licenses", __name__, url_prefix="/licenses")


@licenses_bp.route("/tiers", methods=["GET"])
@require_api_key
def list_tiers():
    """
    List all license tiers.

    Returns:
        Tier definitions keyed by name, plus whether policy addresses
        came from the environment
    """
    return jsonify(get_engine().registry.to_dict())


@licenses_bp.route("/tiers/<tier_name>", methods=["GET"])
@require_api_key
def get_tier(tier_name: str):
    engine = get_engine()
    try:
        tier = engine.registry.get_tier(tier_name)
        costs = engine.licensing.calculate_licensing_costs(tier_name)
    except EngineError as e:
        return error_response(e)

    return jsonify({"tier": tier.to_dict(), "costs": costs})


@licenses_bp.route("/validate", methods=["POST"])
@require_api_key
def validate_tier():
    """
    Validate a tier definition.

    Request body: camelCase tier fields; "tier" names the tier to start from.
    Unknown tier names fail validation rather than returning 404.
    """
    registry = get_engine().registry
    try:
        data = get_json_body()
    except EngineError as e:
        return error_response(e)

    is_valid, error = validate_json_schema(data, {"tier": str})
    if not is_valid:
        return jsonify({"valid": False, "errors": [error]}), 400

    try:
        validation = registry.validate(registry.tier_from_dict(data))
    except (TypeError, ValueError) as e:
        return jsonify({"valid": False, "errors": [f"Malformed tier definition: {e}"]}), 400

    return jsonify(validation.to_dict())


@licenses_bp.route("/pricing", methods=["POST"])
@require_api_key
def suggest_pricing():
    """
    Suggest a tier and projected revenue for a chapter.

    Request body:
    {
        "chapter": {ChapterContent fields},
        "targetAudience": "mass" | "premium" | "exclusive",
        "tier": optional tier to price the chapter under as well
    }
    """
    registry = get_engine().registry
    try:
        data = get_json_body()
        is_valid, error = validate_json_schema(
            data, {"chapter": dict}, {"targetAudience": str, "tier": str}
        )
        if not is_valid:
            return jsonify({"success": False, "error": error, "errorKind": "validation"}), 400

        content = ChapterContent.from_dict(data["chapter"])
        suggestion = calculate_optimal_pricing(content, data.get("targetAudience", "premium"), registry)

        response = {"success": True, "suggestion": suggestion.to_dict()}
        if data.get("tier"):
            response["economics"] = calculate_chapter_economics(content, data["tier"], registry).to_dict()
    except EngineError as e:
        return error_response(e)

    return jsonify(response)
