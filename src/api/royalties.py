"""
Royalty API blueprint.

Endpoints:
- POST /royalties/preview: split a derivative revenue amount under a tier
- POST /royalties/sharing/<chapter_id>: split chapter revenue with derivatives
- GET  /royalties/claimable/<chapter_id>: claimable balance for a chapter
- POST /royalties/claim: claim a chapter's royalties on the ledger
- GET  /royalties/history/<author_address>: an author's claim history and totals
"""

from flask import Blueprint, jsonify, request

from economics import calculate_revenue_breakdown
from errors import EngineError, ValidationError
from royalty_distribution import DEFAULT_HISTORY_LIMIT, calculate_royalty_distribution

from .utils import (
    error_response,
    get_engine,
    get_json_body,
    require_api_key,
    result_response,
    validate_json_schema,
)

royalties_bp = Blueprint("royalties", __name__, url_prefix="/royalties")


@royalties_bp.route("/preview", methods=["POST"])
@require_api_key
def preview_distribution():
    """
    Preview how derivative revenue splits under a parent tier.

    Request body:
    {
        "tier": "premium",
        "derivativeRevenue": 1000
    }

    Returns:
        Decimal distribution and the integer revenue breakdown
    """
    registry = get_engine().registry
    try:
        data = get_json_body()
        is_valid, error = validate_json_schema(
            data, {"tier": str, "derivativeRevenue": (int, float)}
        )
        if not is_valid:
            raise ValidationError(error)

        tier_name = data["tier"]
        revenue = data["derivativeRevenue"]
        distribution = calculate_royalty_distribution(tier_name, revenue, registry)
        breakdown = calculate_revenue_breakdown(int(revenue), tier_name, registry)
    except EngineError as e:
        return error_response(e)

    return jsonify({
        "success": True,
        "tier": tier_name,
        "distribution": distribution.to_dict(),
        "breakdown": breakdown,
    })


@royalties_bp.route("/sharing/<chapter_id>", methods=["POST"])
@require_api_key
def royalty_sharing(chapter_id: str):
    """
    Split a chapter's revenue among creator, platform, and derivatives.

    Request body:
    {
        "totalRevenue": "1000000000000000000"   (integer or decimal string, wei)
    }
    """
    try:
        data = get_json_body()
        total_revenue = int(data.get("totalRevenue"))
    except EngineError as e:
        return error_response(e)
    except (TypeError, ValueError):
        return error_response(ValidationError("totalRevenue must be an integer amount"))

    result = get_engine().royalties.calculate_royalty_sharing(chapter_id, total_revenue)
    return result_response(result)


@royalties_bp.route("/claimable/<chapter_id>", methods=["GET"])
@require_api_key
def claimable_royalties(chapter_id: str):
    result = get_engine().royalties.get_claimable_royalties(chapter_id)
    return result_response(result)


@royalties_bp.route("/claim", methods=["POST"])
@require_api_key
def claim_royalties():
    """
    Claim royalties for a chapter.

    Request body:
    {
        "chapterId": "story-1-3",
        "authorAddress": "0x...",
        "currencyTokens": ["0x..."]   (optional)
    }
    """
    try:
        data = get_json_body()
        is_valid, error = validate_json_schema(
            data, {"chapterId": str, "authorAddress": str}, {"currencyTokens": list}
        )
        if not is_valid:
            raise ValidationError(error)
    except EngineError as e:
        return error_response(e)

    result = get_engine().royalties.claim_chapter_royalties(
        data["chapterId"], data["authorAddress"], data.get("currencyTokens")
    )
    return result_response(result)


@royalties_bp.route("/history/<author_address>", methods=["GET"])
@require_api_key
def royalty_history(author_address: str):
    """
    Get an author's royalty claim history, newest first.

    Query params:
        page: Page number (default: 1)
        limit: Entries per page (default: 50, max: 100)
        status: completed | failed
        chapterId: Only claims for this chapter
    """
    result = get_engine().royalties.get_royalty_history(
        author_address,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int),
        status=request.args.get("status"),
        chapter_id=request.args.get("chapterId"),
    )
    return result_response(result)
