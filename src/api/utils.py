"""
Shared utilities for the ChapterIP API.

Blueprints reach the engine through get_engine(); results and errors are
turned into JSON responses here so status codes stay consistent.
"""

import secrets
from functools import wraps
from typing import Any

from flask import current_app, jsonify, request

from errors import EngineError, OperationResult, ValidationError

ENGINE_EXTENSION = "chapterip"

# HTTP status per error kind
ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "unsupported": 501,
    "ledger": 502,
    "storage": 503,
    "internal": 500,
}

# Bounded parameters
MAX_BULK_REQUESTS = 100


def get_engine():
    """The engine attached to the running app by create_app()."""
    return current_app.extensions[ENGINE_EXTENSION]


# ============================================================
# Validation Utilities
# ============================================================


def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple[type, ...]],
    optional_fields: dict[str, type | tuple[type, ...]] | None = None,
) -> tuple:
    """
    Validate a JSON payload against a simple type schema.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    for field_name, expected_type in (optional_fields or {}).items():
        if data.get(field_name) is not None and not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    return True, None


def get_json_body() -> dict[str, Any]:
    """
    The request's JSON object body.

    Raises:
        ValidationError: If the body is missing or not an object
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ============================================================
# Responses
# ============================================================


def error_response(error: EngineError):
    status = ERROR_STATUS.get(error.kind, 500)
    return jsonify({"success": False, "error": error.message, "errorKind": error.kind}), status


def result_response(result: OperationResult, success_status: int = 200):
    """JSON response for a service result, with status from its error kind."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), ERROR_STATUS.get(result.error_kind, 500)


# ============================================================
# Authentication
# ============================================================


def require_api_key(f):
    """Require the X-API-Key header when the engine has an API key configured."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = get_engine().config.api_key
        if not api_key:
            return f(*args, **kwargs)

        provided_key = request.headers.get("X-API-Key")
        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not secrets.compare_digest(provided_key, api_key):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)

    return decorated_function
