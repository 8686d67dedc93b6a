"""
Health and metrics API endpoints.

This blueprint provides:
- /health: Service status with ledger and storage checks
- /health/live: Liveness probe
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
"""

from flask import Blueprint, Response, jsonify

from .utils import get_engine

monitoring_bp = Blueprint("monitoring", __name__)


@monitoring_bp.route("/health", methods=["GET"])
def health():
    """
    Health check.

    Returns 200 when the ledger gateway and object store both respond,
    503 otherwise.
    """
    engine = get_engine()
    ledger_ok, ledger_health = engine.ledger.health_check()
    storage_ok = engine.store.is_available()

    healthy = ledger_ok and storage_ok
    body = {
        "status": "healthy" if healthy else "degraded",
        "service": "ChapterIP API",
        "checks": {
            "ledger": {
                "status": "ok" if ledger_ok else "unavailable",
                "details": ledger_health.to_dict() if ledger_ok else ledger_health,
            },
            "storage": {
                "status": "ok" if storage_ok else "unavailable",
                "details": engine.store.get_info(),
            },
        },
        "registry": {
            "tiers": list(engine.registry.tiers),
            "environmentConfigured": engine.registry.environment_configured,
        },
    }
    return jsonify(body), 200 if healthy else 503


@monitoring_bp.route("/health/live", methods=["GET"])
def liveness():
    return jsonify({"status": "alive"})


@monitoring_bp.route("/metrics", methods=["GET"])
def prometheus_metrics():
    """Metrics in Prometheus text exposition format."""
    return Response(
        get_engine().metrics.to_prometheus(),
        mimetype="text/plain; charset=utf-8"
    )


@monitoring_bp.route("/metrics/json", methods=["GET"])
def json_metrics():
    return jsonify(get_engine().metrics.get_all())
