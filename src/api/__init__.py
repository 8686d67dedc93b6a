"""
ChapterIP API Package.

Thin Flask blueprints over the licensing and royalty engine.

Blueprints:
- licenses: Tier catalog, tier validation, pricing suggestions
- royalties: Distribution preview, royalty sharing, claimable balances, claims
- derivatives: Derivative registration, bulk registration, trees, inheritance
- monitoring: Health checks and metrics
"""

import logging
import os

from dotenv import load_dotenv
from flask import Flask

from api.derivatives import derivatives_bp
from api.licenses import licenses_bp
from api.monitoring import monitoring_bp
from api.royalties import royalties_bp
from api.utils import ENGINE_EXTENSION

logger = logging.getLogger(__name__)

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix); None keeps the blueprint's own prefix
ALL_BLUEPRINTS = [
    (licenses_bp, None),
    (royalties_bp, None),
    (derivatives_bp, None),
    (monitoring_bp, None),
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(engine=None) -> Flask:
    """
    Create the Flask app around an engine.

    Args:
        engine: A wired Engine (default: create_engine() from the environment)
    """
    if engine is None:
        from engine import create_engine

        engine = create_engine()

    app = Flask(__name__)
    app.json.sort_keys = False
    app.extensions[ENGINE_EXTENSION] = engine
    register_blueprints(app)
    return app


def run_server():
    """Run the Flask development server."""
    load_dotenv()

    from config import EngineConfig
    from engine import create_engine
    from monitoring import configure_logging, metrics

    config = EngineConfig.from_env()
    configure_logging(config.log_level, json_output=config.log_format == "json")

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    app = create_app(create_engine(config, metrics=metrics))

    logger.info("ChapterIP API listening on http://%s:%d", host, port)
    logger.info("Ledger gateway: %s", config.ledger_endpoint or "default")
    logger.info("Storage backend: %s", config.storage_backend)

    app.run(host=host, port=port, debug=debug)
