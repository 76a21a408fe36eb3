"""Flask application factory for the perioperative dashboard API."""

import logging

from flask import Flask

from periop.config import config
from periop.errors import PeriopError
from dashboard.routes import escalations_bp, prescriptions_bp, reviews_bp, risk_bp
from dashboard.utils.api_response import api_error

logger = logging.getLogger(__name__)


def create_app(overrides: dict | None = None) -> Flask:
    """Create the dashboard app.

    Args:
        overrides: Extra Flask config, e.g. database paths for tests
    """
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = Flask(__name__)
    app.config.update(
        WORKFLOW_DB_PATH=config.WORKFLOW_DB_PATH,
        RISK_DB_PATH=config.RISK_DB_PATH,
        ESCALATION_DB_PATH=config.ESCALATION_DB_PATH,
    )
    if overrides:
        app.config.update(overrides)

    app.register_blueprint(risk_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(prescriptions_bp)
    app.register_blueprint(escalations_bp)

    @app.errorhandler(PeriopError)
    def handle_periop_error(error):
        if error.http_status >= 500:
            logger.error(f"{error.code}: {error.message}")
        else:
            logger.info(f"{error.code} ({error.http_status}): {error.message}")
        return api_error(error.message, error.http_status, code=error.code, details=error.details)

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=8082)
