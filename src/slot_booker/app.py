"""
Flask Application Factory.

Creates and configures the Flask application for Cloud Run.
"""

import signal
import sys
from typing import Optional

from flask import Flask

from slot_booker.api import api_bp
from slot_booker.config import settings
from slot_booker.infrastructure.logging import log_request_context, logger
from slot_booker.infrastructure.metrics import setup_metrics_middleware


def _handle_sigterm(signum: int, frame) -> None:
    """
    Handle SIGTERM for graceful shutdown on Cloud Run.

    Cloud Run sends SIGTERM before stopping the container.
    """
    logger.info(
        "Received SIGTERM, shutting down gracefully",
        extra={"extra_fields": {"signal": signum}}
    )
    sys.exit(0)


# Register SIGTERM handler for Cloud Run graceful shutdown
signal.signal(signal.SIGTERM, _handle_sigterm)


def create_app(config: Optional[dict] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.json.sort_keys = False

    if config:
        app.config.update(config)

    log_request_context(app)
    setup_metrics_middleware(app)

    app.register_blueprint(api_bp)

    logger.info(
        "Application initialized",
        extra={"extra_fields": {
            "environment": settings.environment,
            "automation_configured": settings.automation.is_configured,
            "credentials_configured": settings.credentials.is_configured,
            "api_key_required": bool(settings.auth.api_key),
        }}
    )

    return app


app = create_app()


if __name__ == "__main__":
    app.run(
        host="0.0.0.0",
        port=settings.port,
        debug=settings.environment == "development",
    )
