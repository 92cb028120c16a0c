"""
Flask application factory.

    from customer_sync.app import create_app
    app = create_app()
"""

import logging
from functools import partial
from typing import Callable, Optional

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from customer_sync.api import customers_bp, health_bp
from customer_sync.config import Settings, load_settings
from customer_sync.monitoring.metrics import SyncMetrics
from customer_sync.services import CustomerServices, build_services
from customer_sync.utils.correlation import (
    REQUEST_ID_HEADER,
    clear_correlation_id,
    correlation_id_from_headers,
    get_correlation_id,
    set_correlation_id,
)
from customer_sync.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services_factory: Optional[Callable[[], CustomerServices]] = None,
    metrics: Optional[SyncMetrics] = None
) -> Flask:
    """
    Build the application.

    Args:
        settings: Service settings (loaded from env/Vault when omitted)
        services_factory: Zero-argument callable returning CustomerServices
            for one request; defaults to real database connections
        metrics: Metrics sink; created when metrics are enabled
    """
    if settings is None:
        settings = load_settings()
        configure_logging(json_logging=settings.json_logging)

    if metrics is None and settings.metrics_enabled:
        metrics = SyncMetrics()

    if services_factory is None:
        services_factory = partial(build_services, settings, metrics)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    # images over max_image_bytes still arrive and are rejected by the image store
    app.config["MAX_CONTENT_LENGTH"] = max(settings.max_request_bytes, settings.max_image_bytes * 2)

    app.extensions["customer_sync"] = {
        "settings": settings,
        "metrics": metrics,
        "services_factory": services_factory,
    }

    app.register_blueprint(health_bp)
    app.register_blueprint(customers_bp)

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(e):
        limit_mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
        logger.warning(f"Rejected request to {request.path}: body over {limit_mb}MB")
        return jsonify({
            "success": False,
            "message": f"Request is too large. Maximum size is {limit_mb}MB.",
            "error": "request_too_large",
        }), 413

    @app.before_request
    def bind_correlation_id():
        set_correlation_id(correlation_id_from_headers(request.headers))

    @app.after_request
    def echo_correlation_id(response):
        correlation_id = get_correlation_id()
        if correlation_id:
            response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @app.teardown_request
    def release_connections(exc):
        services = g.pop("customer_services", None)
        if services is not None:
            if exc is not None:
                services.account_conn.rollback()
                services.profile_conn.rollback()
            services.close()
        clear_correlation_id()

    logger.info("Customer sync app created")
    return app
