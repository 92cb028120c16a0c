"""Liveness and Prometheus scrape endpoints."""

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    return jsonify({"status": "ok"}), 200


@health_bp.get("/metrics")
def metrics():
    sync_metrics = current_app.extensions["customer_sync"].get("metrics")
    if sync_metrics is None:
        return jsonify({"success": False, "message": "Metrics are disabled."}), 404
    return Response(sync_metrics.render(), content_type=CONTENT_TYPE_LATEST)
