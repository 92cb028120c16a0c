"""
Customer endpoints under /api/customers.

Every handler resolves a RequestContext from the signed session before doing
anything else; a missing session is a 401 and a missing capability a 403.
"""

import logging
from functools import wraps
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, g, jsonify, request, session

from customer_sync.auth import MANAGE_BOOKINGS, MANAGE_CUSTOMERS, build_request_context
from customer_sync.errors import AuthorizationError, StoreError, ValidationError
from customer_sync.reconciliation.proximity import parse_query
from customer_sync.reconciliation.results import ReconcileResult
from customer_sync.reconciliation.validation import validate_customer_update

logger = logging.getLogger(__name__)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def error_response(message: str, status: int, **extra):
    body: Dict[str, Any] = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status


def result_response(result: ReconcileResult):
    return jsonify(result.to_response()), result.outcome.http_status


def get_services():
    """Services for the current request, created on first use."""
    if "customer_services" not in g:
        factory = current_app.extensions["customer_sync"]["services_factory"]
        g.customer_services = factory()
    return g.customer_services


def require_capability(capability: Optional[str] = None):
    """Reject the request unless the session holds the capability (or any session when None)."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            context = build_request_context(session, request.remote_addr)
            try:
                context.require(capability)
            except AuthorizationError as e:
                return authorization_error_response(e)
            g.request_context = context
            return view(*args, **kwargs)
        return wrapped

    return decorator


def authorization_error_response(error: AuthorizationError):
    status = 403 if error.authenticated else 401
    return error_response(str(error), status, error=error.code)


@customers_bp.post("/update")
@require_capability(MANAGE_CUSTOMERS)
def update_customer():
    """
    Update account and profile for one customer.
    POST /api/customers/update (form or multipart with `profile_picture`)
    """
    try:
        update = validate_customer_update(request.form)
    except ValidationError as e:
        return result_response(ReconcileResult.rejected(str(e), field=e.field))

    image = None
    upload = request.files.get("profile_picture")
    if upload is not None and upload.filename:
        image = upload.read()

    result = get_services().reconciler.update_customer(g.request_context, update, image)
    return result_response(result)


@customers_bp.post("/update_status")
@require_capability(MANAGE_CUSTOMERS)
def update_status():
    """
    Set account status to active/inactive and mirror it as presence.
    Accepts a JSON body, falling back to form fields when it does not parse.
    The body is parsed whatever the declared content type.
    """
    # must run before request.form, which consumes an uncached stream
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict) or not data:
        data = request.form

    result = get_services().reconciler.change_account_status(
        g.request_context,
        data.get("user_id"),
        data.get("status")
    )
    return result_response(result)


@customers_bp.post("/fix_orphaned")
@require_capability(MANAGE_CUSTOMERS)
def fix_orphaned():
    """Insert default profiles for customer accounts that have none."""
    dry_run = request.args.get("dry_run", "").lower() in ("1", "true", "yes")
    report = get_services().orphans.repair(dry_run=dry_run)
    return jsonify(report.to_response()), 200


@customers_bp.get("/nearby")
@require_capability()
def nearby_customers():
    """
    GET /api/customers/nearby?latitude=..&longitude=..&limit=10&max_distance=50
    """
    try:
        lat, lng, limit, radius = parse_query(
            request.args.get("latitude"),
            request.args.get("longitude"),
            request.args.get("limit"),
            request.args.get("max_distance")
        )
    except ValidationError as e:
        return error_response(str(e), 400, error=e.code)

    rows = get_services().nearby.find(lat, lng, limit=limit, max_distance_km=radius)
    return jsonify({
        "success": True,
        "count": len(rows),
        "reference_location": {"latitude": lat, "longitude": lng},
        "data": rows,
    }), 200


@customers_bp.post("/update_location")
@require_capability(MANAGE_BOOKINGS)
def update_location():
    form = request.form
    if not all(form.get(name) for name in ("customer_id", "latitude", "longitude")):
        return error_response(
            "Missing required parameters: customer_id, latitude, longitude", 400, error="invalid_input"
        )

    result = get_services().reconciler.update_location(
        g.request_context,
        form.get("customer_id"),
        form.get("latitude"),
        form.get("longitude")
    )
    return result_response(result)


@customers_bp.get("/<int:user_id>")
@require_capability(MANAGE_CUSTOMERS)
def customer_details(user_id: int):
    """Account and profile fields for the edit form."""
    result = get_services().reconciler.get_customer_details(g.request_context, user_id)
    return result_response(result)


@customers_bp.errorhandler(AuthorizationError)
def handle_authorization_error(e: AuthorizationError):
    return authorization_error_response(e)


@customers_bp.errorhandler(StoreError)
def handle_store_error(e: StoreError):
    logger.error(f"Unhandled store error: {e}", extra={"store": e.store})
    return error_response(f"Database error: {e}", 500, error=e.code)
