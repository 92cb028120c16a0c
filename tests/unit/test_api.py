"""
Unit tests for the HTTP layer, with services mocked out.
"""

from io import BytesIO

import pytest
from unittest.mock import MagicMock

from customer_sync.config import Settings
from customer_sync.errors import StoreError
from customer_sync.monitoring.metrics import SyncMetrics
from customer_sync.reconciliation.orphans import OrphanRepairReport
from customer_sync.reconciliation.results import Outcome, ReconcileResult, StoreWrite

VALID_FORM = {
    "user_id": "7",
    "firstname": "Juan",
    "lastname": "Dela Cruz",
    "email": "juan@example.com",
    "phone": "09171234567",
    "account_status": "active",
    "current_status": "online",
}


@pytest.fixture
def services():
    return MagicMock()


@pytest.fixture
def metrics():
    return SyncMetrics()


@pytest.fixture
def app(services, metrics):
    from customer_sync.app import create_app

    app = create_app(Settings(secret_key="test-key"), services_factory=lambda: services, metrics=metrics)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user_id=1, role="admin"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["user_role"] = role


class TestAuthorization:

    def test_no_session_is_401(self, client, services):
        response = client.post("/api/customers/update", data=VALID_FORM)

        assert response.status_code == 401
        assert response.get_json() == {
            "success": False,
            "message": "Unauthorized access.",
            "error": "unauthorized",
        }
        services.reconciler.update_customer.assert_not_called()

    def test_missing_capability_is_403(self, client, services):
        login(client, 2, "dispatch")

        response = client.post("/api/customers/update_status", json={"user_id": 7, "status": "active"})

        assert response.status_code == 403
        services.reconciler.change_account_status.assert_not_called()

    def test_dispatch_can_update_location(self, client, services):
        login(client, 2, "dispatch")
        services.reconciler.update_location.return_value = ReconcileResult(
            Outcome.SUCCESS, "Customer location updated successfully"
        )

        response = client.post(
            "/api/customers/update_location",
            data={"customer_id": "55", "latitude": "14.5", "longitude": "121.0"}
        )

        assert response.status_code == 200
        context, customer_id, lat, lng = services.reconciler.update_location.call_args[0]
        assert context.user_id == 2
        assert (customer_id, lat, lng) == ("55", "14.5", "121.0")


class TestUpdateCustomer:

    def test_success(self, client, services):
        login(client)
        services.reconciler.update_customer.return_value = ReconcileResult(
            Outcome.SUCCESS,
            "Customer updated successfully.",
            writes=[StoreWrite("core2.users", "update", True, 1)]
        )

        response = client.post("/api/customers/update", data=VALID_FORM)

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["stores"]["core2.users"]["rowcount"] == 1

        context, update, image = services.reconciler.update_customer.call_args[0]
        assert context.user_id == 1
        assert update.presence_status == "online"
        assert image is None

    def test_validation_error_is_400(self, client, services):
        login(client)

        response = client.post("/api/customers/update", data=dict(VALID_FORM, phone="555-1234"))

        assert response.status_code == 400
        body = response.get_json()
        assert body["message"] == "Invalid PH phone number format."
        assert body["field"] == "phone"
        services.reconciler.update_customer.assert_not_called()

    def test_partial_failure_is_500(self, client, services):
        login(client)
        services.reconciler.update_customer.return_value = ReconcileResult(
            Outcome.PARTIAL_FAILURE,
            "Update failed: [core1.customers] Table 'customers' is read only",
            writes=[
                StoreWrite("core2.users", "update", True, 1),
                StoreWrite("core1.customers", "update", False, error="Table 'customers' is read only"),
            ]
        )

        response = client.post("/api/customers/update", data=VALID_FORM)

        assert response.status_code == 500
        assert response.get_json()["outcome"] == "partial_failure"

    def test_profile_picture_passed_as_bytes(self, client, services):
        login(client)
        services.reconciler.update_customer.return_value = ReconcileResult(Outcome.SUCCESS, "ok")
        form = dict(VALID_FORM, profile_picture=(BytesIO(b"\x89PNG fake"), "me.png"))

        client.post("/api/customers/update", data=form, content_type="multipart/form-data")

        _, _, image = services.reconciler.update_customer.call_args[0]
        assert image == b"\x89PNG fake"

    def test_oversized_picture_still_reaches_reconciler(self, client, services):
        login(client)
        services.reconciler.update_customer.return_value = ReconcileResult(
            Outcome.SUCCESS,
            "Customer updated successfully.",
            advisories={"profile_picture_error": "File is too large. Maximum size is 2MB."}
        )
        picture = b"\x89PNG" + b"\x00" * (4 * 1024 * 1024)
        form = dict(VALID_FORM, profile_picture=(BytesIO(picture), "big.png"))

        response = client.post("/api/customers/update", data=form, content_type="multipart/form-data")

        assert response.status_code == 200
        assert response.get_json()["profile_picture_error"].startswith("File is too large.")
        _, update, image = services.reconciler.update_customer.call_args[0]
        assert update.firstname == "Juan"
        assert len(image) == len(picture)

    def test_body_over_transport_limit_is_json_413(self, services):
        from customer_sync.app import create_app

        app = create_app(
            Settings(max_request_bytes=1024 * 1024, max_image_bytes=256 * 1024),
            services_factory=lambda: services
        )
        client = app.test_client()
        login(client)
        form = dict(VALID_FORM, profile_picture=(BytesIO(b"\x00" * (2 * 1024 * 1024)), "huge.png"))

        response = client.post("/api/customers/update", data=form, content_type="multipart/form-data")

        assert response.status_code == 413
        assert response.get_json() == {
            "success": False,
            "message": "Request is too large. Maximum size is 1MB.",
            "error": "request_too_large",
        }
        services.reconciler.update_customer.assert_not_called()


class TestUpdateStatus:

    def test_json_body(self, client, services):
        login(client)
        services.reconciler.change_account_status.return_value = ReconcileResult(Outcome.SUCCESS, "ok")

        client.post("/api/customers/update_status", json={"user_id": 7, "status": "inactive"})

        _, user_id, status = services.reconciler.change_account_status.call_args[0]
        assert (user_id, status) == (7, "inactive")

    @pytest.mark.parametrize("content_type", ["text/plain", None])
    def test_raw_json_body_without_json_content_type(self, client, services, content_type):
        login(client)
        services.reconciler.change_account_status.return_value = ReconcileResult(Outcome.SUCCESS, "ok")

        client.post(
            "/api/customers/update_status",
            data='{"user_id": 7, "status": "inactive"}',
            content_type=content_type
        )

        _, user_id, status = services.reconciler.change_account_status.call_args[0]
        assert (user_id, status) == (7, "inactive")

    def test_form_fallback(self, client, services):
        login(client)
        services.reconciler.change_account_status.return_value = ReconcileResult.rejected("Invalid customer ID.")

        response = client.post("/api/customers/update_status", data={"user_id": "7", "status": "active"})

        assert response.status_code == 400
        _, user_id, status = services.reconciler.change_account_status.call_args[0]
        assert (user_id, status) == ("7", "active")


class TestFixOrphaned:

    def test_repair(self, client, services):
        login(client)
        services.orphans.repair.return_value = OrphanRepairReport(
            accounts_scanned=3, orphans=[4, 9], inserted=[4, 9]
        )

        response = client.post("/api/customers/fix_orphaned")

        assert response.status_code == 200
        assert response.get_json()["message"] == "Fixed 2 orphaned customers."
        services.orphans.repair.assert_called_once_with(dry_run=False)

    def test_dry_run_flag(self, client, services):
        login(client)
        services.orphans.repair.return_value = OrphanRepairReport(accounts_scanned=1, dry_run=True)

        client.post("/api/customers/fix_orphaned?dry_run=true")

        services.orphans.repair.assert_called_once_with(dry_run=True)

    def test_store_error_is_500(self, client, services):
        login(client)
        services.orphans.repair.side_effect = StoreError("core2.users", "connection refused")

        response = client.post("/api/customers/fix_orphaned")

        assert response.status_code == 500
        body = response.get_json()
        assert body["success"] is False
        assert body["message"].startswith("Database error:")


class TestNearby:

    def test_requires_login_only(self, client, services):
        login(client, 30, "customer")
        services.nearby.find.return_value = [{"customer_id": 1, "distance_km": 0.5}]

        response = client.get("/api/customers/nearby?latitude=14.5&longitude=121.0&limit=5")

        assert response.status_code == 200
        body = response.get_json()
        assert body["count"] == 1
        assert body["reference_location"] == {"latitude": 14.5, "longitude": 121.0}
        services.nearby.find.assert_called_once_with(14.5, 121.0, limit=5, max_distance_km=50.0)

    def test_missing_coordinates(self, client, services):
        login(client, 30, "customer")

        response = client.get("/api/customers/nearby?latitude=14.5")

        assert response.status_code == 400
        assert response.get_json()["message"] == "Missing required parameters: latitude and longitude"

    def test_anonymous_rejected(self, client):
        assert client.get("/api/customers/nearby?latitude=1&longitude=1").status_code == 401


class TestUpdateLocation:

    def test_missing_parameters(self, client, services):
        login(client)

        response = client.post("/api/customers/update_location", data={"customer_id": "55"})

        assert response.status_code == 400
        services.reconciler.update_location.assert_not_called()


class TestCustomerDetails:

    def test_not_found(self, client, services):
        login(client)
        services.reconciler.get_customer_details.return_value = ReconcileResult.not_found("Customer not found.")

        response = client.get("/api/customers/7")

        assert response.status_code == 404
        _, user_id = services.reconciler.get_customer_details.call_args[0]
        assert user_id == 7


class TestServiceLifecycle:

    def test_services_closed_after_request(self, client, services):
        login(client)
        services.reconciler.get_customer_details.return_value = ReconcileResult(Outcome.SUCCESS, "ok")

        client.get("/api/customers/7")

        services.close.assert_called_once()

    def test_request_id_echoed(self, client):
        response = client.get("/healthz", headers={"X-Request-ID": "req-abc"})

        assert response.headers["X-Request-ID"] == "req-abc"

    def test_request_id_generated(self, client):
        response = client.get("/healthz")

        assert response.headers["X-Request-ID"]


class TestHealth:

    def test_healthz(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_metrics(self, client, metrics):
        metrics.record_customer_update("success")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert b'customer_sync_updates_total{outcome="success"} 1.0' in response.data

    def test_metrics_disabled(self, services):
        from customer_sync.app import create_app

        app = create_app(Settings(metrics_enabled=False), services_factory=lambda: services)

        assert app.test_client().get("/metrics").status_code == 404
