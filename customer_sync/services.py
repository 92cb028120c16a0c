"""
Per-request wiring of store connections and reconciliation services.

Connections are opened lazily and closed together at the end of the request
(or CLI command), whether it succeeded or not.
"""

import logging

from customer_sync.config import Settings
from customer_sync.images import FilesystemProfileImageStore
from customer_sync.reconciliation.orphans import OrphanRepairer
from customer_sync.reconciliation.proximity import NearbyCustomerFinder
from customer_sync.reconciliation.reconciler import CustomerReconciler
from customer_sync.stores import (
    AccountStore,
    BookingStore,
    ProfileStore,
    StoreConnection,
    SystemLogAudit,
)

logger = logging.getLogger(__name__)

ACCOUNT_STORE_NAME = "core2.users"
PROFILE_STORE_NAME = "core1.customers"


class CustomerServices:
    """
    Reconciliation services bound to one pair of connections.

    Args:
        account_conn: Connection to the core2 database
        profile_conn: Connection to the core1 database
        image_store: Profile image collaborator
        metrics: Optional SyncMetrics
    """

    def __init__(
        self,
        account_conn: StoreConnection,
        profile_conn: StoreConnection,
        image_store=None,
        metrics=None
    ):
        self.account_conn = account_conn
        self.profile_conn = profile_conn

        self.accounts = AccountStore(account_conn)
        self.profiles = ProfileStore(profile_conn)
        self.bookings = BookingStore(account_conn)
        self.audit = SystemLogAudit(account_conn)

        self.reconciler = CustomerReconciler(
            self.accounts,
            self.profiles,
            image_store=image_store,
            audit=self.audit,
            metrics=metrics
        )
        self.orphans = OrphanRepairer(self.accounts, self.profiles, metrics=metrics)
        self.nearby = NearbyCustomerFinder(self.profiles, self.accounts, self.bookings)

    def close(self) -> None:
        self.account_conn.close()
        self.profile_conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.account_conn.rollback()
            self.profile_conn.rollback()
        self.close()


def build_services(settings: Settings, metrics=None, image_store=None) -> CustomerServices:
    """Open-on-demand services for the configured databases."""
    on_retry = metrics.record_commit_retry if metrics else None

    account_conn = StoreConnection(
        ACCOUNT_STORE_NAME,
        settings.account_db.connect_kwargs(),
        on_commit_retry=on_retry
    )
    profile_conn = StoreConnection(
        PROFILE_STORE_NAME,
        settings.profile_db.connect_kwargs(),
        on_commit_retry=on_retry
    )

    if image_store is None:
        image_store = FilesystemProfileImageStore(settings.upload_root, settings.max_image_bytes)

    return CustomerServices(account_conn, profile_conn, image_store=image_store, metrics=metrics)
