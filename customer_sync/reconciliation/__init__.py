"""
Reconciliation Module for the customer databases

Keeps the core2 `users` row and the core1 `customers` row of each customer
in step.

Main components:
- validation: Request shape checks and status coercion
- reconciler: Two-store update and status transition sequencing
- orphans: Default profile creation for accounts without one
- proximity: Nearest located customers around a point

Usage:
    from customer_sync.reconciliation import CustomerReconciler, OrphanRepairer

    reconciler = CustomerReconciler(accounts, profiles, image_store=images, audit=audit)
    result = reconciler.update_customer(context, validate_customer_update(form))

    report = OrphanRepairer(accounts, profiles).repair()
"""

from customer_sync.reconciliation.results import Outcome, ReconcileResult, StoreWrite
from customer_sync.reconciliation.validation import CustomerUpdate, validate_customer_update
from customer_sync.reconciliation.reconciler import CustomerReconciler
from customer_sync.reconciliation.orphans import OrphanRepairer, OrphanRepairReport
from customer_sync.reconciliation.proximity import NearbyCustomerFinder, great_circle_km

__all__ = [
    "Outcome",
    "ReconcileResult",
    "StoreWrite",
    "CustomerUpdate",
    "validate_customer_update",
    "CustomerReconciler",
    "OrphanRepairer",
    "OrphanRepairReport",
    "NearbyCustomerFinder",
    "great_circle_km",
]
