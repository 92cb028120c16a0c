"""
Prometheus Metrics for customer sync

Counters and histograms for two-store writes, status transitions and orphan
repair. Metrics live in their own CollectorRegistry so each app instance
(and each test) starts from zero; the registry is served at /metrics.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

logger = logging.getLogger(__name__)


class SyncMetrics:
    """Prometheus metrics for reconciliation operations."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Full updates by outcome (success, partial_failure, ...)
        self.customer_updates_total = Counter(
            'customer_sync_updates_total',
            'Customer update requests by outcome',
            ['outcome'],
            registry=self.registry
        )

        # Failed writes per store
        self.store_write_failures_total = Counter(
            'customer_sync_store_write_failures_total',
            'Failed writes by store',
            ['store'],
            registry=self.registry
        )

        # Commits retried on a fresh connection
        self.commit_retries_total = Counter(
            'customer_sync_commit_retries_total',
            'Commits retried after a lost connection',
            ['store'],
            registry=self.registry
        )

        self.status_transitions_total = Counter(
            'customer_sync_status_transitions_total',
            'Account status transitions by target status and outcome',
            ['status', 'outcome'],
            registry=self.registry
        )

        # Orphan repair
        self.orphan_repair_runs_total = Counter(
            'customer_sync_orphan_repair_runs_total',
            'Orphan repair runs',
            ['mode'],
            registry=self.registry
        )

        self.orphans_found_total = Counter(
            'customer_sync_orphans_found_total',
            'Customer accounts found without a profile row',
            registry=self.registry
        )

        self.orphan_inserts_total = Counter(
            'customer_sync_orphan_inserts_total',
            'Default profile inserts by status',
            ['status'],
            registry=self.registry
        )

        self.orphan_repair_duration_seconds = Histogram(
            'customer_sync_orphan_repair_duration_seconds',
            'Duration of orphan repair runs in seconds',
            buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300],
            registry=self.registry
        )

        self.service_info = Info(
            'customer_sync_service',
            'Customer sync service information',
            registry=self.registry
        )
        self.service_info.info({
            'account_store': 'core2.users',
            'profile_store': 'core1.customers',
        })

        logger.info("SyncMetrics initialized")

    def record_customer_update(self, outcome: str) -> None:
        self.customer_updates_total.labels(outcome=outcome).inc()

    def record_store_failure(self, store: str) -> None:
        self.store_write_failures_total.labels(store=store).inc()

    def record_commit_retry(self, store: str) -> None:
        self.commit_retries_total.labels(store=store).inc()

    def record_status_transition(self, status: str, outcome: str) -> None:
        self.status_transitions_total.labels(status=status, outcome=outcome).inc()

    def record_orphan_repair(
        self,
        found: int,
        inserted: int,
        failed: int,
        duration_seconds: float,
        dry_run: bool = False
    ) -> None:
        """
        Record an orphan repair run.

        Args:
            found: Orphans detected
            inserted: Default profiles inserted
            failed: Inserts that failed
            duration_seconds: Run duration
            dry_run: Run did not write
        """
        self.orphan_repair_runs_total.labels(mode='dry_run' if dry_run else 'repair').inc()
        self.orphans_found_total.inc(found)
        self.orphan_inserts_total.labels(status='success').inc(inserted)
        self.orphan_inserts_total.labels(status='failure').inc(failed)
        self.orphan_repair_duration_seconds.observe(duration_seconds)

        logger.debug(
            f"Recorded orphan repair metrics: found={found}, inserted={inserted}, "
            f"failed={failed}, duration={duration_seconds}s"
        )

    def render(self) -> bytes:
        """Exposition-format snapshot of this registry."""
        return generate_latest(self.registry)
