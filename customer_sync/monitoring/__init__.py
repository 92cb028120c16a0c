"""
Monitoring Module for customer sync

- SyncMetrics: Prometheus counters for writes, transitions and orphan repair
- AlertRuleGenerator: AlertManager rules over those metrics

Usage:
    from customer_sync.monitoring import SyncMetrics, AlertRuleGenerator

    metrics = SyncMetrics()
    metrics.record_customer_update("partial_failure")

    AlertRuleGenerator().export_to_yaml("customer_sync_alerts.yml")
"""

from customer_sync.monitoring.metrics import SyncMetrics
from customer_sync.monitoring.alerts import AlertRuleGenerator

__all__ = [
    "SyncMetrics",
    "AlertRuleGenerator",
]
