"""
Alert Rule Generator for Prometheus AlertManager

Alert rules for the customer sync metrics: stores drifting apart through
partial failures, orphan repair failing, and connections dropping at commit.
"""

import logging
from typing import Dict, Any

import yaml

logger = logging.getLogger(__name__)


class AlertRuleGenerator:
    """Generates Prometheus AlertManager alert rules."""

    def generate_alert_rules(self) -> Dict[str, Any]:
        """
        Generate complete alert rule configuration.

        Returns:
            Dict with alert rule groups in Prometheus format
        """
        groups = [
            self._generate_write_path_alerts(),
            self._generate_orphan_alerts(),
            self._generate_connection_alerts(),
        ]

        logger.info(f"Generated {len(groups)} alert rule groups")
        return {"groups": groups}

    def _generate_write_path_alerts(self) -> Dict[str, Any]:
        return {
            "name": "customer_sync_write_path",
            "interval": "30s",
            "rules": [
                {
                    "alert": "CustomerPartialUpdates",
                    "expr": 'rate(customer_sync_updates_total{outcome="partial_failure"}[5m]) > 0',
                    "for": "5m",
                    "labels": {
                        "severity": "warning",
                        "component": "reconciler"
                    },
                    "annotations": {
                        "summary": "Customer updates landing in only one database",
                        "description": "Partial customer updates at {{ $value }}/s. Account and profile rows are drifting apart."
                    }
                },
                {
                    "alert": "CustomerStoreWritesFailing",
                    "expr": "rate(customer_sync_store_write_failures_total[5m]) > 0.1",
                    "for": "5m",
                    "labels": {
                        "severity": "critical",
                        "component": "reconciler"
                    },
                    "annotations": {
                        "summary": "Writes to {{ $labels.store }} are failing",
                        "description": "{{ $labels.store }} write failures at {{ $value }}/s (threshold: 0.1/s)"
                    }
                }
            ]
        }

    def _generate_orphan_alerts(self) -> Dict[str, Any]:
        return {
            "name": "customer_sync_orphans",
            "interval": "1m",
            "rules": [
                {
                    "alert": "OrphanRepairInsertsFailing",
                    "expr": 'increase(customer_sync_orphan_inserts_total{status="failure"}[1h]) > 0',
                    "for": "0m",
                    "labels": {
                        "severity": "warning",
                        "component": "orphan_repair"
                    },
                    "annotations": {
                        "summary": "Orphan repair could not insert profiles",
                        "description": "{{ $value }} default profile inserts failed in the last hour"
                    }
                },
                {
                    "alert": "OrphanedCustomersAccumulating",
                    "expr": "increase(customer_sync_orphans_found_total[24h]) > 50",
                    "for": "0m",
                    "labels": {
                        "severity": "info",
                        "component": "orphan_repair"
                    },
                    "annotations": {
                        "summary": "Many customer accounts created without profiles",
                        "description": "{{ $value }} orphaned customer accounts found in the last 24 hours"
                    }
                }
            ]
        }

    def _generate_connection_alerts(self) -> Dict[str, Any]:
        return {
            "name": "customer_sync_connections",
            "interval": "30s",
            "rules": [
                {
                    "alert": "CommitRetriesElevated",
                    "expr": "rate(customer_sync_commit_retries_total[10m]) > 0.05",
                    "for": "10m",
                    "labels": {
                        "severity": "warning",
                        "component": "database"
                    },
                    "annotations": {
                        "summary": "Connections to {{ $labels.store }} dropping before commit",
                        "description": "Commit retries on {{ $labels.store }} at {{ $value }}/s"
                    }
                }
            ]
        }

    def export_to_yaml(self, output_file: str) -> None:
        """
        Export alert rules to YAML file.

        Args:
            output_file: Path to output YAML file
        """
        rules = self.generate_alert_rules()

        with open(output_file, 'w') as f:
            yaml.dump(rules, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Alert rules exported to {output_file}")

    def to_yaml(self) -> str:
        return yaml.dump(self.generate_alert_rules(), default_flow_style=False, sort_keys=False)

    def get_alert_summary(self) -> Dict[str, int]:
        """
        Count alert rules by severity.

        Returns:
            Dict with total_groups, total_alerts and per-severity counts
        """
        rules = self.generate_alert_rules()

        summary = {
            "total_groups": len(rules["groups"]),
            "total_alerts": 0,
            "critical": 0,
            "warning": 0,
            "info": 0
        }

        for group in rules["groups"]:
            for rule in group["rules"]:
                summary["total_alerts"] += 1
                severity = rule["labels"].get("severity", "unknown")
                if severity in summary:
                    summary[severity] += 1

        return summary
