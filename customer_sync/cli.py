"""
Customer sync command line tool

Maintenance commands for the customer databases:
- Repair orphaned customer accounts (accounts with no profile row)
- Report orphans without writing
- Export Prometheus alert rules
- Run the HTTP service

Usage:
    customer-sync repair-orphans
    customer-sync repair-orphans --dry-run
    customer-sync report
    customer-sync alert-rules --output customer_sync_alerts.yml
    customer-sync serve --host 0.0.0.0 --port 8080
"""

import sys
import json
import argparse
import logging
from typing import Any, Dict, List, Optional

from customer_sync.config import load_settings
from customer_sync.monitoring.alerts import AlertRuleGenerator
from customer_sync.monitoring.metrics import SyncMetrics
from customer_sync.reconciliation.orphans import OrphanRepairReport
from customer_sync.services import build_services
from customer_sync.utils.correlation import CorrelationContext
from customer_sync.utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def summarize_orphans(report: OrphanRepairReport) -> Dict[str, Any]:
    """Orphan report for operators, with a recommendation."""
    orphan_count = len(report.orphans)

    if report.accounts_scanned == 0:
        recommendation = "No customer accounts found"
    elif orphan_count == 0:
        recommendation = "All customer accounts have profiles - no action needed"
    else:
        recommendation = "Run `customer-sync repair-orphans` to create default profiles"

    return {
        "accounts_scanned": report.accounts_scanned,
        "orphan_count": orphan_count,
        "orphans": report.orphans,
        "recommendation": recommendation,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="customer-sync",
        description="Customer account/profile reconciliation tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    repair_parser = subparsers.add_parser("repair-orphans", help="Create default profiles for orphaned accounts")
    repair_parser.add_argument("--dry-run", action="store_true", help="Report only, do not insert")

    subparsers.add_parser("report", help="Report orphaned customer accounts")

    alerts_parser = subparsers.add_parser("alert-rules", help="Print or export Prometheus alert rules")
    alerts_parser.add_argument("--output", help="Write rules to this YAML file")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")

    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "alert-rules":
        generator = AlertRuleGenerator()
        if args.output:
            generator.export_to_yaml(args.output)
            print(json.dumps(generator.get_alert_summary(), indent=2))
        else:
            print(generator.to_yaml())
        return 0

    settings = load_settings()
    configure_logging(
        json_logging=settings.json_logging,
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    if args.command == "serve":
        from customer_sync.app import create_app

        app = create_app(settings)
        app.run(host=args.host, port=args.port)
        return 0

    try:
        with CorrelationContext(), build_services(settings, SyncMetrics()) as services:
            if args.command == "repair-orphans":
                report = services.orphans.repair(dry_run=args.dry_run)
                print(json.dumps(report.to_response(), indent=2))
                return 0 if not report.errors else 2

            if args.command == "report":
                report = services.orphans.find_orphans()
                print(json.dumps(summarize_orphans(report), indent=2))
                return 0

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
