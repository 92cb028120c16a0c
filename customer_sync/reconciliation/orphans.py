"""
Orphan Repair

Finds customer accounts with no profile row and inserts a default profile
(presence `offline`) for each. Inserts commit one at a time so a failed row
never aborts the rest of the batch.

Only one direction is repaired: profile rows whose account is missing are
left alone.
"""

import time
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from customer_sync.errors import StoreError
from customer_sync.reconciliation.reconciler import utcnow
from customer_sync.stores.account_store import AccountStore
from customer_sync.stores.profile_store import ProfileStore

logger = logging.getLogger(__name__)


@dataclass
class OrphanRepairReport:
    """
    Attributes:
        accounts_scanned: Customer accounts loaded from the account store
        orphans: user_ids with no profile row, ascending
        inserted: user_ids that received a default profile
        errors: One message per failed insert
        dry_run: No rows were written
    """

    accounts_scanned: int = 0
    orphans: List[int] = field(default_factory=list)
    inserted: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False
    duration_seconds: float = 0.0

    @property
    def message(self) -> str:
        if self.accounts_scanned == 0:
            return "No customer users found in the system."
        if not self.orphans:
            return "No orphaned customers found."
        if self.dry_run:
            return f"Found {len(self.orphans)} orphaned customers."
        return f"Fixed {len(self.inserted)} orphaned customers."

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "success": True,
            "message": self.message,
            "count": len(self.inserted),
        }
        if self.orphans:
            response["total"] = len(self.orphans)
            response["errors"] = list(self.errors)
        response["accounts_scanned"] = self.accounts_scanned
        if self.dry_run:
            response["dry_run"] = True
            response["orphans"] = list(self.orphans)
        return response


def find_missing_profiles(account_ids: Set[int], profile_user_ids: Set[int]) -> List[int]:
    """Account ids with no matching profile, sorted."""
    return sorted(account_ids - profile_user_ids)


class OrphanRepairer:
    """
    Restores the one-profile-per-customer-account invariant.

    Args:
        accounts: Account store adapter
        profiles: Profile store adapter
        metrics: Optional SyncMetrics
        clock: Returns the timestamp written to created_at/updated_at
    """

    def __init__(
        self,
        accounts: AccountStore,
        profiles: ProfileStore,
        metrics=None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.accounts = accounts
        self.profiles = profiles
        self.metrics = metrics
        self._clock = clock or utcnow

    def find_orphans(self) -> OrphanRepairReport:
        """
        Compute orphans without writing anything.

        Raises:
            StoreError: If either store cannot be read
        """
        accounts = self.accounts.load_customer_accounts()
        report = OrphanRepairReport(accounts_scanned=len(accounts), dry_run=True)

        if not accounts:
            return report

        profile_user_ids = self.profiles.load_user_ids()
        report.orphans = find_missing_profiles(set(accounts), profile_user_ids)

        logger.info(
            f"Scanned {len(accounts)} customer accounts against {len(profile_user_ids)} profiles: "
            f"{len(report.orphans)} orphan(s)"
        )
        return report

    def repair(self, dry_run: bool = False) -> OrphanRepairReport:
        """
        Insert a default profile for every orphaned account.

        Args:
            dry_run: Only report what would be inserted

        Returns:
            OrphanRepairReport with per-row errors for failed inserts

        Raises:
            StoreError: If the initial reads fail
        """
        start = time.time()
        report = self.find_orphans()
        report.dry_run = dry_run

        if not dry_run:
            for user_id in report.orphans:
                self._insert_default(user_id, report)

        report.duration_seconds = time.time() - start

        if self.metrics:
            self.metrics.record_orphan_repair(
                found=len(report.orphans),
                inserted=len(report.inserted),
                failed=len(report.errors),
                duration_seconds=report.duration_seconds,
                dry_run=dry_run
            )

        logger.info(
            f"Orphan repair finished: {len(report.inserted)}/{len(report.orphans)} inserted, "
            f"{len(report.errors)} error(s)",
            extra={"orphans": len(report.orphans), "duration": report.duration_seconds}
        )
        return report

    def _insert_default(self, user_id: int, report: OrphanRepairReport) -> None:
        conn = self.profiles.connection
        conn.begin()
        try:
            self.profiles.insert_default(user_id, self._clock())
            conn.commit()
            report.inserted.append(user_id)
        except StoreError as e:
            conn.rollback()
            logger.error(f"Failed to insert profile for user {user_id}: {e.detail}")
            report.errors.append(f"Failed to insert customer record for user ID {user_id}: {e.detail}")
