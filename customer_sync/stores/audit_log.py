"""
Audit trail written to the account database's `system_logs` table.

Recording is best-effort: a failed insert is rolled back and logged, and the
caller only learns about it through the boolean result.
"""

import logging
from typing import Optional

from customer_sync.errors import StoreError
from customer_sync.stores.connection import StoreConnection
from customer_sync.stores.fields import FieldSet

logger = logging.getLogger(__name__)


class SystemLogAudit:

    table = "system_logs"

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    def record(
        self,
        actor_id: Optional[int],
        action: str,
        description: str,
        source_ip: Optional[str]
    ) -> bool:
        """
        Append one audit entry in its own transaction.

        Returns:
            True when the entry was committed
        """
        fields = FieldSet({
            "user_id": actor_id,
            "action": action,
            "description": description,
            "ip_address": source_ip or "0.0.0.0",
        })
        statement, params = fields.insert_statement(self.table)

        self.connection.begin()
        try:
            self.connection.execute(statement, params)
            self.connection.commit()
            return True
        except StoreError as e:
            logger.warning(f"Audit record '{action}' not written: {e.detail}")
            self.connection.rollback()
            return False
