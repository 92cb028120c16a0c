"""
Account Store adapter (core2 `users` table).

Owns identity, contact and credential fields. Every statement is scoped to
`role = 'customer'` except the email uniqueness check, which must see all
users.
"""

import logging
from typing import Any, Dict, Optional

from customer_sync.stores.connection import StoreConnection
from customer_sync.stores.fields import FieldSet

logger = logging.getLogger(__name__)

CUSTOMER_ROLE = "customer"


class AccountStore:
    """Reads and writes customer rows in the account database."""

    table = "users"

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    @property
    def name(self) -> str:
        return self.connection.name

    def find_email_owner(self, email: str, exclude_user_id: int) -> Optional[int]:
        """
        Find another user (any role) already using an email.

        Returns:
            That user's id, or None when the email is free
        """
        row = self.connection.query_one(
            "SELECT user_id FROM users WHERE email = %s AND user_id <> %s LIMIT 1",
            (email, exclude_user_id)
        )
        return int(row["user_id"]) if row else None

    def customer_exists(self, user_id: int) -> bool:
        row = self.connection.query_one(
            "SELECT user_id FROM users WHERE user_id = %s AND role = %s LIMIT 1",
            (user_id, CUSTOMER_ROLE)
        )
        return row is not None

    def update_customer(self, user_id: int, fields: FieldSet) -> int:
        """
        Apply a field set to one customer account in a single UPDATE.

        Returns:
            Rows affected (0 when no customer row matched)
        """
        statement, params = fields.update_statement(
            self.table,
            {"user_id": user_id, "role": CUSTOMER_ROLE}
        )
        rowcount = self.connection.execute(statement, params)
        logger.debug(f"Updated columns {fields.columns} for user {user_id}: {rowcount} row(s)")
        return rowcount

    def set_status(self, user_id: int, status: str) -> int:
        return self.update_customer(user_id, FieldSet({"status": status}))

    def get_customer(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self.connection.query_one(
            "SELECT user_id, firstname, lastname, email, phone, status, profile_picture "
            "FROM users WHERE user_id = %s AND role = %s LIMIT 1",
            (user_id, CUSTOMER_ROLE)
        )

    def get_contact(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Name, phone and email for a user, used to enrich profile rows."""
        return self.connection.query_one(
            "SELECT firstname, lastname, phone, email FROM users WHERE user_id = %s",
            (user_id,)
        )

    def load_customer_accounts(self) -> Dict[int, Dict[str, Any]]:
        """All customer accounts keyed by user_id."""
        rows = self.connection.query_all(
            "SELECT user_id, firstname, lastname, email FROM users WHERE role = %s",
            (CUSTOMER_ROLE,)
        )
        accounts = {int(row["user_id"]): row for row in rows}
        logger.info(f"Loaded {len(accounts)} customer accounts from {self.name}")
        return accounts
