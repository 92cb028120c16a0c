"""
Profile Store adapter (core1 `customers` table).

Owns address, geolocation and presence. Rows carry their own `customer_id`
and reference accounts by `user_id` without a database-level foreign key, so
a profile row is never assumed to exist.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from customer_sync.address import split_legacy_address
from customer_sync.stores.connection import StoreConnection
from customer_sync.stores.fields import FieldSet

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = (
    "customer_id, user_id, address, city, state, zip, status, "
    "latitude, longitude, location_updated_at"
)


class ProfileStore:
    """Reads and writes rows in the profile database."""

    table = "customers"

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    @property
    def name(self) -> str:
        return self.connection.name

    def find_customer_id(self, user_id: int) -> Optional[int]:
        row = self.connection.query_one(
            "SELECT customer_id FROM customers WHERE user_id = %s LIMIT 1",
            (user_id,)
        )
        return int(row["customer_id"]) if row else None

    def update_by_user(self, user_id: int, fields: FieldSet) -> int:
        statement, params = fields.update_statement(self.table, {"user_id": user_id})
        return self.connection.execute(statement, params)

    def insert(self, fields: FieldSet) -> int:
        if "user_id" not in fields:
            raise ValueError("Profile rows require a user_id")
        statement, params = fields.insert_statement(self.table)
        return self.connection.execute(statement, params)

    def insert_default(self, user_id: int, now: datetime) -> int:
        """Insert the placeholder profile used to repair orphaned accounts."""
        return self.insert(FieldSet({
            "user_id": user_id,
            "status": "offline",
            "created_at": now,
            "updated_at": now,
        }))

    def load_user_ids(self) -> Set[int]:
        rows = self.connection.query_all("SELECT user_id FROM customers")
        return {int(row["user_id"]) for row in rows if row["user_id"] is not None}

    def get_by_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self.connection.query_one(
            f"SELECT {PROFILE_COLUMNS} FROM customers WHERE user_id = %s LIMIT 1",
            (user_id,)
        )
        return split_legacy_address(row) if row else None

    def load_located(self) -> List[Dict[str, Any]]:
        """Profiles with usable coordinates (non-null and non-zero)."""
        rows = self.connection.query_all(
            f"SELECT {PROFILE_COLUMNS} FROM customers "
            "WHERE latitude IS NOT NULL AND longitude IS NOT NULL "
            "AND latitude <> 0 AND longitude <> 0"
        )
        return [split_legacy_address(row) for row in rows]

    def update_location(
        self,
        customer_id: int,
        latitude: float,
        longitude: float,
        now: datetime
    ) -> int:
        statement, params = FieldSet({
            "latitude": latitude,
            "longitude": longitude,
            "location_updated_at": now,
        }).update_statement(self.table, {"customer_id": customer_id})
        return self.connection.execute(statement, params)
