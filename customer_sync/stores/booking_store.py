"""Read-only access to the booking system's `bookings` table."""

import logging
from typing import Any, Dict, Optional

from customer_sync.stores.connection import StoreConnection

logger = logging.getLogger(__name__)

OPEN_BOOKING_STATUSES = ("pending", "confirmed")


class BookingStore:

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    def next_open_booking(self, customer_id: int) -> Optional[Dict[str, Any]]:
        """The earliest pending or confirmed booking for a customer, if any."""
        return self.connection.query_one(
            "SELECT booking_id, pickup_location, dropoff_location, pickup_datetime, booking_status "
            "FROM bookings WHERE customer_id = %s AND booking_status IN %s "
            "ORDER BY pickup_datetime ASC LIMIT 1",
            (customer_id, OPEN_BOOKING_STATUSES)
        )
