"""
Proximity query over profile coordinates.

Distances use the spherical law of cosines with a 6371 km Earth radius and
are computed here rather than in SQL, so the boundary rule (distance equal to
the radius is included) and ordering do not depend on the database.
"""

import math
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from customer_sync.errors import StoreError, ValidationError
from customer_sync.reconciliation.validation import validate_coordinates
from customer_sync.stores.account_store import AccountStore
from customer_sync.stores.booking_store import BookingStore
from customer_sync.stores.profile_store import ProfileStore

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_LIMIT = 10
DEFAULT_MAX_DISTANCE_KM = 50.0

CONTACT_FIELDS = ("firstname", "lastname", "phone", "email")


def great_circle_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Spherical law of cosines distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta = math.radians(lng2 - lng1)

    cosine = math.cos(phi1) * math.cos(phi2) * math.cos(delta) + math.sin(phi1) * math.sin(phi2)
    # rounding can push identical points just past 1.0
    cosine = max(-1.0, min(1.0, cosine))
    return EARTH_RADIUS_KM * math.acos(cosine)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_query(
    latitude: Any,
    longitude: Any,
    limit: Any = None,
    max_distance: Any = None
) -> Tuple[float, float, int, float]:
    """
    Validate proximity query parameters, applying defaults.

    Raises:
        ValidationError: On missing/out-of-range coordinates or a bad limit/radius
    """
    if latitude in (None, "") or longitude in (None, ""):
        raise ValidationError("Missing required parameters: latitude and longitude", field="latitude")

    try:
        lat, lng = validate_coordinates(latitude, longitude)
    except ValidationError:
        raise ValidationError(
            "Invalid coordinates. Latitude must be between -90 and 90, longitude between -180 and 180",
            field="latitude"
        )

    try:
        count = int(limit) if limit not in (None, "") else DEFAULT_LIMIT
        radius = float(max_distance) if max_distance not in (None, "") else DEFAULT_MAX_DISTANCE_KM
    except (TypeError, ValueError):
        raise ValidationError("limit and max_distance must be numeric.", field="limit")

    if count <= 0 or radius < 0 or math.isnan(radius):
        raise ValidationError("limit must be positive and max_distance non-negative.", field="limit")

    return lat, lng, count, radius


class NearbyCustomerFinder:
    """
    Finds located customers around a reference point.

    Args:
        profiles: Profile store (coordinates)
        accounts: Account store (contact enrichment)
        bookings: Booking store (next open booking), optional
        clock: Returns now, used for location age
    """

    def __init__(
        self,
        profiles: ProfileStore,
        accounts: Optional[AccountStore] = None,
        bookings: Optional[BookingStore] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.profiles = profiles
        self.accounts = accounts
        self.bookings = bookings
        self._clock = clock

    def find(
        self,
        latitude: float,
        longitude: float,
        limit: int = DEFAULT_LIMIT,
        max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
    ) -> List[Dict[str, Any]]:
        """
        Rows within max_distance_km, nearest first, at most limit of them.

        Raises:
            StoreError: If the profile store cannot be read
        """
        candidates = []
        for row in self.profiles.load_located():
            lat = _as_float(row.get("latitude"))
            lng = _as_float(row.get("longitude"))
            if lat is None or lng is None or lat == 0 or lng == 0:
                continue

            distance = great_circle_km(latitude, longitude, lat, lng)
            if distance <= max_distance_km:
                candidates.append((distance, row))

        candidates.sort(key=lambda pair: pair[0])
        nearest = candidates[:limit]

        logger.debug(
            f"Proximity query ({latitude}, {longitude}) r={max_distance_km}km: "
            f"{len(candidates)} in range, returning {len(nearest)}"
        )

        now = self._clock()
        return [self._build_row(row, distance, now) for distance, row in nearest]

    def _build_row(self, row: Dict[str, Any], distance: float, now: datetime) -> Dict[str, Any]:
        result = {
            "customer_id": row.get("customer_id"),
            "user_id": row.get("user_id"),
            "address": row.get("address"),
            "city": row.get("city"),
            "state": row.get("state"),
            "zip": row.get("zip"),
            "status": row.get("status"),
            "latitude": _as_float(row.get("latitude")),
            "longitude": _as_float(row.get("longitude")),
            "location_updated_at": row.get("location_updated_at"),
            "location_age_seconds": self._location_age(row.get("location_updated_at"), now),
            "distance_km": round(distance, 2),
        }

        contact = self._contact(row.get("user_id"))
        if contact:
            result.update({name: contact.get(name) for name in CONTACT_FIELDS})

        booking = self._open_booking(row.get("customer_id"))
        if booking:
            result["pending_booking"] = booking

        return result

    @staticmethod
    def _location_age(updated_at: Any, now: datetime) -> Optional[int]:
        if not isinstance(updated_at, datetime):
            return None
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return int((now - updated_at).total_seconds())

    def _contact(self, user_id: Any) -> Optional[Dict[str, Any]]:
        if self.accounts is None or not user_id:
            return None
        try:
            return self.accounts.get_contact(int(user_id))
        except StoreError as e:
            logger.warning(f"Contact lookup failed for user {user_id}: {e.detail}")
            return None

    def _open_booking(self, customer_id: Any) -> Optional[Dict[str, Any]]:
        if self.bookings is None or not customer_id:
            return None
        try:
            return self.bookings.next_open_booking(int(customer_id))
        except StoreError as e:
            logger.warning(f"Booking lookup failed for customer {customer_id}: {e.detail}")
            return None
