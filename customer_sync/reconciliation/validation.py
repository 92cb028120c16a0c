"""
Input validation for customer mutations.

Malformed identifiers, names, phones and emails are rejected outright.
Unknown status values are silently replaced with a safe default instead of
being rejected.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from email_validator import validate_email, EmailNotValidError

from customer_sync.errors import ValidationError

logger = logging.getLogger(__name__)

# Philippine mobile numbers: +639XXXXXXXXX or 09XXXXXXXXX
PHONE_PATTERN = re.compile(r"^(\+639|09)\d{9}$")

ACCOUNT_STATUSES = ("active", "inactive", "suspended")
PRESENCE_STATUSES = ("online", "busy", "offline")
DEFAULT_ACCOUNT_STATUS = "active"
DEFAULT_PRESENCE_STATUS = "offline"

# Values the status-transition operation accepts
TRANSITION_STATUSES = ("active", "inactive")

REQUIRED_FIELDS = ("firstname", "lastname", "email", "phone")


@dataclass
class CustomerUpdate:
    """A validated update request for one customer."""

    user_id: int
    firstname: str
    lastname: str
    email: str
    phone: str
    account_status: str = DEFAULT_ACCOUNT_STATUS
    presence_status: str = DEFAULT_PRESENCE_STATUS
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    password: Optional[str] = field(default=None, repr=False)


def coerce_choice(value: Optional[str], choices: Sequence[str], default: str) -> str:
    """Return value when it is one of choices, otherwise default."""
    candidate = (value or "").strip().lower()
    if candidate in choices:
        return candidate
    if candidate:
        logger.info(f"Replacing unrecognised status '{candidate}' with '{default}'")
    return default


def parse_user_id(raw: Any, field_name: str = "user_id") -> int:
    """
    Parse a positive integer identifier.

    Raises:
        ValidationError: If raw is missing, non-numeric or not positive
    """
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}.", field=field_name)

    if value <= 0:
        raise ValidationError(f"Invalid {field_name}.", field=field_name)

    return value


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone or ""))


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


def _text(form: Mapping[str, Any], key: str) -> str:
    value = form.get(key)
    return str(value).strip() if value is not None else ""


def validate_customer_update(form: Mapping[str, Any]) -> CustomerUpdate:
    """
    Build a CustomerUpdate from submitted form fields.

    Args:
        form: Mapping of submitted field names to values

    Returns:
        Validated update with statuses coerced to known values

    Raises:
        ValidationError: On a bad identifier, a missing required field, or
            a malformed phone or email
    """
    user_id = parse_user_id(form.get("user_id"))

    values = {name: _text(form, name) for name in REQUIRED_FIELDS}
    missing = [name for name in REQUIRED_FIELDS if not values[name]]
    if missing:
        raise ValidationError("Missing required fields.", field=missing[0])

    if not is_valid_phone(values["phone"]):
        raise ValidationError("Invalid PH phone number format.", field="phone")

    if not is_valid_email(values["email"]):
        raise ValidationError("Invalid email address.", field="email")

    password = _text(form, "password") or None

    return CustomerUpdate(
        user_id=user_id,
        account_status=coerce_choice(
            form.get("account_status"), ACCOUNT_STATUSES, DEFAULT_ACCOUNT_STATUS
        ),
        presence_status=coerce_choice(
            form.get("current_status"), PRESENCE_STATUSES, DEFAULT_PRESENCE_STATUS
        ),
        address=_text(form, "address"),
        city=_text(form, "city"),
        state=_text(form, "state"),
        zip=_text(form, "zip"),
        password=password,
        **values
    )


def validate_coordinates(latitude: Any, longitude: Any) -> tuple:
    """
    Parse and range-check a latitude/longitude pair.

    Raises:
        ValidationError: If either value is missing, non-numeric or out of range
    """
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise ValidationError("Latitude and longitude are required.", field="latitude")

    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValidationError("Invalid coordinates.", field="latitude")

    return lat, lng
