"""
Legacy address repair.

Older customer rows store the whole address as one comma-joined string in
`address` and leave `city`, `state` and `zip` empty. Read paths run rows
through `split_legacy_address` so callers always see separated fields.
"""

import re
from typing import Any, Dict

_SEGMENT_SEPARATOR = re.compile(r",\s*")
_WHITESPACE = re.compile(r"\s+")


def is_legacy_address(row: Dict[str, Any]) -> bool:
    return bool(row.get("address")) and not any(
        row.get(column) for column in ("city", "state", "zip")
    )


def split_legacy_address(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of row with a merged address split into its parts.

    "789 Pine St, Taguig, Metro Manila 1630" becomes address "789 Pine St",
    city "Taguig", state "Metro", zip "Manila 1630". With two segments only
    address and city are filled; with one the raw string stays in address.
    Rows that already have city, state or zip are returned unchanged.
    """
    result = dict(row)

    if not is_legacy_address(row):
        return result

    parts = _SEGMENT_SEPARATOR.split(row["address"])

    if len(parts) >= 3:
        state_zip = _WHITESPACE.split(parts[2], maxsplit=1)
        result.update(
            address=parts[0],
            city=parts[1],
            state=state_zip[0],
            zip=state_zip[1] if len(state_zip) > 1 else "",
        )
    elif len(parts) == 2:
        result.update(address=parts[0], city=parts[1], state="", zip="")
    else:
        result.update(city="", state="", zip="")

    return result
