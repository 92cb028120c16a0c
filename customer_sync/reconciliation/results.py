"""
Result types for reconciliation operations.

A two-store write can land in one store and not the other, so results carry
one StoreWrite per store and an Outcome that keeps partial failure distinct
from total failure.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Outcome(Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"
    REJECTED = "rejected"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    Outcome.SUCCESS: 200,
    Outcome.PARTIAL_FAILURE: 500,
    Outcome.FAILURE: 500,
    Outcome.REJECTED: 400,
    Outcome.CONFLICT: 409,
    Outcome.NOT_FOUND: 404,
}


@dataclass
class StoreWrite:
    """What happened in one store during an operation."""

    store: str
    action: str
    ok: bool
    rowcount: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action, "ok": self.ok, "rowcount": self.rowcount}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ReconcileResult:
    """
    Combined result of a reconciliation operation.

    Attributes:
        outcome: Overall outcome
        message: Caller-facing message, safe to display
        writes: Per-store write results in the order they were attempted
        advisories: Best-effort failures that did not change the outcome
        error_code: Stable code for rejected/conflicting requests
        input_field: Offending input field, when known
        data: Operation-specific payload merged into the response
    """

    outcome: Outcome
    message: str
    writes: List[StoreWrite] = field(default_factory=list)
    advisories: Dict[str, str] = field(default_factory=dict)
    error_code: Optional[str] = None
    input_field: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def failed_stores(self) -> List[str]:
        return [write.store for write in self.writes if not write.ok]

    def write_for(self, store: str) -> Optional[StoreWrite]:
        for write in self.writes:
            if write.store == store:
                return write
        return None

    def to_response(self) -> Dict[str, Any]:
        """JSON envelope `{success, message, ...}` returned to HTTP callers."""
        response: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
        }

        if self.error_code:
            response["error"] = self.error_code
        if self.input_field:
            response["field"] = self.input_field

        if self.writes:
            response["stores"] = {write.store: write.to_dict() for write in self.writes}
            errors = [f"{write.store}: {write.error}" for write in self.writes if write.error]
            if errors:
                response["errors"] = errors

        response.update(self.advisories)
        response.update(self.data)
        return response

    @classmethod
    def rejected(cls, message: str, field: Optional[str] = None) -> "ReconcileResult":
        return cls(Outcome.REJECTED, message, error_code="invalid_input", input_field=field)

    @classmethod
    def conflict(cls, message: str, code: str, field: Optional[str] = None) -> "ReconcileResult":
        return cls(Outcome.CONFLICT, message, error_code=code, input_field=field)

    @classmethod
    def not_found(cls, message: str) -> "ReconcileResult":
        return cls(Outcome.NOT_FOUND, message, error_code="not_found")
