"""
Request-scoped authorization.

Handlers build a RequestContext from the signed session once per request
and pass it explicitly to the reconciler. Nothing reads session state
globally.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional

from customer_sync.errors import AuthorizationError

logger = logging.getLogger(__name__)

MANAGE_CUSTOMERS = "manage_customers"
MANAGE_BOOKINGS = "manage_bookings"

SUPER_ADMIN = "super_admin"

ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "admin": frozenset({MANAGE_CUSTOMERS, MANAGE_BOOKINGS}),
    "dispatch": frozenset({MANAGE_BOOKINGS}),
}


@dataclass(frozen=True)
class RequestContext:
    """
    Authenticated caller for a single request.

    Attributes:
        user_id: Acting user's id, None when there is no session
        role: Acting user's role
        capabilities: Capabilities resolved from the role
        source_ip: Remote address, recorded in audit entries
    """

    user_id: Optional[int] = None
    role: str = ""
    capabilities: FrozenSet[str] = frozenset()
    source_ip: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_permission(self, capability: str) -> bool:
        if not self.is_authenticated:
            return False
        if self.role == SUPER_ADMIN:
            return True
        return capability in self.capabilities

    def require(self, capability: Optional[str] = None) -> None:
        """
        Raises:
            AuthorizationError: If unauthenticated or missing the capability
        """
        if not self.is_authenticated:
            raise AuthorizationError(capability, authenticated=False)
        if capability and not self.has_permission(capability):
            logger.warning(f"User {self.user_id} ({self.role}) denied '{capability}'")
            raise AuthorizationError(capability)


def build_request_context(session: Mapping[str, Any], remote_addr: Optional[str] = None) -> RequestContext:
    """Resolve a RequestContext from session data holding `user_id` and `user_role`."""
    raw_user_id = session.get("user_id")
    try:
        user_id = int(raw_user_id) if raw_user_id is not None else None
    except (TypeError, ValueError):
        logger.warning(f"Ignoring session with malformed user_id: {raw_user_id!r}")
        user_id = None

    if user_id is None:
        return RequestContext(source_ip=remote_addr)

    role = str(session.get("user_role") or "")
    return RequestContext(
        user_id=user_id,
        role=role,
        capabilities=ROLE_CAPABILITIES.get(role, frozenset()),
        source_ip=remote_addr,
    )
