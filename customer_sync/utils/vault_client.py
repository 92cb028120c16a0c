"""
Vault source for database credentials

The core1 and core2 logins live in a KV v2 mount as `core1-credentials` and
`core2-credentials`, each holding `username` and `password` and optionally
`host` and `port`. Secrets are read once per client and cached.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError

logger = logging.getLogger(__name__)

# logical database -> secret path under the mount
CREDENTIAL_PATHS = {
    "core1": "core1-credentials",
    "core2": "core2-credentials",
}


@dataclass
class HealthStatus:
    """
    Attributes:
        healthy: Authenticated and unsealed
        authenticated: Token accepted
        sealed: Vault reports itself sealed
        error: Reason when unhealthy
    """

    healthy: bool
    authenticated: bool
    sealed: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.healthy

    @classmethod
    def down(cls, error: str, authenticated: bool = False) -> "HealthStatus":
        return cls(healthy=False, authenticated=authenticated, sealed=True, error=error)


class VaultClient:
    """
    Reads database credentials from Vault.

    Args:
        vault_url: Server URL, VAULT_ADDR when omitted
        vault_token: Token, VAULT_TOKEN when omitted
        verify_ssl: Verify TLS certificates
        mount_point: KV v2 mount holding the credential secrets

    Raises:
        ValueError: If no URL or token is available
        VaultError: If Vault rejects the token or cannot be reached
    """

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point
        self._cache: Dict[str, Dict[str, Any]] = {}

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")
        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        self.client = hvac.Client(url=self.vault_url, token=self.vault_token, verify=verify_ssl)

        try:
            authenticated = self.client.is_authenticated()
        except (VaultError, OSError) as e:
            raise VaultError(f"Could not reach Vault at {self.vault_url}: {e}") from e

        if not authenticated:
            raise VaultError(f"Failed to authenticate with Vault at {self.vault_url}")

        logger.info(f"Authenticated to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Latest version of a KV v2 secret, cached for the client's lifetime.

        Raises:
            InvalidPath: If nothing is stored at the path
        """
        if path in self._cache:
            return self._cache[path]

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"No secret at {self.mount_point}/{path}")
            raise

        secret = (response or {}).get("data", {}).get("data")
        if not secret:
            raise InvalidPath(f"No data found at path: {path}")

        self._cache[path] = secret
        return secret

    def get_database_credentials(self, database: str) -> Dict[str, Any]:
        """
        Args:
            database: "core1" (profiles) or "core2" (accounts)

        Raises:
            ValueError: For any other database name
        """
        path = CREDENTIAL_PATHS.get(database)
        if path is None:
            raise ValueError(f"Invalid database: {database}. Must be one of {sorted(CREDENTIAL_PATHS)}")

        credentials = self.get_secret(path)
        missing = [key for key in ("username", "password") if key not in credentials]
        if missing:
            logger.warning(f"Secret {path} has no {', '.join(missing)}; environment values will be kept")
        return credentials

    def health_check(self) -> HealthStatus:
        """Check token and seal state. Never raises."""
        try:
            if not self.client.is_authenticated():
                return HealthStatus.down("Not authenticated")
            sealed = bool(self.client.sys.read_health_status().get("sealed", True))
        except (VaultError, OSError) as e:
            logger.error(f"Vault health check failed: {e}")
            return HealthStatus.down(str(e))

        if sealed:
            return HealthStatus.down("Vault is sealed", authenticated=True)
        return HealthStatus(healthy=True, authenticated=True, sealed=False)

    def close(self):
        self._cache.clear()
        self.client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
