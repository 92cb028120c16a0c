"""
Runtime configuration for the customer sync service.

Values are read from environment variables. When Vault is configured
(VAULT_ADDR and VAULT_TOKEN), database usernames and passwords are pulled
from the `core1-credentials` and `core2-credentials` secrets and override the
environment.
"""

import os
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 2 * 1024 * 1024
# Whole request body; must stay above DEFAULT_MAX_IMAGE_BYTES
DEFAULT_MAX_REQUEST_BYTES = 16 * 1024 * 1024


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class DatabaseSettings:
    """Connection parameters for one of the two databases."""

    host: str = "localhost"
    port: int = 5432
    dbname: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    connect_timeout: int = 10

    @classmethod
    def from_env(cls, prefix: str, default_name: str) -> "DatabaseSettings":
        """
        Build settings from `<PREFIX>_DB_*` environment variables.

        Args:
            prefix: Variable prefix, "CORE1" or "CORE2"
            default_name: Database name used when `<PREFIX>_DB_NAME` is unset
        """
        return cls(
            host=os.getenv(f"{prefix}_DB_HOST", "localhost"),
            port=int(os.getenv(f"{prefix}_DB_PORT", "5432")),
            dbname=os.getenv(f"{prefix}_DB_NAME", default_name),
            user=os.getenv(f"{prefix}_DB_USER", default_name),
            password=os.getenv(f"{prefix}_DB_PASSWORD", ""),
            connect_timeout=int(os.getenv(f"{prefix}_DB_CONNECT_TIMEOUT", "10")),
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments accepted by psycopg2.connect."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.dbname,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
        }


@dataclass
class Settings:
    """
    Top-level service settings.

    Attributes:
        profile_db: core1 database holding the `customers` table
        account_db: core2 database holding `users`, `bookings`, `system_logs`
        secret_key: Flask session signing key
        upload_root: Directory profile images are written under
        max_image_bytes: Upload size cap for profile images
        max_request_bytes: Transport limit on the whole request body
        json_logging: Emit JSON log lines instead of console format
        metrics_enabled: Expose /metrics
    """

    profile_db: DatabaseSettings = field(default_factory=DatabaseSettings)
    account_db: DatabaseSettings = field(default_factory=DatabaseSettings)
    secret_key: str = field(default="dev-secret-key", repr=False)
    upload_root: str = "uploads"
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES
    json_logging: bool = False
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            profile_db=DatabaseSettings.from_env("CORE1", "core1_movers"),
            account_db=DatabaseSettings.from_env("CORE2", "core2_movers"),
            secret_key=os.getenv("SECRET_KEY", "dev-secret-key"),
            upload_root=os.getenv("UPLOAD_ROOT", "uploads"),
            max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(DEFAULT_MAX_IMAGE_BYTES))),
            max_request_bytes=int(os.getenv("MAX_REQUEST_BYTES", str(DEFAULT_MAX_REQUEST_BYTES))),
            json_logging=_env_bool("JSON_LOGGING"),
            metrics_enabled=_env_bool("METRICS_ENABLED", "true"),
        )


def apply_vault_credentials(settings: Settings, vault_client) -> Settings:
    """
    Overlay database credentials stored in Vault onto settings.

    Args:
        settings: Settings loaded from the environment
        vault_client: Connected VaultClient

    Returns:
        New Settings with user/password (and host/port when present) replaced
    """
    overrides = {}

    for attr, database in (("profile_db", "core1"), ("account_db", "core2")):
        secret = vault_client.get_database_credentials(database)
        current: DatabaseSettings = getattr(settings, attr)
        overrides[attr] = replace(
            current,
            host=secret.get("host", current.host),
            port=int(secret.get("port", current.port)),
            user=secret.get("username", current.user),
            password=secret.get("password", current.password),
        )
        logger.info(f"Loaded {database} credentials from Vault")

    return replace(settings, **overrides)


def load_settings(vault_client: Optional[Any] = None) -> Settings:
    """
    Load settings from the environment, then Vault when available.

    Args:
        vault_client: Optional pre-built VaultClient (mainly for tests)
    """
    settings = Settings.from_env()

    if vault_client is None and os.getenv("VAULT_ADDR") and os.getenv("VAULT_TOKEN"):
        from customer_sync.utils.vault_client import VaultClient
        vault_client = VaultClient()

    if vault_client is not None:
        settings = apply_vault_credentials(settings, vault_client)

    return settings
