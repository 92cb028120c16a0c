"""HTTP blueprints."""

from customer_sync.api.customers import customers_bp
from customer_sync.api.health import health_bp

__all__ = ["customers_bp", "health_bp"]
