"""
Logging configuration shared by the web app and the command line tool.
"""

import json
import logging
from datetime import datetime, timezone

from customer_sync.utils.correlation import correlation_id_filter

CONSOLE_FORMAT = '[%(asctime)s] %(levelname)s [%(correlation_id)s] %(name)s - %(message)s'

# Attributes copied into the JSON payload when a caller passes them via `extra=`
_EXTRA_FIELDS = ("user_id", "store", "outcome", "duration", "orphans")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'N/A'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(json_logging: bool = False, level: int = logging.INFO) -> None:
    """
    Install a single handler on the root logger.

    Args:
        json_logging: Emit JSON lines instead of the console format
        level: Root log level
    """
    handler = logging.StreamHandler()
    handler.addFilter(correlation_id_filter)

    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_customer_sync", False):
            root.removeHandler(existing)

    handler._customer_sync = True
    root.addHandler(handler)
    root.setLevel(level)
